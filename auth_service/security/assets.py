"""Resolve stored upload references into client-facing URLs."""

from __future__ import annotations

PROFILE_CATEGORY = "profiles"


class AssetLocator:
    """Map stored file references onto the public uploads prefix."""

    def __init__(self, base_url: str) -> None:
        self._base_url = base_url.rstrip("/")

    def file_url(self, reference: str | None, category: str) -> str | None:
        if not reference:
            return None
        if reference.startswith(("http://", "https://")):
            return reference
        filename = reference.replace("\\", "/").rsplit("/", 1)[-1]
        if not filename:
            return None
        return f"{self._base_url}/{category}/{filename}"

    def profile_image_url(self, reference: str | None) -> str | None:
        return self.file_url(reference, PROFILE_CATEGORY)
