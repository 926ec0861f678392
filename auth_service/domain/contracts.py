"""Domain-level request contracts and the collaborator interfaces consumed by the authenticator."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from .account import AccountKind, ExpertAccount, StandardAccount


@dataclass(slots=True)
class LoginInput:
    """Credentials submitted to the unified login endpoint."""

    email: str | None
    password: str | None


class IdentityStore(Protocol):
    """Lookup and last-login persistence for both account tables."""

    def find_expert_by_email(
        self, email: str, *, include_password: bool = False
    ) -> ExpertAccount | None: ...

    def find_user_by_email(
        self, email: str, *, include_password: bool = False
    ) -> StandardAccount | None: ...

    def get_account(
        self, account_id: str, kind: AccountKind
    ) -> StandardAccount | ExpertAccount | None: ...

    def record_last_login(self, account_id: str, kind: AccountKind, when: datetime) -> None: ...


class LockoutTracker(Protocol):
    """Failed-attempt bookkeeping for expert accounts."""

    def increment_login_attempts(self, expert_id: str) -> ExpertAccount | None: ...

    def reset_login_attempts(self, expert_id: str) -> None: ...


class CredentialVerifier(Protocol):
    def hash(self, password: str) -> str: ...

    def verify(self, password: str, password_hash: str) -> bool: ...


class AssetLocator(Protocol):
    def profile_image_url(self, reference: str | None) -> str | None: ...
