from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Union


class AccountKind(str, Enum):
    """Discriminator for the two identity tables."""

    EXPERT = "expert"
    STANDARD = "user"

    @property
    def user_type(self) -> str:
        return self.value

    @property
    def account_type(self) -> str:
        return "Expert" if self is AccountKind.EXPERT else "User"


@dataclass(slots=True)
class StandardAccount:
    """Aggregate for a regular platform user."""

    account_id: str
    email: str
    first_name: str
    last_name: str
    phone: str | None = None
    is_active: bool = True
    is_email_verified: bool = False
    profile_image: str | None = None
    last_login: datetime | None = None
    password_hash: str | None = None

    @property
    def kind(self) -> AccountKind:
        return AccountKind.STANDARD


@dataclass(slots=True)
class ExpertAccount:
    """Aggregate for an expert, carrying profile data and lockout state."""

    account_id: str
    email: str
    first_name: str
    last_name: str
    phone: str | None = None
    is_active: bool = True
    is_email_verified: bool = False
    profile_image: str | None = None
    last_login: datetime | None = None
    password_hash: str | None = None
    specialization: str | None = None
    experience: int | None = None
    rating_average: float = 0.0
    rating_count: int = 0
    verification_status: str = "pending"
    login_attempts: int = 0
    lock_until: datetime | None = None

    @property
    def kind(self) -> AccountKind:
        return AccountKind.EXPERT

    def is_locked(self, now: datetime | None = None) -> bool:
        """Return ``True`` while ``lock_until`` lies in the future."""
        if self.lock_until is None:
            return False
        return self.lock_until > (now or datetime.now(timezone.utc))


Account = Union[StandardAccount, ExpertAccount]
