from __future__ import annotations

import uuid
from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from auth_service.api import routes
from auth_service.api.errors import install_error_handlers
from auth_service.domain.account import AccountKind, ExpertAccount, StandardAccount
from auth_service.domain.service import Authenticator
from auth_service.security.assets import AssetLocator
from auth_service.security.passwords import BcryptVerifier
from auth_service.security.rate_limiter import SlidingWindowRateLimiter

# Lowest cost factor bcrypt accepts; keeps fixtures fast.
verifier = BcryptVerifier(rounds=4)


class FakeAccountStore:
    """In-memory stand-in for AccountRepository, including its lockout policy."""

    def __init__(self, *, max_login_attempts: int = 5, lockout_seconds: int = 7200) -> None:
        self.experts: dict[str, ExpertAccount] = {}
        self.users: dict[str, StandardAccount] = {}
        self.lookups: list[tuple[str, str]] = []
        self.increment_calls: list[str] = []
        self.reset_calls: list[str] = []
        self.last_login_writes: list[tuple[str, AccountKind, datetime]] = []
        self.failing: set[str] = set()
        self._max_login_attempts = max_login_attempts
        self._lockout = timedelta(seconds=lockout_seconds)

    def add_expert(self, email: str, password: str, **fields) -> ExpertAccount:
        defaults = {
            "first_name": "Erin",
            "last_name": "Expert",
            "phone": "+15550001111",
            "is_email_verified": True,
            "specialization": "Cardiology",
            "experience": 7,
            "rating_average": 4.5,
            "rating_count": 12,
            "verification_status": "approved",
        }
        defaults.update(fields)
        account = ExpertAccount(
            account_id=str(uuid.uuid4()),
            email=email,
            password_hash=verifier.hash(password),
            **defaults,
        )
        self.experts[account.account_id] = account
        return account

    def add_user(self, email: str, password: str, **fields) -> StandardAccount:
        defaults = {"first_name": "Uma", "last_name": "User", "phone": "+15550002222"}
        defaults.update(fields)
        account = StandardAccount(
            account_id=str(uuid.uuid4()),
            email=email,
            password_hash=verifier.hash(password),
            **defaults,
        )
        self.users[account.account_id] = account
        return account

    def _maybe_fail(self, operation: str) -> None:
        if operation in self.failing:
            raise ConnectionError(f"{operation} unavailable")

    def _find(self, table: dict, email: str, include_password: bool):
        for record in table.values():
            if record.email.lower() == email.lower():
                copy = replace(record)
                if not include_password:
                    copy.password_hash = None
                return copy
        return None

    def find_expert_by_email(self, email: str, *, include_password: bool = False):
        self.lookups.append(("expert", email))
        self._maybe_fail("find_expert_by_email")
        return self._find(self.experts, email, include_password)

    def find_user_by_email(self, email: str, *, include_password: bool = False):
        self.lookups.append(("user", email))
        self._maybe_fail("find_user_by_email")
        return self._find(self.users, email, include_password)

    def get_account(self, account_id: str, kind: AccountKind):
        table = self.experts if kind is AccountKind.EXPERT else self.users
        record = table.get(account_id)
        if record is None:
            return None
        copy = replace(record)
        copy.password_hash = None
        return copy

    def record_last_login(self, account_id: str, kind: AccountKind, when: datetime) -> None:
        self._maybe_fail("record_last_login")
        table = self.experts if kind is AccountKind.EXPERT else self.users
        table[account_id].last_login = when
        self.last_login_writes.append((account_id, kind, when))

    def increment_login_attempts(self, expert_id: str):
        self.increment_calls.append(expert_id)
        self._maybe_fail("increment_login_attempts")
        expert = self.experts[expert_id]
        now = datetime.now(timezone.utc)
        if expert.lock_until is not None and expert.lock_until <= now:
            expert.login_attempts = 1
            expert.lock_until = None
        else:
            expert.login_attempts += 1
            if expert.lock_until is None and expert.login_attempts >= self._max_login_attempts:
                expert.lock_until = now + self._lockout
        return replace(expert)

    def reset_login_attempts(self, expert_id: str) -> None:
        self.reset_calls.append(expert_id)
        self._maybe_fail("reset_login_attempts")
        expert = self.experts[expert_id]
        expert.login_attempts = 0
        expert.lock_until = None


@pytest.fixture
def store() -> FakeAccountStore:
    return FakeAccountStore()


@pytest.fixture
def authenticator(store: FakeAccountStore) -> Authenticator:
    return Authenticator(
        store=store,
        lockout=store,
        verifier=verifier,
        assets=AssetLocator("/uploads"),
    )


@pytest.fixture
def api_client(authenticator: Authenticator, store: FakeAccountStore, monkeypatch):
    """Provide a FastAPI test client with isolated state."""
    app = FastAPI()
    install_error_handlers(app)
    app.include_router(routes.router)
    app.state.authenticator = authenticator

    monkeypatch.setattr(
        routes, "rate_limiter", SlidingWindowRateLimiter(max_requests=100, window_seconds=60)
    )

    with TestClient(app) as client:
        yield client, store
