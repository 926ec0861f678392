"""Unified authenticator resolving logins across the expert and user tables."""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable

import jwt
from prometheus_client import Counter

from .account import Account, AccountKind, ExpertAccount
from .contracts import AssetLocator, CredentialVerifier, IdentityStore, LockoutTracker, LoginInput
from .errors import (
    AccountDeactivated,
    AccountLocked,
    InvalidCredentials,
    InvalidToken,
    ValidationError,
)
from ..security.tokens import TokenPair, decode_access_token, decode_refresh_token, issue_token_pair

logger = logging.getLogger(__name__)

LOGIN_ATTEMPTS = Counter(
    "auth_login_attempts_total",
    "Unified login attempts by outcome and resolved account type.",
    ["outcome", "account_type"],
)


@dataclass(slots=True)
class ExpertProfile:
    """Expert-only fields included in the account view."""

    specialization: str | None
    experience: int | None
    rating_average: float
    rating_count: int
    verification_status: str


@dataclass(slots=True)
class AccountView:
    """Sanitised account representation returned to API consumers; never holds a password."""

    account_id: str
    email: str
    first_name: str
    last_name: str
    phone: str | None
    user_type: str
    is_email_verified: bool
    profile_image: str | None
    expert_profile: ExpertProfile | None = None


@dataclass(slots=True)
class AuthResult:
    """Outcome of a successful authentication or session lookup."""

    account: AccountView
    kind: AccountKind
    token: str | None = None
    refresh_token: str | None = None


def email_fingerprint(email: str) -> str:
    """Short stable digest used to correlate log lines without writing the address."""
    return hashlib.sha256(email.lower().encode("utf-8")).hexdigest()[:12]


class Authenticator:
    """Credential resolution, account-state gates and token issuance."""

    def __init__(
        self,
        store: IdentityStore,
        lockout: LockoutTracker,
        verifier: CredentialVerifier,
        assets: AssetLocator,
        *,
        token_issuer: Callable[[str, AccountKind], TokenPair] = issue_token_pair,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._lockout = lockout
        self._verifier = verifier
        self._assets = assets
        self._issue_tokens = token_issuer
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._dummy_hash: str | None = None

    def login(self, payload: LoginInput) -> AuthResult:
        return self.authenticate(payload.email, payload.password)

    def authenticate(self, email: str | None, password: str | None) -> AuthResult:
        """Resolve ``email`` to a single account, apply the gates and issue tokens.

        Gates run in a fixed order: expert lockout, active flag, password.
        Unknown emails and wrong passwords raise the same ``InvalidCredentials``.
        """
        if not isinstance(email, str) or not isinstance(password, str):
            raise ValidationError()
        email = email.strip().lower()
        if not email or not password:
            raise ValidationError()

        fingerprint = email_fingerprint(email)
        account = self.resolve_account(email)
        if account is None:
            self._verify_against_dummy(password)
            logger.info("login rejected: no account for email=%s", fingerprint)
            LOGIN_ATTEMPTS.labels(outcome="unknown_account", account_type="none").inc()
            raise InvalidCredentials()

        kind = account.kind
        now = self._clock()

        if isinstance(account, ExpertAccount) and account.is_locked(now):
            logger.info("login rejected: expert %s locked until %s", account.account_id, account.lock_until)
            LOGIN_ATTEMPTS.labels(outcome="locked", account_type=kind.account_type).inc()
            raise AccountLocked()

        if not account.is_active:
            logger.info("login rejected: %s %s deactivated", kind.user_type, account.account_id)
            LOGIN_ATTEMPTS.labels(outcome="deactivated", account_type=kind.account_type).inc()
            raise AccountDeactivated()

        if not self._password_matches(account, password):
            logger.info("login rejected: bad password for %s %s", kind.user_type, account.account_id)
            if isinstance(account, ExpertAccount):
                self._best_effort(
                    "increment login attempts",
                    account.account_id,
                    self._lockout.increment_login_attempts,
                    account.account_id,
                )
            LOGIN_ATTEMPTS.labels(outcome="bad_password", account_type=kind.account_type).inc()
            raise InvalidCredentials()

        if isinstance(account, ExpertAccount) and (account.login_attempts or account.lock_until):
            self._best_effort(
                "reset login attempts",
                account.account_id,
                self._lockout.reset_login_attempts,
                account.account_id,
            )

        account.last_login = now
        self._best_effort(
            "record last login",
            account.account_id,
            self._store.record_last_login,
            account.account_id,
            kind,
            now,
        )

        tokens = self._issue_tokens(account.account_id, kind)
        logger.info("login succeeded for %s %s", kind.user_type, account.account_id)
        LOGIN_ATTEMPTS.labels(outcome="success", account_type=kind.account_type).inc()
        return AuthResult(
            account=self.to_view(account),
            kind=kind,
            token=tokens.access_token,
            refresh_token=tokens.refresh_token,
        )

    def resolve_account(self, email: str) -> Account | None:
        """Look the email up in the expert table, then the user table; first hit wins.

        A lookup that errors counts as a miss for that table.
        """
        lookups = (
            (AccountKind.EXPERT, self._store.find_expert_by_email),
            (AccountKind.STANDARD, self._store.find_user_by_email),
        )
        for kind, find in lookups:
            try:
                account = find(email, include_password=True)
            except Exception:
                logger.exception(
                    "%s lookup failed for email=%s", kind.user_type, email_fingerprint(email)
                )
                continue
            if account is not None:
                logger.debug("email=%s resolved to %s %s", email_fingerprint(email), kind.user_type, account.account_id)
                return account
        return None

    def refresh(self, refresh_token: str | None) -> AuthResult:
        """Exchange a refresh token for a new token pair."""
        if not refresh_token:
            raise ValidationError("Refresh token is required")
        try:
            claims = decode_refresh_token(refresh_token)
        except jwt.PyJWTError as exc:
            logger.info("refresh rejected: %s", exc)
            raise InvalidToken("Invalid refresh token") from exc

        account = self._load_session_account(claims)
        tokens = self._issue_tokens(account.account_id, account.kind)
        return AuthResult(
            account=self.to_view(account),
            kind=account.kind,
            token=tokens.access_token,
            refresh_token=tokens.refresh_token,
        )

    def current_account(self, access_token: str) -> AuthResult:
        """Return the account an access token belongs to."""
        try:
            claims = decode_access_token(access_token)
        except jwt.PyJWTError as exc:
            logger.info("access token rejected: %s", exc)
            raise InvalidToken() from exc

        account = self._load_session_account(claims)
        return AuthResult(account=self.to_view(account), kind=account.kind)

    def to_view(self, account: Account) -> AccountView:
        expert_profile = None
        if isinstance(account, ExpertAccount):
            expert_profile = ExpertProfile(
                specialization=account.specialization,
                experience=account.experience,
                rating_average=account.rating_average,
                rating_count=account.rating_count,
                verification_status=account.verification_status,
            )
        return AccountView(
            account_id=account.account_id,
            email=account.email,
            first_name=account.first_name,
            last_name=account.last_name,
            phone=account.phone,
            user_type=account.kind.user_type,
            is_email_verified=account.is_email_verified,
            profile_image=self._assets.profile_image_url(account.profile_image),
            expert_profile=expert_profile,
        )

    def _load_session_account(self, claims: dict[str, Any]) -> Account:
        try:
            kind = AccountKind(claims.get("userType"))
        except ValueError as exc:
            raise InvalidToken() from exc
        account = self._store.get_account(str(claims["sub"]), kind)
        if account is None:
            raise InvalidToken("Token is valid but user no longer exists")
        if not account.is_active:
            raise AccountDeactivated("Your account has been deactivated")
        return account

    def _password_matches(self, account: Account, password: str) -> bool:
        if not account.password_hash:
            logger.warning("%s %s has no password hash", account.kind.user_type, account.account_id)
            return False
        try:
            return self._verifier.verify(password, account.password_hash)
        except Exception:
            logger.warning(
                "password verification errored for %s %s; treating as mismatch",
                account.kind.user_type,
                account.account_id,
                exc_info=True,
            )
            return False

    def _verify_against_dummy(self, password: str) -> None:
        """Spend one verification on unknown emails so response time does not reveal account existence."""
        try:
            if self._dummy_hash is None:
                self._dummy_hash = self._verifier.hash("unknown-account-placeholder")
            self._verifier.verify(password, self._dummy_hash)
        except Exception:
            logger.warning("dummy password verification errored", exc_info=True)

    def _best_effort(self, action: str, account_id: str, operation: Callable[..., Any], *args: Any) -> bool:
        """Run a side mutation whose failure must not change the login outcome."""
        try:
            operation(*args)
        except Exception:
            logger.warning("%s failed for account %s", action, account_id, exc_info=True)
            return False
        return True
