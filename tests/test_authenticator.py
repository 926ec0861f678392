"""Service-level behaviour of the unified authenticator."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest
from prometheus_client import REGISTRY

from auth_service.domain.account import AccountKind
from auth_service.domain.contracts import LoginInput
from auth_service.domain.errors import InvalidCredentials, InvalidToken, ValidationError
from auth_service.domain.service import Authenticator, email_fingerprint
from auth_service.security.assets import AssetLocator
from auth_service.security.passwords import BcryptVerifier
from auth_service.security.tokens import TokenPair, issue_token_pair

verifier = BcryptVerifier(rounds=4)


class ExplodingVerifier:
    def hash(self, password: str) -> str:
        raise ValueError("hashing unavailable")

    def verify(self, password: str, password_hash: str) -> bool:
        raise ValueError("Invalid salt")


class CountingVerifier(BcryptVerifier):
    def __init__(self) -> None:
        super().__init__(rounds=4)
        self.verify_calls = 0

    def verify(self, password: str, password_hash: str) -> bool:
        self.verify_calls += 1
        return super().verify(password, password_hash)


def _login_samples(outcome: str, account_type: str) -> float:
    value = REGISTRY.get_sample_value(
        "auth_login_attempts_total", {"outcome": outcome, "account_type": account_type}
    )
    return value or 0.0


def test_missing_credentials_skip_lookup(authenticator, store):
    with pytest.raises(ValidationError):
        authenticator.authenticate(None, "pw")
    with pytest.raises(ValidationError):
        authenticator.authenticate("   ", "pw")
    assert store.lookups == []


def test_login_accepts_login_input(authenticator, store):
    store.add_user("u@x.com", "secret-pass")

    result = authenticator.login(LoginInput(email="u@x.com", password="secret-pass"))

    assert result.kind is AccountKind.STANDARD
    assert result.account.expert_profile is None


def test_verifier_error_counts_as_mismatch(store):
    expert = store.add_expert("e@x.com", "correct")
    authenticator = Authenticator(store, store, ExplodingVerifier(), AssetLocator("/uploads"))

    with pytest.raises(InvalidCredentials):
        authenticator.authenticate("e@x.com", "correct")

    assert store.increment_calls == [expert.account_id]


def test_missing_password_hash_is_a_mismatch(authenticator, store):
    user = store.add_user("u@x.com", "secret-pass")
    store.users[user.account_id].password_hash = None

    with pytest.raises(InvalidCredentials):
        authenticator.authenticate("u@x.com", "secret-pass")


def test_increment_failure_does_not_change_outcome(authenticator, store):
    expert = store.add_expert("e@x.com", "correct")
    store.failing.add("increment_login_attempts")

    with pytest.raises(InvalidCredentials) as excinfo:
        authenticator.authenticate("e@x.com", "wrong")

    assert excinfo.value.message == "Invalid email or password"
    assert store.increment_calls == [expert.account_id]


def test_last_login_failure_does_not_block_login(authenticator, store):
    store.add_user("u@x.com", "secret-pass")
    store.failing.add("record_last_login")

    result = authenticator.authenticate("u@x.com", "secret-pass")

    assert result.token
    assert result.refresh_token
    assert store.last_login_writes == []


def test_reset_failure_does_not_block_login(authenticator, store):
    store.add_expert("e@x.com", "correct", login_attempts=2)
    store.failing.add("reset_login_attempts")

    result = authenticator.authenticate("e@x.com", "correct")

    assert result.kind is AccountKind.EXPERT


def test_expert_lookup_error_falls_back_to_user_table(authenticator, store):
    user = store.add_user("u@x.com", "secret-pass")
    store.failing.add("find_expert_by_email")

    result = authenticator.authenticate("u@x.com", "secret-pass")

    assert result.account.account_id == user.account_id


def test_all_lookups_failing_reports_invalid_credentials(authenticator, store):
    store.failing.update({"find_expert_by_email", "find_user_by_email"})

    with pytest.raises(InvalidCredentials):
        authenticator.authenticate("u@x.com", "secret-pass")


def test_tokens_are_bound_to_account_and_kind(store):
    expert = store.add_expert("e@x.com", "correct")
    issued: list[tuple[str, AccountKind]] = []

    def recording_issuer(account_id: str, kind: AccountKind) -> TokenPair:
        issued.append((account_id, kind))
        return issue_token_pair(account_id, kind)

    authenticator = Authenticator(
        store, store, verifier, AssetLocator("/uploads"), token_issuer=recording_issuer
    )
    authenticator.authenticate("e@x.com", "correct")

    assert issued == [(expert.account_id, AccountKind.EXPERT)]


def test_last_login_uses_injected_clock(store):
    user = store.add_user("u@x.com", "secret-pass")
    fixed = datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    authenticator = Authenticator(
        store, store, verifier, AssetLocator("/uploads"), clock=lambda: fixed
    )

    authenticator.authenticate("u@x.com", "secret-pass")

    assert store.last_login_writes == [(user.account_id, AccountKind.STANDARD, fixed)]


def test_current_account_rejects_deleted_account(authenticator, store):
    user = store.add_user("u@x.com", "secret-pass")
    result = authenticator.authenticate("u@x.com", "secret-pass")
    del store.users[user.account_id]

    with pytest.raises(InvalidToken) as excinfo:
        authenticator.current_account(result.token)

    assert excinfo.value.message == "Token is valid but user no longer exists"


def test_login_outcomes_are_counted(authenticator, store):
    store.add_expert("e@x.com", "correct")
    before_success = _login_samples("success", "Expert")
    before_bad = _login_samples("bad_password", "Expert")

    authenticator.authenticate("e@x.com", "correct")
    with pytest.raises(InvalidCredentials):
        authenticator.authenticate("e@x.com", "wrong")

    assert _login_samples("success", "Expert") == before_success + 1
    assert _login_samples("bad_password", "Expert") == before_bad + 1


def test_email_fingerprint_is_case_insensitive():
    assert email_fingerprint("E@X.com") == email_fingerprint("e@x.com")
    assert "e@x.com" not in email_fingerprint("e@x.com")
    assert len(email_fingerprint("e@x.com")) == 12


def test_correct_password_longer_than_72_bytes_logs_in(store):
    long_password = "p" * 80
    expert = store.add_expert("e@x.com", long_password)
    authenticator = Authenticator(store, store, verifier, AssetLocator("/uploads"))

    result = authenticator.authenticate("e@x.com", long_password)

    assert result.account.account_id == expert.account_id
    assert store.increment_calls == []


def test_unknown_email_still_runs_a_password_verification(store):
    counting = CountingVerifier()
    authenticator = Authenticator(store, store, counting, AssetLocator("/uploads"))

    with pytest.raises(InvalidCredentials):
        authenticator.authenticate("ghost@x.com", "whatever")
    with pytest.raises(InvalidCredentials):
        authenticator.authenticate("ghost@x.com", "whatever")

    assert counting.verify_calls == 2


def test_unknown_email_with_failing_verifier_is_invalid_credentials(store):
    authenticator = Authenticator(store, store, ExplodingVerifier(), AssetLocator("/uploads"))

    with pytest.raises(InvalidCredentials) as excinfo:
        authenticator.authenticate("ghost@x.com", "whatever")

    assert excinfo.value.message == "Invalid email or password"


def test_expert_view_carries_typed_profile(authenticator, store):
    store.add_expert("e@x.com", "correct", specialization="Dermatology", rating_count=3)

    profile = authenticator.authenticate("e@x.com", "correct").account.expert_profile

    assert profile is not None
    assert profile.specialization == "Dermatology"
    assert profile.rating_average == 4.5
    assert profile.rating_count == 3
    assert profile.verification_status == "approved"
