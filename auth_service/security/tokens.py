"""Utilities for issuing and validating session JWTs."""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass
from typing import Any

import jwt

from ..config import get_settings
from ..domain.account import AccountKind

_ALGORITHM = "HS256"


@dataclass(slots=True)
class TokenPair:
    """Access/refresh token pair returned after a successful authentication."""

    access_token: str
    access_expires_in: int
    refresh_token: str
    refresh_expires_in: int


def _claims(subject: str, kind: AccountKind, token_use: str, ttl: int) -> dict[str, Any]:
    settings = get_settings()
    now = int(time.time())
    return {
        "iss": settings.jwt_issuer,
        "sub": subject,
        "id": subject,
        "userType": kind.user_type,
        "token_use": token_use,
        "jti": uuid.uuid4().hex,
        "iat": now,
        "exp": now + ttl,
    }


def issue_access_token(*, subject: str, kind: AccountKind) -> tuple[str, int]:
    """Create a signed access JWT bound to an account identifier and kind.

    Parameters
    ----------
    subject:
        Account identifier embedded in the ``sub`` and ``id`` claims.
    kind:
        Account kind; its user type is embedded in the ``userType`` claim.

    Returns
    -------
    tuple[str, int]
        The encoded JWT string and its TTL (in seconds).
    """

    settings = get_settings()
    ttl = settings.jwt_ttl_seconds
    token = jwt.encode(_claims(subject, kind, "access", ttl), settings.jwt_secret, algorithm=_ALGORITHM)
    return token, ttl


def issue_refresh_token(*, subject: str, kind: AccountKind) -> tuple[str, int]:
    """Create a refresh JWT signed with the dedicated refresh secret."""
    settings = get_settings()
    ttl = settings.jwt_refresh_ttl_seconds
    token = jwt.encode(
        _claims(subject, kind, "refresh", ttl), settings.jwt_refresh_secret, algorithm=_ALGORITHM
    )
    return token, ttl


def issue_token_pair(account_id: str, kind: AccountKind) -> TokenPair:
    access_token, access_ttl = issue_access_token(subject=account_id, kind=kind)
    refresh_token, refresh_ttl = issue_refresh_token(subject=account_id, kind=kind)
    return TokenPair(
        access_token=access_token,
        access_expires_in=access_ttl,
        refresh_token=refresh_token,
        refresh_expires_in=refresh_ttl,
    )


def decode_access_token(token: str) -> dict[str, Any]:
    """Decode and verify an access JWT returning its payload.

    Raises
    ------
    jwt.PyJWTError
        Propagated when the token is invalid, expired, signed by another
        issuer, or is not an access token.
    """

    settings = get_settings()
    return _decode(token, settings.jwt_secret, "access")


def decode_refresh_token(token: str) -> dict[str, Any]:
    """Decode and verify a refresh JWT returning its payload."""
    settings = get_settings()
    return _decode(token, settings.jwt_refresh_secret, "refresh")


def _decode(token: str, secret: str, token_use: str) -> dict[str, Any]:
    settings = get_settings()
    claims = jwt.decode(
        token,
        secret,
        algorithms=[_ALGORITHM],
        issuer=settings.jwt_issuer,
        options={"require": ["exp", "iat", "sub"]},
    )
    if claims.get("token_use") != token_use:
        raise jwt.InvalidTokenError(f"expected {token_use} token")
    return claims
