"""HTTP route definitions for the unified authentication service."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, Header, Request
from pydantic import BaseModel, ConfigDict, Field

from ..config import get_settings
from ..domain.contracts import LoginInput
from ..domain.errors import InvalidToken, RateLimited
from ..domain.service import AccountView, Authenticator, AuthResult
from ..security.rate_limiter import SlidingWindowRateLimiter
from ..security.redis_rate_limiter import RedisSlidingWindowRateLimiter

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class LoginRequest(_CamelModel):
    """Credentials posted to the unified login endpoint; presence is checked by the authenticator."""

    email: str | None = None
    password: str | None = None


class RefreshTokenRequest(_CamelModel):
    refresh_token: str | None = Field(default=None, alias="refreshToken")


class RatingResponse(BaseModel):
    average: float
    count: int


class UserResponse(_CamelModel):
    """Serialised representation of an `AccountView`."""

    id: str
    email: str
    first_name: str = Field(alias="firstName")
    last_name: str = Field(alias="lastName")
    phone: str | None = None
    user_type: str = Field(alias="userType")
    is_email_verified: bool = Field(alias="isEmailVerified")
    profile_image: str | None = Field(default=None, alias="profileImage")
    specialization: str | None = None
    experience: int | None = None
    rating: RatingResponse | None = None
    verification_status: str | None = Field(default=None, alias="verificationStatus")

    @classmethod
    def from_view(cls, view: AccountView) -> "UserResponse":
        """Build a response model from the sanitised account view."""
        extra: dict[str, Any] = {}
        profile = view.expert_profile
        if profile is not None:
            extra = {
                "specialization": profile.specialization,
                "experience": profile.experience,
                "rating": RatingResponse(average=profile.rating_average, count=profile.rating_count),
                "verification_status": profile.verification_status,
            }
        return cls(
            id=view.account_id,
            email=view.email,
            first_name=view.first_name,
            last_name=view.last_name,
            phone=view.phone,
            user_type=view.user_type,
            is_email_verified=view.is_email_verified,
            profile_image=view.profile_image,
            **extra,
        )

    def to_payload(self) -> dict[str, Any]:
        # Expert-only keys are dropped for standard users rather than sent as null.
        payload = self.model_dump(by_alias=True)
        if self.user_type != "expert":
            for key in ("specialization", "experience", "rating", "verificationStatus"):
                payload.pop(key, None)
        return payload


settings = get_settings()


def _build_rate_limiter() -> SlidingWindowRateLimiter | RedisSlidingWindowRateLimiter:
    """Instantiate the configured login limiter, preferring Redis when available."""
    if settings.rate_limit_backend == "redis" and settings.redis_url:
        try:
            import redis

            client = redis.from_url(settings.redis_url)
            client.ping()
            logger.info("login rate limiter configured for redis backend")
            return RedisSlidingWindowRateLimiter(
                client,
                max_requests=settings.auth_rate_limit_requests,
                window_seconds=settings.auth_rate_limit_window_seconds,
            )
        except Exception as exc:  # pragma: no cover - depends on a live redis
            logger.warning("redis rate limiter unavailable, falling back to in-memory: %s", exc)

    logger.info("login rate limiter using in-memory backend")
    return SlidingWindowRateLimiter(
        max_requests=settings.auth_rate_limit_requests,
        window_seconds=settings.auth_rate_limit_window_seconds,
    )


rate_limiter = _build_rate_limiter()


def get_authenticator(request: Request) -> Authenticator:
    """Resolve the `Authenticator` stored on the FastAPI application state."""
    authenticator: Authenticator = request.app.state.authenticator
    return authenticator


def _enforce_rate_limit(request: Request, scope: str) -> str:
    """Count the request against the client's window and return the limiter key."""
    client_host = request.client.host if request.client else "unknown"
    key = f"{scope}:{client_host}"
    decision = rate_limiter.check(key)
    if not decision.allowed:
        logger.info("%s rate limited for client %s", scope, client_host)
        raise RateLimited(retry_after=decision.retry_after)
    return key


def _session_data(result: AuthResult) -> dict[str, Any]:
    data: dict[str, Any] = {
        "user": UserResponse.from_view(result.account).to_payload(),
        "userType": result.kind.user_type,
        "accountType": result.kind.account_type,
    }
    if result.token is not None:
        data["token"] = result.token
        data["refreshToken"] = result.refresh_token
    return data


@router.post("/unified-login")
def unified_login(
    request: Request,
    payload: LoginRequest,
    authenticator: Authenticator = Depends(get_authenticator),
) -> dict[str, Any]:
    """Authenticate a user or an expert with a single email/password form."""
    rate_key = _enforce_rate_limit(request, "login")
    result = authenticator.login(LoginInput(email=payload.email, password=payload.password))
    # Only failed attempts accumulate against the client.
    rate_limiter.reset(rate_key)
    return {
        "success": True,
        "message": f"{result.kind.account_type} login successful",
        "data": _session_data(result),
    }


@router.post("/refresh-token")
def refresh_token(
    payload: RefreshTokenRequest,
    authenticator: Authenticator = Depends(get_authenticator),
) -> dict[str, Any]:
    """Exchange a refresh token for a fresh token pair."""
    result = authenticator.refresh(payload.refresh_token)
    return {
        "success": True,
        "message": "Token refreshed successfully",
        "data": _session_data(result),
    }


@router.get("/me")
def current_account(
    authorization: str | None = Header(default=None),
    authenticator: Authenticator = Depends(get_authenticator),
) -> dict[str, Any]:
    """Return the account owning the bearer token."""
    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise InvalidToken("Access denied. No token provided.")
    result = authenticator.current_account(token.strip())
    return {"success": True, "data": _session_data(result)}
