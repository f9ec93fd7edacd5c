from functools import lru_cache

import redis
from fastapi import Depends, Header, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from nedapay.core.config import get_settings
from nedapay.core.exceptions import AppException
from nedapay.core.security import admin_key_matches, decode_privy_token
from nedapay.db.models import User
from nedapay.db.session import get_db
from nedapay.services.kotani_service import KotaniClient, build_kotani_client
from nedapay.services.rate_limit_service import RateLimiter
from nedapay.services.user_service import get_user_by_privy_id

bearer_scheme = HTTPBearer(auto_error=False)
settings = get_settings()


def get_privy_user_id(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
) -> str:
    if not credentials:
        raise AppException("Unauthorized", status_code=401, code="UNAUTHORIZED")
    try:
        payload = decode_privy_token(credentials.credentials)
    except ValueError:
        raise AppException("Invalid or expired token", status_code=401, code="UNAUTHORIZED")

    subject = payload.get("sub")
    if not subject:
        raise AppException("Unauthorized", status_code=401, code="UNAUTHORIZED")
    return subject


def get_current_user(
    privy_user_id: str = Depends(get_privy_user_id),
    db: Session = Depends(get_db),
) -> User:
    user = get_user_by_privy_id(db, privy_user_id)
    if not user:
        raise AppException("User not found", status_code=404)
    return user


def require_admin_key(x_admin_access_key: str | None = Header(default=None)) -> None:
    if not admin_key_matches(x_admin_access_key):
        raise AppException("Unauthorized", status_code=401, code="UNAUTHORIZED")


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip() or "unknown"
    return "unknown"


def request_base_url(request: Request) -> str:
    protocol = request.headers.get("x-forwarded-proto") or request.url.scheme or "http"
    host = request.headers.get("host") or request.url.netloc
    return f"{protocol}://{host}"


@lru_cache
def get_redis() -> redis.Redis:
    return redis.Redis.from_url(settings.REDIS_URL, decode_responses=True, socket_timeout=2)


def get_rate_limiter() -> RateLimiter:
    return RateLimiter(
        get_redis(),
        max_requests=settings.RATE_LIMIT_MAX_REQUESTS,
        window_seconds=settings.RATE_LIMIT_WINDOW_SECONDS,
    )


def enforce_rate_limit(request: Request, limiter: RateLimiter = Depends(get_rate_limiter)) -> None:
    if not limiter.allow(client_ip(request)):
        raise AppException("Rate limit exceeded", status_code=429, code="RATE_LIMITED")


@lru_cache
def get_kotani_client() -> KotaniClient:
    return build_kotani_client()
