import logging
from dataclasses import dataclass
from functools import lru_cache

from fastapi import Depends, Request, Response
from itsdangerous import BadSignature, URLSafeTimedSerializer
from passlib.hash import argon2
from sqlalchemy.orm import Session

from config import get_settings
from database import get_db
from errors import RateLimited, Unauthorized
from models import User
from rate_limit import SlidingWindowRateLimiter

logger = logging.getLogger(__name__)

MUTATING_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})
ANTI_FORGERY_HEADER = "X-Requested-With"
ANTI_FORGERY_VALUE = "XMLHttpRequest"


@dataclass(frozen=True)
class SessionIdentity:
    id: int
    email: str


def hash_password(plain_password: str) -> str:
    """Return Argon2 hash for plain_password."""
    return argon2.hash(plain_password)


def verify_password(plain_password: str, stored_hash: str) -> bool:
    """Verify a candidate password against a stored Argon2 hash."""
    try:
        return argon2.verify(plain_password, stored_hash)
    except (ValueError, TypeError):
        return False


@lru_cache(maxsize=1)
def dummy_password_hash() -> str:
    # Verified against when the email is unknown so both failure paths cost the same.
    return argon2.hash("unknown-user-placeholder")


def _serializer() -> URLSafeTimedSerializer:
    settings = get_settings()
    return URLSafeTimedSerializer(settings.session_secret, salt="session-token")


def issue_session(user: User) -> str:
    return _serializer().dumps({"u": user.id, "e": user.email})


def resolve_session(token: str) -> SessionIdentity:
    if not token:
        raise Unauthorized()
    settings = get_settings()
    try:
        data = _serializer().loads(token, max_age=settings.session_max_age_secs)
    except BadSignature as exc:
        raise Unauthorized() from exc
    if not isinstance(data, dict):
        raise Unauthorized()
    user_id = data.get("u")
    email = data.get("e")
    if not isinstance(user_id, int) or not isinstance(email, str):
        raise Unauthorized()
    return SessionIdentity(id=user_id, email=email)


def set_session_cookie(response: Response, token: str) -> None:
    settings = get_settings()
    response.set_cookie(
        key=settings.session_cookie,
        value=token,
        max_age=settings.session_max_age_secs,
        path="/",
        httponly=True,
        samesite="strict",
        secure=settings.cookie_secure,
    )


def clear_session_cookie(response: Response) -> None:
    settings = get_settings()
    response.delete_cookie(
        key=settings.session_cookie,
        path="/",
        httponly=True,
        samesite="strict",
        secure=settings.cookie_secure,
    )


def has_anti_forgery_header(request: Request) -> bool:
    if request.method.upper() not in MUTATING_METHODS:
        return True
    return request.headers.get(ANTI_FORGERY_HEADER) == ANTI_FORGERY_VALUE


def client_key(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def build_login_limiter() -> SlidingWindowRateLimiter:
    settings = get_settings()
    return SlidingWindowRateLimiter(
        settings.login_max_attempts, settings.login_window_secs
    )


def enforce_login_rate_limit(request: Request) -> None:
    limiter: SlidingWindowRateLimiter = request.app.state.login_limiter
    key = client_key(request)
    if not limiter.try_consume(key):
        logger.warning(f"login_rate_limited: client={key}")
        raise RateLimited()


def current_user(request: Request, db: Session = Depends(get_db)) -> User:
    token = request.cookies.get(get_settings().session_cookie, "")
    identity = resolve_session(token)
    user = db.get(User, identity.id)
    if user is None or user.email != identity.email:
        raise Unauthorized()
    return user
