"""Bearer-token authentication and per-user rate limiting dependencies."""

import hashlib
import logging
import secrets
from typing import Optional

from fastapi import Depends, Header, HTTPException, Response
from sqlalchemy.orm import Session

from reportflow.config import settings
from reportflow.database import get_db
from reportflow.models.user import User
from reportflow.services.rate_limit import RateLimiter
from reportflow.services.validators import get_error_message

logger = logging.getLogger(__name__)


def hash_token(token: str) -> str:
    """Hash an API token using SHA256."""
    return hashlib.sha256(token.encode()).hexdigest()


def generate_token() -> str:
    return secrets.token_urlsafe(32)


def get_current_user(
    authorization: Optional[str] = Header(default=None),
    db: Session = Depends(get_db),
) -> User:
    """Resolve the caller to an authenticated, active user."""
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=401, detail=get_error_message("AUTH_FAILED"))

    token = authorization.split(" ", 1)[1].strip()
    user = db.query(User).filter(User.api_token_hash == hash_token(token)).first()
    if user is None:
        logger.warning("Authentication failed: unknown token")
        raise HTTPException(status_code=401, detail=get_error_message("AUTH_FAILED"))

    if not user.is_active:
        logger.warning(f"Authentication failed: inactive user {user.id}")
        raise HTTPException(status_code=403, detail=get_error_message("ACCOUNT_INACTIVE"))

    return user


generate_limiter = RateLimiter(settings.GENERATE_RATE_LIMIT, settings.GENERATE_RATE_WINDOW)
access_limiter = RateLimiter(settings.ACCESS_RATE_LIMIT, settings.ACCESS_RATE_WINDOW)


def rate_limited(endpoint: str, limiter: RateLimiter):
    """Build a dependency that enforces ``limiter`` for the current user."""

    def dependency(response: Response, user: User = Depends(get_current_user)) -> User:
        result = limiter.check(f"user:{user.id}", endpoint)
        if not result.allowed:
            raise HTTPException(
                status_code=429,
                detail=get_error_message("RATE_LIMIT_EXCEEDED"),
                headers={
                    "Retry-After": str(result.retry_after),
                    "X-RateLimit-Limit": str(result.limit),
                    "X-RateLimit-Remaining": "0",
                },
            )
        response.headers["X-RateLimit-Limit"] = str(result.limit)
        response.headers["X-RateLimit-Remaining"] = str(result.remaining)
        return user

    return dependency
