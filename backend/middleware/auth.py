"""
Session token helpers.

Login (routes/customer.py, routes/admin.py) creates a UserSession row and
issues a short JWT that references it through the `sid` claim. Clients send
the token back as:
  - Authorization: Bearer <jwt> (preferred)
  - the HttpOnly session cookie set at login (browser storefront)

The JWT proves who issued the session; the database row decides whether the
session is still alive (see deps.py).
"""
import logging
from datetime import datetime, timezone
from typing import Optional

import jwt
from fastapi import Cookie, Header, Response

from config import settings
from domain.errors import UnauthorizedError

logger = logging.getLogger(__name__)


def _parse_bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    parts = authorization.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    token = parts[1].strip()
    return token or None


def _require_secret() -> str:
    if not settings.jwt_secret:
        logger.error("JWT_SECRET is not configured; cannot sign or verify session tokens")
        raise UnauthorizedError("Server auth misconfigured.")
    return settings.jwt_secret


def issue_access_token(*, user_id: int, session_id: str, role: str, expires_at: datetime) -> str:
    """Sign a token for `session_id`. `expires_at` is naive UTC (the session expiry)."""
    secret = _require_secret()
    now = datetime.now(timezone.utc)
    payload = {
        "iss": settings.jwt_issuer,
        "sub": str(user_id),
        "sid": session_id,
        "role": role,
        "iat": int(now.timestamp()),
        "exp": int(expires_at.replace(tzinfo=timezone.utc).timestamp()),
    }
    return jwt.encode(payload, secret, algorithm="HS256")


def decode_access_token(token: str) -> dict:
    secret = _require_secret()
    try:
        return jwt.decode(
            token,
            secret,
            algorithms=["HS256"],
            issuer=settings.jwt_issuer,
            options={"require": ["exp", "iat", "iss", "sub", "sid"]},
        )
    except jwt.ExpiredSignatureError:
        raise UnauthorizedError("Session expired. Please log in again.")
    except jwt.InvalidTokenError:
        raise UnauthorizedError("Invalid session token.")


async def get_access_token(
    authorization: Optional[str] = Header(None, alias="Authorization"),
    session_cookie: Optional[str] = Cookie(None, alias=settings.session_cookie_name),
) -> Optional[str]:
    """Bearer header first, session cookie second."""
    return _parse_bearer_token(authorization) or session_cookie or None


def set_session_cookie(response: Response, token: str, expires_at: datetime) -> None:
    max_age = int((expires_at - datetime.now(timezone.utc).replace(tzinfo=None)).total_seconds())
    response.set_cookie(
        key=settings.session_cookie_name,
        value=token,
        max_age=max(max_age, 0),
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite="lax",
    )


def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(key=settings.session_cookie_name)
