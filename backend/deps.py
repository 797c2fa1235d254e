"""
Shared FastAPI dependencies.

Centralizes the DB session, session-based auth guards and pagination so
routers import from a single place.
"""

from __future__ import annotations

from typing import Optional, TypedDict

from fastapi import Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from db_models import User, UserSession
from domain.enums import SessionKind
from domain.errors import PermissionDeniedError, UnauthorizedError
from domain.serializers import iso, user_to_dict
from middleware.auth import (
    decode_access_token,
    get_access_token,
    issue_access_token,
    set_session_cookie,
)
from services import user_service


class Pagination(TypedDict):
    limit: int
    offset: int


class CurrentSession(TypedDict):
    user: User
    session: UserSession


def pagination_params(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0, le=100_000),
) -> Pagination:
    return {"limit": limit, "offset": offset}


async def get_current_session(
    token: Optional[str] = Depends(get_access_token),
    db: AsyncSession = Depends(get_db),
) -> CurrentSession:
    """
    Resolve the caller's login session.

    - 401 when no token is sent, the token is invalid, or its session row was
      logged out / expired.
    """
    if not token:
        raise UnauthorizedError("Authentication required.")

    claims = decode_access_token(token)
    session = await user_service.get_active_session(db, claims["sid"])
    if not session or str(session.user_id) != claims["sub"]:
        raise UnauthorizedError("Session expired. Please log in again.")

    user = await user_service.get_user(db, session.user_id)
    if not user:
        raise UnauthorizedError("Session expired. Please log in again.")
    return {"user": user, "session": session}


async def get_optional_session(
    token: Optional[str] = Depends(get_access_token),
    db: AsyncSession = Depends(get_db),
) -> Optional[CurrentSession]:
    """Like get_current_session, but anonymous callers and stale or invalid tokens get None."""
    if not token:
        return None
    try:
        return await get_current_session(token=token, db=db)
    except UnauthorizedError:
        return None


async def require_customer(current: CurrentSession = Depends(get_current_session)) -> CurrentSession:
    """Customer session required (admin sessions are rejected with 403)."""
    if current["session"].kind != SessionKind.CUSTOMER.value:
        raise PermissionDeniedError("Customer session required for this endpoint.")
    return current


async def require_admin(current: CurrentSession = Depends(get_current_session)) -> CurrentSession:
    """Admin session required; the account must still be an admin."""
    if current["session"].kind != SessionKind.ADMIN.value or not current["user"].is_admin:
        raise PermissionDeniedError("Admin session required for this endpoint.")
    return current


async def start_session(db: AsyncSession, response: Response, user: User, kind: SessionKind) -> dict:
    """
    Log `user` in: create the session row, sign its token and set the cookie.

    The caller commits.
    """
    session = await user_service.create_session(db, user=user, kind=kind)
    token = issue_access_token(
        user_id=user.id,
        session_id=session.id,
        role=kind.value,
        expires_at=session.expires_at,
    )
    set_session_cookie(response, token, session.expires_at)
    return {
        "user": user_to_dict(user),
        "token": token,
        "tokenType": "Bearer",
        "expiresAt": iso(session.expires_at),
    }
