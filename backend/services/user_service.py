"""
User service — registration, password checks, login sessions, admin seeding.
"""

import logging
import uuid
from datetime import timedelta

import bcrypt
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from db_models import Order, User, UserSession, utcnow
from domain.enums import SessionKind
from domain.errors import ConflictError, NotFoundError, UnauthorizedError
from utils.validators import (
    normalize_email,
    normalize_whatsapp,
    validate_cpf,
    validate_password,
)

logger = logging.getLogger(__name__)


def hash_password(password: str) -> str:
    salt = bcrypt.gensalt(rounds=settings.bcrypt_rounds)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed stored hash or oversized password
        return False


async def get_user(db: AsyncSession, user_id: int) -> User | None:
    res = await db.execute(select(User).where(User.id == user_id))
    return res.scalar_one_or_none()


async def get_user_by_email(db: AsyncSession, email: str) -> User | None:
    res = await db.execute(select(User).where(User.email == email.strip().lower()))
    return res.scalar_one_or_none()


async def register_customer(
    db: AsyncSession,
    *,
    email: str,
    password: str,
    first_name: str,
    last_name: str,
    whatsapp: str | None = None,
    tax_id: str | None = None,
) -> User:
    email = normalize_email(email)
    validate_password(password)

    if await get_user_by_email(db, email):
        raise ConflictError("Email already registered")

    user = User(
        email=email,
        password_hash=hash_password(password),
        first_name=first_name.strip(),
        last_name=last_name.strip(),
        whatsapp=normalize_whatsapp(whatsapp),
        tax_id=validate_cpf(tax_id),
        is_admin=False,
    )
    db.add(user)
    await db.flush()
    logger.info(f"Customer registered: id={user.id}")
    return user


async def authenticate(db: AsyncSession, *, email: str, password: str) -> User:
    """Return the user for valid credentials, else raise 401 (same message either way)."""
    user = await get_user_by_email(db, email)
    if not user or not verify_password(password, user.password_hash):
        raise UnauthorizedError("Invalid email or password")
    return user


def _session_ttl(kind: SessionKind) -> timedelta:
    if kind == SessionKind.ADMIN:
        return timedelta(hours=settings.admin_session_ttl_hours)
    return timedelta(days=settings.customer_session_ttl_days)


async def create_session(db: AsyncSession, *, user: User, kind: SessionKind) -> UserSession:
    session = UserSession(
        id=uuid.uuid4().hex,
        user_id=user.id,
        kind=kind.value,
        expires_at=utcnow() + _session_ttl(kind),
    )
    db.add(session)
    await db.flush()
    return session


async def get_active_session(db: AsyncSession, session_id: str) -> UserSession | None:
    """Session row if it exists and has not expired."""
    res = await db.execute(
        select(UserSession).where(
            UserSession.id == session_id,
            UserSession.expires_at > utcnow(),
        )
    )
    return res.scalar_one_or_none()


async def delete_session(db: AsyncSession, session_id: str) -> None:
    await db.execute(delete(UserSession).where(UserSession.id == session_id))


async def purge_expired_sessions(db: AsyncSession) -> int:
    res = await db.execute(delete(UserSession).where(UserSession.expires_at <= utcnow()))
    return res.rowcount or 0


async def seed_admin_user(db: AsyncSession) -> User:
    """
    Create the admin account from settings, or bring the existing one in line.

    Only one admin is managed this way; its email, password and name always
    reflect ADMIN_EMAIL / ADMIN_PASSWORD / ADMIN_FIRST_NAME / ADMIN_LAST_NAME.
    """
    email = normalize_email(settings.admin_email)
    validate_password(settings.admin_password)

    res = await db.execute(select(User).where(User.is_admin == True).order_by(User.id).limit(1))  # noqa: E712
    admin = res.scalar_one_or_none()

    if admin is None:
        clash = await get_user_by_email(db, email)
        if clash is not None:
            raise ConflictError(f"Admin email {email} already belongs to a customer account")
        admin = User(email=email, is_admin=True)
        db.add(admin)
        logger.info("Admin account created")
    else:
        logger.info(f"Admin account {admin.id} updated from settings")

    admin.email = email
    admin.password_hash = hash_password(settings.admin_password)
    admin.first_name = settings.admin_first_name
    admin.last_name = settings.admin_last_name
    await db.flush()
    return admin


async def list_customers(db: AsyncSession, *, limit: int = 50, offset: int = 0) -> tuple[list[User], int]:
    total = await db.scalar(select(func.count(User.id)).where(User.is_admin == False))  # noqa: E712
    res = await db.execute(
        select(User)
        .where(User.is_admin == False)  # noqa: E712
        .order_by(User.created_at.desc(), User.id.desc())
        .limit(limit)
        .offset(offset)
    )
    return list(res.scalars().all()), total or 0


async def delete_customer(db: AsyncSession, customer_id: int) -> None:
    """Delete a customer with no order history (orders reference the user)."""
    res = await db.execute(select(User).where(User.id == customer_id, User.is_admin == False))  # noqa: E712
    user = res.scalar_one_or_none()
    if not user:
        raise NotFoundError("Customer", str(customer_id))

    order_count = await db.scalar(select(func.count(Order.id)).where(Order.user_id == customer_id))
    if order_count:
        raise ConflictError(
            f"Cannot delete customer {customer_id}: {order_count} order(s) on record"
        )

    await db.execute(delete(UserSession).where(UserSession.user_id == customer_id))
    await db.execute(delete(User).where(User.id == customer_id))
    logger.info(f"Customer {customer_id} deleted")
