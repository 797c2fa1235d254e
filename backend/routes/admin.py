"""
Admin endpoints — admin session, product keys, orders and customers.

All routes except /login and /seed require an admin session (customer
sessions get 403).
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from database import get_db
from deps import (
    CurrentSession,
    Pagination,
    get_optional_session,
    pagination_params,
    require_admin,
    start_session,
)
from domain.enums import OrderStatus, SessionKind
from domain.errors import PermissionDeniedError, UnauthorizedError
from domain.responses import paginated_response, success_response
from domain.serializers import iso, order_to_dict, user_to_dict
from middleware.auth import clear_session_cookie
from middleware.rate_limit import rate_limit
from services import catalog_service, order_service, user_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/admin", tags=["admin"])


class AdminLoginRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=1, max_length=128)


class KeyCreateRequest(BaseModel):
    key_value: str = Field(..., alias="keyValue", min_length=1, max_length=500)


class KeyBulkRequest(BaseModel):
    keys: list[str] = Field(..., min_length=1, max_length=5000)


def _key_to_dict(key) -> dict:
    return {
        "id": key.id,
        "productId": key.product_id,
        "keyValue": key.key_value,
        "isUsed": key.is_used,
        "orderId": key.order_id,
        "createdAt": iso(key.created_at),
        "usedAt": iso(key.used_at),
    }


# ════════════════════════════════════════════════════════════════════
# Session
# ════════════════════════════════════════════════════════════════════


@router.post("/login")
async def admin_login(
    request: AdminLoginRequest,
    response: Response,
    db: AsyncSession = Depends(get_db),
    _rate=Depends(rate_limit(max_requests=10, window_seconds=300)),
):
    user = await user_service.authenticate(db, email=request.email, password=request.password)
    if not user.is_admin:
        raise UnauthorizedError("Invalid email or password")

    data = await start_session(db, response, user, SessionKind.ADMIN)
    await db.commit()
    logger.info(f"Admin {user.id} logged in")
    return success_response(data=data)


@router.post("/logout")
async def admin_logout(
    response: Response,
    admin: CurrentSession = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    await user_service.delete_session(db, admin["session"].id)
    await db.commit()
    clear_session_cookie(response)
    return success_response(data={"loggedOut": True})


@router.get("/me")
async def admin_me(admin: CurrentSession = Depends(require_admin)):
    return success_response(data=user_to_dict(admin["user"]))


@router.post("/seed")
async def seed_admin(
    current: Optional[CurrentSession] = Depends(get_optional_session),
    db: AsyncSession = Depends(get_db),
    _rate=Depends(rate_limit(max_requests=5, window_seconds=300)),
):
    """Create (or reset) the admin account from ADMIN_EMAIL / ADMIN_PASSWORD."""
    if settings.is_production:
        is_admin = bool(current and current["session"].kind == SessionKind.ADMIN.value and current["user"].is_admin)
        if not is_admin:
            raise PermissionDeniedError("Admin seeding is disabled in production")

    admin = await user_service.seed_admin_user(db)
    await db.commit()
    return success_response(data={"id": admin.id, "email": admin.email})


# ════════════════════════════════════════════════════════════════════
# Product keys
# ════════════════════════════════════════════════════════════════════


@router.get("/products/{product_id}/keys")
async def list_keys(
    product_id: int,
    admin: CurrentSession = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    keys = await catalog_service.list_product_keys(db, product_id)
    available = sum(1 for k in keys if not k.is_used)
    return success_response(
        data=[_key_to_dict(k) for k in keys],
        meta={"total": len(keys), "available": available},
    )


@router.post("/products/{product_id}/keys", status_code=201)
async def add_key(
    product_id: int,
    request: KeyCreateRequest,
    admin: CurrentSession = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    key = await catalog_service.add_product_key(db, product_id, request.key_value)
    await db.commit()
    return success_response(data=_key_to_dict(key))


@router.post("/products/{product_id}/keys/bulk", status_code=201)
async def add_keys_bulk(
    product_id: int,
    request: KeyBulkRequest,
    admin: CurrentSession = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    added = await catalog_service.add_product_keys_bulk(db, product_id, request.keys)
    await db.commit()
    return success_response(
        data={"added": len(added), "skipped": len(request.keys) - len(added)}
    )


@router.delete("/keys/{key_id}")
async def delete_key(
    key_id: int,
    admin: CurrentSession = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    await catalog_service.delete_product_key(db, key_id)
    await db.commit()
    return success_response(data={"id": key_id, "deleted": True})


# ════════════════════════════════════════════════════════════════════
# Orders
# ════════════════════════════════════════════════════════════════════


@router.get("/orders")
async def list_orders(
    status: Optional[OrderStatus] = Query(None),
    admin: CurrentSession = Depends(require_admin),
    pagination: Pagination = Depends(pagination_params),
    db: AsyncSession = Depends(get_db),
):
    orders, total = await order_service.list_all_orders(
        db, status=status.value if status else None, **pagination
    )
    return paginated_response(
        items=[order_to_dict(o, include_customer=True) for o in orders],
        total=total,
        **pagination,
    )


@router.post("/orders/{order_id}/deliver")
async def deliver_order(
    order_id: int,
    admin: CurrentSession = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Retry key delivery for a paid order (e.g. after new keys were added)."""
    order = await order_service.get_order(db, order_id)
    delivered = await order_service.deliver_order(db, order)
    if delivered:
        await db.commit()
        logger.info(f"Admin {admin['user'].id} delivered order {order_id}")
    order = await order_service.get_order(db, order_id)
    return success_response(
        data={"delivered": delivered, "order": order_to_dict(order)}
    )


# ════════════════════════════════════════════════════════════════════
# Customers
# ════════════════════════════════════════════════════════════════════


@router.get("/customers")
async def list_customers(
    admin: CurrentSession = Depends(require_admin),
    pagination: Pagination = Depends(pagination_params),
    db: AsyncSession = Depends(get_db),
):
    users, total = await user_service.list_customers(db, **pagination)
    return paginated_response(items=[user_to_dict(u) for u in users], total=total, **pagination)


@router.delete("/customers/{customer_id}")
async def delete_customer(
    customer_id: int,
    admin: CurrentSession = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    await user_service.delete_customer(db, customer_id)
    await db.commit()
    logger.info(f"Admin {admin['user'].id} deleted customer {customer_id}")
    return success_response(data={"id": customer_id, "deleted": True})
