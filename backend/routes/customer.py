"""
Customer endpoints — account registration, session login/logout and order history.

Flow:
  1) POST /api/customer/register or /api/customer/login -> {user, token, expiresAt}
     (the token is also set as an HttpOnly cookie)
  2) Send `Authorization: Bearer <token>` (or the cookie) on later calls
  3) POST /api/customer/logout -> deletes the server-side session
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from deps import CurrentSession, Pagination, pagination_params, require_customer, start_session
from domain.enums import SessionKind
from domain.responses import paginated_response, success_response
from domain.serializers import order_to_dict, user_to_dict
from middleware.auth import clear_session_cookie
from middleware.rate_limit import rate_limit
from services import order_service, user_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/customer", tags=["customer"])


class RegisterRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=6, max_length=128)
    first_name: str = Field(..., alias="firstName", min_length=1, max_length=100)
    last_name: str = Field(..., alias="lastName", min_length=1, max_length=100)
    whatsapp: Optional[str] = Field(default=None, max_length=30)
    tax_id: Optional[str] = Field(default=None, alias="taxId", max_length=20)


class LoginRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=1, max_length=128)


@router.post("/register", status_code=201)
async def register(
    request: RegisterRequest,
    response: Response,
    db: AsyncSession = Depends(get_db),
    _rate=Depends(rate_limit(max_requests=10, window_seconds=3600)),
):
    user = await user_service.register_customer(
        db,
        email=request.email,
        password=request.password,
        first_name=request.first_name,
        last_name=request.last_name,
        whatsapp=request.whatsapp,
        tax_id=request.tax_id,
    )
    data = await start_session(db, response, user, SessionKind.CUSTOMER)
    await db.commit()
    return success_response(data=data)


@router.post("/login")
async def login(
    request: LoginRequest,
    response: Response,
    db: AsyncSession = Depends(get_db),
    _rate=Depends(rate_limit(max_requests=20, window_seconds=300)),
):
    user = await user_service.authenticate(db, email=request.email, password=request.password)
    data = await start_session(db, response, user, SessionKind.CUSTOMER)
    await db.commit()
    logger.info(f"Customer {user.id} logged in")
    return success_response(data=data)


@router.post("/logout")
async def logout(
    response: Response,
    current: CurrentSession = Depends(require_customer),
    db: AsyncSession = Depends(get_db),
):
    await user_service.delete_session(db, current["session"].id)
    await db.commit()
    clear_session_cookie(response)
    return success_response(data={"loggedOut": True})


@router.get("/me")
async def me(current: CurrentSession = Depends(require_customer)):
    return success_response(data=user_to_dict(current["user"]))


@router.get("/orders")
async def list_orders(
    current: CurrentSession = Depends(require_customer),
    pagination: Pagination = Depends(pagination_params),
    db: AsyncSession = Depends(get_db),
):
    orders, total = await order_service.list_user_orders(
        db, user_id=current["user"].id, **pagination
    )
    return paginated_response(
        items=[order_to_dict(o) for o in orders],
        total=total,
        **pagination,
    )


@router.get("/orders/{order_id}")
async def get_order(
    order_id: int,
    current: CurrentSession = Depends(require_customer),
    db: AsyncSession = Depends(get_db),
):
    order = await order_service.get_order(db, order_id, user_id=current["user"].id)
    return success_response(data=order_to_dict(order))
