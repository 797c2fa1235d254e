"""
PIX checkout endpoints — single-product and cart checkout, payment status
polling, dev-mode payment simulation and the AbacatePay webhook.

Flow:
  1) POST /api/customer/checkout/pix (or /checkout/cart) -> order + PIX QR code
  2) Customer pays the QR code in their banking app
  3) AbacatePay calls POST /webhook?webhookSecret=... (primary signal), the
     storefront polls /orders/{id}/pix-status (fallback), and the background
     poller reconciles anything both missed
  4) Paid orders get their keys assigned and move to `delivered`
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from database import get_db
from deps import CurrentSession, require_customer
from domain.errors import UnauthorizedError, ValidationError
from domain.responses import success_response
from domain.serializers import checkout_to_dict, delivered_keys
from middleware.rate_limit import rate_limit
from services import order_service, pix_service
from utils.validators import optional_cart_session_id

logger = logging.getLogger(__name__)
router = APIRouter(tags=["checkout"])


class CheckoutItem(BaseModel):
    product_id: int = Field(..., gt=0, alias="productId")
    quantity: int = Field(1, ge=1, le=settings.max_quantity_per_item)


class CartCheckoutRequest(BaseModel):
    items: list[CheckoutItem] = Field(..., min_length=1, max_length=50)


@router.post("/api/customer/checkout/pix", status_code=201)
async def checkout_product(
    request: CheckoutItem,
    current: CurrentSession = Depends(require_customer),
    db: AsyncSession = Depends(get_db),
    _rate=Depends(rate_limit(max_requests=10, window_seconds=60)),
):
    """Buy a single product."""
    order = await pix_service.start_checkout(
        db,
        user=current["user"],
        items=[{"product_id": request.product_id, "quantity": request.quantity}],
    )
    order = await order_service.get_order(db, order.id)
    return success_response(data=checkout_to_dict(order))


@router.post("/api/customer/checkout/cart", status_code=201)
async def checkout_cart(
    request: CartCheckoutRequest,
    current: CurrentSession = Depends(require_customer),
    cart_session: Optional[str] = Depends(optional_cart_session_id),
    db: AsyncSession = Depends(get_db),
    _rate=Depends(rate_limit(max_requests=10, window_seconds=60)),
):
    """Buy every line of the cart in one PIX charge."""
    order = await pix_service.start_checkout(
        db,
        user=current["user"],
        items=[{"product_id": i.product_id, "quantity": i.quantity} for i in request.items],
        cart_session_id=cart_session,
    )
    order = await order_service.get_order(db, order.id)
    return success_response(data=checkout_to_dict(order))


@router.get("/api/customer/orders/{order_id}/pix-status")
async def pix_status(
    order_id: int,
    current: CurrentSession = Depends(require_customer),
    db: AsyncSession = Depends(get_db),
):
    order = await order_service.get_order(db, order_id, user_id=current["user"].id)
    provider_status = await pix_service.refresh_order(db, order)
    order = await order_service.get_order(db, order_id)
    return success_response(
        data={
            "status": provider_status or pix_service.pix_status_for(order),
            "orderStatus": order.status,
            "deliveredKeys": delivered_keys(order),
        }
    )


@router.post("/api/customer/orders/{order_id}/simulate-payment")
async def simulate_payment(
    order_id: int,
    current: CurrentSession = Depends(require_customer),
    db: AsyncSession = Depends(get_db),
):
    """Dev mode only: have AbacatePay mark the charge as paid."""
    order = await order_service.get_order(db, order_id, user_id=current["user"].id)
    provider_status = await pix_service.simulate_payment(db, order)
    order = await order_service.get_order(db, order_id)
    return success_response(
        data={
            "status": provider_status or pix_service.pix_status_for(order),
            "orderStatus": order.status,
            "deliveredKeys": delivered_keys(order),
        }
    )


@router.post("/webhook")
async def abacatepay_webhook(
    request: Request,
    webhook_secret: Optional[str] = Query(None, alias="webhookSecret"),
    db: AsyncSession = Depends(get_db),
    _rate=Depends(rate_limit(max_requests=120, window_seconds=60)),
):
    """
    AbacatePay webhook.

    FAILS CLOSED: without a configured WEBHOOK_SECRET every call is rejected.
    """
    if not pix_service.verify_webhook_secret(webhook_secret):
        raise UnauthorizedError("Invalid webhook secret")

    try:
        payload = await request.json()
    except ValueError:
        raise ValidationError("Webhook body must be JSON")
    if not isinstance(payload, dict):
        raise ValidationError("Webhook body must be a JSON object")

    result = await pix_service.process_webhook(db, payload)
    return success_response(data=result)
