"""
PIX checkout service

Handles:
    1. Checkout (validate + price items, create order, create AbacatePay QR code)
    2. Status refresh for the storefront's polling loop
    3. Webhook verification and processing
    4. Dev-mode payment simulation

All order state changes go through order_service.apply_pix_status().
"""
import hmac
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from abacatepay_client import abacatepay_client
from config import settings
from db_models import Order, User
from domain.constants import WEBHOOK_PAID_EVENTS
from domain.enums import OrderStatus, PixStatus
from domain.errors import ConflictError, PaymentProviderError, PermissionDeniedError
from services import cart_service, order_service

logger = logging.getLogger(__name__)


def _customer_block(user: User) -> dict | None:
    """AbacatePay wants name, cellphone, email and taxId together, or no customer at all."""
    if not user.tax_id or not user.whatsapp:
        return None
    return {
        "name": user.full_name,
        "cellphone": user.whatsapp,
        "email": user.email,
        "taxId": user.tax_id,
    }


def _description(checkout: dict) -> str:
    names = [line["product"].name for line in checkout["lines"]]
    text = f"{settings.store_name}: " + ", ".join(names)
    return text if len(text) <= 140 else text[:137] + "..."


# ════════════════════════════════════════════════════════════════════
# Checkout
# ════════════════════════════════════════════════════════════════════


async def start_checkout(
    db: AsyncSession,
    *,
    user: User,
    items: list[dict],
    cart_session_id: str | None = None,
) -> Order:
    """
    Create an order and its PIX charge.

    The order is committed either way: `awaiting_payment` with the QR code on
    success, `payment_failed` when AbacatePay refuses (the error is re-raised).
    The cart is cleared only after a successful charge.
    """
    checkout = await order_service.build_checkout(db, items)
    order = await order_service.create_order(db, user=user, checkout=checkout)

    try:
        charge = await abacatepay_client.create_pix_qr_code(
            amount_cents=order_service.to_cents(order.total_price),
            description=_description(checkout),
            expires_in=settings.pix_expires_in_seconds,
            customer=_customer_block(user),
            metadata={"orderId": order.id},
        )
    except PaymentProviderError:
        order.status = OrderStatus.PAYMENT_FAILED.value
        await db.commit()
        logger.error(f"  ❌ PIX charge failed for order {order.id}")
        raise

    order_service.attach_pix_charge(order, charge)
    if cart_session_id:
        await cart_service.clear_cart(db, cart_session_id)
    await db.commit()

    logger.info(
        f"  💳 Order {order.id} awaiting PIX payment: R$ {order.total_price} (pix={order.pix_id})"
    )
    return order


# ════════════════════════════════════════════════════════════════════
# Status refresh (polling)
# ════════════════════════════════════════════════════════════════════


async def refresh_order(db: AsyncSession, order: Order) -> str | None:
    """
    Bring an order up to date with AbacatePay.

    Returns the provider's PIX status, or None when the provider was not
    asked (nothing pending) or could not be reached. A paid-but-undelivered
    order gets another delivery attempt without calling the provider.
    """
    if order.status == OrderStatus.PAID.value:
        if await order_service.deliver_order(db, order):
            await db.commit()
        return PixStatus.PAID.value

    if order.status != OrderStatus.AWAITING_PAYMENT.value or not order.pix_id:
        return None

    try:
        data = await abacatepay_client.check_pix_status(order.pix_id)
    except PaymentProviderError as e:
        logger.warning(f"  PIX status check failed for order {order.id}: {e.message}")
        return None

    pix_status = (data.get("status") or "").upper()
    if await order_service.apply_pix_status(db, order, pix_status):
        await db.commit()
    return pix_status


def pix_status_for(order: Order) -> str:
    """PIX status implied by the local order status."""
    if order.status in (OrderStatus.PAID.value, OrderStatus.DELIVERED.value):
        return PixStatus.PAID.value
    if order.status == OrderStatus.PAYMENT_FAILED.value:
        return PixStatus.EXPIRED.value
    return PixStatus.PENDING.value


# ════════════════════════════════════════════════════════════════════
# Webhook
# ════════════════════════════════════════════════════════════════════


def verify_webhook_secret(provided: str | None) -> bool:
    """
    AbacatePay appends ?webhookSecret=<secret> to the configured webhook URL.

    FAILS CLOSED when WEBHOOK_SECRET is not configured.
    """
    if not settings.webhook_secret:
        logger.error(
            "WEBHOOK_SECRET not configured — rejecting webhook. "
            "Set WEBHOOK_SECRET in .env to accept AbacatePay webhooks."
        )
        return False
    if not provided:
        logger.warning("Webhook received without secret")
        return False
    return hmac.compare_digest(provided.encode("utf-8"), settings.webhook_secret.encode("utf-8"))


def _extract_charge(payload: dict) -> tuple[str | None, str | None]:
    """(pix_id, status) from an AbacatePay webhook body."""
    event = payload.get("event", "")
    data = payload.get("data")
    if not isinstance(data, dict):
        return None, None
    charge = data.get("pixQrCode") or data
    if not isinstance(charge, dict):
        return None, None

    pix_id = charge.get("id")
    if not isinstance(pix_id, str):
        pix_id = None
    status = charge.get("status")
    if status is not None and not isinstance(status, str):
        return pix_id, None
    status = (status or "").upper()
    if not status and event in WEBHOOK_PAID_EVENTS:
        status = PixStatus.PAID.value
    return pix_id, status or None


async def process_webhook(db: AsyncSession, payload: dict) -> dict:
    pix_id, status = _extract_charge(payload)
    logger.info(f"  📩 AbacatePay webhook: event={payload.get('event')} pix={pix_id} status={status}")

    if not pix_id or not status:
        return {"status": "ignored", "reason": "no_pix_charge"}

    order = await order_service.get_order_by_pix_id(db, pix_id)
    if not order:
        logger.warning(f"  Webhook for unknown PIX charge: {pix_id}")
        return {"status": "ignored", "reason": "unknown_order"}

    changed = await order_service.apply_pix_status(db, order, status)
    if changed:
        await db.commit()
    return {"status": "processed" if changed else "unchanged", "orderId": order.id, "orderStatus": order.status}


# ════════════════════════════════════════════════════════════════════
# Dev mode
# ════════════════════════════════════════════════════════════════════


async def simulate_payment(db: AsyncSession, order: Order) -> str | None:
    """Ask AbacatePay (dev mode) to pay the order's charge, then refresh it."""
    if not settings.pix_dev_mode or settings.is_production:
        raise PermissionDeniedError("Payment simulation is disabled")
    if order.status != OrderStatus.AWAITING_PAYMENT.value or not order.pix_id:
        raise ConflictError(f"Order {order.id} is not awaiting payment (status={order.status})")

    await abacatepay_client.simulate_pix_payment(order.pix_id)
    return await refresh_order(db, order)
