"""
Order service — checkout validation, order records, PIX status transitions
and key delivery.

Status flow:

    pending ──(QR code created)──▶ awaiting_payment ──PAID──▶ paid ──(keys)──▶ delivered
       │                                 │
       └──(provider error)──▶ payment_failed ◀──EXPIRED──┘

Transitions out of pending/awaiting_payment and out of paid are guarded
compare-and-set UPDATEs, so a webhook and a poll racing on the same order
apply the change once.
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy.orm.attributes import set_committed_value

from config import settings
from db_models import Order, OrderItem, Product, ProductKey, User, utcnow
from domain.enums import OPEN_ORDER_STATUSES, OrderStatus, PixStatus
from domain.errors import NotFoundError, OutOfStockError, ValidationError
from services import catalog_service

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")


def to_cents(amount: Decimal) -> int:
    """Decimal BRL amount -> integer centavos (half-up)."""
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _merge_items(items: list[dict]) -> dict[int, int]:
    """[{product_id, quantity}] -> {product_id: total quantity}, preserving first-seen order."""
    merged: dict[int, int] = {}
    for i in items:
        pid = int(i["product_id"])
        qty = int(i.get("quantity", 1))
        if qty < 1:
            raise ValidationError("Quantity must be at least 1", field="quantity")
        merged[pid] = merged.get(pid, 0) + qty
    return merged


async def build_checkout(db: AsyncSession, items: list[dict]) -> dict:
    """
    Validate a checkout request and price it.

    items: [{product_id:int, quantity:int}]

    Returns:
        {"lines": [{"product": Product, "quantity": int, "unit_price": Decimal}],
         "total": Decimal}
    """
    if not items:
        raise ValidationError("Cart is empty")

    merged = _merge_items(items)
    res = await db.execute(select(Product).where(Product.id.in_(list(merged))))
    products = {p.id: p for p in res.scalars().all()}
    stock = await catalog_service.available_key_counts(db, list(merged))

    lines = []
    total = Decimal("0.00")
    for pid, qty in merged.items():
        product = products.get(pid)
        if not product or not product.active:
            raise NotFoundError("Product", str(pid))
        if qty > settings.max_quantity_per_item:
            raise ValidationError(
                f"Max {settings.max_quantity_per_item} per order for {product.name}",
                field="quantity",
            )
        if stock.get(pid, 0) < qty:
            raise OutOfStockError(pid, product.name, stock.get(pid, 0), qty)
        unit_price = Decimal(product.price).quantize(CENTS, rounding=ROUND_HALF_UP)
        total += unit_price * qty
        lines.append({"product": product, "quantity": qty, "unit_price": unit_price})

    return {"lines": lines, "total": total.quantize(CENTS, rounding=ROUND_HALF_UP)}


async def create_order(db: AsyncSession, *, user: User, checkout: dict) -> Order:
    order = Order(
        user_id=user.id,
        status=OrderStatus.PENDING.value,
        total_price=checkout["total"],
        created_at=utcnow(),
    )
    for line in checkout["lines"]:
        order.items.append(
            OrderItem(
                product_id=line["product"].id,
                quantity=line["quantity"],
                unit_price=line["unit_price"],
            )
        )
    db.add(order)
    await db.flush()
    logger.info(f"Order {order.id} created for user {user.id}: R$ {order.total_price}")
    return order


def attach_pix_charge(order: Order, charge: dict) -> None:
    """Store the AbacatePay QR code on a pending order and await payment."""
    order.pix_id = charge["id"]
    order.pix_br_code = charge.get("brCode")
    order.pix_qr_code_base64 = charge.get("brCodeBase64")
    order.pix_expires_at = parse_provider_datetime(charge.get("expiresAt"))
    order.status = OrderStatus.AWAITING_PAYMENT.value


def parse_provider_datetime(value: str | None) -> datetime | None:
    """ISO-8601 from AbacatePay ("2025-03-24T21:50:20.772Z") -> naive UTC."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.warning(f"Unparseable provider timestamp: {value!r}")
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


async def _compare_and_set(db: AsyncSession, order: Order, *, from_statuses, values: dict) -> bool:
    res = await db.execute(
        update(Order)
        .where(Order.id == order.id, Order.status.in_(list(from_statuses)))
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        await db.refresh(order)
        return False
    for field, value in values.items():
        set_committed_value(order, field, value)
    return True


async def mark_paid(db: AsyncSession, order: Order) -> bool:
    changed = await _compare_and_set(
        db,
        order,
        from_statuses=OPEN_ORDER_STATUSES,
        values={"status": OrderStatus.PAID.value, "paid_at": utcnow()},
    )
    if changed:
        logger.info(f"  ✅ Order {order.id} paid (pix={order.pix_id})")
    return changed


async def mark_payment_failed(db: AsyncSession, order: Order) -> bool:
    changed = await _compare_and_set(
        db,
        order,
        from_statuses=OPEN_ORDER_STATUSES,
        values={"status": OrderStatus.PAYMENT_FAILED.value},
    )
    if changed:
        logger.warning(f"  ⚠️ Order {order.id} → payment_failed")
    return changed


async def deliver_order(db: AsyncSession, order: Order) -> bool:
    """
    Assign unused keys to a paid order and mark it delivered.

    All-or-nothing: when any product lacks keys the order stays `paid` and
    no key is consumed. Returns True only when this call delivered the order.
    """
    delivered_at = utcnow()
    claimed = await _compare_and_set(
        db,
        order,
        from_statuses=(OrderStatus.PAID.value,),
        values={"status": OrderStatus.DELIVERED.value, "delivered_at": delivered_at},
    )
    if not claimed:
        return False

    res = await db.execute(select(OrderItem).where(OrderItem.order_id == order.id).order_by(OrderItem.id))
    items = res.scalars().all()

    picked: list[ProductKey] = []
    for item in items:
        keys_res = await db.execute(
            select(ProductKey)
            .where(ProductKey.product_id == item.product_id, ProductKey.is_used == False)  # noqa: E712
            .order_by(ProductKey.id)
            .limit(item.quantity)
            .with_for_update(skip_locked=True)
        )
        keys = keys_res.scalars().all()
        if len(keys) < item.quantity:
            logger.warning(
                f"  ⚠️ Order {order.id}: only {len(keys)}/{item.quantity} key(s) left "
                f"for product {item.product_id}; delivery postponed"
            )
            await _compare_and_set(
                db,
                order,
                from_statuses=(OrderStatus.DELIVERED.value,),
                values={"status": OrderStatus.PAID.value, "delivered_at": None},
            )
            return False
        picked.extend(keys)

    for key in picked:
        key.is_used = True
        key.order_id = order.id
        key.used_at = delivered_at
    await db.flush()

    logger.info(f"  🎮 Order {order.id} delivered ({len(picked)} key(s))")
    return True


async def apply_pix_status(db: AsyncSession, order: Order, pix_status: str) -> bool:
    """
    Map an AbacatePay PIX status onto the order. Returns True if anything changed.

        PAID    on pending/awaiting_payment -> paid, then delivery
        PAID    on paid                     -> delivery retry
        EXPIRED on pending/awaiting_payment -> payment_failed
        anything else                       -> no change
    """
    status = (pix_status or "").upper()

    if status == PixStatus.PAID.value:
        changed = False
        if order.status in OPEN_ORDER_STATUSES:
            changed = await mark_paid(db, order)
        if order.status == OrderStatus.PAID.value:
            changed = await deliver_order(db, order) or changed
        return changed

    if status == PixStatus.EXPIRED.value:
        return await mark_payment_failed(db, order)

    if status != PixStatus.PENDING.value:
        logger.debug(f"  Order {order.id}: PIX status ignored: {status!r}")
    return False


def _order_query():
    return select(Order).options(
        selectinload(Order.items).selectinload(OrderItem.product),
        selectinload(Order.keys),
    ).execution_options(populate_existing=True)


async def get_order(db: AsyncSession, order_id: int, *, user_id: int | None = None) -> Order:
    """Load an order with items, products and delivered keys. `user_id` scopes it to its owner."""
    q = _order_query().where(Order.id == order_id)
    if user_id is not None:
        q = q.where(Order.user_id == user_id)
    res = await db.execute(q)
    order = res.scalar_one_or_none()
    if not order:
        raise NotFoundError("Order", str(order_id))
    return order


async def get_order_by_pix_id(db: AsyncSession, pix_id: str) -> Order | None:
    res = await db.execute(_order_query().where(Order.pix_id == pix_id))
    return res.scalar_one_or_none()


async def list_user_orders(
    db: AsyncSession,
    *,
    user_id: int,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Order], int]:
    total = await db.scalar(select(func.count(Order.id)).where(Order.user_id == user_id))
    res = await db.execute(
        _order_query()
        .where(Order.user_id == user_id)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .limit(limit)
        .offset(offset)
    )
    return list(res.scalars().all()), total or 0


async def list_all_orders(
    db: AsyncSession,
    *,
    status: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Order], int]:
    count_q = select(func.count(Order.id))
    q = _order_query().options(selectinload(Order.user))
    if status:
        count_q = count_q.where(Order.status == status)
        q = q.where(Order.status == status)
    total = await db.scalar(count_q)
    res = await db.execute(
        q.order_by(Order.created_at.desc(), Order.id.desc()).limit(limit).offset(offset)
    )
    return list(res.scalars().all()), total or 0


async def list_awaiting_payment(db: AsyncSession, *, limit: int = 100) -> list[Order]:
    """Orders with a live PIX charge, oldest first (PIX poller input)."""
    res = await db.execute(
        select(Order)
        .where(
            Order.status == OrderStatus.AWAITING_PAYMENT.value,
            Order.pix_id.is_not(None),
        )
        .order_by(Order.created_at)
        .limit(limit)
    )
    return list(res.scalars().all())
