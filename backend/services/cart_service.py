"""
Cart service — anonymous carts keyed by the X-Session-Id header.
"""

from decimal import Decimal

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from config import settings
from db_models import CartItem
from domain.errors import NotFoundError, ValidationError
from services import catalog_service


async def get_cart(db: AsyncSession, session_id: str) -> list[CartItem]:
    """Cart lines with their product loaded; lines for hidden products are skipped."""
    res = await db.execute(
        select(CartItem)
        .options(selectinload(CartItem.product))
        .where(CartItem.session_id == session_id)
        .order_by(CartItem.id)
    )
    return [item for item in res.scalars().all() if item.product and item.product.active]


def cart_total(items: list[CartItem]) -> Decimal:
    return sum((Decimal(i.product.price) * i.quantity for i in items), Decimal("0.00"))


async def _get_line(db: AsyncSession, session_id: str, product_id: int) -> CartItem | None:
    res = await db.execute(
        select(CartItem).options(selectinload(CartItem.product)).where(
            CartItem.session_id == session_id,
            CartItem.product_id == product_id,
        )
    )
    return res.scalar_one_or_none()


async def add_to_cart(db: AsyncSession, session_id: str, product_id: int, quantity: int = 1) -> CartItem:
    if quantity < 1:
        raise ValidationError("Quantity must be at least 1", field="quantity")

    product = await catalog_service.get_product(db, product_id)

    item = await _get_line(db, session_id, product_id)
    in_cart = item.quantity if item else 0
    if in_cart + quantity > settings.max_quantity_per_item:
        raise ValidationError(
            f"Max {settings.max_quantity_per_item} per order for {product.name} ({in_cart} already in cart)",
            field="quantity",
        )
    if item:
        item.quantity += quantity
        item.product = product
    else:
        item = CartItem(session_id=session_id, product=product, quantity=quantity)
        db.add(item)
    await db.flush()
    return item


async def update_quantity(db: AsyncSession, session_id: str, product_id: int, quantity: int) -> CartItem | None:
    """Set a line's quantity. Zero (or less) removes the line and returns None."""
    item = await _get_line(db, session_id, product_id)
    if not item:
        raise NotFoundError("Cart item", str(product_id))

    if quantity <= 0:
        await db.delete(item)
        await db.flush()
        return None

    if quantity > settings.max_quantity_per_item:
        raise ValidationError(f"Max {settings.max_quantity_per_item} per order", field="quantity")
    item.quantity = quantity
    await db.flush()
    return item


async def remove_from_cart(db: AsyncSession, session_id: str, product_id: int) -> None:
    await db.execute(
        delete(CartItem).where(
            CartItem.session_id == session_id,
            CartItem.product_id == product_id,
        )
    )


async def clear_cart(db: AsyncSession, session_id: str) -> None:
    await db.execute(delete(CartItem).where(CartItem.session_id == session_id))

