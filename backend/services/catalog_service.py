"""
Catalog service — products, activation keys, and the sample catalog seed.
"""

import json
import logging
from decimal import Decimal

from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from db_models import CartItem, Order, OrderItem, Product, ProductKey, utcnow
from domain.constants import SAMPLE_PRODUCTS
from domain.enums import OPEN_ORDER_STATUSES
from domain.errors import ConflictError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

# Columns an admin may change through update_product()
EDITABLE_FIELDS = (
    "name", "image_url", "platform", "region", "price", "original_price",
    "discount", "description", "category", "gallery_images", "video_url",
    "system_requirements", "active",
)
REQUIRED_FIELDS = (
    "name", "image_url", "platform", "region", "price", "original_price",
    "discount", "active",
)


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def gallery_of(product: Product) -> list[str]:
    try:
        return json.loads(product.gallery_images or "[]")
    except ValueError:
        return []


def _check_prices(price: Decimal | None, original_price: Decimal | None) -> None:
    if price is not None and price <= 0:
        raise ValidationError("Price must be positive", field="price")
    if original_price is not None and original_price <= 0:
        raise ValidationError("Original price must be positive", field="originalPrice")


async def list_products(
    db: AsyncSession,
    *,
    max_price: Decimal | None = None,
    platform: str | None = None,
    search: str | None = None,
    include_inactive: bool = False,
) -> list[Product]:
    """
    Catalog listing. Filters combine with AND:
        max_price — price <= max_price
        platform  — case-insensitive substring of platform
        search    — case-insensitive substring of name, platform or category
    """
    q = select(Product)
    if not include_inactive:
        q = q.where(Product.active == True)  # noqa: E712
    if max_price is not None:
        q = q.where(Product.price <= max_price)
    if platform:
        q = q.where(Product.platform.ilike(f"%{_escape_like(platform)}%", escape="\\"))
    if search:
        pattern = f"%{_escape_like(search)}%"
        q = q.where(
            or_(
                Product.name.ilike(pattern, escape="\\"),
                Product.platform.ilike(pattern, escape="\\"),
                Product.category.ilike(pattern, escape="\\"),
            )
        )
    res = await db.execute(q.order_by(Product.id))
    return list(res.scalars().all())


async def get_product(db: AsyncSession, product_id: int, *, include_inactive: bool = False) -> Product:
    res = await db.execute(select(Product).where(Product.id == product_id))
    product = res.scalar_one_or_none()
    if not product or (not product.active and not include_inactive):
        raise NotFoundError("Product", str(product_id))
    return product


async def available_key_counts(db: AsyncSession, product_ids: list[int]) -> dict[int, int]:
    """{product_id: unused key count}; products without keys map to 0."""
    if not product_ids:
        return {}
    res = await db.execute(
        select(ProductKey.product_id, func.count(ProductKey.id))
        .where(ProductKey.product_id.in_(product_ids), ProductKey.is_used == False)  # noqa: E712
        .group_by(ProductKey.product_id)
    )
    counts = {pid: 0 for pid in product_ids}
    counts.update({pid: count for pid, count in res.all()})
    return counts


async def create_product(
    db: AsyncSession,
    *,
    name: str,
    image_url: str,
    platform: str,
    region: str,
    price: Decimal,
    original_price: Decimal,
    discount: int = 0,
    description: str | None = None,
    category: str | None = None,
    gallery_images: list[str] | None = None,
    video_url: str | None = None,
    system_requirements: str | None = None,
) -> Product:
    _check_prices(price, original_price)
    product = Product(
        name=name,
        image_url=image_url,
        platform=platform,
        region=region,
        price=price,
        original_price=original_price,
        discount=discount,
        description=description,
        category=category,
        gallery_images=json.dumps(gallery_images or []),
        video_url=video_url,
        system_requirements=system_requirements,
        active=True,
    )
    db.add(product)
    await db.flush()
    logger.info(f"Product created: {product.id} ({product.name})")
    return product


async def update_product(db: AsyncSession, product_id: int, changes: dict) -> Product:
    """Update a product's fields. Only keys present in `changes` are touched."""
    product = await get_product(db, product_id, include_inactive=True)

    unknown = set(changes) - set(EDITABLE_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown product fields: {', '.join(sorted(unknown))}")
    _check_prices(changes.get("price"), changes.get("original_price"))
    for field in REQUIRED_FIELDS:
        if field in changes and changes[field] is None:
            raise ValidationError("Field cannot be empty", field=field)

    for field, value in changes.items():
        if field == "gallery_images":
            value = json.dumps(value or [])
        setattr(product, field, value)

    product.updated_at = utcnow()
    await db.flush()
    return product


async def soft_delete_product(db: AsyncSession, product_id: int) -> Product:
    """
    Hide a product from the catalog (active=False) and drop it from carts.

    Refused while an unpaid order still references it; delivered orders keep
    pointing at the row, so it is never physically removed.
    """
    product = await get_product(db, product_id, include_inactive=True)

    open_orders = await db.scalar(
        select(func.count(func.distinct(Order.id)))
        .join(OrderItem, OrderItem.order_id == Order.id)
        .where(OrderItem.product_id == product_id, Order.status.in_(OPEN_ORDER_STATUSES))
    )
    if open_orders:
        raise ConflictError(
            f"Cannot delete product {product_id}: {open_orders} order(s) awaiting payment"
        )

    await db.execute(delete(CartItem).where(CartItem.product_id == product_id))
    product.active = False
    product.updated_at = utcnow()
    await db.flush()
    logger.info(f"Product {product_id} soft-deleted")
    return product


async def seed_sample_products(db: AsyncSession) -> tuple[bool, int]:
    """
    Insert SAMPLE_PRODUCTS when the catalog is empty.

    Returns (seeded, count): count is the number inserted, or the number of
    products already present when nothing was done.
    """
    existing = await db.scalar(select(func.count(Product.id)))
    if existing:
        return False, existing

    for sample in SAMPLE_PRODUCTS:
        data = dict(sample)
        data["price"] = Decimal(data["price"])
        data["original_price"] = Decimal(data["original_price"])
        await create_product(db, **data)
    logger.info(f"Seeded {len(SAMPLE_PRODUCTS)} sample products")
    return True, len(SAMPLE_PRODUCTS)


# ════════════════════════════════════════════════════════════════════
# Product keys
# ════════════════════════════════════════════════════════════════════


async def list_product_keys(db: AsyncSession, product_id: int) -> list[ProductKey]:
    await get_product(db, product_id, include_inactive=True)
    res = await db.execute(
        select(ProductKey).where(ProductKey.product_id == product_id).order_by(ProductKey.id)
    )
    return list(res.scalars().all())


async def add_product_key(db: AsyncSession, product_id: int, key_value: str) -> ProductKey:
    added = await add_product_keys_bulk(db, product_id, [key_value])
    if not added:
        raise ConflictError("Key already registered for this product")
    return added[0]


async def add_product_keys_bulk(db: AsyncSession, product_id: int, key_values: list[str]) -> list[ProductKey]:
    """
    Insert keys for a product.

    Blank entries are dropped; duplicates inside the batch or of a key the
    product already has are skipped. Returns the rows actually inserted.
    """
    await get_product(db, product_id, include_inactive=True)

    cleaned: list[str] = []
    for value in key_values:
        value = (value or "").strip()
        if value and value not in cleaned:
            cleaned.append(value)
    if not cleaned:
        raise ValidationError("No keys provided", field="keys")

    res = await db.execute(
        select(ProductKey.key_value).where(
            ProductKey.product_id == product_id,
            ProductKey.key_value.in_(cleaned),
        )
    )
    existing = set(res.scalars().all())

    added = []
    for value in cleaned:
        if value in existing:
            continue
        key = ProductKey(product_id=product_id, key_value=value, is_used=False)
        db.add(key)
        added.append(key)
    await db.flush()

    skipped = len(key_values) - len(added)
    logger.info(f"Product {product_id}: {len(added)} key(s) added, {skipped} skipped")
    return added


async def delete_product_key(db: AsyncSession, key_id: int) -> None:
    res = await db.execute(select(ProductKey).where(ProductKey.id == key_id))
    key = res.scalar_one_or_none()
    if not key:
        raise NotFoundError("Product key", str(key_id))
    if key.is_used:
        raise ConflictError("Cannot delete a key that was already delivered")
    await db.delete(key)
    await db.flush()
