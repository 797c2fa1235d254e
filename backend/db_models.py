"""
SQLAlchemy ORM models for the EliteVault storefront.

Tables:
    users          — customers and admins (bcrypt password hashes)
    user_sessions  — server-side login sessions referenced by JWT `sid`
    products       — game catalog (soft-deleted via `active`)
    product_keys   — activation keys; consumed when an order is delivered
    cart_items     — anonymous carts keyed by the X-Session-Id header
    orders         — PIX-paid orders and their status
    order_items    — product lines of an order
    site_settings  — key/value storefront configuration
"""
from datetime import datetime, timezone

from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, Text, Numeric, ForeignKey,
    UniqueConstraint, Index,
)
from sqlalchemy.orm import relationship

from database import Base


def utcnow() -> datetime:
    """Naive UTC timestamp, consistent across SQLite and Postgres columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class User(Base):
    """Customer or admin account."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(100), nullable=False)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    whatsapp = Column(String(20), nullable=True)
    tax_id = Column(String(11), nullable=True)  # CPF digits, sent to AbacatePay
    is_admin = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=utcnow)

    sessions = relationship("UserSession", back_populates="user", cascade="all, delete-orphan")
    orders = relationship("Order", back_populates="user")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class UserSession(Base):
    """
    Server-side session backing a JWT.

    The token's `sid` claim must reference a live (unexpired) row; logout
    deletes the row, which revokes the token immediately.
    """
    __tablename__ = "user_sessions"

    id = Column(String(32), primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    kind = Column(String(20), nullable=False)  # "customer" | "admin"
    expires_at = Column(DateTime, nullable=False, index=True)
    created_at = Column(DateTime, default=utcnow)

    user = relationship("User", back_populates="sessions")


class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(200), nullable=False)
    image_url = Column(Text, nullable=False)
    platform = Column(String(50), nullable=False, index=True)
    region = Column(String(50), nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    original_price = Column(Numeric(10, 2), nullable=False)
    discount = Column(Integer, nullable=False, default=0)  # percent, display only
    description = Column(Text, nullable=True)
    category = Column(String(50), nullable=True, index=True)
    gallery_images = Column(Text, nullable=True)  # JSON list of URLs
    video_url = Column(Text, nullable=True)
    system_requirements = Column(Text, nullable=True)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    keys = relationship("ProductKey", back_populates="product")


class ProductKey(Base):
    """Activation key for a product. `order_id` is set once delivered."""
    __tablename__ = "product_keys"

    id = Column(Integer, primary_key=True, autoincrement=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    key_value = Column(Text, nullable=False)
    is_used = Column(Boolean, nullable=False, default=False)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=True, index=True)
    created_at = Column(DateTime, default=utcnow)
    used_at = Column(DateTime, nullable=True)

    product = relationship("Product", back_populates="keys")

    __table_args__ = (
        # Delivery picks the oldest unused keys of a product
        Index("ix_product_keys_available", "product_id", "is_used"),
    )


class CartItem(Base):
    __tablename__ = "cart_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    session_id = Column(String(128), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, default=utcnow)

    product = relationship("Product")

    __table_args__ = (
        UniqueConstraint("session_id", "product_id", name="uq_cart_session_product"),
    )


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    # pending | awaiting_payment | paid | payment_failed | delivered
    status = Column(String(30), nullable=False, default="pending", index=True)
    total_price = Column(Numeric(10, 2), nullable=False)

    # PIX charge (AbacatePay pixQrCode)
    pix_id = Column(String(100), nullable=True, unique=True, index=True)
    pix_br_code = Column(Text, nullable=True)
    pix_qr_code_base64 = Column(Text, nullable=True)
    pix_expires_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utcnow, index=True)
    paid_at = Column(DateTime, nullable=True)
    delivered_at = Column(DateTime, nullable=True)

    user = relationship("User", back_populates="orders")
    items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan")
    keys = relationship("ProductKey", order_by="ProductKey.id")

    __table_args__ = (
        # Customer order history: filter by user, order by created_at DESC
        Index("ix_orders_user_created", "user_id", "created_at"),
    )


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    quantity = Column(Integer, nullable=False, default=1)
    unit_price = Column(Numeric(10, 2), nullable=False)

    order = relationship("Order", back_populates="items")
    product = relationship("Product")


class SiteSetting(Base):
    """Free-form storefront configuration (hero banner, colors, ...)."""
    __tablename__ = "site_settings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    key = Column(String(100), unique=True, nullable=False, index=True)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
