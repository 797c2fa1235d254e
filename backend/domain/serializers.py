"""
ORM -> JSON payloads shared by several routers.

Relationships read here must already be loaded (selectinload) by the
service that fetched the row.
"""
from datetime import datetime
from typing import Any

from db_models import CartItem, Order, Product, User
from domain.enums import OrderStatus
from domain.responses import money
from services.catalog_service import gallery_of


def iso(value: datetime | None) -> str | None:
    return value.isoformat() + "Z" if value else None


def product_to_dict(product: Product, available_keys: int | None = None) -> dict[str, Any]:
    data = {
        "id": product.id,
        "name": product.name,
        "imageUrl": product.image_url,
        "platform": product.platform,
        "region": product.region,
        "price": money(product.price),
        "originalPrice": money(product.original_price),
        "discount": product.discount,
        "description": product.description,
        "category": product.category,
        "galleryImages": gallery_of(product),
        "videoUrl": product.video_url,
        "systemRequirements": product.system_requirements,
        "active": product.active,
    }
    if available_keys is not None:
        data["availableKeys"] = available_keys
    return data


def cart_item_to_dict(item: CartItem) -> dict[str, Any]:
    return {
        "id": item.id,
        "productId": item.product_id,
        "quantity": item.quantity,
        "product": product_to_dict(item.product),
    }


def user_to_dict(user: User) -> dict[str, Any]:
    return {
        "id": user.id,
        "email": user.email,
        "firstName": user.first_name,
        "lastName": user.last_name,
        "whatsapp": user.whatsapp,
        "taxId": user.tax_id,
        "isAdmin": user.is_admin,
        "createdAt": iso(user.created_at),
    }


def delivered_keys(order: Order) -> list[dict[str, Any]]:
    """Keys are only shown once the order is delivered."""
    if order.status != OrderStatus.DELIVERED.value:
        return []
    names = {item.product_id: item.product.name for item in order.items}
    return [
        {"productId": k.product_id, "productName": names.get(k.product_id), "keyValue": k.key_value}
        for k in order.keys
    ]


def order_to_dict(order: Order, *, include_customer: bool = False) -> dict[str, Any]:
    data = {
        "id": order.id,
        "status": order.status,
        "totalPrice": money(order.total_price),
        "pixId": order.pix_id,
        "brCode": order.pix_br_code,
        "qrCodeBase64": order.pix_qr_code_base64,
        "expiresAt": iso(order.pix_expires_at),
        "createdAt": iso(order.created_at),
        "paidAt": iso(order.paid_at),
        "deliveredAt": iso(order.delivered_at),
        "items": [
            {
                "productId": item.product_id,
                "productName": item.product.name,
                "quantity": item.quantity,
                "unitPrice": money(item.unit_price),
            }
            for item in order.items
        ],
        "deliveredKeys": delivered_keys(order),
    }
    if include_customer:
        user = order.user
        data["customer"] = {
            "id": user.id,
            "name": user.full_name,
            "email": user.email,
            "whatsapp": user.whatsapp,
        }
    return data


def checkout_to_dict(order: Order) -> dict[str, Any]:
    """Response of the checkout endpoints: what the storefront needs to show the QR code."""
    return {
        "orderId": order.id,
        "pixId": order.pix_id,
        "brCode": order.pix_br_code,
        "qrCodeBase64": order.pix_qr_code_base64,
        "amount": money(order.total_price),
        "expiresAt": iso(order.pix_expires_at),
        "items": [
            {
                "productId": item.product_id,
                "productName": item.product.name,
                "quantity": item.quantity,
                "unitPrice": money(item.unit_price),
            }
            for item in order.items
        ],
    }
