"""
Cart endpoints — anonymous carts identified by the X-Session-Id header.
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from database import get_db
from domain.responses import money, success_response
from domain.serializers import cart_item_to_dict
from services import cart_service
from utils.validators import cart_session_id

router = APIRouter(prefix="/api/cart", tags=["cart"])


class CartAddRequest(BaseModel):
    product_id: int = Field(..., gt=0, alias="productId")
    quantity: int = Field(1, ge=1, le=settings.max_quantity_per_item)


class CartUpdateRequest(BaseModel):
    quantity: int = Field(..., ge=0, le=settings.max_quantity_per_item)


@router.get("")
async def get_cart(
    session_id: str = Depends(cart_session_id),
    db: AsyncSession = Depends(get_db),
):
    items = await cart_service.get_cart(db, session_id)
    return success_response(
        data={
            "items": [cart_item_to_dict(i) for i in items],
            "total": money(cart_service.cart_total(items)),
        }
    )


@router.post("", status_code=201)
async def add_to_cart(
    request: CartAddRequest,
    session_id: str = Depends(cart_session_id),
    db: AsyncSession = Depends(get_db),
):
    item = await cart_service.add_to_cart(db, session_id, request.product_id, request.quantity)
    await db.commit()
    return success_response(data=cart_item_to_dict(item))


@router.patch("/{product_id}")
async def update_cart_item(
    product_id: int,
    request: CartUpdateRequest,
    session_id: str = Depends(cart_session_id),
    db: AsyncSession = Depends(get_db),
):
    item = await cart_service.update_quantity(db, session_id, product_id, request.quantity)
    await db.commit()
    return success_response(data=cart_item_to_dict(item) if item else None)


@router.delete("/{product_id}")
async def remove_from_cart(
    product_id: int,
    session_id: str = Depends(cart_session_id),
    db: AsyncSession = Depends(get_db),
):
    await cart_service.remove_from_cart(db, session_id, product_id)
    await db.commit()
    return success_response(data={"productId": product_id, "removed": True})


@router.delete("")
async def clear_cart(
    session_id: str = Depends(cart_session_id),
    db: AsyncSession = Depends(get_db),
):
    await cart_service.clear_cart(db, session_id)
    await db.commit()
    return success_response(data={"cleared": True})
