"""
Catalog endpoints — public product listing/detail, admin product management
and the sample catalog seed.
"""

import logging
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from database import get_db
from deps import CurrentSession, get_optional_session, require_admin
from domain.enums import SessionKind
from domain.errors import PermissionDeniedError
from domain.responses import success_response
from domain.serializers import product_to_dict
from services import catalog_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["products"])


class ProductCreateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(..., min_length=1, max_length=200)
    image_url: str = Field(..., alias="imageUrl", min_length=1, max_length=1000)
    platform: str = Field(..., min_length=1, max_length=50)
    region: str = Field("Global", min_length=1, max_length=50)
    price: Decimal = Field(..., gt=0, max_digits=10, decimal_places=2)
    original_price: Decimal = Field(..., alias="originalPrice", gt=0, max_digits=10, decimal_places=2)
    discount: int = Field(0, ge=0, le=100)
    description: Optional[str] = Field(default=None, max_length=5000)
    category: Optional[str] = Field(default=None, max_length=100)
    gallery_images: list[str] = Field(default_factory=list, alias="galleryImages")
    video_url: Optional[str] = Field(default=None, alias="videoUrl", max_length=1000)
    system_requirements: Optional[str] = Field(default=None, alias="systemRequirements", max_length=5000)


class ProductUpdateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    image_url: Optional[str] = Field(default=None, alias="imageUrl", min_length=1, max_length=1000)
    platform: Optional[str] = Field(default=None, min_length=1, max_length=50)
    region: Optional[str] = Field(default=None, min_length=1, max_length=50)
    price: Optional[Decimal] = Field(default=None, gt=0, max_digits=10, decimal_places=2)
    original_price: Optional[Decimal] = Field(default=None, alias="originalPrice", gt=0, max_digits=10, decimal_places=2)
    discount: Optional[int] = Field(default=None, ge=0, le=100)
    description: Optional[str] = Field(default=None, max_length=5000)
    category: Optional[str] = Field(default=None, max_length=100)
    gallery_images: Optional[list[str]] = Field(default=None, alias="galleryImages")
    video_url: Optional[str] = Field(default=None, alias="videoUrl", max_length=1000)
    system_requirements: Optional[str] = Field(default=None, alias="systemRequirements", max_length=5000)
    active: Optional[bool] = None


def _is_admin(current: Optional[CurrentSession]) -> bool:
    return bool(current and current["session"].kind == SessionKind.ADMIN.value and current["user"].is_admin)


@router.get("/products")
async def list_products(
    max_price: Optional[Decimal] = Query(None, alias="maxPrice", gt=0),
    platform: Optional[str] = Query(None, max_length=50),
    search: Optional[str] = Query(None, max_length=100),
    current: Optional[CurrentSession] = Depends(get_optional_session),
    db: AsyncSession = Depends(get_db),
):
    """Active products; admins also see soft-deleted ones."""
    products = await catalog_service.list_products(
        db, max_price=max_price, platform=platform, search=search, include_inactive=_is_admin(current)
    )
    counts = await catalog_service.available_key_counts(db, [p.id for p in products])
    return success_response(data=[product_to_dict(p, counts[p.id]) for p in products])


@router.get("/products/{product_id}")
async def get_product(
    product_id: int,
    current: Optional[CurrentSession] = Depends(get_optional_session),
    db: AsyncSession = Depends(get_db),
):
    product = await catalog_service.get_product(db, product_id, include_inactive=_is_admin(current))
    counts = await catalog_service.available_key_counts(db, [product.id])
    return success_response(data=product_to_dict(product, counts[product.id]))


@router.post("/products", status_code=201)
async def create_product(
    request: ProductCreateRequest,
    admin: CurrentSession = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    product = await catalog_service.create_product(db, **request.model_dump())
    await db.commit()
    logger.info(f"Admin {admin['user'].id} created product {product.id}")
    return success_response(data=product_to_dict(product, 0))


@router.put("/products/{product_id}")
async def update_product(
    product_id: int,
    request: ProductUpdateRequest,
    admin: CurrentSession = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    product = await catalog_service.update_product(db, product_id, request.model_dump(exclude_unset=True))
    await db.commit()
    counts = await catalog_service.available_key_counts(db, [product.id])
    return success_response(data=product_to_dict(product, counts[product.id]))


@router.delete("/products/{product_id}")
async def delete_product(
    product_id: int,
    admin: CurrentSession = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    await catalog_service.soft_delete_product(db, product_id)
    await db.commit()
    logger.info(f"Admin {admin['user'].id} deleted product {product_id}")
    return success_response(data={"id": product_id, "deleted": True})


@router.post("/seed")
async def seed_products(
    current: Optional[CurrentSession] = Depends(get_optional_session),
    db: AsyncSession = Depends(get_db),
):
    """Load the sample catalog into an empty database."""
    if settings.is_production:
        if not _is_admin(current):
            raise PermissionDeniedError("Seeding is disabled in production")

    seeded, count = await catalog_service.seed_sample_products(db)
    await db.commit()
    message = f"Seeded {count} products" if seeded else f"Catalog already has {count} products"
    return success_response(data={"seeded": seeded, "count": count, "message": message})
