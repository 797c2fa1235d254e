"""
Tests for catalog_service — product listing filters, admin CRUD,
soft delete, seed and product keys.
"""

import os, sys
sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from decimal import Decimal

import pytest
from fastapi import HTTPException
from sqlalchemy import func, select

from db_models import CartItem, Order, OrderItem, Product, ProductKey
from domain.constants import SAMPLE_PRODUCTS
from services import catalog_service


class TestListProducts:

    @pytest.mark.unit
    async def test_filters_combine_with_and(self, db_session, product, second_product):
        both = await catalog_service.list_products(db_session)
        assert [p.id for p in both] == [product.id, second_product.id]

        cheap = await catalog_service.list_products(db_session, max_price=Decimal("10.00"))
        assert [p.id for p in cheap] == [product.id]

        xbox = await catalog_service.list_products(db_session, platform="xBo")
        assert [p.id for p in xbox] == [second_product.id]

        none = await catalog_service.list_products(db_session, platform="xbox", max_price=Decimal("10"))
        assert none == []

    @pytest.mark.unit
    async def test_search_matches_name_platform_category(self, db_session, product, second_product):
        assert [p.id for p in await catalog_service.list_products(db_session, search="hollow")] == [product.id]
        assert [p.id for p in await catalog_service.list_products(db_session, search="STEAM")] == [product.id]
        assert [p.id for p in await catalog_service.list_products(db_session, search="racing")] == [second_product.id]

    @pytest.mark.unit
    async def test_like_wildcards_are_literal(self, db_session, product):
        assert await catalog_service.list_products(db_session, search="%") == []
        assert await catalog_service.list_products(db_session, search="_") == []

    @pytest.mark.unit
    async def test_inactive_products_hidden(self, db_session, product):
        await catalog_service.soft_delete_product(db_session, product.id)
        assert await catalog_service.list_products(db_session) == []
        with pytest.raises(HTTPException) as exc_info:
            await catalog_service.get_product(db_session, product.id)
        assert exc_info.value.status_code == 404
        hidden = await catalog_service.get_product(db_session, product.id, include_inactive=True)
        assert hidden.active is False


class TestProductCrud:

    @pytest.mark.unit
    async def test_create_stores_gallery_as_json(self, db_session):
        p = await catalog_service.create_product(
            db_session,
            name="Celeste",
            image_url="https://cdn.example.com/celeste.jpg",
            platform="Steam",
            region="Global",
            price=Decimal("19.99"),
            original_price=Decimal("39.99"),
            gallery_images=["https://cdn.example.com/c1.jpg", "https://cdn.example.com/c2.jpg"],
        )
        assert catalog_service.gallery_of(p) == ["https://cdn.example.com/c1.jpg", "https://cdn.example.com/c2.jpg"]
        assert p.active is True

    @pytest.mark.unit
    async def test_create_rejects_non_positive_price(self, db_session):
        with pytest.raises(HTTPException) as exc_info:
            await catalog_service.create_product(
                db_session,
                name="Free?",
                image_url="x",
                platform="Steam",
                region="Global",
                price=Decimal("0"),
                original_price=Decimal("10"),
            )
        assert exc_info.value.status_code == 400

    @pytest.mark.unit
    async def test_partial_update(self, db_session, product):
        updated = await catalog_service.update_product(
            db_session, product.id, {"price": Decimal("7.50"), "discount": 50}
        )
        assert updated.price == Decimal("7.50")
        assert updated.discount == 50
        assert updated.name == "Hollow Knight"
        assert updated.updated_at is not None

    @pytest.mark.unit
    async def test_update_rejects_unknown_and_null_required_fields(self, db_session, product):
        with pytest.raises(HTTPException):
            await catalog_service.update_product(db_session, product.id, {"stock": 3})
        with pytest.raises(HTTPException):
            await catalog_service.update_product(db_session, product.id, {"name": None})

    @pytest.mark.unit
    async def test_soft_delete_removes_from_carts(self, db_session, product):
        db_session.add(CartItem(session_id="s1", product_id=product.id, quantity=2))
        await db_session.flush()

        await catalog_service.soft_delete_product(db_session, product.id)

        remaining = await db_session.scalar(select(func.count(CartItem.id)))
        assert remaining == 0
        assert product.active is False

    @pytest.mark.unit
    async def test_soft_delete_blocked_by_open_order(self, db_session, product, customer):
        order = Order(user_id=customer.id, status="awaiting_payment", total_price=Decimal("9.56"))
        order.items.append(OrderItem(product_id=product.id, quantity=1, unit_price=Decimal("9.56")))
        db_session.add(order)
        await db_session.flush()

        with pytest.raises(HTTPException) as exc_info:
            await catalog_service.soft_delete_product(db_session, product.id)
        assert exc_info.value.status_code == 409

    @pytest.mark.unit
    async def test_soft_delete_allowed_after_delivery(self, db_session, product, customer):
        order = Order(user_id=customer.id, status="delivered", total_price=Decimal("9.56"))
        order.items.append(OrderItem(product_id=product.id, quantity=1, unit_price=Decimal("9.56")))
        db_session.add(order)
        await db_session.flush()

        deleted = await catalog_service.soft_delete_product(db_session, product.id)
        assert deleted.active is False


class TestSeed:

    @pytest.mark.unit
    async def test_seeds_empty_catalog_once(self, db_session):
        seeded, count = await catalog_service.seed_sample_products(db_session)
        assert seeded is True
        assert count == len(SAMPLE_PRODUCTS) == 10

        seeded, count = await catalog_service.seed_sample_products(db_session)
        assert seeded is False
        assert count == 10

    @pytest.mark.unit
    async def test_skips_non_empty_catalog(self, db_session, product):
        seeded, count = await catalog_service.seed_sample_products(db_session)
        assert seeded is False
        assert count == 1


class TestProductKeys:

    @pytest.mark.unit
    async def test_bulk_skips_blanks_and_duplicates(self, db_session, product, product_keys):
        added = await catalog_service.add_product_keys_bulk(
            db_session,
            product.id,
            ["HK-AAAA-0001", "  HK-NEW-0004 ", "", "HK-NEW-0004", "HK-NEW-0005"],
        )
        assert [k.key_value for k in added] == ["HK-NEW-0004", "HK-NEW-0005"]
        counts = await catalog_service.available_key_counts(db_session, [product.id])
        assert counts == {product.id: 5}

    @pytest.mark.unit
    async def test_single_duplicate_is_409(self, db_session, product, product_keys):
        with pytest.raises(HTTPException) as exc_info:
            await catalog_service.add_product_key(db_session, product.id, "HK-BBBB-0002")
        assert exc_info.value.status_code == 409

    @pytest.mark.unit
    async def test_bulk_of_only_blanks_is_400(self, db_session, product):
        with pytest.raises(HTTPException) as exc_info:
            await catalog_service.add_product_keys_bulk(db_session, product.id, ["", "   "])
        assert exc_info.value.status_code == 400

    @pytest.mark.unit
    async def test_available_counts_exclude_used(self, db_session, product, second_product, product_keys):
        product_keys[0].is_used = True
        await db_session.flush()
        counts = await catalog_service.available_key_counts(db_session, [product.id, second_product.id])
        assert counts == {product.id: 2, second_product.id: 0}

    @pytest.mark.unit
    async def test_delete_unused_key(self, db_session, product, product_keys):
        await catalog_service.delete_product_key(db_session, product_keys[0].id)
        remaining = await db_session.scalar(select(func.count(ProductKey.id)))
        assert remaining == 2

    @pytest.mark.unit
    async def test_delete_used_key_is_409(self, db_session, product, product_keys):
        product_keys[0].is_used = True
        await db_session.flush()
        with pytest.raises(HTTPException) as exc_info:
            await catalog_service.delete_product_key(db_session, product_keys[0].id)
        assert exc_info.value.status_code == 409

    @pytest.mark.unit
    async def test_keys_for_unknown_product_404(self, db_session):
        with pytest.raises(HTTPException) as exc_info:
            await catalog_service.list_product_keys(db_session, 999)
        assert exc_info.value.status_code == 404
