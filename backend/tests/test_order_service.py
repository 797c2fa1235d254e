"""
Tests for order_service — checkout validation, the order state machine and
key delivery.

Status flow under test:
    pending -> awaiting_payment -> paid -> delivered
    awaiting_payment -> payment_failed (EXPIRED)
"""

import os, sys
sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from decimal import Decimal

import pytest
from fastapi import HTTPException
from sqlalchemy import select
from sqlalchemy.orm.attributes import set_committed_value

from db_models import ProductKey
from services import catalog_service, order_service


async def _order(db, user, items, *, status="awaiting_payment", pix_id="pix_char_test"):
    checkout = await order_service.build_checkout(db, items)
    order = await order_service.create_order(db, user=user, checkout=checkout)
    order.status = status
    order.pix_id = pix_id
    await db.commit()
    return await order_service.get_order(db, order.id)


class TestMoney:

    @pytest.mark.unit
    @pytest.mark.parametrize("amount, cents", [
        (Decimal("9.56"), 956),
        (Decimal("0.01"), 1),
        (Decimal("10.005"), 1001),
        (Decimal("49.90"), 4990),
    ])
    def test_to_cents(self, amount, cents):
        assert order_service.to_cents(amount) == cents

    @pytest.mark.unit
    def test_parse_provider_datetime(self):
        parsed = order_service.parse_provider_datetime("2025-03-24T21:50:20.772Z")
        assert parsed.tzinfo is None
        assert (parsed.hour, parsed.minute) == (21, 50)
        assert order_service.parse_provider_datetime("2025-03-24T18:50:20-03:00").hour == 21
        assert order_service.parse_provider_datetime(None) is None
        assert order_service.parse_provider_datetime("yesterday") is None


class TestBuildCheckout:

    @pytest.mark.unit
    async def test_prices_and_merges_lines(self, db_session, product, second_product, product_keys, second_product_keys):
        checkout = await order_service.build_checkout(db_session, [
            {"product_id": product.id, "quantity": 1},
            {"product_id": second_product.id, "quantity": 2},
            {"product_id": product.id, "quantity": 1},
        ])
        assert [(line["product"].id, line["quantity"]) for line in checkout["lines"]] == [
            (product.id, 2),
            (second_product.id, 2),
        ]
        assert checkout["total"] == Decimal("118.92")

    @pytest.mark.unit
    async def test_empty_is_400(self, db_session):
        with pytest.raises(HTTPException) as exc_info:
            await order_service.build_checkout(db_session, [])
        assert exc_info.value.status_code == 400

    @pytest.mark.unit
    async def test_over_max_quantity_is_400(self, db_session, product):
        await catalog_service.add_product_keys_bulk(db_session, product.id, [f"K-{i}" for i in range(25)])
        with pytest.raises(HTTPException) as exc_info:
            await order_service.build_checkout(db_session, [{"product_id": product.id, "quantity": 21}])
        assert exc_info.value.status_code == 400

    @pytest.mark.unit
    async def test_insufficient_keys_is_409(self, db_session, product, product_keys):
        with pytest.raises(HTTPException) as exc_info:
            await order_service.build_checkout(db_session, [{"product_id": product.id, "quantity": 4}])
        assert exc_info.value.status_code == 409
        assert exc_info.value.details == {"productId": product.id, "available": 3, "requested": 4}

    @pytest.mark.unit
    async def test_inactive_product_is_404(self, db_session, product, product_keys):
        await catalog_service.soft_delete_product(db_session, product.id)
        with pytest.raises(HTTPException) as exc_info:
            await order_service.build_checkout(db_session, [{"product_id": product.id, "quantity": 1}])
        assert exc_info.value.status_code == 404


class TestStateMachine:

    @pytest.mark.unit
    async def test_create_order_is_pending(self, db_session, customer, product, product_keys):
        checkout = await order_service.build_checkout(db_session, [{"product_id": product.id, "quantity": 2}])
        order = await order_service.create_order(db_session, user=customer, checkout=checkout)
        assert order.status == "pending"
        assert order.total_price == Decimal("19.12")
        assert [(i.quantity, i.unit_price) for i in order.items] == [(2, Decimal("9.56"))]

    @pytest.mark.unit
    async def test_attach_pix_charge(self, db_session, customer, product, product_keys):
        order = await _order(db_session, customer, [{"product_id": product.id, "quantity": 1}], status="pending", pix_id=None)
        order_service.attach_pix_charge(order, {
            "id": "pix_char_123",
            "brCode": "000201...",
            "brCodeBase64": "data:image/png;base64,AAAA",
            "expiresAt": "2026-10-19T13:00:00.000Z",
        })
        assert order.status == "awaiting_payment"
        assert order.pix_id == "pix_char_123"
        assert order.pix_expires_at.hour == 13

    @pytest.mark.unit
    async def test_paid_delivers_keys_fifo(self, db_session, customer, product, product_keys):
        order = await _order(db_session, customer, [{"product_id": product.id, "quantity": 2}])

        changed = await order_service.apply_pix_status(db_session, order, "PAID")
        await db_session.commit()

        assert changed is True
        order = await order_service.get_order(db_session, order.id)
        assert order.status == "delivered"
        assert order.paid_at is not None and order.delivered_at is not None
        assert [k.key_value for k in order.keys] == ["HK-AAAA-0001", "HK-BBBB-0002"]
        assert all(k.is_used and k.used_at is not None for k in order.keys)

    @pytest.mark.unit
    async def test_paid_is_idempotent(self, db_session, customer, product, product_keys):
        order = await _order(db_session, customer, [{"product_id": product.id, "quantity": 1}])
        assert await order_service.apply_pix_status(db_session, order, "PAID") is True
        await db_session.commit()

        assert await order_service.apply_pix_status(db_session, order, "PAID") is False
        await db_session.commit()

        used = (await db_session.execute(select(ProductKey).where(ProductKey.is_used == True))).scalars().all()  # noqa: E712
        assert len(used) == 1

    @pytest.mark.unit
    async def test_expired_marks_payment_failed(self, db_session, customer, product, product_keys):
        order = await _order(db_session, customer, [{"product_id": product.id, "quantity": 1}])
        assert await order_service.apply_pix_status(db_session, order, "EXPIRED") is True
        assert order.status == "payment_failed"

        # Terminal: a late PAID does not resurrect it
        assert await order_service.apply_pix_status(db_session, order, "PAID") is False
        assert order.status == "payment_failed"

    @pytest.mark.unit
    @pytest.mark.parametrize("pix_status", ["PENDING", "REFUNDED", "", None])
    async def test_other_statuses_change_nothing(self, db_session, customer, product, product_keys, pix_status):
        order = await _order(db_session, customer, [{"product_id": product.id, "quantity": 1}])
        assert await order_service.apply_pix_status(db_session, order, pix_status) is False
        assert order.status == "awaiting_payment"

    @pytest.mark.unit
    async def test_lowercase_status_accepted(self, db_session, customer, product, product_keys):
        order = await _order(db_session, customer, [{"product_id": product.id, "quantity": 1}])
        assert await order_service.apply_pix_status(db_session, order, "paid") is True

    @pytest.mark.unit
    async def test_stale_object_does_not_double_transition(self, db_session, customer, product, product_keys):
        """A second worker holding an outdated status loses the compare-and-set."""
        order = await _order(db_session, customer, [{"product_id": product.id, "quantity": 1}])
        assert await order_service.mark_paid(db_session, order) is True
        await db_session.commit()

        set_committed_value(order, "status", "awaiting_payment")  # stale in-memory copy
        assert await order_service.mark_paid(db_session, order) is False
        assert order.status == "paid"


class TestDelivery:

    @pytest.mark.unit
    async def test_all_or_nothing_when_keys_run_out(
        self, db_session, customer, product, second_product, product_keys, second_product_keys
    ):
        order = await _order(db_session, customer, [
            {"product_id": product.id, "quantity": 1},
            {"product_id": second_product.id, "quantity": 2},
        ])
        # Another sale consumes one of the two Forza keys before payment lands
        second_product_keys[0].is_used = True
        await db_session.commit()

        await order_service.apply_pix_status(db_session, order, "PAID")
        await db_session.commit()

        order = await order_service.get_order(db_session, order.id)
        assert order.status == "paid"
        assert order.delivered_at is None
        assert order.keys == []
        counts = await catalog_service.available_key_counts(db_session, [product.id])
        assert counts[product.id] == 3

    @pytest.mark.unit
    async def test_retry_after_restock(self, db_session, customer, product, product_keys):
        order = await _order(db_session, customer, [{"product_id": product.id, "quantity": 3}])
        product_keys[2].is_used = True
        await db_session.commit()

        await order_service.apply_pix_status(db_session, order, "PAID")
        await db_session.commit()
        assert order.status == "paid"

        await catalog_service.add_product_keys_bulk(db_session, product.id, ["HK-DDDD-0004"])
        await db_session.commit()

        assert await order_service.deliver_order(db_session, order) is True
        await db_session.commit()
        order = await order_service.get_order(db_session, order.id)
        assert order.status == "delivered"
        assert [k.key_value for k in order.keys] == ["HK-AAAA-0001", "HK-BBBB-0002", "HK-DDDD-0004"]

    @pytest.mark.unit
    async def test_deliver_only_from_paid(self, db_session, customer, product, product_keys):
        order = await _order(db_session, customer, [{"product_id": product.id, "quantity": 1}])
        assert await order_service.deliver_order(db_session, order) is False
        assert order.status == "awaiting_payment"


class TestQueries:

    @pytest.mark.unit
    async def test_get_order_scoped_to_owner(self, db_session, customer, other_customer, product, product_keys):
        order = await _order(db_session, customer, [{"product_id": product.id, "quantity": 1}])
        assert (await order_service.get_order(db_session, order.id, user_id=customer.id)).id == order.id
        with pytest.raises(HTTPException) as exc_info:
            await order_service.get_order(db_session, order.id, user_id=other_customer.id)
        assert exc_info.value.status_code == 404

    @pytest.mark.unit
    async def test_lookup_by_pix_id(self, db_session, customer, product, product_keys):
        order = await _order(db_session, customer, [{"product_id": product.id, "quantity": 1}], pix_id="pix_char_lookup")
        found = await order_service.get_order_by_pix_id(db_session, "pix_char_lookup")
        assert found.id == order.id
        assert await order_service.get_order_by_pix_id(db_session, "pix_char_nope") is None

    @pytest.mark.unit
    async def test_listings(self, db_session, customer, other_customer, product, product_keys):
        first = await _order(db_session, customer, [{"product_id": product.id, "quantity": 1}], pix_id="p1")
        await _order(db_session, other_customer, [{"product_id": product.id, "quantity": 1}], pix_id="p2")
        await order_service.apply_pix_status(db_session, first, "EXPIRED")
        await db_session.commit()

        mine, total = await order_service.list_user_orders(db_session, user_id=customer.id)
        assert total == 1 and mine[0].id == first.id

        failed, total = await order_service.list_all_orders(db_session, status="payment_failed")
        assert total == 1 and failed[0].user.id == customer.id

        _, total = await order_service.list_all_orders(db_session)
        assert total == 2

        awaiting = await order_service.list_awaiting_payment(db_session)
        assert [o.pix_id for o in awaiting] == ["p2"]
