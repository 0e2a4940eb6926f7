"""Tests for the order, delivery and payment ledgers."""

from datetime import date

import pytest

from dairy_ledger.errors import NotAuthenticatedError, ValidationError
from dairy_ledger.ledgers import DeliveryLedger, OrderLedger, PaymentLedger
from dairy_ledger.models import Delivery

DAY = date(2024, 5, 1)


class TestOrderLedger:
    """Tests for planned quantities."""

    @pytest.mark.asyncio
    async def test_upsert_overwrites(self, store):
        orders = OrderLedger(store)

        await orders.upsert(1, DAY, 2)
        await orders.upsert(1, DAY, 3)

        assert orders.quantity(1, DAY) == 3
        assert len(store.rows("orders")) == 1

    @pytest.mark.asyncio
    async def test_missing_order_is_none(self, store):
        orders = OrderLedger(store)

        assert orders.quantity(1, DAY) is None

    @pytest.mark.asyncio
    async def test_save_day(self, store):
        store.seed(
            "orders",
            {"customerId": 1, "date": "2024-05-01", "quantity": 1},
            {"customerId": 2, "date": "2024-05-01", "quantity": 1},
        )
        orders = OrderLedger(store)
        await orders.load()

        await orders.save_day(DAY, {1: 0, 2: "2.5", 3: 1})

        assert orders.get(1, DAY) is None
        assert orders.quantity(2, DAY) == 2.5
        assert orders.quantity(3, DAY) == 1
        assert sorted(r["customerId"] for r in store.rows("orders")) == [2, 3]

    @pytest.mark.asyncio
    async def test_save_day_rejects_negative(self, store):
        with pytest.raises(ValidationError):
            await OrderLedger(store).save_day(DAY, {1: -2})

        assert store.calls == []

    @pytest.mark.asyncio
    async def test_for_date(self, store):
        store.seed(
            "orders",
            {"customerId": 1, "date": "2024-05-01", "quantity": 1},
            {"customerId": 1, "date": "2024-05-02", "quantity": 4},
        )
        orders = OrderLedger(store)
        await orders.load()

        assert list(orders.for_date(DAY)) == [1]
        assert [o.quantity for o in orders.for_customer(1)] == [1, 4]


class TestDeliveryLedger:
    """Tests for approved deliveries."""

    @pytest.mark.asyncio
    async def test_upsert_many_is_idempotent(self, store):
        deliveries = DeliveryLedger(store)
        batch = [Delivery(customer_id=1, date=DAY, quantity=2)]

        await deliveries.upsert_many(batch)
        await deliveries.upsert_many(batch)

        assert len(store.rows("deliveries")) == 1
        assert deliveries.get(1, DAY).quantity == 2

    @pytest.mark.asyncio
    async def test_save_day_zero_removes(self, store):
        store.seed("deliveries", {"customerId": 1, "date": "2024-05-01", "quantity": 1})
        deliveries = DeliveryLedger(store)
        await deliveries.load()

        await deliveries.save_day(DAY, {1: 0, 2: 3})

        assert deliveries.get(1, DAY) is None
        assert deliveries.get(2, DAY).quantity == 3

    @pytest.mark.asyncio
    async def test_in_range(self, store):
        store.seed(
            "deliveries",
            {"customerId": 1, "date": "2024-04-30", "quantity": 1},
            {"customerId": 1, "date": "2024-05-01", "quantity": 1},
            {"customerId": 1, "date": "2024-05-31", "quantity": 1},
        )
        deliveries = DeliveryLedger(store)
        await deliveries.load()

        in_may = deliveries.in_range(date(2024, 5, 1), date(2024, 5, 31))

        assert [d.date.day for d in in_may] == [1, 31]


class TestPaymentLedger:
    """Tests for recording payments."""

    @pytest.mark.asyncio
    async def test_record(self, store, admin):
        payments = PaymentLedger(store)

        payment = await payments.record(admin, 1, "500", "2024-05-03")

        assert payment.id is not None
        assert payment.amount == 500
        assert payment.date == date(2024, 5, 3)
        assert store.rows("payments")[0]["userId"] == "admin-1"

    @pytest.mark.asyncio
    async def test_multiple_payments_per_day(self, store, admin):
        payments = PaymentLedger(store)

        await payments.record(admin, 1, 100, DAY)
        await payments.record(admin, 1, 200, DAY)

        assert [p.amount for p in payments.for_customer(1)] == [100, 200]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", [0, -10, "abc", None])
    async def test_rejects_bad_amount(self, store, admin, amount):
        with pytest.raises(ValidationError):
            await PaymentLedger(store).record(admin, 1, amount, DAY)

        assert store.calls == []

    @pytest.mark.asyncio
    async def test_requires_date(self, store, admin):
        with pytest.raises(ValidationError, match="date"):
            await PaymentLedger(store).record(admin, 1, 100, None)

    @pytest.mark.asyncio
    async def test_requires_actor(self, store):
        with pytest.raises(NotAuthenticatedError):
            await PaymentLedger(store).record(None, 1, 100, DAY)
