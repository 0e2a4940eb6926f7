"""Tests for default-quantity resolution and the day sheet."""

from datetime import date

from dairy_ledger.models import Customer, CustomerStatus, Order, PendingDelivery
from dairy_ledger.quantities import (
    QuantitySource,
    build_day_sheet,
    display_quantity,
    resolve_quantity,
)

DAY = date(2024, 5, 1)


def _customer(cid, name, default=1.0, status=CustomerStatus.ACTIVE):
    return Customer(
        id=cid,
        name=name,
        address="addr",
        milk_price=60,
        default_quantity=default,
        status=status,
    )


class TestResolveQuantity:
    """Tests for the edit > pending > order > default precedence."""

    def test_edit_wins(self):
        resolved = resolve_quantity(_customer(1, "A"), edit=0, pending=2, order=3)

        assert resolved.quantity == 0
        assert resolved.source == QuantitySource.EDIT

    def test_pending_over_order(self):
        resolved = resolve_quantity(_customer(1, "A"), pending=2, order=3)

        assert resolved.quantity == 2
        assert resolved.source == QuantitySource.PENDING

    def test_order_over_default(self):
        assert display_quantity(_customer(1, "A", default=1), order=3) == 3

    def test_default(self):
        resolved = resolve_quantity(_customer(1, "A", default=1.5))

        assert resolved.quantity == 1.5
        assert resolved.source == QuantitySource.DEFAULT

    def test_unknown_customer_defaults_to_zero(self):
        assert display_quantity(None) == 0.0


class TestBuildDaySheet:
    """Tests for the delivery entry sheet."""

    def test_active_customers_sorted_with_sources(self):
        customers = [
            _customer(1, "zoya", default=1),
            _customer(2, "Arun", default=2),
            _customer(3, "Meena", default=1, status=CustomerStatus.INACTIVE),
            _customer(4, "bala", default=0.5),
        ]
        orders = {2: Order(customer_id=2, date=DAY, quantity=3)}
        pending = {4: PendingDelivery(customer_id=4, date=DAY, quantity=1)}

        sheet = build_day_sheet(customers, DAY, orders, pending, edits={1: 0})

        assert [line.name for line in sheet] == ["Arun", "bala", "zoya"]
        assert [(line.quantity, line.source) for line in sheet] == [
            (3, QuantitySource.ORDER),
            (1, QuantitySource.PENDING),
            (0, QuantitySource.EDIT),
        ]
        assert sheet[2].edited

    def test_records_for_other_dates_are_ignored(self):
        customers = [_customer(1, "A", default=1)]
        orders = {1: Order(customer_id=1, date=date(2024, 5, 2), quantity=4)}

        sheet = build_day_sheet(customers, DAY, orders, {})

        assert sheet[0].source == QuantitySource.DEFAULT

    def test_search(self):
        customers = [_customer(1, "Arun"), _customer(2, "Bala")]

        sheet = build_day_sheet(customers, DAY, {}, {}, search="  ARU ")

        assert [line.name for line in sheet] == ["Arun"]
