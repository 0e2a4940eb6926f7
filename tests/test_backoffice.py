"""Tests for the back office session facade."""

import argparse
from datetime import date
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from dairy_ledger.backoffice import BackOffice, _run_command, build_parser, resolve_actor
from dairy_ledger.billing import BillStatus
from dairy_ledger.errors import (
    NotAuthenticatedError,
    NotFoundError,
    PermissionDeniedError,
    SchemaMismatchError,
)
from dairy_ledger.models import Actor, Role
from dairy_ledger.quantities import QuantitySource

DAY = date(2024, 5, 1)


@pytest.fixture
def populated(store, make_customer_row):
    """Store with two customers and some history for the first."""
    asha, bala = store.seed(
        "customers",
        make_customer_row(name="Asha", phone="1", milkPrice=90, userId="cust-1"),
        make_customer_row(name="Bala", phone="2", milkPrice=50, defaultQuantity=2),
    )
    store.seed("orders", {"customerId": asha["id"], "date": "2024-05-01", "quantity": 3})
    store.seed("deliveries", {"customerId": asha["id"], "date": "2024-04-30", "quantity": 1})
    store.seed("payments", {"customerId": asha["id"], "date": "2024-04-30", "amount": 40})
    store.seed(
        "pending_deliveries",
        {"customerId": bala["id"], "date": "2024-05-01", "quantity": 1.5},
    )
    return asha, bala


class TestResolveActor:
    """Tests for identifying the session user."""

    @pytest.mark.asyncio
    async def test_profile_role(self):
        client = MagicMock()
        client.get_user = AsyncMock(return_value={"id": "u-1"})
        client.select = AsyncMock(return_value=[{"role": "staff", "status": "active"}])

        actor = await resolve_actor(client)

        assert actor == Actor(user_id="u-1", role=Role.STAFF)
        client.select.assert_called_once_with("profiles", {"id": "u-1"}, columns="role,status")

    @pytest.mark.asyncio
    async def test_no_profile_is_customer(self):
        client = MagicMock()
        client.get_user = AsyncMock(return_value={"id": "u-2"})
        client.select = AsyncMock(return_value=[])

        actor = await resolve_actor(client)

        assert actor.role == Role.CUSTOMER


class TestLoad:
    """Tests for role-aware loading."""

    @pytest.mark.asyncio
    async def test_admin_loads_everything(self, store, admin, populated):
        office = BackOffice(store)

        await office.load(admin)

        assert len(office.customers) == 2
        assert len(office.orders) == 1
        assert len(office.deliveries) == 1
        assert len(office.payments) == 1
        assert len(office.pending) == 1

    @pytest.mark.asyncio
    async def test_customer_loads_own_records(self, store, populated):
        office = BackOffice(store)

        await office.load(Actor(user_id="cust-1", role=Role.CUSTOMER))

        assert [c.name for c in office.customers.all()] == ["Asha"]
        assert len(office.orders) == 0
        assert len(office.pending) == 0
        assert ("fetch_all", "orders") not in store.calls
        assert ("fetch_all", "pending_deliveries") not in store.calls

    @pytest.mark.asyncio
    async def test_customer_without_linked_record_is_rejected(self, store, populated):
        """Test that a user with neither a profile nor a customer row gets no session."""
        office = BackOffice(store)

        with pytest.raises(NotAuthenticatedError):
            await office.load(Actor(user_id="stranger", role=Role.CUSTOMER))

        assert office.actor is None
        assert len(office.deliveries) == 0
        assert ("fetch_all", "deliveries") not in store.calls
        assert ("fetch_all", "payments") not in store.calls

    @pytest.mark.asyncio
    async def test_requires_actor(self, store):
        with pytest.raises(NotAuthenticatedError):
            await BackOffice(store).load(None)

    @pytest.mark.asyncio
    async def test_schema_errors_on_other_collections_propagate(self, store, admin):
        store.failures[("fetch_all", "payments")] = SchemaMismatchError(
            'relation "public.payments" does not exist'
        )

        with pytest.raises(SchemaMismatchError):
            await BackOffice(store).load(admin)


class TestDailyFlow:
    """Tests for submit, approve and bill."""

    @pytest.mark.asyncio
    async def test_day_sheet(self, store, admin, populated):
        asha, bala = populated
        office = BackOffice(store)
        await office.load(admin)

        sheet = office.day_sheet(DAY)

        assert [(line.name, line.quantity, line.source) for line in sheet] == [
            ("Asha", 3, QuantitySource.ORDER),
            ("Bala", 1.5, QuantitySource.PENDING),
        ]

    @pytest.mark.asyncio
    async def test_submit_approve_and_bill(self, store, admin, populated):
        asha, bala = populated
        office = BackOffice(store)
        await office.load(admin)

        await office.submit_day(DAY, {asha["id"]: 2})
        result = await office.approve(DAY)

        assert result.approved == 2
        assert office.pending.pending_dates() == []
        engine = office.billing()
        balance = engine.compute_balance(office.customers.require(asha["id"]), "2024-05")
        assert balance.billed == pytest.approx(180)
        assert balance.status == BillStatus.PENDING
        assert engine.total_outstanding() == pytest.approx(90 + 180 + 75 - 40)

        # the order is still there; approved deliveries are not in the precedence chain
        line = next(line for line in office.day_sheet(DAY) if line.name == "Asha")
        assert line.source == QuantitySource.ORDER

    @pytest.mark.asyncio
    async def test_staff_cannot_approve(self, store, staff, populated):
        office = BackOffice(store)
        await office.load(staff)

        with pytest.raises(PermissionDeniedError):
            await office.approve(DAY)


class TestImports:
    """Tests for CSV imports through the facade."""

    @pytest.mark.asyncio
    async def test_import_deliveries(self, store, admin, populated):
        office = BackOffice(store)
        await office.load(admin)

        result = await office.import_deliveries(
            "customerName,date,quantity\nasha,2024-05-02,1\nNobody,2024-05-02,1\n"
        )

        assert len(result.deliveries) == 1
        assert result.unknown_names == ["Nobody"]
        assert office.deliveries.get(populated[0]["id"], date(2024, 5, 2)).quantity == 1

    @pytest.mark.asyncio
    async def test_import_deliveries_requires_admin(self, store, staff, populated):
        office = BackOffice(store)
        await office.load(staff)

        with pytest.raises(PermissionDeniedError):
            await office.import_deliveries("customerName,date,quantity\nasha,2024-05-02,1\n")

    @pytest.mark.asyncio
    async def test_import_customers(self, store, admin):
        office = BackOffice(store)
        await office.load(admin)

        result = await office.import_customers(
            "name,address,phone,milkPrice,defaultQuantity\nzed,x,9,50,1\nAmy,y,8,55,2\n"
        )

        assert result.ok
        assert [c.name for c in office.customers.all()] == ["Amy", "zed"]


UUID_ID = "3f2b6a1e-0c6e-4a9b-9d4e-2a1b5c7d8e9f"


class TestCommands:
    """Tests for the command line."""

    def test_bill_accepts_uuid_ids(self):
        args = build_parser().parse_args(["bill", UUID_ID, "--month", "2024-05"])

        assert args.customer_id == UUID_ID
        assert args.month == "2024-05"

    @pytest.mark.asyncio
    async def test_bill_for_uuid_customer(self, store, admin, make_customer_row):
        store.seed("customers", make_customer_row(id=UUID_ID, name="Asha", milkPrice=60))
        store.seed("deliveries", {"customerId": UUID_ID, "date": "2024-05-03", "quantity": 2})
        args = argparse.Namespace(command="bill", customer_id=UUID_ID, month="2024-05")

        with patch("dairy_ledger.backoffice.resolve_actor", AsyncMock(return_value=admin)):
            text = await _run_command(args, store)

        assert "Hi Asha," in text
        assert "120" in text

    @pytest.mark.asyncio
    async def test_bill_for_integer_id(self, store, admin, make_customer_row):
        (row,) = store.seed("customers", make_customer_row(name="Bala"))
        args = argparse.Namespace(command="bill", customer_id=str(row["id"]), month="2024-05")

        with patch("dairy_ledger.backoffice.resolve_actor", AsyncMock(return_value=admin)):
            text = await _run_command(args, store)

        assert "Hi Bala," in text

    @pytest.mark.asyncio
    async def test_bill_unknown_customer(self, store, admin):
        args = argparse.Namespace(command="bill", customer_id=UUID_ID, month="2024-05")

        with patch("dairy_ledger.backoffice.resolve_actor", AsyncMock(return_value=admin)):
            with pytest.raises(NotFoundError):
                await _run_command(args, store)
