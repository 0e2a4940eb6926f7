#!/usr/bin/env python3
"""Seed a development store with a small dairy route.

This script creates:
1. Customers with prices and default quantities
2. Orders for the coming week
3. Approved deliveries and payments for the past two weeks
4. A day of staff submissions awaiting approval

Run it as an admin user (STORE_ACCESS_TOKEN) against an empty development
store.

Usage:
    python scripts/seed_data.py
"""

import asyncio
import sys
from datetime import date, timedelta
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from dairy_ledger.backoffice import BackOffice, resolve_actor
from dairy_ledger.errors import ConflictError, LedgerError, friendly_message
from dairy_ledger.models import Customer, Delivery
from dairy_ledger.store import RecordStoreClient

# ============================================================================
# ROUTE DEFINITION
# ============================================================================

CUSTOMERS = [
    {"name": "Asha Rao", "address": "12 Lake Road", "phone": "9876500001", "milkPrice": 64, "defaultQuantity": 1},
    {"name": "Bala Krishnan", "address": "3 Hill Street", "phone": "9876500002", "milkPrice": 64, "defaultQuantity": 2},
    {"name": "Chitra Menon", "address": "7 Temple Lane", "phone": "9876500003", "milkPrice": 60, "defaultQuantity": 0.5},
    {"name": "Dev Patel", "address": "21 Market Road", "phone": "9876500004", "milkPrice": 66, "defaultQuantity": 1.5},
    {"name": "Esha Nair", "address": "4 Station Road", "phone": "9876500005", "milkPrice": 64, "defaultQuantity": 1},
]

HISTORY_DAYS = 14
ORDER_DAYS = 7


async def create_customers(office: BackOffice) -> list[Customer]:
    """Create the route's customers, skipping ones that already exist."""
    for data in CUSTOMERS:
        try:
            await office.customers.create(
                office.actor,
                data["name"],
                data["address"],
                data["milkPrice"],
                data["defaultQuantity"],
                data["phone"],
            )
            print(f"    ✓ Customer: {data['name']}")
        except ConflictError:
            print(f"    ℹ Customer exists: {data['name']}")
    return office.customers.active()


async def create_history(office: BackOffice, customers: list[Customer], today: date) -> None:
    """Approved deliveries for the past two weeks, with a payment from every other customer."""
    deliveries = [
        Delivery(customer_id=c.id, date=today - timedelta(days=offset), quantity=c.default_quantity)
        for offset in range(1, HISTORY_DAYS + 1)
        for c in customers
    ]
    written = await office.deliveries.upsert_many(deliveries)
    print(f"    ✓ {len(written)} deliveries")

    for customer in customers[::2]:
        amount = customer.milk_price * customer.default_quantity * 7
        await office.payments.record(office.actor, customer.id, amount, today - timedelta(days=3))
        print(f"    ✓ Payment: {customer.name} {amount:.2f}")


async def create_orders(office: BackOffice, customers: list[Customer], today: date) -> None:
    """Orders for the coming week; the first customer doubles up on weekends."""
    for offset in range(ORDER_DAYS):
        day = today + timedelta(days=offset)
        changes = {c.id: c.default_quantity for c in customers}
        if customers and day.weekday() >= 5:
            changes[customers[0].id] = customers[0].default_quantity * 2
        await office.orders.save_day(day, changes)
    print(f"    ✓ Orders for {ORDER_DAYS} days")


async def main():
    """Main entry point."""
    today = date.today()

    print("=" * 60)
    print("Dairy Ledger - Store Seeding")
    print("=" * 60)

    async with RecordStoreClient() as client:
        print(f"\nStore URL: {client.base_url}")
        try:
            actor = await resolve_actor(client)
            office = BackOffice(client)
            await office.load(actor)
            if not actor.is_admin:
                print("\n✗ Seeding requires an admin session (STORE_ACCESS_TOKEN)")
                return

            print("\n  [Customers]")
            customers = await create_customers(office)

            print("\n  [History]")
            await create_history(office, customers, today)

            print("\n  [Orders]")
            await create_orders(office, customers, today)

            print("\n  [Pending Approval]")
            result = await office.submit_day(
                today, {c.id: c.default_quantity for c in customers}
            )
            print(f"    ✓ {len(result.submitted)} submissions for {today.isoformat()}")
        except LedgerError as e:
            print(f"\n✗ Seeding failed: {friendly_message(e)}")
            sys.exit(1)

    print("\n" + "=" * 60)
    print("SEEDING COMPLETE!")
    print("=" * 60)
    print("\nTry:")
    print("  dairy-ledger pending")
    print(f"  dairy-ledger approve {today.isoformat()}")


if __name__ == "__main__":
    asyncio.run(main())
