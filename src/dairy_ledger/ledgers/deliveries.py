"""Delivery ledger: approved, billable (customer, date) quantities."""

from datetime import date
from typing import Any

import structlog

from dairy_ledger.ledgers.base import DayLedger
from dairy_ledger.models import DAY_KEY, Collection, Delivery, parse_quantity
from dairy_ledger.store import RecordStore

logger = structlog.get_logger(__name__)


class DeliveryLedger(DayLedger[Delivery]):
    """The only billable record of what a customer received on a day."""

    record_type = Delivery

    def __init__(self, store: RecordStore):
        super().__init__()
        self._store = store
        self._logger = logger.bind(component="delivery_ledger")

    async def load(self) -> list[Delivery]:
        rows = await self._store.fetch_all(Collection.DELIVERIES.value)
        self.load_rows(rows)
        self._logger.info("deliveries_loaded", count=len(self))
        return self.all()

    async def upsert_many(self, deliveries: list[Delivery]) -> list[Delivery]:
        """Write deliveries, overwriting any existing row for the same key."""
        if not deliveries:
            return []
        rows = await self._store.upsert(
            Collection.DELIVERIES.value,
            [d.to_row() for d in deliveries],
            on_conflict=DAY_KEY,
        )
        written = [Delivery.from_row(r) for r in rows] if rows else list(deliveries)
        self._cache.put_many(written)
        return written

    async def save_day(self, day: date, changes: dict[Any, Any]) -> list[Delivery]:
        """Admin manual entry: positive quantities upsert, zero removes the delivery."""
        quantities = {cid: parse_quantity(q) for cid, q in changes.items()}
        written = await self.upsert_many(
            [
                Delivery(customer_id=cid, date=day, quantity=q)
                for cid, q in quantities.items()
                if q > 0
            ]
        )
        to_remove = [
            cid for cid, q in quantities.items() if q == 0 and self.get(cid, day) is not None
        ]
        await self.remove(day, to_remove)
        self._logger.info(
            "deliveries_saved",
            date=day.isoformat(),
            upserted=len(written),
            removed=len(to_remove),
        )
        return written

    async def remove(self, day: date, customer_ids: list[Any]) -> int:
        """Delete the deliveries of ``customer_ids`` on ``day``."""
        if not customer_ids:
            return 0
        await self._store.delete(
            Collection.DELIVERIES.value, {"date": day, "customerId": customer_ids}
        )
        return self._cache.remove_many((cid, day) for cid in customer_ids)
