"""Order ledger: planned (customer, date) quantities."""

from datetime import date
from typing import Any

import structlog

from dairy_ledger.ledgers.base import DayLedger
from dairy_ledger.models import DAY_KEY, Collection, Order, parse_quantity
from dairy_ledger.store import RecordStore

logger = structlog.get_logger(__name__)


class OrderLedger(DayLedger[Order]):
    """Subscription intent per customer and day. Never billed."""

    record_type = Order

    def __init__(self, store: RecordStore):
        super().__init__()
        self._store = store
        self._logger = logger.bind(component="order_ledger")

    async def load(self) -> list[Order]:
        rows = await self._store.fetch_all(Collection.ORDERS.value)
        self.load_rows(rows)
        self._logger.info("orders_loaded", count=len(self))
        return self.all()

    def quantity(self, customer_id: Any, day: date) -> float | None:
        """Ordered quantity, or None when no order exists."""
        order = self.get(customer_id, day)
        return order.quantity if order else None

    async def upsert(self, customer_id: Any, day: date, quantity: Any) -> Order:
        """Create or replace the order for (customer, day)."""
        order = Order(customer_id=customer_id, date=day, quantity=parse_quantity(quantity))
        rows = await self._store.upsert(
            Collection.ORDERS.value, [order.to_row()], on_conflict=DAY_KEY
        )
        written = [Order.from_row(r) for r in rows] or [order]
        self._cache.put_many(written)
        return written[0]

    async def save_day(self, day: date, changes: dict[Any, Any]) -> list[Order]:
        """Apply a day's edits: positive quantities upsert, zero removes the order."""
        quantities = {cid: parse_quantity(q) for cid, q in changes.items()}
        to_upsert = [
            Order(customer_id=cid, date=day, quantity=q).to_row()
            for cid, q in quantities.items()
            if q > 0
        ]
        to_remove = [
            cid for cid, q in quantities.items() if q == 0 and self.get(cid, day) is not None
        ]

        rows = await self._store.upsert(
            Collection.ORDERS.value, to_upsert, on_conflict=DAY_KEY
        )
        written = [Order.from_row(r) for r in rows]
        self._cache.put_many(written)

        if to_remove:
            await self._store.delete(
                Collection.ORDERS.value, {"date": day, "customerId": to_remove}
            )
            self._cache.remove_many((cid, day) for cid in to_remove)

        self._logger.info(
            "orders_saved", date=day.isoformat(), upserted=len(written), removed=len(to_remove)
        )
        return written
