"""Pending delivery queue: staff-submitted actuals awaiting approval."""

from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date
from typing import Any

import structlog

from dairy_ledger.errors import NotAuthenticatedError
from dairy_ledger.ledgers.base import DayLedger
from dairy_ledger.models import (
    DAY_KEY,
    Actor,
    Collection,
    PendingDelivery,
    parse_quantity,
)
from dairy_ledger.store import RecordStore

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class PendingDate:
    """A date with queued submissions."""

    date: date
    count: int


@dataclass
class SubmissionResult:
    submitted: list[PendingDelivery]
    withdrawn: list[Any]

    @property
    def total(self) -> int:
        return len(self.submitted) + len(self.withdrawn)


class PendingDeliveryQueue(DayLedger[PendingDelivery]):
    """At most one pending row per (customer, date); resubmission overwrites."""

    record_type = PendingDelivery

    def __init__(self, store: RecordStore):
        super().__init__()
        self._store = store
        self._logger = logger.bind(component="pending_queue")

    async def load(self) -> list[PendingDelivery]:
        rows = await self._store.fetch_all(Collection.PENDING_DELIVERIES.value)
        self.load_rows(rows)
        self._logger.info("pending_deliveries_loaded", count=len(self))
        return self.all()

    def quantity(self, customer_id: Any, day: date) -> float | None:
        pending = self.get(customer_id, day)
        return pending.quantity if pending else None

    def pending_dates(self) -> list[PendingDate]:
        """Dates with queued entries, newest first, each with its entry count."""
        counts = Counter(p.date for p in self._cache)
        return [
            PendingDate(date=day, count=count)
            for day, count in sorted(counts.items(), reverse=True)
        ]

    def entries_for(self, day: date) -> list[PendingDelivery]:
        return [p for p in self._cache if p.date == day]

    async def fetch_date(self, day: date) -> list[PendingDelivery]:
        """Re-read ``day``'s entries from the store and refresh the mirror."""
        rows = await self._store.select(
            Collection.PENDING_DELIVERIES.value, {"date": day}
        )
        entries = [PendingDelivery.from_row(r) for r in rows]
        self._cache.remove_where(lambda p: p.date == day)
        self._cache.put_many(entries)
        return entries

    async def submit_batch(
        self,
        actor: Actor | None,
        day: date,
        entries: Iterable[tuple[Any, Any]] | dict[Any, Any],
    ) -> SubmissionResult:
        """Upsert each (customer, quantity) for ``day``.

        Customers absent from ``entries`` keep their existing pending rows.
        A quantity of zero withdraws the customer's pending row instead of
        storing it.
        """
        if actor is None:
            raise NotAuthenticatedError("not authenticated")
        pairs = entries.items() if isinstance(entries, dict) else entries
        # last value wins for a customer repeated within one batch
        quantities = {cid: parse_quantity(q) for cid, q in pairs}

        rows = [
            PendingDelivery(
                customer_id=cid, date=day, quantity=q, user_id=actor.user_id
            ).to_row()
            for cid, q in quantities.items()
            if q > 0
        ]
        withdrawn = [cid for cid, q in quantities.items() if q == 0]

        written_rows = await self._store.upsert(
            Collection.PENDING_DELIVERIES.value, rows, on_conflict=DAY_KEY
        )
        submitted = [PendingDelivery.from_row(r) for r in written_rows]
        self._cache.put_many(submitted)

        if withdrawn:
            await self._store.delete(
                Collection.PENDING_DELIVERIES.value,
                {"date": day, "customerId": withdrawn},
            )
            self._cache.remove_many((cid, day) for cid in withdrawn)

        self._logger.info(
            "pending_batch_submitted",
            date=day.isoformat(),
            submitted_by=actor.user_id,
            submitted=len(submitted),
            withdrawn=len(withdrawn),
        )
        return SubmissionResult(submitted=submitted, withdrawn=withdrawn)

    async def remove_ids(self, ids: list[Any]) -> list[PendingDelivery]:
        """Delete exactly the rows with the given ids and return what was deleted."""
        if not ids:
            return []
        rows = await self._store.delete(
            Collection.PENDING_DELIVERIES.value, {"id": ids}
        )
        wanted = set(ids)
        self._cache.remove_where(lambda p: p.id in wanted)
        return [PendingDelivery.from_row(r) for r in rows]

    async def requeue(self, entries: list[PendingDelivery]) -> list[PendingDelivery]:
        """Write entries back into the queue, keeping their original submitter."""
        rows = await self._store.upsert(
            Collection.PENDING_DELIVERIES.value,
            [p.to_row() for p in entries],
            on_conflict=DAY_KEY,
        )
        restored = [PendingDelivery.from_row(r) for r in rows]
        self._cache.put_many(restored)
        return restored
