"""Approval workflow: promote a date's pending deliveries into the delivery ledger.

The store offers no transaction spanning the two collections, so the order of
writes carries the safety guarantee:

1. read the queue for the date (a snapshot of row ids and quantities)
2. upsert one delivery per snapshot row, keyed by (customer, date)
3. delete exactly the snapshot's row ids from the queue

A failure in step 2 leaves the queue untouched. A failure in step 3 leaves the
deliveries durable and the queue rows in place; re-running the approval is
idempotent. Submissions that arrive for other customers after the snapshot are
never deleted because the delete is scoped to ids, not to the date. A
resubmission that overwrote a snapshot row in place is detected from the
deleted rows and put back into the queue.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import date

import structlog

from dairy_ledger.errors import (
    ApprovalError,
    LedgerError,
    NotAuthenticatedError,
    PermissionDeniedError,
)
from dairy_ledger.ledgers import DeliveryLedger, PendingDeliveryQueue
from dairy_ledger.models import Actor, Delivery, PendingDelivery

logger = structlog.get_logger(__name__)

_QUANTITY_TOLERANCE = 1e-9


@dataclass
class ApprovalResult:
    """Outcome of approving one date."""

    date: date
    approved: int
    deliveries: list[Delivery] = field(default_factory=list)
    requeued: list[PendingDelivery] = field(default_factory=list)

    def to_text(self) -> str:
        text = f"Approved {self.approved} deliveries for {self.date.isoformat()}."
        if self.requeued:
            text += (
                f" {len(self.requeued)} newer submission(s) arrived during approval"
                " and remain pending."
            )
        return text


class ApprovalWorkflow:
    """All-or-nothing approval of a date's pending deliveries."""

    def __init__(self, pending: PendingDeliveryQueue, deliveries: DeliveryLedger):
        self._pending = pending
        self._deliveries = deliveries
        self._lock = asyncio.Lock()
        self._logger = logger.bind(component="approval_workflow")

    @staticmethod
    def _check_actor(actor: Actor | None) -> None:
        if actor is None:
            raise NotAuthenticatedError("not authenticated")
        if not actor.is_admin:
            raise PermissionDeniedError("Only an admin can approve deliveries")

    async def approve_date(self, actor: Actor | None, day: date) -> ApprovalResult:
        """Approve every pending delivery queued for ``day``."""
        self._check_actor(actor)
        async with self._lock:
            return await self._approve(day)

    async def _approve(self, day: date) -> ApprovalResult:
        log = self._logger.bind(date=day.isoformat())

        try:
            snapshot = await self._pending.fetch_date(day)
        except LedgerError as e:
            log.error("approval_read_failed", error=e.message)
            raise ApprovalError(
                f"Could not read pending deliveries for {day}: {e.message}",
                stage="read",
                approval_date=day,
                cause=e,
            ) from e

        if not snapshot:
            log.info("approval_nothing_pending")
            return ApprovalResult(date=day, approved=0)

        log.info("approval_started", entries=len(snapshot))
        to_write = [
            Delivery(customer_id=p.customer_id, date=day, quantity=p.quantity)
            for p in snapshot
        ]

        try:
            written = await self._deliveries.upsert_many(to_write)
        except LedgerError as e:
            log.error("approval_upsert_failed", error=e.message)
            raise ApprovalError(
                f"Approval for {day} aborted; no deliveries were written: {e.message}",
                stage="upsert",
                approval_date=day,
                cause=e,
            ) from e

        snapshot_ids = [p.id for p in snapshot if p.id is not None]
        try:
            deleted = await self._pending.remove_ids(snapshot_ids)
        except LedgerError as e:
            log.error(
                "approval_delete_failed",
                deliveries_written=len(written),
                error=e.message,
            )
            raise ApprovalError(
                f"Deliveries for {day} were approved but the pending queue could "
                f"not be cleared; re-run approval for this date: {e.message}",
                stage="delete",
                approval_date=day,
                deliveries_written=len(written),
                cause=e,
            ) from e

        requeued = await self._requeue_superseded(
            day, snapshot, deleted, deliveries_written=len(written)
        )

        log.info("approval_completed", approved=len(written), requeued=len(requeued))
        return ApprovalResult(
            date=day, approved=len(written), deliveries=written, requeued=requeued
        )

    async def _requeue_superseded(
        self,
        day: date,
        snapshot: list[PendingDelivery],
        deleted: list[PendingDelivery],
        deliveries_written: int = 0,
    ) -> list[PendingDelivery]:
        """Put back rows that were overwritten between the snapshot and the delete."""
        approved = {p.id: p.quantity for p in snapshot}
        superseded = [
            row
            for row in deleted
            if row.id in approved
            and abs(row.quantity - approved[row.id]) > _QUANTITY_TOLERANCE
        ]
        if not superseded:
            return []

        self._logger.warning(
            "approval_superseded_submissions",
            date=day.isoformat(),
            customers=[str(row.customer_id) for row in superseded],
        )
        try:
            return await self._pending.requeue(superseded)
        except LedgerError as e:
            self._logger.error(
                "approval_requeue_failed",
                date=day.isoformat(),
                lost=[(str(r.customer_id), r.quantity) for r in superseded],
                error=e.message,
            )
            raise ApprovalError(
                f"{len(superseded)} newer submission(s) for {day} were removed from "
                f"the queue and could not be put back: {e.message}",
                stage="requeue",
                approval_date=day,
                deliveries_written=deliveries_written,
                cause=e,
            ) from e

    async def reject_date(self, actor: Actor | None, day: date) -> int:
        """Discard ``day``'s pending deliveries without writing deliveries.

        Returns the number of rejected entries. Rows resubmitted while the
        rejection ran stay in the queue with their newer quantity.
        """
        self._check_actor(actor)
        async with self._lock:
            snapshot = await self._pending.fetch_date(day)
            deleted = await self._pending.remove_ids(
                [p.id for p in snapshot if p.id is not None]
            )
            requeued = await self._requeue_superseded(day, snapshot, deleted)
        self._logger.info(
            "pending_date_rejected",
            date=day.isoformat(),
            rejected=len(snapshot) - len(requeued),
            requeued=len(requeued),
        )
        return len(snapshot) - len(requeued)
