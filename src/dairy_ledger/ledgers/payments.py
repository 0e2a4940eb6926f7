"""Payment ledger: money received from customers."""

from datetime import date
from typing import Any

import structlog

from dairy_ledger.errors import NotAuthenticatedError, StoreError, ValidationError
from dairy_ledger.ledgers.base import KeyedCache
from dairy_ledger.models import Actor, Collection, Payment, parse_amount, parse_date
from dairy_ledger.store import RecordStore

logger = structlog.get_logger(__name__)


class PaymentLedger:
    """Payments mirrored from the store. Several per day are allowed."""

    def __init__(self, store: RecordStore):
        self._store = store
        self._cache: KeyedCache[Any, Payment] = KeyedCache(
            key=lambda p: p.id, sort_key=lambda p: (p.date, str(p.id))
        )
        self._logger = logger.bind(component="payment_ledger")

    def __len__(self) -> int:
        return len(self._cache)

    @property
    def version(self) -> int:
        return self._cache.version

    def all(self) -> list[Payment]:
        return self._cache.values()

    def for_customer(self, customer_id: Any) -> list[Payment]:
        return [p for p in self._cache if p.customer_id == customer_id]

    def in_range(self, start: date, end: date) -> list[Payment]:
        return [p for p in self._cache if start <= p.date <= end]

    def load_rows(self, rows: list[dict[str, Any]]) -> None:
        self._cache.replace_all(Payment.from_row(row) for row in rows)

    async def load(self) -> list[Payment]:
        self.load_rows(await self._store.fetch_all(Collection.PAYMENTS.value))
        self._logger.info("payments_loaded", count=len(self))
        return self.all()

    async def record(
        self,
        actor: Actor | None,
        customer_id: Any,
        amount: Any,
        day: date | str | None,
    ) -> Payment:
        """Insert a payment; the amount must be positive."""
        if actor is None:
            raise NotAuthenticatedError("not authenticated")
        value = parse_amount(amount, "amount")
        if value <= 0:
            raise ValidationError("Amount must be greater than zero.")
        if day is None or day == "":
            raise ValidationError("A valid date is required.")
        payment = Payment(
            customer_id=customer_id,
            date=parse_date(day),
            amount=value,
            user_id=actor.user_id,
        )
        rows = await self._store.insert(Collection.PAYMENTS.value, [payment.to_row()])
        if not rows:
            raise StoreError("Store returned no row for the new payment")
        recorded = Payment.from_row(rows[0])
        self._cache.put_many([recorded])
        self._logger.info(
            "payment_recorded",
            customer_id=customer_id,
            amount=value,
            date=recorded.date.isoformat(),
        )
        return recorded

    def forget_customer(self, customer_id: Any) -> int:
        return self._cache.remove_where(lambda p: p.customer_id == customer_id)
