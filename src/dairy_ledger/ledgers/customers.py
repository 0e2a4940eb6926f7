"""Customer ledger: pricing, default quantities and carried balances."""

from dataclasses import dataclass, field
from datetime import date
from typing import TYPE_CHECKING, Any

import structlog

from dairy_ledger.errors import (
    ConflictError,
    LedgerError,
    NotAuthenticatedError,
    NotFoundError,
    SchemaMismatchError,
    ValidationError,
    is_missing_column_error,
)
from dairy_ledger.ledgers.base import KeyedCache
from dairy_ledger.models import (
    Actor,
    Collection,
    Customer,
    CustomerDraft,
    CustomerStatus,
    parse_amount,
    parse_date,
    phone_key,
)
from dairy_ledger.store import RecordStore

if TYPE_CHECKING:
    from dairy_ledger.ledgers.deliveries import DeliveryLedger
    from dairy_ledger.ledgers.payments import PaymentLedger

logger = structlog.get_logger(__name__)

BALANCE_COLUMNS = ("previousBalance", "balanceAsOfDate")
LEGACY_COLUMNS = 'id,name,address,phone,"milkPrice","defaultQuantity",status,"userId",email'

_EDITABLE_FIELDS = {
    "name": "name",
    "address": "address",
    "phone": "phone",
    "milk_price": "milkPrice",
    "default_quantity": "defaultQuantity",
}


def name_sort_key(customer: Customer) -> tuple[str, str]:
    """Case-insensitive ordering by name, ties broken by the raw name."""
    return (customer.name.casefold(), customer.name)


@dataclass
class ImportResult:
    """Outcome of a bulk customer import."""

    created: list[Customer] = field(default_factory=list)
    failed: list[tuple[int, LedgerError]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


class CustomerLedger:
    """Customer records mirrored from the store, kept sorted by name."""

    def __init__(
        self,
        store: RecordStore,
        deliveries: "DeliveryLedger | None" = None,
        payments: "PaymentLedger | None" = None,
    ):
        self._store = store
        self._deliveries = deliveries
        self._payments = payments
        self._cache: KeyedCache[Any, Customer] = KeyedCache(
            key=lambda c: c.id, sort_key=name_sort_key
        )
        self.legacy_mode = False
        self._logger = logger.bind(component="customer_ledger")

    def __len__(self) -> int:
        return len(self._cache)

    @property
    def version(self) -> int:
        return self._cache.version

    def all(self) -> list[Customer]:
        return self._cache.values()

    def active(self) -> list[Customer]:
        return [c for c in self._cache if c.is_active]

    def get(self, customer_id: Any) -> Customer | None:
        return self._cache.get(customer_id)

    def require(self, customer_id: Any) -> Customer:
        customer = self._cache.get(customer_id)
        if customer is None:
            raise NotFoundError(f"Customer {customer_id} not found")
        return customer

    def set_records(self, customers: list[Customer]) -> None:
        """Replace the mirror with already-fetched records."""
        self._cache.replace_all(customers)

    # === Loading ===

    async def _fetch(self, filters: dict[str, Any] | None, columns: str) -> list[dict[str, Any]]:
        if filters is None:
            return await self._store.fetch_all(Collection.CUSTOMERS.value, "name", columns=columns)
        return await self._store.select(Collection.CUSTOMERS.value, filters, columns=columns)

    async def load(self, filters: dict[str, Any] | None = None) -> list[Customer]:
        """Fetch customers, falling back to the legacy projection if needed.

        Without ``filters`` every customer is fetched; a customer session
        passes ``{"userId": ...}`` to load only its own row.
        """
        try:
            rows = await self._fetch(filters, "*")
            self.legacy_mode = False
        except SchemaMismatchError as e:
            if not is_missing_column_error(e, BALANCE_COLUMNS):
                raise
            self._logger.warning("legacy_customer_schema_detected", error=e.message)
            self.legacy_mode = True
            rows = await self._fetch(filters, LEGACY_COLUMNS)
            rows = [{**row, "previousBalance": 0, "balanceAsOfDate": None} for row in rows]

        self._cache.replace_all(Customer.from_row(row) for row in rows)
        self._logger.info(
            "customers_loaded", count=len(self._cache), legacy_mode=self.legacy_mode
        )
        return self.all()

    # === Mutations ===

    def _check_phone(self, phone: str, exclude_id: Any = None) -> None:
        key = phone_key(phone)
        if not key:
            return
        for customer in self._cache:
            if customer.id != exclude_id and phone_key(customer.phone) == key:
                raise ConflictError(
                    f"duplicate phone: {phone} is already used by {customer.name}"
                )

    async def create(
        self,
        actor: Actor | None,
        name: str,
        address: str,
        milk_price: Any,
        default_quantity: Any,
        phone: str | None = None,
    ) -> Customer:
        """Create an active customer with a zero carried balance."""
        if actor is None:
            raise NotAuthenticatedError("not authenticated")
        draft = CustomerDraft.validate(name, address, milk_price, default_quantity, phone)
        self._check_phone(draft.phone)

        rows = await self._store.insert(
            Collection.CUSTOMERS.value, [draft.to_row(actor.user_id)]
        )
        if not rows:
            raise LedgerError("Store returned no row for the new customer")
        customer = Customer.from_row(rows[0])
        self._cache.put_many([customer])
        self._logger.info("customer_created", customer_id=customer.id, name=customer.name)
        return customer

    async def _patch(self, customer_id: Any, values: dict[str, Any]) -> Customer:
        rows = await self._store.update(
            Collection.CUSTOMERS.value, values, {"id": customer_id}
        )
        if not rows:
            raise NotFoundError(f"Customer {customer_id} not found")
        updated = Customer.from_row(rows[0])
        if self.legacy_mode:
            updated.previous_balance = 0.0
            updated.balance_as_of_date = None
        self._cache.put_many([updated])
        return updated

    async def update(self, customer_id: Any, **changes: Any) -> Customer:
        """Edit name, address, phone, milk_price or default_quantity."""
        unknown = set(changes) - set(_EDITABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Cannot update fields: {', '.join(sorted(unknown))}")
        current = self.require(customer_id)

        merged = {
            "name": current.name,
            "address": current.address,
            "phone": current.phone,
            "milk_price": current.milk_price,
            "default_quantity": current.default_quantity,
        }
        merged.update(changes)
        draft = CustomerDraft.validate(
            merged["name"],
            merged["address"],
            merged["milk_price"],
            merged["default_quantity"],
            merged["phone"],
        )
        self._check_phone(draft.phone, exclude_id=customer_id)

        values = {
            column: getattr(draft, attr)
            for attr, column in _EDITABLE_FIELDS.items()
            if attr in changes
        }
        if not values:
            return current
        updated = await self._patch(customer_id, values)
        self._logger.info(
            "customer_updated", customer_id=customer_id, fields=sorted(values)
        )
        return updated

    async def set_status(self, customer_id: Any, status: CustomerStatus | str) -> Customer:
        try:
            status = CustomerStatus(status)
        except ValueError as exc:
            raise ValidationError(f"Unknown status: {status!r}") from exc
        self.require(customer_id)
        updated = await self._patch(customer_id, {"status": status.value})
        self._logger.info("customer_status_changed", customer_id=customer_id, status=status.value)
        return updated

    async def set_opening_balance(
        self, customer_id: Any, amount: Any, as_of: date | str
    ) -> Customer:
        """Record the balance carried over from the previous system."""
        if self.legacy_mode:
            raise ValidationError(
                "Balance carry-over is unavailable until the store has the "
                "previousBalance and balanceAsOfDate columns"
            )
        balance = parse_amount(amount, "previousBalance")
        as_of_date = parse_date(as_of, "balanceAsOfDate")
        self.require(customer_id)
        return await self._patch(
            customer_id,
            {"previousBalance": balance, "balanceAsOfDate": as_of_date.isoformat()},
        )

    async def delete(self, customer_id: Any) -> None:
        """Delete a customer together with their deliveries and payments.

        The customer row goes first, so a rejected delete leaves the billing
        history intact. Stores that cascade the foreign keys have already
        removed the child rows by the time they are cleared here.
        """
        self.require(customer_id)
        await self._store.delete(Collection.CUSTOMERS.value, {"id": customer_id})
        self._cache.remove_many([customer_id])
        self._logger.info("customer_deleted", customer_id=customer_id)

        await self._store.delete(Collection.DELIVERIES.value, {"customerId": customer_id})
        if self._deliveries is not None:
            self._deliveries.forget_customer(customer_id)
        await self._store.delete(Collection.PAYMENTS.value, {"customerId": customer_id})
        if self._payments is not None:
            self._payments.forget_customer(customer_id)

    async def bulk_import(
        self, actor: Actor | None, rows: list[dict[str, Any]]
    ) -> ImportResult:
        """Validate every row, then insert them one at a time.

        Any malformed row fails the whole batch before the store is touched.
        Store rejections (e.g. a duplicate phone) are collected per row while
        the remaining rows are still written.
        """
        if actor is None:
            raise NotAuthenticatedError("not authenticated")

        drafts: list[CustomerDraft] = []
        for index, row in enumerate(rows, start=1):
            try:
                drafts.append(
                    CustomerDraft.validate(
                        row.get("name"),
                        row.get("address"),
                        row.get("milkPrice"),
                        row.get("defaultQuantity"),
                        row.get("phone"),
                    )
                )
            except ValidationError as e:
                raise ValidationError(f"Row {index}: {e.message}") from e

        result = ImportResult()
        for index, draft in enumerate(drafts, start=1):
            try:
                self._check_phone(draft.phone)
                written = await self._store.insert(
                    Collection.CUSTOMERS.value, [draft.to_row(actor.user_id)]
                )
            except LedgerError as e:
                self._logger.warning("customer_import_row_failed", row=index, error=e.message)
                result.failed.append((index, e))
                continue
            customers = [Customer.from_row(r) for r in written]
            self._cache.put_many(customers)
            result.created.extend(customers)

        self._logger.info(
            "customers_imported", created=len(result.created), failed=len(result.failed)
        )
        return result
