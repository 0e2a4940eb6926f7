"""Default-quantity resolution for the delivery entry screens.

Precedence for a (customer, date): unsaved edit, then pending delivery, then
order, then the customer's default quantity. Approved deliveries are not part
of the chain; a caller that wants what was billed reads the delivery ledger.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Any

from dairy_ledger.models import Customer, Order, PendingDelivery


class QuantitySource(str, Enum):
    EDIT = "edit"
    PENDING = "pending"
    ORDER = "order"
    DEFAULT = "default"


@dataclass(frozen=True)
class ResolvedQuantity:
    quantity: float
    source: QuantitySource


def resolve_quantity(
    customer: Customer | None,
    edit: float | None = None,
    pending: float | None = None,
    order: float | None = None,
) -> ResolvedQuantity:
    """Pick the quantity to show for one customer and day."""
    if edit is not None:
        return ResolvedQuantity(edit, QuantitySource.EDIT)
    if pending is not None:
        return ResolvedQuantity(pending, QuantitySource.PENDING)
    if order is not None:
        return ResolvedQuantity(order, QuantitySource.ORDER)
    default = customer.default_quantity if customer is not None else 0.0
    return ResolvedQuantity(default, QuantitySource.DEFAULT)


def display_quantity(
    customer: Customer | None,
    edit: float | None = None,
    pending: float | None = None,
    order: float | None = None,
) -> float:
    return resolve_quantity(customer, edit, pending, order).quantity


@dataclass(frozen=True)
class DaySheetLine:
    customer_id: Any
    name: str
    quantity: float
    source: QuantitySource

    @property
    def edited(self) -> bool:
        return self.source == QuantitySource.EDIT


def build_day_sheet(
    customers: list[Customer],
    day: date,
    orders: Mapping[Any, Order],
    pending: Mapping[Any, PendingDelivery],
    edits: Mapping[Any, float] | None = None,
    search: str = "",
) -> list[DaySheetLine]:
    """One line per active customer for ``day``, sorted by name.

    ``orders`` and ``pending`` are the day's records keyed by customer id
    (see ``DayLedger.for_date``). ``search`` filters by a case-insensitive
    substring of the customer's name.
    """
    edits = edits or {}
    needle = search.strip().casefold()
    lines: list[DaySheetLine] = []
    for customer in sorted(customers, key=lambda c: (c.name.casefold(), c.name)):
        if not customer.is_active:
            continue
        if needle and needle not in customer.name.casefold():
            continue
        order = orders.get(customer.id)
        queued = pending.get(customer.id)
        if order is not None and order.date != day:
            order = None
        if queued is not None and queued.date != day:
            queued = None
        resolved = resolve_quantity(
            customer,
            edit=edits.get(customer.id),
            pending=queued.quantity if queued else None,
            order=order.quantity if order else None,
        )
        lines.append(
            DaySheetLine(
                customer_id=customer.id,
                name=customer.name,
                quantity=resolved.quantity,
                source=resolved.source,
            )
        )
    return lines
