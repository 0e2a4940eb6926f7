"""Billing reconciliation: billed vs paid per customer, per period and overall.

Every amount is billed at the customer's *current* milk price; no price
history is kept. Sums are plain floats compared with a small epsilon.

The carried-forward ``previous_balance`` is deliberately left out of the
per-period and global outstanding figures. It is folded in only by
``BillingEngine.monthly_statement``, which reproduces the customer-facing bill.
"""

import calendar
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, timedelta
from enum import Enum
from typing import Any
from urllib.parse import urlencode

import structlog

from dairy_ledger.errors import ValidationError
from dairy_ledger.models import Customer, Delivery, Order, Payment

logger = structlog.get_logger(__name__)

EPSILON = 0.001
TOP_CUSTOMERS = 10


class BillStatus(str, Enum):
    """Payment status of a bill for a period."""

    NO_BILL = "No Bill"
    OVERPAID = "Overpaid"
    PAID = "Paid"
    PARTIALLY_PAID = "Partially Paid"
    PENDING = "Pending"


def classify(billed: float, paid: float, epsilon: float = EPSILON) -> BillStatus:
    outstanding = billed - paid
    if billed <= epsilon:
        return BillStatus.NO_BILL
    if outstanding <= epsilon:
        return BillStatus.OVERPAID if paid > billed else BillStatus.PAID
    if paid > 0:
        return BillStatus.PARTIALLY_PAID
    return BillStatus.PENDING


def parse_month(value: "str | date | tuple[int, int]") -> tuple[int, int]:
    """Accept ``"YYYY-MM"``, a date, or a (year, month) tuple."""
    if isinstance(value, date):
        return value.year, value.month
    if isinstance(value, tuple):
        year, month = value
    else:
        try:
            year_text, month_text = str(value).strip().split("-")[:2]
            year, month = int(year_text), int(month_text)
        except ValueError as exc:
            raise ValidationError(f"Invalid month {value!r}, expected YYYY-MM") from exc
    if not 1 <= month <= 12:
        raise ValidationError(f"Invalid month {value!r}")
    return year, month


@dataclass(frozen=True)
class DateRange:
    """Inclusive range of days."""

    start: date
    end: date

    def __post_init__(self) -> None:
        if self.end < self.start:
            raise ValidationError(f"Range end {self.end} is before start {self.start}")

    @classmethod
    def month(cls, value: "str | date | tuple[int, int]") -> "DateRange":
        year, month = parse_month(value)
        last = calendar.monthrange(year, month)[1]
        return cls(date(year, month, 1), date(year, month, last))

    @classmethod
    def day(cls, value: date) -> "DateRange":
        return cls(value, value)

    def __contains__(self, value: object) -> bool:
        return isinstance(value, date) and self.start <= value <= self.end

    @property
    def label(self) -> str:
        return f"{self.start.isoformat()} - {self.end.isoformat()}"


Period = DateRange | str | tuple[int, int] | None


def _as_range(period: Period) -> DateRange | None:
    if period is None or isinstance(period, DateRange):
        return period
    return DateRange.month(period)


@dataclass
class CustomerBalance:
    """Billed vs paid for one customer over a period (None = all time)."""

    customer: Customer
    period: DateRange | None
    quantity: float
    billed: float
    paid: float
    status: BillStatus

    @property
    def outstanding(self) -> float:
        return self.billed - self.paid


@dataclass
class DailySummary:
    """Delivery totals for a single day."""

    date: date
    total_quantity: float
    total_revenue: float
    deliveries: int
    customers_served: int
    orders: int
    payments_total: float

    def to_text(self) -> str:
        return f"""
Daily Summary for {self.date.isoformat()}
{'=' * 40}
  Deliveries: {self.deliveries} to {self.customers_served} customers
  Quantity:   {self.total_quantity:,.2f} L
  Revenue:    {self.total_revenue:,.2f}
  Orders:     {self.orders}
  Collected:  {self.payments_total:,.2f}
""".strip()


@dataclass
class DayPoint:
    day: int
    quantity: float
    revenue: float


@dataclass
class MonthlySummary:
    """Delivery and collection totals for a calendar month."""

    year: int
    month: int
    total_quantity: float
    total_revenue: float
    total_paid: float
    customers_served: int
    deliveries: int
    daily: list[DayPoint] = field(default_factory=list)
    top_customers: list[tuple[str, float]] = field(default_factory=list)

    @property
    def label(self) -> str:
        return f"{calendar.month_name[self.month]} {self.year}"

    def to_text(self) -> str:
        lines = [
            f"Monthly Summary for {self.label}",
            "=" * 40,
            f"  Deliveries: {self.deliveries} to {self.customers_served} customers",
            f"  Quantity:   {self.total_quantity:,.2f} L",
            f"  Revenue:    {self.total_revenue:,.2f}",
            f"  Collected:  {self.total_paid:,.2f}",
        ]
        if self.top_customers:
            lines.append("")
            lines.append("Top customers by quantity:")
            lines.extend(f"  - {name}: {qty:,.2f} L" for name, qty in self.top_customers)
        return "\n".join(lines)


@dataclass
class StatementLine:
    date: date
    quantity: float
    rate: float

    @property
    def amount(self) -> float:
        return self.quantity * self.rate


@dataclass
class BillStatement:
    """A customer's monthly bill with the balance carried into the month."""

    customer: Customer
    year: int
    month: int
    period: DateRange
    lines: list[StatementLine]
    opening_balance: float
    billed: float
    paid: float

    @property
    def total_quantity(self) -> float:
        return sum(line.quantity for line in self.lines)

    @property
    def closing_balance(self) -> float:
        return self.opening_balance + self.billed - self.paid

    @property
    def has_activity(self) -> bool:
        return bool(self.lines) or self.paid > 0

    @property
    def label(self) -> str:
        return f"{calendar.month_name[self.month]} {self.year}"

    def upi_link(self, payee: str, business_name: str) -> str | None:
        """Payment link for the closing balance, or None when nothing is owed."""
        if not payee or self.closing_balance <= 0:
            return None
        query = urlencode(
            {
                "pa": payee,
                "pn": business_name,
                "am": f"{self.closing_balance:.2f}",
                "tn": f"Bill for {calendar.month_abbr[self.month]} {self.year}",
            }
        )
        return f"upi://pay?{query}"

    def to_text(self, business_name: str = "", upi_payee: str = "", contact: str = "") -> str:
        """Render the bill as a chat-friendly message."""
        balance = self.closing_balance
        if balance > 0:
            payment = f"*To Pay: ₹{balance:.2f}*"
            if upi_payee:
                payment += f"\nPlease pay using UPI to: `{upi_payee}`"
        else:
            payment = "*Bill is settled. Thank you!*"

        rule = "-" * 35
        lines = [
            f"Hi {self.customer.name},",
            "",
            f"Here is your milk bill for *{self.label}*.",
            "",
            "*Summary:*",
            f"- Previous Balance: ₹{self.opening_balance:.2f}",
            f"- This Month's Bill: ₹{self.billed:.2f}",
            f"  (Total Quantity: {self.total_quantity:.2f} L)",
            f"- Payments Received: ₹{self.paid:.2f}",
            "",
            rule,
            f"*Outstanding Balance: ₹{balance:.2f}*",
            rule,
            "",
            payment,
        ]
        if business_name or contact:
            lines.extend(["", "Thank you,"])
            if business_name:
                lines.append(f"*{business_name}*")
            if contact:
                lines.append(f"Contact: {contact}")
        return "\n".join(lines)


class BillingEngine:
    """Reconciles deliveries and payments against customer pricing.

    The engine works on a snapshot of the ledgers; build a new one after the
    underlying collections change.
    """

    def __init__(
        self,
        customers: list[Customer],
        deliveries: list[Delivery],
        payments: list[Payment],
        orders: list[Order] | None = None,
        epsilon: float = EPSILON,
    ):
        self.epsilon = epsilon
        self._customers = {c.id: c for c in customers}
        self._deliveries = list(deliveries)
        self._payments = list(payments)
        self._orders = list(orders or [])
        self._deliveries_by_customer: dict[Any, list[Delivery]] = defaultdict(list)
        for d in self._deliveries:
            self._deliveries_by_customer[d.customer_id].append(d)
        self._payments_by_customer: dict[Any, list[Payment]] = defaultdict(list)
        for p in self._payments:
            self._payments_by_customer[p.customer_id].append(p)

    def _price(self, customer_id: Any) -> float:
        customer = self._customers.get(customer_id)
        return customer.milk_price if customer else 0.0

    def _sorted_customers(self) -> list[Customer]:
        return sorted(self._customers.values(), key=lambda c: (c.name.casefold(), c.name))

    # === Per customer ===

    def compute_balance(self, customer: Customer, period: Period = None) -> CustomerBalance:
        """Billed, paid and status for ``customer`` over ``period``.

        ``period`` is a DateRange, a month (``"YYYY-MM"`` or (year, month)),
        or None for all time.
        """
        span = _as_range(period)
        deliveries = [
            d
            for d in self._deliveries_by_customer.get(customer.id, [])
            if span is None or d.date in span
        ]
        payments = [
            p
            for p in self._payments_by_customer.get(customer.id, [])
            if span is None or p.date in span
        ]
        quantity = sum(d.quantity for d in deliveries)
        billed = sum(d.quantity * customer.milk_price for d in deliveries)
        paid = sum(p.amount for p in payments)
        return CustomerBalance(
            customer=customer,
            period=span,
            quantity=quantity,
            billed=billed,
            paid=paid,
            status=classify(billed, paid, self.epsilon),
        )

    def customer_balances(self) -> list[CustomerBalance]:
        """All-time balance for every customer, sorted by name."""
        return [self.compute_balance(c) for c in self._sorted_customers()]

    def bill_statuses(self, month: "str | tuple[int, int]", search: str = "") -> list[CustomerBalance]:
        """Month status for every active customer, sorted by name."""
        span = DateRange.month(month)
        needle = search.strip().casefold()
        return [
            self.compute_balance(c, span)
            for c in self._sorted_customers()
            if c.is_active and (not needle or needle in c.name.casefold())
        ]

    # === Global ===

    def total_billed(self, period: Period = None) -> float:
        span = _as_range(period)
        return sum(
            d.quantity * self._price(d.customer_id)
            for d in self._deliveries
            if span is None or d.date in span
        )

    def total_paid(self, period: Period = None) -> float:
        span = _as_range(period)
        return sum(p.amount for p in self._payments if span is None or p.date in span)

    def total_outstanding(self) -> float:
        """All billed minus all paid; carried balances are not included."""
        return self.total_billed() - self.total_paid()

    def daily_summary(self, day: date) -> DailySummary:
        deliveries = [d for d in self._deliveries if d.date == day]
        return DailySummary(
            date=day,
            total_quantity=sum(d.quantity for d in deliveries),
            total_revenue=sum(d.quantity * self._price(d.customer_id) for d in deliveries),
            deliveries=len(deliveries),
            customers_served=len({d.customer_id for d in deliveries}),
            orders=sum(1 for o in self._orders if o.date == day),
            payments_total=self.total_paid(DateRange.day(day)),
        )

    def monthly_summary(self, month: "str | tuple[int, int]") -> MonthlySummary:
        year, month_number = parse_month(month)
        span = DateRange.month((year, month_number))
        deliveries = [d for d in self._deliveries if d.date in span]

        days = span.end.day
        quantity_by_day = [0.0] * days
        revenue_by_day = [0.0] * days
        per_customer: dict[str, float] = defaultdict(float)
        for d in deliveries:
            revenue = d.quantity * self._price(d.customer_id)
            quantity_by_day[d.date.day - 1] += d.quantity
            revenue_by_day[d.date.day - 1] += revenue
            customer = self._customers.get(d.customer_id)
            per_customer[customer.name if customer else "Unknown"] += d.quantity

        top = sorted(per_customer.items(), key=lambda item: (-item[1], item[0]))[:TOP_CUSTOMERS]
        return MonthlySummary(
            year=year,
            month=month_number,
            total_quantity=sum(quantity_by_day),
            total_revenue=sum(revenue_by_day),
            total_paid=self.total_paid(span),
            customers_served=len({d.customer_id for d in deliveries}),
            deliveries=len(deliveries),
            daily=[
                DayPoint(day=i + 1, quantity=quantity_by_day[i], revenue=revenue_by_day[i])
                for i in range(days)
            ],
            top_customers=top,
        )

    # === Statements ===

    def opening_balance(self, customer: Customer, before: date) -> float:
        """Balance owed at the start of ``before``.

        With a recorded carry-over the balance starts from ``previous_balance``
        on ``balance_as_of_date`` and adds the activity since; otherwise it is
        the whole history before ``before``.
        """
        if customer.balance_as_of_date is not None:
            start = customer.balance_as_of_date
            if start >= before:
                return customer.previous_balance
            interim = self.compute_balance(
                customer, DateRange(start, before - timedelta(days=1))
            )
            return customer.previous_balance + interim.outstanding

        deliveries = [
            d for d in self._deliveries_by_customer.get(customer.id, []) if d.date < before
        ]
        payments = [
            p for p in self._payments_by_customer.get(customer.id, []) if p.date < before
        ]
        due = sum(d.quantity * customer.milk_price for d in deliveries)
        return due - sum(p.amount for p in payments)

    def monthly_statement(
        self, customer: Customer, month: "str | tuple[int, int]"
    ) -> BillStatement:
        year, month_number = parse_month(month)
        span = DateRange.month((year, month_number))
        balance = self.compute_balance(customer, span)
        deliveries = sorted(
            (d for d in self._deliveries_by_customer.get(customer.id, []) if d.date in span),
            key=lambda d: d.date,
        )
        return BillStatement(
            customer=customer,
            year=year,
            month=month_number,
            period=span,
            lines=[
                StatementLine(date=d.date, quantity=d.quantity, rate=customer.milk_price)
                for d in deliveries
            ],
            opening_balance=self.opening_balance(customer, span.start),
            billed=balance.billed,
            paid=balance.paid,
        )

    def statements_for_month(
        self, month: "str | tuple[int, int]", search: str = ""
    ) -> list[BillStatement]:
        """Statements worth sending: active customers, or anyone with a balance or activity."""
        needle = search.strip().casefold()
        statements = []
        for customer in self._sorted_customers():
            if needle and needle not in customer.name.casefold():
                continue
            statement = self.monthly_statement(customer, month)
            if (
                customer.is_active
                or abs(statement.closing_balance) > self.epsilon
                or statement.has_activity
            ):
                statements.append(statement)
        logger.debug("statements_built", month=str(month), count=len(statements))
        return statements
