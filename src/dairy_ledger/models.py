"""Record types for the five keyed collections and the acting principal.

Rows travel to and from the store with camelCase column names; the dataclasses
below use snake_case attributes and convert at the boundary.
"""

from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Any

from dairy_ledger.errors import ValidationError


class Role(str, Enum):
    """Roles an authenticated actor can hold."""

    ADMIN = "admin"
    STAFF = "staff"
    CUSTOMER = "customer"


class CustomerStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class Collection(str, Enum):
    """Store collection (table) names."""

    CUSTOMERS = "customers"
    ORDERS = "orders"
    PENDING_DELIVERIES = "pending_deliveries"
    DELIVERIES = "deliveries"
    PAYMENTS = "payments"


# Conflict key shared by orders, pending deliveries and deliveries.
DAY_KEY = ("customerId", "date")


@dataclass(frozen=True)
class Actor:
    """Authenticated principal performing an operation."""

    user_id: str
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


def parse_date(value: Any, field_name: str = "date") -> date:
    """Parse a YYYY-MM-DD value (or pass a date through)."""
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except ValueError as exc:
        raise ValidationError(f"Invalid {field_name}: {value!r}") from exc


def parse_amount(value: Any, field_name: str) -> float:
    """Parse a numeric field, rejecting blanks and non-numbers."""
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{field_name} is required")
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"{field_name} must be a number, got {value!r}") from exc
    if number != number or number in (float("inf"), float("-inf")):
        raise ValidationError(f"{field_name} must be a finite number")
    return number


def parse_quantity(value: Any, field_name: str = "quantity") -> float:
    quantity = parse_amount(value, field_name)
    if quantity < 0:
        raise ValidationError(f"{field_name} cannot be negative")
    return quantity


def normalize_phone(phone: str | None) -> str:
    """Strip whitespace and the stray '?' characters spreadsheets leave behind."""
    if not phone:
        return ""
    return str(phone).replace("?", "").strip()


def phone_key(phone: str | None) -> str:
    """Comparison key for phone uniqueness (digits only)."""
    return "".join(ch for ch in normalize_phone(phone) if ch.isdigit())


@dataclass
class Customer:
    id: Any
    name: str
    address: str
    milk_price: float
    default_quantity: float
    phone: str = ""
    status: CustomerStatus = CustomerStatus.ACTIVE
    previous_balance: float = 0.0
    balance_as_of_date: date | None = None
    user_id: str | None = None
    email: str | None = None

    @property
    def is_active(self) -> bool:
        return self.status == CustomerStatus.ACTIVE

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Customer":
        as_of = row.get("balanceAsOfDate")
        return cls(
            id=row["id"],
            name=str(row.get("name") or ""),
            address=str(row.get("address") or ""),
            phone=normalize_phone(row.get("phone")),
            milk_price=float(row.get("milkPrice") or 0),
            default_quantity=float(row.get("defaultQuantity") or 0),
            status=CustomerStatus(row.get("status") or CustomerStatus.ACTIVE.value),
            previous_balance=float(row.get("previousBalance") or 0),
            balance_as_of_date=parse_date(as_of, "balanceAsOfDate") if as_of else None,
            user_id=row.get("userId"),
            email=row.get("email"),
        )

    def to_row(self, include_balance: bool = True) -> dict[str, Any]:
        """Serialise writable columns (the id is assigned by the store)."""
        row: dict[str, Any] = {
            "name": self.name,
            "address": self.address,
            "phone": self.phone,
            "milkPrice": self.milk_price,
            "defaultQuantity": self.default_quantity,
            "status": self.status.value,
        }
        if self.user_id is not None:
            row["userId"] = self.user_id
        if include_balance:
            row["previousBalance"] = self.previous_balance
            row["balanceAsOfDate"] = (
                self.balance_as_of_date.isoformat() if self.balance_as_of_date else None
            )
        return row


@dataclass
class DayQuantity:
    """Quantity keyed by (customer, date); base of orders and deliveries."""

    customer_id: Any
    date: date
    quantity: float
    id: Any = None
    user_id: str | None = None

    @property
    def key(self) -> tuple[Any, date]:
        return (self.customer_id, self.date)

    @classmethod
    def from_row(cls, row: dict[str, Any]):
        return cls(
            id=row.get("id"),
            customer_id=row["customerId"],
            date=parse_date(row["date"]),
            quantity=float(row.get("quantity") or 0),
            user_id=row.get("userId"),
        )

    def to_row(self) -> dict[str, Any]:
        row: dict[str, Any] = {
            "customerId": self.customer_id,
            "date": self.date.isoformat(),
            "quantity": self.quantity,
        }
        if self.user_id is not None:
            row["userId"] = self.user_id
        return row


@dataclass
class Order(DayQuantity):
    """Planned delivery; advisory only, never billed."""


@dataclass
class PendingDelivery(DayQuantity):
    """Staff-submitted actual awaiting admin approval."""


@dataclass
class Delivery(DayQuantity):
    """Approved, billable delivery."""


@dataclass
class Payment:
    customer_id: Any
    date: date
    amount: float
    id: Any = None
    user_id: str | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Payment":
        return cls(
            id=row.get("id"),
            customer_id=row["customerId"],
            date=parse_date(row["date"]),
            amount=float(row.get("amount") or 0),
            user_id=row.get("userId"),
        )

    def to_row(self) -> dict[str, Any]:
        row: dict[str, Any] = {
            "customerId": self.customer_id,
            "date": self.date.isoformat(),
            "amount": self.amount,
        }
        if self.user_id is not None:
            row["userId"] = self.user_id
        return row


@dataclass
class CustomerDraft:
    """Validated input for creating a customer."""

    name: str
    address: str
    milk_price: float
    default_quantity: float
    phone: str = ""

    @classmethod
    def validate(
        cls,
        name: Any,
        address: Any,
        milk_price: Any,
        default_quantity: Any,
        phone: Any = None,
    ) -> "CustomerDraft":
        name_text = str(name or "").strip()
        address_text = str(address or "").strip()
        if not name_text:
            raise ValidationError("name is required")
        if not address_text:
            raise ValidationError("address is required")
        price = parse_amount(milk_price, "milkPrice")
        if price < 0:
            raise ValidationError("milkPrice cannot be negative")
        quantity = parse_quantity(default_quantity, "defaultQuantity")
        return cls(
            name=name_text,
            address=address_text,
            milk_price=price,
            default_quantity=quantity,
            phone=normalize_phone(phone),
        )

    def to_row(self, user_id: str | None) -> dict[str, Any]:
        row: dict[str, Any] = {
            "name": self.name,
            "address": self.address,
            "phone": self.phone,
            "milkPrice": self.milk_price,
            "defaultQuantity": self.default_quantity,
            "status": CustomerStatus.ACTIVE.value,
        }
        if user_id is not None:
            row["userId"] = user_id
        return row
