"""CSV import and export for customers and deliveries."""

import csv
import io
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from dairy_ledger.errors import ValidationError
from dairy_ledger.models import (
    Customer,
    CustomerDraft,
    Delivery,
    parse_date,
    parse_quantity,
)

CUSTOMER_HEADER = ["name", "address", "phone", "milkPrice", "defaultQuantity"]
CUSTOMER_REQUIRED = ["name", "address", "milkPrice", "defaultQuantity"]
DELIVERY_HEADER = ["customerName", "date", "quantity"]


def _reader(text: str, required: list[str]) -> csv.DictReader:
    reader = csv.DictReader(io.StringIO(text.lstrip("\ufeff")), skipinitialspace=True)
    header = [name.strip() for name in reader.fieldnames or []]
    missing = [name for name in required if name not in header]
    if missing:
        raise ValidationError(
            f"Invalid CSV header: missing {', '.join(missing)}; "
            f"expected {','.join(required)}"
        )
    reader.fieldnames = header
    return reader


def _is_blank(row: dict[str, Any]) -> bool:
    return not any(str(v or "").strip() for v in row.values())


def parse_customer_csv(text: str) -> list[dict[str, Any]]:
    """Parse and validate a customer import.

    Returns store-ready rows (``name``, ``address``, ``phone``, ``milkPrice``,
    ``defaultQuantity``). Any invalid row rejects the whole file; the error
    names its line number, counting the header as line 1.
    """
    reader = _reader(text, CUSTOMER_REQUIRED)
    rows: list[dict[str, Any]] = []
    for row in reader:
        if _is_blank(row):
            continue
        try:
            draft = CustomerDraft.validate(
                row.get("name"),
                row.get("address"),
                row.get("milkPrice"),
                row.get("defaultQuantity"),
                row.get("phone"),
            )
        except ValidationError as e:
            raise ValidationError(f"Line {reader.line_num}: {e.message}") from e
        rows.append(
            {
                "name": draft.name,
                "address": draft.address,
                "phone": draft.phone,
                "milkPrice": draft.milk_price,
                "defaultQuantity": draft.default_quantity,
            }
        )
    if not rows:
        raise ValidationError("CSV file contains no customer rows")
    return rows


@dataclass
class DeliveryImport:
    """Deliveries parsed from a CSV, plus rows that could not be matched."""

    deliveries: list[Delivery] = field(default_factory=list)
    unknown_names: list[str] = field(default_factory=list)
    skipped_lines: list[int] = field(default_factory=list)


def parse_delivery_csv(text: str, customers: Iterable[Customer]) -> DeliveryImport:
    """Match ``customerName,date,quantity`` rows to customers by name.

    Names match case-insensitively. Unknown names are collected rather than
    failing the import; rows with a non-numeric quantity are skipped. A bad
    date fails the whole import.
    """
    by_name = {c.name.strip().casefold(): c for c in customers}
    reader = _reader(text, DELIVERY_HEADER)
    result = DeliveryImport()
    # one delivery per (customer, date); later rows win
    collected: dict[tuple[Any, Any], Delivery] = {}

    for row in reader:
        if _is_blank(row):
            continue
        name = str(row.get("customerName") or "").strip()
        customer = by_name.get(name.casefold())
        if customer is None:
            if name not in result.unknown_names:
                result.unknown_names.append(name)
            continue
        try:
            quantity = parse_quantity(row.get("quantity"))
        except ValidationError:
            result.skipped_lines.append(reader.line_num)
            continue
        try:
            day = parse_date(row.get("date"))
        except ValidationError as e:
            raise ValidationError(f"Line {reader.line_num}: {e.message}") from e
        delivery = Delivery(customer_id=customer.id, date=day, quantity=quantity)
        collected[delivery.key] = delivery

    result.deliveries = list(collected.values())
    return result


def export_customers_csv(customers: Iterable[Customer]) -> str:
    """Write customers with the import header so the file can be re-imported."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CUSTOMER_HEADER)
    for c in customers:
        writer.writerow(
            [c.name, c.address, c.phone, f"{c.milk_price:g}", f"{c.default_quantity:g}"]
        )
    return buffer.getvalue()
