"""Ledgers mirroring the store's keyed collections."""

from dairy_ledger.ledgers.base import DayLedger, KeyedCache
from dairy_ledger.ledgers.customers import (
    BALANCE_COLUMNS,
    LEGACY_COLUMNS,
    CustomerLedger,
    ImportResult,
)
from dairy_ledger.ledgers.deliveries import DeliveryLedger
from dairy_ledger.ledgers.orders import OrderLedger
from dairy_ledger.ledgers.payments import PaymentLedger
from dairy_ledger.ledgers.pending import (
    PendingDate,
    PendingDeliveryQueue,
    SubmissionResult,
)

__all__ = [
    "KeyedCache",
    "DayLedger",
    "CustomerLedger",
    "ImportResult",
    "BALANCE_COLUMNS",
    "LEGACY_COLUMNS",
    "OrderLedger",
    "PendingDeliveryQueue",
    "PendingDate",
    "SubmissionResult",
    "DeliveryLedger",
    "PaymentLedger",
]
