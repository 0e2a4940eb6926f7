"""Dairy Ledger - back office for a milk delivery business."""

__version__ = "0.1.0"

from dairy_ledger.approval import ApprovalResult, ApprovalWorkflow
from dairy_ledger.backoffice import BackOffice, resolve_actor
from dairy_ledger.billing import (
    BillingEngine,
    BillStatement,
    BillStatus,
    CustomerBalance,
    DateRange,
)
from dairy_ledger.config import configure_logging, get_settings
from dairy_ledger.errors import (
    ApprovalError,
    ConflictError,
    LedgerError,
    NotAuthenticatedError,
    NotFoundError,
    PermissionDeniedError,
    SchemaMismatchError,
    StoreError,
    TransientError,
    ValidationError,
)
from dairy_ledger.ledgers import (
    CustomerLedger,
    DeliveryLedger,
    OrderLedger,
    PaymentLedger,
    PendingDeliveryQueue,
)
from dairy_ledger.models import (
    Actor,
    Customer,
    CustomerStatus,
    Delivery,
    Order,
    Payment,
    PendingDelivery,
    Role,
)
from dairy_ledger.quantities import build_day_sheet, resolve_quantity
from dairy_ledger.store import RecordStore, RecordStoreClient

__all__ = [
    # Version
    "__version__",
    # Session
    "BackOffice",
    "resolve_actor",
    # Records
    "Actor",
    "Role",
    "Customer",
    "CustomerStatus",
    "Order",
    "PendingDelivery",
    "Delivery",
    "Payment",
    # Ledgers
    "CustomerLedger",
    "OrderLedger",
    "PendingDeliveryQueue",
    "DeliveryLedger",
    "PaymentLedger",
    # Workflows
    "ApprovalWorkflow",
    "ApprovalResult",
    "BillingEngine",
    "BillStatement",
    "BillStatus",
    "CustomerBalance",
    "DateRange",
    "build_day_sheet",
    "resolve_quantity",
    # Store
    "RecordStore",
    "RecordStoreClient",
    # Errors
    "LedgerError",
    "ValidationError",
    "ConflictError",
    "SchemaMismatchError",
    "PermissionDeniedError",
    "NotAuthenticatedError",
    "NotFoundError",
    "TransientError",
    "StoreError",
    "ApprovalError",
    # Config
    "get_settings",
    "configure_logging",
]
