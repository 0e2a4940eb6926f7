"""Error taxonomy shared by the store adapter, the ledgers and the workflows."""

import json
from datetime import date
from typing import Any

# PostgREST / Postgres codes that mean the store's schema is behind the code.
_SCHEMA_CODES = frozenset({"42703", "42P01", "PGRST204", "PGRST205"})
_CONFLICT_CODES = frozenset({"23505"})
_PERMISSION_CODES = frozenset({"42501", "PGRST301", "PGRST302"})


class LedgerError(Exception):
    """Base exception for every failure raised by the back office core."""

    def __init__(
        self, message: str, status_code: int | None = None, details: Any = None
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.details = details


class ValidationError(LedgerError):
    """Malformed input, rejected before any store call."""

    pass


class ConflictError(LedgerError):
    """Uniqueness violation (duplicate phone, duplicate key)."""

    pass


class SchemaMismatchError(LedgerError):
    """The store reports a missing table or column."""

    pass


class PermissionDeniedError(LedgerError):
    """The store rejected the operation for the acting principal."""

    pass


class NotAuthenticatedError(PermissionDeniedError):
    """No acting principal could be resolved."""

    pass


class NotFoundError(LedgerError):
    """The referenced record does not exist."""

    pass


class TransientError(LedgerError):
    """Network or availability failure; the caller may retry."""

    pass


class StoreError(LedgerError):
    """Store failure that does not fit a more specific category."""

    pass


class ApprovalError(LedgerError):
    """Approval of a date's pending deliveries failed.

    ``stage`` is ``"read"`` or ``"upsert"`` when nothing was written, and
    ``"delete"`` or ``"requeue"`` when the deliveries are already durable and
    only the queue cleanup failed.
    """

    def __init__(
        self,
        message: str,
        stage: str,
        approval_date: date,
        deliveries_written: int = 0,
        cause: LedgerError | None = None,
    ):
        super().__init__(
            message,
            status_code=cause.status_code if cause else None,
            details=cause.details if cause else None,
        )
        self.stage = stage
        self.date = approval_date
        self.deliveries_written = deliveries_written
        self.cause = cause

    @property
    def deliveries_durable(self) -> bool:
        return self.stage in ("delete", "requeue")


def _payload_text(payload: Any) -> tuple[str, str]:
    """Return (code, message) extracted from a store error payload."""
    if isinstance(payload, dict):
        code = str(payload.get("code") or "")
        parts = [
            str(payload[key])
            for key in ("message", "details", "hint", "error_description", "error")
            if payload.get(key)
        ]
        return code, " ".join(parts)
    if payload is None:
        return "", ""
    return "", str(payload)


def is_schema_message(message: str) -> bool:
    lowered = message.lower()
    if "does not exist" in lowered and ("column" in lowered or "relation" in lowered):
        return True
    return "could not find" in lowered and (
        "schema cache" in lowered or "column" in lowered or "table" in lowered
    )


def classify_store_error(
    status_code: int | None, payload: Any
) -> LedgerError:
    """Map a store error response onto the error taxonomy."""
    code, text = _payload_text(payload)
    message = text or f"Store error: {status_code}"
    lowered = message.lower()

    if code in _SCHEMA_CODES or is_schema_message(message):
        cls: type[LedgerError] = SchemaMismatchError
    elif code in _CONFLICT_CODES or "unique constraint" in lowered or "duplicate key" in lowered:
        cls = ConflictError
    elif (
        code in _PERMISSION_CODES
        or status_code in (401, 403)
        or "row-level security" in lowered
        or "row level security" in lowered
        or "policy" in lowered
        or "jwt" in lowered
    ):
        cls = PermissionDeniedError
    elif status_code is not None and status_code >= 500:
        cls = TransientError
    elif status_code == 404:
        cls = NotFoundError
    else:
        cls = StoreError

    return cls(message, status_code=status_code, details=payload)


def is_missing_column_error(error: BaseException, columns: tuple[str, ...]) -> bool:
    """True when ``error`` reports one of ``columns`` as missing from the store."""
    if not isinstance(error, SchemaMismatchError):
        return False
    lowered = error.message.lower()
    if "column" not in lowered:
        return False
    if not ("does not exist" in lowered or "could not find" in lowered):
        return False
    return any(column.lower() in lowered for column in columns)


def friendly_message(error: BaseException | str | None) -> str:
    """Describe an error in a single line suitable for an operator."""
    if error is None:
        return "An unknown error occurred."
    if isinstance(error, str):
        return error

    if isinstance(error, TransientError):
        return (
            "Network error: could not reach the record store. "
            "Check connectivity and the STORE_URL setting."
        )
    if isinstance(error, ConflictError):
        return (
            "This item already exists or conflicts with an existing entry. "
            "Please use a unique value."
        )
    if isinstance(error, NotAuthenticatedError):
        return "You must be signed in to perform this action."
    if isinstance(error, PermissionDeniedError):
        if "jwt" in str(error).lower() or "token" in str(error).lower():
            return "Authentication error. Your session may have expired. Please sign in again."
        return "Permission denied. Your current role does not have access to perform this action."
    if isinstance(error, SchemaMismatchError):
        return f"Schema mismatch: {error}. Run the store migrations and try again."

    message = str(error)
    if message.strip():
        return message
    details = getattr(error, "details", None)
    if details:
        try:
            return json.dumps(details)
        except (TypeError, ValueError):
            return "An unexpected error occurred (details could not be parsed)."
    return "An unexpected error occurred."
