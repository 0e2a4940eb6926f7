"""Record store adapter."""

from dairy_ledger.store.client import (
    Filters,
    RecordStore,
    RecordStoreClient,
    build_filter_params,
)

__all__ = [
    "Filters",
    "RecordStore",
    "RecordStoreClient",
    "build_filter_params",
]
