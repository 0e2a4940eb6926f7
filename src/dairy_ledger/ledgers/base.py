"""Keyed in-memory mirrors of store collections."""

from collections.abc import Callable, Iterable, Iterator
from datetime import date
from typing import Any, Generic, TypeVar

from dairy_ledger.models import DayQuantity

T = TypeVar("T")
K = TypeVar("K")


class KeyedCache(Generic[K, T]):
    """Versioned cache of records keyed by a primary key.

    Only the owning ledger mutates the cache; readers get copies of the
    ordered values. ``version`` increases on every mutation so callers can
    tell when a derived view needs recomputing.
    """

    def __init__(
        self,
        key: Callable[[T], K],
        sort_key: Callable[[T], Any] | None = None,
    ):
        self._key = key
        self._sort_key = sort_key
        self._items: dict[K, T] = {}
        self.version = 0

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[T]:
        return iter(self.values())

    def __contains__(self, key: object) -> bool:
        return key in self._items

    def get(self, key: K) -> T | None:
        return self._items.get(key)

    def values(self) -> list[T]:
        items = list(self._items.values())
        if self._sort_key is not None:
            items.sort(key=self._sort_key)
        return items

    def replace_all(self, items: Iterable[T]) -> None:
        self._items = {self._key(item): item for item in items}
        self.version += 1

    def put_many(self, items: Iterable[T]) -> None:
        for item in items:
            self._items[self._key(item)] = item
        self.version += 1

    def remove_many(self, keys: Iterable[K]) -> int:
        removed = 0
        for key in keys:
            if self._items.pop(key, None) is not None:
                removed += 1
        self.version += 1
        return removed

    def remove_where(self, predicate: Callable[[T], bool]) -> int:
        doomed = [k for k, item in self._items.items() if predicate(item)]
        return self.remove_many(doomed)


D = TypeVar("D", bound=DayQuantity)


class DayLedger(Generic[D]):
    """Shared behaviour of the (customer, date)-keyed ledgers."""

    record_type: type[D]

    def __init__(self) -> None:
        self._cache: KeyedCache[tuple[Any, date], D] = KeyedCache(
            key=lambda r: r.key,
            sort_key=lambda r: (r.date, str(r.customer_id)),
        )

    def __len__(self) -> int:
        return len(self._cache)

    @property
    def version(self) -> int:
        return self._cache.version

    def all(self) -> list[D]:
        return self._cache.values()

    def load_rows(self, rows: Iterable[dict[str, Any]]) -> None:
        self._cache.replace_all(self.record_type.from_row(row) for row in rows)

    def get(self, customer_id: Any, day: date) -> D | None:
        return self._cache.get((customer_id, day))

    def for_date(self, day: date) -> dict[Any, D]:
        """Records for ``day`` keyed by customer id."""
        return {r.customer_id: r for r in self._cache if r.date == day}

    def for_customer(self, customer_id: Any) -> list[D]:
        return [r for r in self._cache if r.customer_id == customer_id]

    def in_range(self, start: date, end: date) -> list[D]:
        return [r for r in self._cache if start <= r.date <= end]

    def forget_customer(self, customer_id: Any) -> int:
        return self._cache.remove_where(lambda r: r.customer_id == customer_id)
