"""Record store client for the hosted PostgREST-style database API."""

from collections.abc import Iterable
from typing import Any, Protocol, cast

import httpx
import structlog

from dairy_ledger.config import get_settings
from dairy_ledger.errors import (
    LedgerError,
    NotAuthenticatedError,
    StoreError,
    TransientError,
    classify_store_error,
)

logger = structlog.get_logger(__name__)

Filters = dict[str, Any]


class RecordStore(Protocol):
    """Operations the ledgers need from the record store."""

    async def fetch_all(
        self, collection: str, order_column: str = "id", columns: str = "*"
    ) -> list[dict[str, Any]]: ...

    async def select(
        self, collection: str, filters: Filters, columns: str = "*"
    ) -> list[dict[str, Any]]: ...

    async def insert(
        self, collection: str, rows: list[dict[str, Any]]
    ) -> list[dict[str, Any]]: ...

    async def upsert(
        self,
        collection: str,
        rows: list[dict[str, Any]],
        on_conflict: Iterable[str],
    ) -> list[dict[str, Any]]: ...

    async def update(
        self, collection: str, values: dict[str, Any], filters: Filters
    ) -> list[dict[str, Any]]: ...

    async def delete(self, collection: str, filters: Filters) -> list[dict[str, Any]]: ...


def _format_value(value: Any) -> str:
    if hasattr(value, "isoformat"):
        return str(value.isoformat())
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def build_filter_params(filters: Filters) -> dict[str, str]:
    """Translate ``{column: value}`` into PostgREST query parameters.

    Scalars become ``eq.`` filters, lists/tuples/sets become ``in.()`` and
    ``None`` becomes ``is.null``.
    """
    params: dict[str, str] = {}
    for column, value in filters.items():
        if value is None:
            params[column] = "is.null"
        elif isinstance(value, (list, tuple, set, frozenset)):
            items = ",".join(_format_value(v) for v in value)
            params[column] = f"in.({items})"
        else:
            params[column] = f"eq.{_format_value(value)}"
    return params


class RecordStoreClient:
    """Async client for the store's REST interface."""

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        access_token: str | None = None,
        page_size: int | None = None,
        timeout: float | None = None,
    ):
        settings = get_settings()
        self.base_url = (base_url or settings.store_url).rstrip("/")
        self._api_key = api_key or settings.store_api_key.get_secret_value()
        if access_token is None and settings.store_access_token is not None:
            access_token = settings.store_access_token.get_secret_value()
        self._access_token = access_token
        self._page_size = page_size or settings.store_page_size
        self._timeout = timeout or settings.store_timeout

        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self._timeout),
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "RecordStoreClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    @property
    def page_size(self) -> int:
        return self._page_size

    def set_access_token(self, token: str | None) -> None:
        """Act as a different principal for subsequent requests."""
        self._access_token = token

    def _get_headers(self, prefer: str | None = None) -> dict[str, str]:
        headers = {
            "apikey": self._api_key,
            "Authorization": f"Bearer {self._access_token or self._api_key}",
            "Content-Type": "application/json",
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    # === Generic Request ===

    async def _request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json: Any = None,
        prefer: str | None = None,
    ) -> Any:
        """Make a single store request; failures are raised, never retried."""
        client = await self._get_client()

        try:
            response = await client.request(
                method=method,
                url=path,
                params=params,
                json=json,
                headers=self._get_headers(prefer),
            )
        except httpx.RequestError as e:
            logger.warning("store_request_failed", method=method, path=path, error=str(e))
            raise TransientError(f"Request failed: {e}") from e

        if response.status_code >= 400:
            try:
                error_detail = response.json() if response.content else {}
            except ValueError:
                error_detail = {
                    "message": response.text[:500] if response.text else "empty response"
                }
            error = classify_store_error(response.status_code, error_detail)
            logger.warning(
                "store_request_rejected",
                method=method,
                path=path,
                status_code=response.status_code,
                error_type=type(error).__name__,
                error=error.message,
            )
            raise error

        if not response.content:
            return []
        return response.json()

    @staticmethod
    def _rows(result: Any) -> list[dict[str, Any]]:
        if isinstance(result, list):
            return cast(list[dict[str, Any]], result)
        if isinstance(result, dict):
            return [result]
        return []

    @staticmethod
    def _table(collection: str) -> str:
        return f"/rest/v1/{collection}"

    # === Collection Operations ===

    async def fetch_all(
        self, collection: str, order_column: str = "id", columns: str = "*"
    ) -> list[dict[str, Any]]:
        """Fetch every row of ``collection``, paging transparently."""
        rows: list[dict[str, Any]] = []
        offset = 0
        while True:
            page = self._rows(
                await self._request(
                    "GET",
                    self._table(collection),
                    params={
                        "select": columns,
                        "order": f"{order_column}.asc",
                        "offset": offset,
                        "limit": self._page_size,
                    },
                )
            )
            rows.extend(page)
            if len(page) < self._page_size:
                break
            offset += self._page_size

        logger.debug("collection_fetched", collection=collection, rows=len(rows))
        return rows

    async def select(
        self, collection: str, filters: Filters, columns: str = "*"
    ) -> list[dict[str, Any]]:
        """Fetch rows matching ``filters``."""
        params: dict[str, Any] = {"select": columns}
        params.update(build_filter_params(filters))
        return self._rows(await self._request("GET", self._table(collection), params=params))

    async def insert(
        self, collection: str, rows: list[dict[str, Any]]
    ) -> list[dict[str, Any]]:
        """Insert rows and return them as written by the store."""
        if not rows:
            return []
        result = await self._request(
            "POST",
            self._table(collection),
            json=rows,
            prefer="return=representation",
        )
        return self._rows(result)

    async def upsert(
        self,
        collection: str,
        rows: list[dict[str, Any]],
        on_conflict: Iterable[str],
    ) -> list[dict[str, Any]]:
        """Insert or overwrite rows keyed by ``on_conflict`` columns."""
        if not rows:
            return []
        result = await self._request(
            "POST",
            self._table(collection),
            params={"on_conflict": ",".join(on_conflict)},
            json=rows,
            prefer="resolution=merge-duplicates,return=representation",
        )
        return self._rows(result)

    async def update(
        self, collection: str, values: dict[str, Any], filters: Filters
    ) -> list[dict[str, Any]]:
        """Patch rows matching ``filters``."""
        if not filters:
            raise StoreError("Refusing to update without a filter")
        result = await self._request(
            "PATCH",
            self._table(collection),
            params=build_filter_params(filters),
            json=values,
            prefer="return=representation",
        )
        return self._rows(result)

    async def delete(self, collection: str, filters: Filters) -> list[dict[str, Any]]:
        """Delete rows matching ``filters`` and return the deleted rows."""
        if not filters:
            raise StoreError("Refusing to delete without a filter")
        result = await self._request(
            "DELETE",
            self._table(collection),
            params=build_filter_params(filters),
            prefer="return=representation",
        )
        return self._rows(result)

    # === Session ===

    async def get_user(self) -> dict[str, Any]:
        """Return the principal behind the current access token."""
        if not self._access_token:
            raise NotAuthenticatedError("No access token configured")
        try:
            result = await self._request("GET", "/auth/v1/user")
        except LedgerError as e:
            if e.status_code in (401, 403):
                raise NotAuthenticatedError(e.message, status_code=e.status_code) from e
            raise
        if not isinstance(result, dict) or not result.get("id"):
            raise NotAuthenticatedError("Session does not resolve to a user")
        return cast(dict[str, Any], result)
