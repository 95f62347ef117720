"""
Notion Storage Implementation

DESIGN DECISION: Notion databases are the system of record because:
1. The ledger is edited by hand in Notion every day
2. Balances and budgets show up where the user already looks
3. No separate database to run

TRADEOFFS:
- Every read is a paginated HTTP call (we stream pages, never load all)
- Property payloads are typed per database column, so writes and
  filters need the column types; the schema is read once per database
- No transactions (a run is best-effort and resumable instead)

The store flattens Notion property payloads into the plain values the
rest of the code sees (str, Decimal, bool, ISO date text, None).
"""

from decimal import Decimal
from typing import Any, Optional

import httpx
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from ledger_recalc.config import NotionSettings, get_settings
from ledger_recalc.services.storage.interface import (
    Collection,
    Condition,
    NotFoundError,
    QueryFilter,
    QueryPage,
    Record,
    RecordStore,
    SortSpec,
    StorageError,
)


RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}

# Property types a filter or write can target, by Notion type name
TEXT_TYPES = {"title", "rich_text"}
NAMED_OPTION_TYPES = {"select", "status"}


def _is_retryable(exc: BaseException) -> bool:
    """Retry only on rate limits, server errors and transport failures."""
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in RETRYABLE_STATUS_CODES
    return isinstance(exc, (httpx.ConnectError, httpx.TimeoutException))


def _is_retryable_create(exc: BaseException) -> bool:
    """Retry a page create only when Notion cannot have stored it."""
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code == 429
    return isinstance(exc, (httpx.ConnectError, httpx.ConnectTimeout))


class NotionClient:
    """
    Low-level Notion REST client.

    Handles authentication headers and retries transient failures.
    """

    def __init__(
        self,
        settings: Optional[NotionSettings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._settings = settings or get_settings().notion
        self._client = httpx.AsyncClient(
            base_url=self._settings.base_url,
            timeout=httpx.Timeout(
                connect=5.0,
                read=self._settings.timeout_seconds,
                write=10.0,
                pool=10.0,
            ),
            headers={
                "Authorization": f"Bearer {self._settings.api_key}",
                "Notion-Version": self._settings.api_version,
                "Content-Type": "application/json",
            },
            transport=transport,
        )

    @retry(
        retry=retry_if_exception(_is_retryable),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def _request(self, method: str, path: str, payload: Optional[dict] = None) -> dict:
        return await self._send(method, path, payload)

    # POST /pages is not idempotent: a lost response must not create a second page
    @retry(
        retry=retry_if_exception(_is_retryable_create),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def _create(self, payload: dict) -> dict:
        return await self._send("POST", "/pages", payload)

    async def _send(self, method: str, path: str, payload: Optional[dict] = None) -> dict:
        response = await self._client.request(method, path, json=payload)
        response.raise_for_status()
        return response.json()

    async def query_database(self, database_id: str, body: dict) -> dict:
        return await self._request("POST", f"/databases/{database_id}/query", body)

    async def retrieve_database(self, database_id: str) -> dict:
        return await self._request("GET", f"/databases/{database_id}")

    async def create_page(self, database_id: str, properties: dict) -> dict:
        return await self._create({
            "parent": {"database_id": database_id},
            "properties": properties,
        })

    async def update_page(self, page_id: str, properties: dict) -> dict:
        return await self._request("PATCH", f"/pages/{page_id}", {"properties": properties})

    async def aclose(self) -> None:
        await self._client.aclose()


# =============================================================================
# PROPERTY CONVERSION
# =============================================================================

def flatten_property(prop: dict) -> Any:
    """Turn one Notion property payload into a plain value."""
    kind = prop.get("type")
    value = prop.get(kind) if kind else None

    if kind in TEXT_TYPES:
        return "".join(part.get("plain_text", "") for part in value or [])
    if kind in NAMED_OPTION_TYPES:
        return value.get("name") if value else None
    if kind == "number":
        return Decimal(str(value)) if value is not None else None
    if kind == "date":
        return value.get("start") if value else None
    if kind == "checkbox":
        return bool(value)
    if kind == "formula" and value:
        return flatten_property(value)
    return None


def flatten_page(page: dict) -> Record:
    return Record(
        id=page["id"],
        data={
            name: flatten_property(prop)
            for name, prop in (page.get("properties") or {}).items()
        },
    )


def _number(value: Any) -> Optional[float]:
    if value is None:
        return None
    return float(value)


def encode_property(kind: str, value: Any) -> dict:
    """Build the write payload for a property of the given Notion type."""
    if kind in TEXT_TYPES:
        text = "" if value is None else str(value)
        return {kind: [{"text": {"content": text}}] if text else []}
    if kind in NAMED_OPTION_TYPES:
        return {kind: {"name": str(value)} if value else None}
    if kind == "number":
        return {"number": _number(value)}
    if kind == "date":
        return {"date": {"start": str(value)} if value else None}
    if kind == "checkbox":
        return {"checkbox": bool(value)}
    raise StorageError(f"Cannot write Notion property of type {kind}")


def _filter_value(kind: str, value: Any) -> Any:
    if kind == "number":
        return _number(value)
    if kind == "checkbox":
        return bool(value)
    return "" if value is None else str(value)


class NotionRecordStore(RecordStore):
    """
    Notion-backed implementation of the record store.

    Each collection maps to one Notion database.
    """

    def __init__(
        self,
        client: NotionClient,
        database_ids: dict[Collection, str],
    ):
        self._client = client
        self._database_ids = database_ids
        self._schemas: dict[Collection, dict[str, str]] = {}

    @classmethod
    def from_settings(cls, settings: Optional[NotionSettings] = None) -> "NotionRecordStore":
        settings = settings or get_settings().notion
        return cls(
            client=NotionClient(settings),
            database_ids={
                Collection.ACCOUNTS: settings.accounts_database_id,
                Collection.TRANSACTIONS: settings.transactions_database_id,
                Collection.DAILY_BALANCES: settings.daily_balance_database_id,
                Collection.BUDGETS: settings.budgets_database_id,
            },
        )

    def _database_id(self, collection: Collection) -> str:
        try:
            return self._database_ids[collection]
        except KeyError:
            raise StorageError(f"No Notion database configured for {collection.value}")

    async def _schema(self, collection: Collection) -> dict[str, str]:
        """Property name -> Notion type, read once per database."""
        if collection not in self._schemas:
            try:
                database = await self._client.retrieve_database(self._database_id(collection))
            except httpx.HTTPError as e:
                raise StorageError(f"Failed to read {collection.value} schema: {e}") from e
            self._schemas[collection] = {
                name: prop.get("type", "")
                for name, prop in (database.get("properties") or {}).items()
            }
        return self._schemas[collection]

    async def _property_type(self, collection: Collection, name: str) -> str:
        schema = await self._schema(collection)
        if name not in schema:
            raise StorageError(f"{collection.value} database has no property '{name}'")
        return schema[name]

    async def _condition(self, collection: Collection, condition: Condition) -> dict:
        kind = await self._property_type(collection, condition.field)
        return {
            "property": condition.field,
            kind: {condition.op.value: _filter_value(kind, condition.value)},
        }

    async def build_filter(
        self,
        collection: Collection,
        query_filter: Optional[QueryFilter],
    ) -> Optional[dict]:
        """Translate a QueryFilter into a Notion compound filter."""
        if query_filter is None or query_filter.is_empty:
            return None

        all_of = [await self._condition(collection, c) for c in query_filter.all_of]
        any_of = [await self._condition(collection, c) for c in query_filter.any_of]

        if not all_of:
            return {"or": any_of}
        if any_of:
            all_of.append({"or": any_of})
        return {"and": all_of}

    async def encode_fields(self, collection: Collection, fields: dict[str, Any]) -> dict:
        properties = {}
        for name, value in fields.items():
            kind = await self._property_type(collection, name)
            properties[name] = encode_property(kind, value)
        return properties

    async def query(
        self,
        collection: Collection,
        filter: Optional[QueryFilter] = None,
        sort: Optional[list[SortSpec]] = None,
        cursor: Optional[str] = None,
        page_size: int = 100,
    ) -> QueryPage:
        body: dict[str, Any] = {"page_size": page_size}
        notion_filter = await self.build_filter(collection, filter)
        if notion_filter:
            body["filter"] = notion_filter
        if sort:
            body["sorts"] = [
                {
                    "property": spec.field,
                    "direction": "descending" if spec.descending else "ascending",
                }
                for spec in sort
            ]
        if cursor:
            body["start_cursor"] = cursor

        try:
            data = await self._client.query_database(self._database_id(collection), body)
        except httpx.HTTPError as e:
            raise StorageError(f"Failed to query {collection.value}: {e}") from e

        return QueryPage(
            rows=[flatten_page(page) for page in data.get("results", [])],
            next_cursor=data.get("next_cursor"),
            has_more=bool(data.get("has_more")),
        )

    async def create(self, collection: Collection, fields: dict[str, Any]) -> str:
        properties = await self.encode_fields(collection, fields)
        try:
            page = await self._client.create_page(self._database_id(collection), properties)
        except httpx.HTTPError as e:
            raise StorageError(f"Failed to create {collection.value} record: {e}") from e
        return page["id"]

    async def update(
        self,
        collection: Collection,
        record_id: str,
        fields: dict[str, Any],
    ) -> None:
        properties = await self.encode_fields(collection, fields)
        try:
            await self._client.update_page(record_id, properties)
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                raise NotFoundError(f"{collection.value} record not found: {record_id}") from e
            raise StorageError(f"Failed to update {collection.value} record {record_id}: {e}") from e
        except httpx.HTTPError as e:
            raise StorageError(f"Failed to update {collection.value} record {record_id}: {e}") from e

    async def close(self) -> None:
        await self._client.aclose()
