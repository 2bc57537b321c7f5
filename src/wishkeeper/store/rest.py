import logging
from typing import Any

import httpx

from wishkeeper.errors import PersistenceError, ValidationError
from wishkeeper.models import Collection, Container, Entry
from wishkeeper.store import (
    COLLECTION_COLUMNS,
    CONTAINER_COLUMNS,
    ENTRY_COLUMNS,
    RecordStore,
    check_columns,
)

logger = logging.getLogger(__name__)


class RestRecordStore(RecordStore):
    """Hosted PostgREST backend (Supabase style ``/rest/v1`` tables)."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        if not base_url:
            raise ValidationError("a REST base url is required")
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=f"{self.base_url}/rest/v1",
            headers={
                "apikey": api_key,
                "Authorization": f"Bearer {api_key}",
            },
            timeout=timeout,
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def _request(
        self,
        operation: str,
        method: str,
        table: str,
        params: dict[str, str] | None = None,
        json: Any = None,
        returning: bool = False,
    ) -> Any:
        headers = {"Prefer": "return=representation"} if returning else {}
        logger.debug("%s %s %s %s", operation, method, table, params or {})
        try:
            response = await self._client.request(
                method, f"/{table}", params=params, json=json, headers=headers
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise PersistenceError(
                operation, f"HTTP {e.response.status_code}: {e.response.text[:200]}"
            ) from e
        except httpx.HTTPError as e:
            raise PersistenceError(operation, str(e) or type(e).__name__) from e

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise PersistenceError(operation, "invalid json in response") from e

    async def _select(self, operation: str, table: str, params: dict[str, str]) -> list[dict]:
        data = await self._request(operation, "GET", table, params={"select": "*", **params})
        return data or []

    async def _insert(self, operation: str, table: str, fields: dict[str, Any]) -> dict:
        data = await self._request(operation, "POST", table, json=[fields], returning=True)
        if not data:
            raise PersistenceError(operation, "insert returned no rows")
        return data[0]

    async def _update(self, operation: str, table: str, record_id: str, fields: dict[str, Any]) -> None:
        await self._request(operation, "PATCH", table, params={"id": f"eq.{record_id}"}, json=fields)

    async def _delete(self, operation: str, table: str, record_id: str) -> None:
        await self._request(operation, "DELETE", table, params={"id": f"eq.{record_id}"})

    async def list_containers(self) -> list[Container]:
        rows = await self._select("list_containers", "list_folders", {"order": "created_at.asc"})
        return [Container.from_dict(row) for row in rows]

    async def create_container(self, name: str) -> Container:
        row = await self._insert("create_container", "list_folders", {"name": name})
        return Container.from_dict(row)

    async def update_container(self, container_id: str, fields: dict[str, Any]) -> None:
        check_columns(fields, CONTAINER_COLUMNS)
        await self._update("update_container", "list_folders", container_id, fields)

    async def delete_container(self, container_id: str) -> None:
        await self._delete("delete_container", "list_folders", container_id)

    async def list_collections(self) -> list[Collection]:
        rows = await self._select("list_collections", "wish_lists", {"order": "created_at.desc"})
        return [Collection.from_dict(row) for row in rows]

    async def create_collection(self, fields: dict[str, Any]) -> Collection:
        check_columns(fields, COLLECTION_COLUMNS)
        row = await self._insert("create_collection", "wish_lists", fields)
        return Collection.from_dict(row)

    async def update_collection(self, collection_id: str, fields: dict[str, Any]) -> None:
        check_columns(fields, COLLECTION_COLUMNS)
        await self._update("update_collection", "wish_lists", collection_id, fields)

    async def delete_collection(self, collection_id: str) -> None:
        await self._delete("delete_collection", "wish_lists", collection_id)

    async def list_entries(self, collection_id: str) -> list[Entry]:
        rows = await self._select(
            "list_entries",
            "wish_items",
            {"wish_list_id": f"eq.{collection_id}", "order": "priority.asc,created_at.asc"},
        )
        return [Entry.from_dict(row) for row in rows]

    async def create_entry(self, fields: dict[str, Any]) -> Entry:
        check_columns(fields, ENTRY_COLUMNS)
        row = await self._insert("create_entry", "wish_items", fields)
        return Entry.from_dict(row)

    async def update_entry(self, entry_id: str, fields: dict[str, Any]) -> None:
        check_columns(fields, ENTRY_COLUMNS)
        await self._update("update_entry", "wish_items", entry_id, fields)

    async def delete_entry(self, entry_id: str) -> None:
        await self._delete("delete_entry", "wish_items", entry_id)
