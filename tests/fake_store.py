import asyncio
from typing import Any

from wishkeeper.errors import PersistenceError
from wishkeeper.models import Collection, Container, Entry
from wishkeeper.store import RecordStore


class FakeRecordStore(RecordStore):
    """In-memory store that records every call and can fail on demand.

    ``fail("update_entry", 2)`` makes the second update_entry call raise.
    Setting ``gate`` to an unset ``asyncio.Event`` holds every call open
    until the event is set.
    """

    def __init__(self) -> None:
        self.containers: dict[str, dict[str, Any]] = {}
        self.collections: dict[str, dict[str, Any]] = {}
        self.entries: dict[str, dict[str, Any]] = {}
        self.calls: list[tuple[str, tuple]] = []
        self.gate: asyncio.Event | None = None
        self._counts: dict[str, int] = {}
        self._failures: dict[str, set[int]] = {}
        self._always_failing: set[str] = set()
        self._seq = 0

    def fail(self, method: str, *call_numbers: int) -> None:
        self._failures.setdefault(method, set()).update(call_numbers)

    def fail_always(self, method: str) -> None:
        self._always_failing.add(method)

    def clear_failures(self) -> None:
        self._failures.clear()
        self._always_failing.clear()

    def calls_to(self, method: str) -> list[tuple]:
        return [args for name, args in self.calls if name == method]

    def _row(self, prefix: str, fields: dict[str, Any]) -> dict[str, Any]:
        self._seq += 1
        stamp = f"2024-01-01T00:00:00.{self._seq:06d}+00:00"
        return {
            "id": f"{prefix}{self._seq}",
            **fields,
            "created_at": stamp,
            "updated_at": stamp,
            "_seq": self._seq,
        }

    # seeding helpers, no call accounting

    def add_container(self, name: str) -> Container:
        row = self._row("f", {"name": name})
        self.containers[row["id"]] = row
        return Container.from_dict(row)

    def add_collection(self, name: str, container_id: str | None = None) -> Collection:
        row = self._row("l", {"name": name, "folder_id": container_id, "is_christmas": False})
        self.collections[row["id"]] = row
        return Collection.from_dict(row)

    def add_entry(
        self, collection_id: str, name: str, priority: int, bought: bool = False
    ) -> Entry:
        row = self._row(
            "e",
            {
                "wish_list_id": collection_id,
                "name": name,
                "link": None,
                "details": None,
                "is_bought": bought,
                "starred": False,
                "priority": priority,
            },
        )
        self.entries[row["id"]] = row
        return Entry.from_dict(row)

    async def _enter(self, method: str, *args: Any) -> None:
        self.calls.append((method, args))
        count = self._counts[method] = self._counts.get(method, 0) + 1
        if self.gate is not None:
            await self.gate.wait()
        else:
            await asyncio.sleep(0)
        if method in self._always_failing or count in self._failures.get(method, set()):
            raise PersistenceError(method, "injected failure")

    async def list_containers(self) -> list[Container]:
        await self._enter("list_containers")
        rows = sorted(self.containers.values(), key=lambda row: row["_seq"])
        return [Container.from_dict(row) for row in rows]

    async def create_container(self, name: str) -> Container:
        await self._enter("create_container", name)
        row = self._row("f", {"name": name})
        self.containers[row["id"]] = row
        return Container.from_dict(row)

    async def update_container(self, container_id: str, fields: dict[str, Any]) -> None:
        await self._enter("update_container", container_id, dict(fields))
        if container_id in self.containers:
            self.containers[container_id].update(fields)

    async def delete_container(self, container_id: str) -> None:
        await self._enter("delete_container", container_id)
        self.containers.pop(container_id, None)

    async def list_collections(self) -> list[Collection]:
        await self._enter("list_collections")
        rows = sorted(self.collections.values(), key=lambda row: row["_seq"], reverse=True)
        return [Collection.from_dict(row) for row in rows]

    async def create_collection(self, fields: dict[str, Any]) -> Collection:
        await self._enter("create_collection", dict(fields))
        row = self._row("l", {"folder_id": None, "is_christmas": False, **fields})
        self.collections[row["id"]] = row
        return Collection.from_dict(row)

    async def update_collection(self, collection_id: str, fields: dict[str, Any]) -> None:
        await self._enter("update_collection", collection_id, dict(fields))
        if collection_id in self.collections:
            self.collections[collection_id].update(fields)

    async def delete_collection(self, collection_id: str) -> None:
        await self._enter("delete_collection", collection_id)
        self.collections.pop(collection_id, None)
        for entry_id in [k for k, v in self.entries.items() if v["wish_list_id"] == collection_id]:
            del self.entries[entry_id]

    async def list_entries(self, collection_id: str) -> list[Entry]:
        await self._enter("list_entries", collection_id)
        rows = [row for row in self.entries.values() if row["wish_list_id"] == collection_id]
        rows.sort(key=lambda row: (row["priority"], row["_seq"]))
        return [Entry.from_dict(row) for row in rows]

    async def create_entry(self, fields: dict[str, Any]) -> Entry:
        await self._enter("create_entry", dict(fields))
        row = self._row("e", {"is_bought": False, "starred": False, **fields})
        self.entries[row["id"]] = row
        return Entry.from_dict(row)

    async def update_entry(self, entry_id: str, fields: dict[str, Any]) -> None:
        await self._enter("update_entry", entry_id, dict(fields))
        if entry_id in self.entries:
            self.entries[entry_id].update(fields)

    async def delete_entry(self, entry_id: str) -> None:
        await self._enter("delete_entry", entry_id)
        self.entries.pop(entry_id, None)
