"""Optimistic mutations over the session state.

Every mutating entry point follows the same protocol: compute the new
local state with the ordering or containment engine, install it right
away, then issue the store writes one at a time. When a write fails the
speculative state is thrown away and the affected records are fetched
again from the store, so the session always ends up matching what the
store actually holds.

Mutations addressing the same list or folder are serialized by per-entity
locks. By default a second mutation waits for the first one to settle;
with ``reject_concurrent=True`` it raises ``MutationInFlight`` instead.
"""
import asyncio
import logging
from contextlib import AsyncExitStack, asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Callable, TypeVar

from wishkeeper.auth import AuthorizationContext
from wishkeeper.containment import (
    ContainerDeletePlan,
    ContainmentEngine,
    collections_in_container,
    find_collection,
    find_container,
    unassigned_collections,
)
from wishkeeper.errors import MutationInFlight, PersistenceError, ValidationError
from wishkeeper.models import Collection, Container, Entry
from wishkeeper.ordering import (
    MergePolicy,
    StepDirection,
    assign_dense_priorities,
    changed_priorities,
    move_entry_step,
    reorder_entries,
)
from wishkeeper.session import SessionState
from wishkeeper.store import RecordStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

REORDER_TIP = "reorder_tip"

EDITABLE_ENTRY_FIELDS = ("name", "link", "details")


@dataclass(frozen=True)
class MutationResult:
    ok: bool
    operation: str
    error: str | None = None
    record: Any = None
    hint: str | None = None
    reconciled: bool = False

    def to_dict(self) -> dict[str, Any]:
        record = self.record.to_dict() if hasattr(self.record, "to_dict") else self.record
        return {
            "ok": self.ok,
            "operation": self.operation,
            "error": self.error,
            "record": record,
            "hint": self.hint,
            "reconciled": self.reconciled,
        }


def _collection_key(collection_id: str) -> str:
    return f"collection:{collection_id}"


def _container_key(container_id: str) -> str:
    return f"container:{container_id}"


def _require_name(name: Any, label: str = "name") -> str:
    if not isinstance(name, str) or not name.strip():
        raise ValidationError(f"{label} is required")
    return name.strip()


def _optional_text(value: Any, label: str) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{label} must be a string")
    return value.strip() or None


def _find_entry(entries: list[Entry], entry_id: str) -> Entry:
    for entry in entries:
        if entry.id == entry_id:
            return entry
    raise ValidationError(f"unknown entry id: {entry_id}")


def _delta(current: dict[str, Any], fields: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in fields.items() if current.get(key) != value}


class MutationCoordinator:
    def __init__(
        self,
        store: RecordStore,
        session: SessionState | None = None,
        containment: ContainmentEngine | None = None,
        merge_policy: MergePolicy = MergePolicy.APPEND_HIDDEN,
        max_attempts: int = 1,
        reject_concurrent: bool = False,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._store = store
        self._session = session if session is not None else SessionState()
        self._containment = containment if containment is not None else ContainmentEngine()
        self._merge_policy = MergePolicy(merge_policy)
        self._max_attempts = max_attempts
        self._reject_concurrent = reject_concurrent
        self._locks: dict[str, asyncio.Lock] = {}

    # ─── Read surface ─────────────────────────────────────────────────────

    @property
    def session(self) -> SessionState:
        return self._session

    @property
    def hide_bought(self) -> bool:
        return self._session.hide_bought

    @property
    def is_stale(self) -> bool:
        """True when a failed reload left folders and lists unconfirmed."""
        return self._session.stale

    def containers(self) -> list[Container]:
        return list(self._session.containers)

    def collections(self) -> list[Collection]:
        return list(self._session.collections)

    def entries(self, collection_id: str) -> list[Entry]:
        return self._session.entries(collection_id)

    def visible_entries(self, collection_id: str) -> list[Entry]:
        return self._session.visible_entries(collection_id)

    def selected_collection(self) -> Collection | None:
        return self._session.selected_collection()

    def collections_in_container(self, container_id: str) -> list[Collection]:
        return collections_in_container(self._session.collections, container_id)

    def unassigned_collections(self) -> list[Collection]:
        return unassigned_collections(self._session.collections)

    def expanded_container_ids(self) -> list[str]:
        return self._containment.expanded_ids()

    def is_expanded(self, container_id: str) -> bool:
        return self._containment.is_expanded(container_id)

    def set_hide_bought(self, value: bool) -> None:
        if not isinstance(value, bool):
            raise ValidationError("hide_bought must be a boolean")
        self._session.hide_bought = value

    def toggle_container(self, container_id: str) -> bool:
        find_container(self._session.containers, container_id)
        return self._containment.toggle(container_id)

    def plan_container_delete(self, container_id: str) -> ContainerDeletePlan:
        return self._containment.plan_delete(
            self._session.collections, self._session.containers, container_id
        )

    # ─── Loading ──────────────────────────────────────────────────────────

    async def load(self) -> None:
        """Replace folders and lists with what the store holds."""
        containers = await self._store.list_containers()
        collections = await self._store.list_collections()
        self._install_lists(containers, collections)
        logger.info("loaded %s folders and %s lists", len(containers), len(collections))

    async def select_collection(self, collection_id: str | None) -> list[Entry]:
        if collection_id is None:
            self._session.selected_collection_id = None
            return []
        find_collection(self._session.collections, collection_id)
        async with self._guard(_collection_key(collection_id), queue=True):
            entries = await self._store.list_entries(collection_id)
            self._session.set_entries(collection_id, entries)
            self._session.selected_collection_id = collection_id
        return self._session.visible_entries(collection_id)

    # ─── Ordering ─────────────────────────────────────────────────────────

    async def reorder_entries(
        self, collection_id: str, source: int, destination: int
    ) -> MutationResult:
        """Move the entry at ``source`` to ``destination`` in the visible view."""
        operation = "reorder_entries"
        find_collection(self._session.collections, collection_id)
        async with self._guard(_collection_key(collection_id)):
            try:
                current = await self._entries_for(collection_id)
            except PersistenceError as exc:
                return self._failed(operation, exc)
            reordered = reorder_entries(
                current,
                source,
                destination,
                visible=self._visibility(),
                policy=self._merge_policy,
            )
            return await self._commit_order(operation, collection_id, current, reordered)

    async def move_entry_step(
        self, collection_id: str, entry_id: str, direction: str
    ) -> MutationResult:
        operation = "move_entry_step"
        try:
            step = StepDirection(direction)
        except ValueError:
            raise ValidationError("direction must be 'up' or 'down'") from None
        find_collection(self._session.collections, collection_id)
        async with self._guard(_collection_key(collection_id)):
            try:
                current = await self._entries_for(collection_id)
            except PersistenceError as exc:
                return self._failed(operation, exc)
            index = current.index(_find_entry(current, entry_id))
            moved = move_entry_step(current, index, step)
            return await self._commit_order(operation, collection_id, current, moved)

    async def _commit_order(
        self,
        operation: str,
        collection_id: str,
        current: list[Entry],
        reordered: list[Entry],
        record: Any = None,
    ) -> MutationResult:
        changed = changed_priorities(current, reordered)
        self._session.set_entries(collection_id, reordered)
        try:
            for entry in changed:
                await self._persist(
                    operation,
                    lambda entry=entry: self._store.update_entry(
                        entry.id, {"priority": entry.priority}
                    ),
                )
        except PersistenceError as exc:
            return await self._reconcile_entries(operation, collection_id, exc)
        if changed:
            logger.info(
                "%s wrote %s priorities for list %s", operation, len(changed), collection_id
            )
        return MutationResult(ok=True, operation=operation, record=record)

    # ─── Containment ──────────────────────────────────────────────────────

    async def assign_collection_to_container(
        self, collection_id: str, container_id: str
    ) -> MutationResult:
        operation = "assign_collection_to_container"
        async with self._guard(_collection_key(collection_id), _container_key(container_id)):
            updated = self._containment.assign_to_container(
                self._session.collections, self._session.containers, collection_id, container_id
            )
            if updated is None:
                return MutationResult(ok=True, operation=operation)
            return await self._commit_collection(operation, updated, {"folder_id": container_id})

    async def clear_collection_container(self, collection_id: str) -> MutationResult:
        operation = "clear_collection_container"
        async with self._guard(_collection_key(collection_id)):
            updated = self._containment.clear_container(self._session.collections, collection_id)
            if updated is None:
                return MutationResult(ok=True, operation=operation)
            return await self._commit_collection(operation, updated, {"folder_id": None})

    async def delete_container(
        self, container_id: str, auth: AuthorizationContext, confirmed: bool = False
    ) -> MutationResult:
        """Detach every list in the folder, then delete the folder itself."""
        operation = "delete_container"
        auth.require()
        plan = self.plan_container_delete(container_id)
        while True:
            keys = {_container_key(container_id)}
            keys.update(_collection_key(member.id) for member in plan.members)
            async with self._guard(*keys):
                plan = self.plan_container_delete(container_id)
                if keys.issuperset(_collection_key(member.id) for member in plan.members):
                    return await self._delete_container_locked(operation, plan, confirmed)
            # a list joined the folder while waiting; lock it too

    async def _delete_container_locked(
        self, operation: str, plan: ContainerDeletePlan, confirmed: bool
    ) -> MutationResult:
        container_id = plan.container_id
        if plan.requires_confirmation and not confirmed:
            raise ValidationError(
                f"folder holds {len(plan.members)} lists; confirmation required"
            )
        for detached in plan.detached():
            self._session.replace_collection(detached)
        self._session.containers = [
            item for item in self._session.containers if item.id != container_id
        ]
        self._containment.collapse(container_id)
        try:
            for member in plan.members:
                await self._persist(
                    operation,
                    lambda member=member: self._store.update_collection(
                        member.id, {"folder_id": None}
                    ),
                )
            await self._persist(operation, lambda: self._store.delete_container(container_id))
        except PersistenceError as exc:
            return await self._reconcile_lists(operation, exc)
        logger.info("deleted folder %s, detached %s lists", container_id, len(plan.members))
        return MutationResult(ok=True, operation=operation)

    async def create_container(self, name: str) -> MutationResult:
        operation = "create_container"
        clean = _require_name(name)
        try:
            created = await self._persist(operation, lambda: self._store.create_container(clean))
        except PersistenceError as exc:
            return await self._reconcile_lists(operation, exc)
        self._session.containers = [*self._session.containers, created]
        return MutationResult(ok=True, operation=operation, record=created)

    async def rename_container(self, container_id: str, name: str) -> MutationResult:
        operation = "rename_container"
        clean = _require_name(name)
        async with self._guard(_container_key(container_id)):
            container = find_container(self._session.containers, container_id)
            delta = _delta(container.to_dict(), {"name": clean})
            if not delta:
                return MutationResult(ok=True, operation=operation, record=container)
            updated = container.apply(delta)
            self._session.replace_container(updated)
            try:
                await self._persist(
                    operation, lambda: self._store.update_container(container_id, delta)
                )
            except PersistenceError as exc:
                return await self._reconcile_lists(operation, exc)
        return MutationResult(ok=True, operation=operation, record=updated)

    # ─── Lists ────────────────────────────────────────────────────────────

    async def create_collection(
        self, name: str, container_id: str | None = None, is_christmas: bool = False
    ) -> MutationResult:
        operation = "create_collection"
        clean = _require_name(name)
        if not isinstance(is_christmas, bool):
            raise ValidationError("is_christmas must be a boolean")
        fields: dict[str, Any] = {"name": clean, "is_christmas": is_christmas}
        keys = []
        if container_id is not None:
            find_container(self._session.containers, container_id)
            fields["folder_id"] = container_id
            keys.append(_container_key(container_id))
        async with self._guard(*keys):
            try:
                created = await self._persist(
                    operation, lambda: self._store.create_collection(fields)
                )
            except PersistenceError as exc:
                return await self._reconcile_lists(operation, exc)
            self._session.collections = [created, *self._session.collections]
            if created.container_id is not None:
                self._containment.expand(created.container_id)
        return MutationResult(ok=True, operation=operation, record=created)

    async def rename_collection(self, collection_id: str, name: str) -> MutationResult:
        return await self._edit_collection(
            "rename_collection", collection_id, {"name": _require_name(name)}
        )

    async def set_christmas(self, collection_id: str, is_christmas: bool) -> MutationResult:
        if not isinstance(is_christmas, bool):
            raise ValidationError("is_christmas must be a boolean")
        return await self._edit_collection(
            "set_christmas", collection_id, {"is_christmas": is_christmas}
        )

    async def delete_collection(
        self, collection_id: str, auth: AuthorizationContext
    ) -> MutationResult:
        operation = "delete_collection"
        auth.require()
        find_collection(self._session.collections, collection_id)
        async with self._guard(_collection_key(collection_id)):
            was_selected = self._session.selected_collection_id == collection_id
            self._session.drop_collection(collection_id)
            try:
                await self._persist(
                    operation, lambda: self._store.delete_collection(collection_id)
                )
            except PersistenceError as exc:
                result = await self._reconcile_lists(operation, exc)
                still_there = any(
                    item.id == collection_id for item in self._session.collections
                )
                if was_selected and still_there:
                    self._session.selected_collection_id = collection_id
                return result
        logger.info("deleted list %s", collection_id)
        return MutationResult(ok=True, operation=operation)

    async def _edit_collection(
        self, operation: str, collection_id: str, fields: dict[str, Any]
    ) -> MutationResult:
        async with self._guard(_collection_key(collection_id)):
            collection = find_collection(self._session.collections, collection_id)
            delta = _delta(collection.to_dict(), fields)
            if not delta:
                return MutationResult(ok=True, operation=operation, record=collection)
            return await self._commit_collection(operation, collection.apply(delta), delta)

    async def _commit_collection(
        self, operation: str, updated: Collection, delta: dict[str, Any]
    ) -> MutationResult:
        self._session.replace_collection(updated)
        try:
            await self._persist(
                operation, lambda: self._store.update_collection(updated.id, delta)
            )
        except PersistenceError as exc:
            return await self._reconcile_lists(operation, exc)
        return MutationResult(ok=True, operation=operation, record=updated)

    # ─── Entries ──────────────────────────────────────────────────────────

    async def create_entry(
        self,
        collection_id: str,
        name: str,
        link: str | None = None,
        details: str | None = None,
    ) -> MutationResult:
        """Append a new entry; it only appears once the store has assigned its id."""
        operation = "create_entry"
        clean = _require_name(name)
        link = _optional_text(link, "link")
        details = _optional_text(details, "details")
        find_collection(self._session.collections, collection_id)
        async with self._guard(_collection_key(collection_id)):
            try:
                entries = await self._entries_for(collection_id)
            except PersistenceError as exc:
                return self._failed(operation, exc)
            dense = assign_dense_priorities(entries)
            if changed_priorities(entries, dense):
                # close gaps first so the new entry's priority sorts last
                compacted = await self._commit_order(operation, collection_id, entries, dense)
                if not compacted.ok:
                    return compacted
                entries = dense
            try:
                fields = {
                    "wish_list_id": collection_id,
                    "name": clean,
                    "link": link,
                    "details": details,
                    "priority": len(entries),
                }
                created = await self._persist(
                    operation, lambda: self._store.create_entry(fields)
                )
            except PersistenceError as exc:
                return await self._reconcile_entries(operation, collection_id, exc)
            self._session.set_entries(collection_id, [*entries, created])

            hint = None
            if not entries and not self._session.reorder_tip_shown:
                self._session.reorder_tip_shown = True
                hint = REORDER_TIP
        return MutationResult(ok=True, operation=operation, record=created, hint=hint)

    async def toggle_bought(self, collection_id: str, entry_id: str) -> MutationResult:
        return await self._edit_entry(
            "toggle_bought",
            collection_id,
            entry_id,
            lambda entry: {"is_bought": not entry.bought},
        )

    async def toggle_starred(self, collection_id: str, entry_id: str) -> MutationResult:
        return await self._edit_entry(
            "toggle_starred",
            collection_id,
            entry_id,
            lambda entry: {"starred": not entry.starred},
        )

    async def edit_entry(
        self, collection_id: str, entry_id: str, changes: dict[str, Any]
    ) -> MutationResult:
        """Change any of ``name``, ``link`` and ``details``; blank text clears link/details."""
        if not isinstance(changes, dict):
            raise ValidationError("changes must be an object")
        unknown = sorted(set(changes) - set(EDITABLE_ENTRY_FIELDS))
        if unknown:
            raise ValidationError(f"unsupported entry fields: {', '.join(unknown)}")
        fields: dict[str, Any] = {}
        if "name" in changes:
            fields["name"] = _require_name(changes["name"])
        for key in ("link", "details"):
            if key in changes:
                fields[key] = _optional_text(changes[key], key)
        return await self._edit_entry(
            "edit_entry", collection_id, entry_id, lambda entry: fields
        )

    async def delete_entry(
        self, collection_id: str, entry_id: str, auth: AuthorizationContext
    ) -> MutationResult:
        operation = "delete_entry"
        auth.require()
        find_collection(self._session.collections, collection_id)
        async with self._guard(_collection_key(collection_id)):
            try:
                entries = await self._entries_for(collection_id)
            except PersistenceError as exc:
                return self._failed(operation, exc)
            entry = _find_entry(entries, entry_id)
            remaining = [item for item in entries if item.id != entry.id]
            self._session.set_entries(collection_id, remaining)
            try:
                await self._persist(operation, lambda: self._store.delete_entry(entry.id))
            except PersistenceError as exc:
                return await self._reconcile_entries(operation, collection_id, exc)
            return await self._commit_order(
                operation, collection_id, remaining, assign_dense_priorities(remaining), entry
            )

    async def _edit_entry(
        self,
        operation: str,
        collection_id: str,
        entry_id: str,
        build_fields: Callable[[Entry], dict[str, Any]],
    ) -> MutationResult:
        find_collection(self._session.collections, collection_id)
        async with self._guard(_collection_key(collection_id)):
            try:
                entries = await self._entries_for(collection_id)
            except PersistenceError as exc:
                return self._failed(operation, exc)
            entry = _find_entry(entries, entry_id)
            delta = _delta(entry.to_dict(), build_fields(entry))
            if not delta:
                return MutationResult(ok=True, operation=operation, record=entry)
            updated = entry.apply(delta)
            self._session.replace_entry(updated)
            try:
                await self._persist(operation, lambda: self._store.update_entry(entry.id, delta))
            except PersistenceError as exc:
                return await self._reconcile_entries(operation, collection_id, exc)
        return MutationResult(ok=True, operation=operation, record=updated)

    # ─── Internals ────────────────────────────────────────────────────────

    def _visibility(self) -> Callable[[Entry], bool] | None:
        if self._session.hide_bought:
            return lambda entry: not entry.bought
        return None

    def _install_lists(self, containers: list[Container], collections: list[Collection]) -> None:
        self._session.containers = list(containers)
        self._session.collections = list(collections)
        self._session.stale = False
        known = {item.id for item in collections}
        for collection_id in list(self._session.entries_by_collection):
            if collection_id not in known:
                del self._session.entries_by_collection[collection_id]
        if self._session.selected_collection_id not in known:
            self._session.selected_collection_id = None
        self._containment.forget(item.id for item in containers)

    async def _entries_for(self, collection_id: str) -> list[Entry]:
        if not self._session.has_entries(collection_id):
            entries = await self._store.list_entries(collection_id)
            self._session.set_entries(collection_id, entries)
        return self._session.entries(collection_id)

    async def _persist(self, operation: str, call: Callable[[], Awaitable[T]]) -> T:
        attempt = 1
        while True:
            logger.debug("%s: store call attempt %s", operation, attempt)
            try:
                return await call()
            except PersistenceError as exc:
                if attempt >= self._max_attempts:
                    raise
                logger.warning(
                    "%s failed on attempt %s of %s: %s",
                    operation,
                    attempt,
                    self._max_attempts,
                    exc,
                )
                attempt += 1

    def _failed(self, operation: str, exc: PersistenceError) -> MutationResult:
        logger.warning("%s could not start: %s", operation, exc)
        return MutationResult(ok=False, operation=operation, error=str(exc))

    async def _reconcile_entries(
        self, operation: str, collection_id: str, exc: PersistenceError
    ) -> MutationResult:
        logger.warning("%s failed, reloading list %s: %s", operation, collection_id, exc)
        try:
            entries = await self._store.list_entries(collection_id)
        except PersistenceError as reload_exc:
            # drop the speculative entries; the next access refetches them
            self._session.entries_by_collection.pop(collection_id, None)
            logger.warning("reload of list %s failed: %s", collection_id, reload_exc)
            return MutationResult(ok=False, operation=operation, error=str(exc))
        self._session.set_entries(collection_id, entries)
        logger.info("list %s reconciled with %s entries", collection_id, len(entries))
        return MutationResult(ok=False, operation=operation, error=str(exc), reconciled=True)

    async def _reconcile_lists(self, operation: str, exc: PersistenceError) -> MutationResult:
        logger.warning("%s failed, reloading folders and lists: %s", operation, exc)
        try:
            await self.load()
        except PersistenceError as reload_exc:
            self._session.stale = True
            logger.warning("reload of folders and lists failed: %s", reload_exc)
            return MutationResult(ok=False, operation=operation, error=str(exc))
        return MutationResult(ok=False, operation=operation, error=str(exc), reconciled=True)

    def _lock_for(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    @asynccontextmanager
    async def _guard(self, *keys: str, queue: bool = False) -> AsyncIterator[None]:
        ordered = sorted(set(keys))
        if self._reject_concurrent and not queue:
            for key in ordered:
                if self._lock_for(key).locked():
                    raise MutationInFlight(key)
        async with AsyncExitStack() as stack:
            for key in ordered:
                await stack.enter_async_context(self._lock_for(key))
            yield
