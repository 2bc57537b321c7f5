import asyncio
import logging
import threading
from typing import Any, Coroutine, TypeVar

from wishkeeper.auth import AuthorizationContext
from wishkeeper.config import StoreConfig, get_store_config
from wishkeeper.coordinator import MutationCoordinator, MutationResult
from wishkeeper.errors import ValidationError
from wishkeeper.store import RecordStore, build_record_store

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _require_str(payload: dict, key: str) -> str:
    value = payload.get(key)
    if not isinstance(value, str) or not value:
        raise ValidationError(f"{key} is required")
    return value


def _require_int(payload: dict, key: str) -> int:
    value = payload.get(key)
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValidationError(f"{key} must be an integer")
    return value


class ApiService:
    """JSON facade over one session's coordinator.

    The coordinator lives on a private event loop thread; HTTP handler
    threads submit work to it and wait, so session state is only ever
    touched from that one loop.
    """

    def __init__(
        self,
        store: RecordStore | None = None,
        config: StoreConfig | None = None,
    ) -> None:
        self._config = config if config is not None else get_store_config()
        self._store = store if store is not None else build_record_store(self._config)
        self._auth = AuthorizationContext(self._config.admin_password)
        self._coordinator = MutationCoordinator(
            self._store, max_attempts=self._config.max_attempts
        )
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(
            target=self._loop.run_forever, name="wishkeeper-loop", daemon=True
        )
        self._thread.start()
        self._closed = False

    def _run(self, coro: Coroutine[Any, Any, T]) -> T:
        return asyncio.run_coroutine_threadsafe(coro, self._loop).result()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._run(self._store.close())
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join(timeout=5)
        self._loop.close()

    def health(self) -> dict:
        return {"status": "ok"}

    def load(self) -> dict:
        self._run(self._coordinator.load())
        return self.get_state()

    def get_state(self) -> dict:
        return self._run(self._state())

    async def _state(self) -> dict:
        coordinator = self._coordinator
        selected = coordinator.selected_collection()
        return {
            "containers": [item.to_dict() for item in coordinator.containers()],
            "collections": [item.to_dict() for item in coordinator.collections()],
            "expanded_container_ids": coordinator.expanded_container_ids(),
            "selected_collection_id": selected.id if selected else None,
            "hide_bought": coordinator.hide_bought,
            "authorized": self._auth.is_authorized,
            "stale": coordinator.is_stale,
        }

    def get_entries(self, collection_id: str) -> dict:
        return self._run(self._entries(collection_id))

    async def _entries(self, collection_id: str) -> dict:
        coordinator = self._coordinator
        return {
            "collection_id": collection_id,
            "entries": [item.to_dict() for item in coordinator.visible_entries(collection_id)],
        }

    # ─── Session ──────────────────────────────────────────────────────────

    def login(self, payload: dict) -> dict:
        password = payload.get("password")
        if not isinstance(password, str):
            raise ValidationError("password is required")
        return {"authorized": self._auth.login(password)}

    def logout(self) -> dict:
        self._auth.logout()
        return {"authorized": False}

    def select_collection(self, payload: dict) -> dict:
        collection_id = payload.get("collection_id")
        if collection_id is not None and not isinstance(collection_id, str):
            raise ValidationError("collection_id must be a string or null")
        entries = self._run(self._coordinator.select_collection(collection_id))
        return {
            "collection_id": collection_id,
            "entries": [item.to_dict() for item in entries],
        }

    def set_filter(self, payload: dict) -> dict:
        hide_bought = payload.get("hide_bought")
        self._run(self._call(self._coordinator.set_hide_bought, hide_bought))
        return {"hide_bought": hide_bought}

    def toggle_container(self, container_id: str) -> dict:
        expanded = self._run(self._call(self._coordinator.toggle_container, container_id))
        return {"container_id": container_id, "expanded": expanded}

    async def _call(self, func, *args):
        return func(*args)

    # ─── Mutations ────────────────────────────────────────────────────────

    def _mutate(self, coro: Coroutine[Any, Any, MutationResult]) -> dict:
        result = self._run(coro)
        if not result.ok:
            logger.warning("%s failed: %s", result.operation, result.error)
        return result.to_dict()

    def create_container(self, payload: dict) -> dict:
        return self._mutate(self._coordinator.create_container(payload.get("name")))

    def rename_container(self, container_id: str, payload: dict) -> dict:
        return self._mutate(
            self._coordinator.rename_container(container_id, payload.get("name"))
        )

    def delete_container(self, container_id: str, payload: dict) -> dict:
        confirmed = payload.get("confirmed", False)
        if not isinstance(confirmed, bool):
            raise ValidationError("confirmed must be a boolean")
        return self._mutate(
            self._coordinator.delete_container(container_id, self._auth, confirmed=confirmed)
        )

    def create_collection(self, payload: dict) -> dict:
        container_id = payload.get("container_id")
        if container_id is not None and not isinstance(container_id, str):
            raise ValidationError("container_id must be a string or null")
        return self._mutate(
            self._coordinator.create_collection(
                payload.get("name"),
                container_id=container_id,
                is_christmas=payload.get("is_christmas", False),
            )
        )

    def rename_collection(self, collection_id: str, payload: dict) -> dict:
        return self._mutate(
            self._coordinator.rename_collection(collection_id, payload.get("name"))
        )

    def set_christmas(self, collection_id: str, payload: dict) -> dict:
        return self._mutate(
            self._coordinator.set_christmas(collection_id, payload.get("is_christmas"))
        )

    def move_collection(self, collection_id: str, payload: dict) -> dict:
        if "container_id" not in payload:
            raise ValidationError("container_id is required (null to unassign)")
        container_id = payload["container_id"]
        if container_id is None:
            return self._mutate(self._coordinator.clear_collection_container(collection_id))
        if not isinstance(container_id, str):
            raise ValidationError("container_id must be a string or null")
        return self._mutate(
            self._coordinator.assign_collection_to_container(collection_id, container_id)
        )

    def delete_collection(self, collection_id: str) -> dict:
        return self._mutate(self._coordinator.delete_collection(collection_id, self._auth))

    def create_entry(self, collection_id: str, payload: dict) -> dict:
        return self._mutate(
            self._coordinator.create_entry(
                collection_id,
                payload.get("name"),
                link=payload.get("link"),
                details=payload.get("details"),
            )
        )

    def reorder_entries(self, collection_id: str, payload: dict) -> dict:
        source = _require_int(payload, "source")
        destination = _require_int(payload, "destination")
        return self._mutate(
            self._coordinator.reorder_entries(collection_id, source, destination)
        )

    def move_entry_step(self, collection_id: str, entry_id: str, payload: dict) -> dict:
        direction = _require_str(payload, "direction")
        return self._mutate(
            self._coordinator.move_entry_step(collection_id, entry_id, direction)
        )

    def toggle_bought(self, collection_id: str, entry_id: str) -> dict:
        return self._mutate(self._coordinator.toggle_bought(collection_id, entry_id))

    def toggle_starred(self, collection_id: str, entry_id: str) -> dict:
        return self._mutate(self._coordinator.toggle_starred(collection_id, entry_id))

    def edit_entry(self, collection_id: str, entry_id: str, payload: dict) -> dict:
        return self._mutate(self._coordinator.edit_entry(collection_id, entry_id, payload))

    def delete_entry(self, collection_id: str, entry_id: str) -> dict:
        return self._mutate(
            self._coordinator.delete_entry(collection_id, entry_id, self._auth)
        )
