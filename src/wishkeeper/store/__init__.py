from abc import ABC, abstractmethod
from typing import Any

from wishkeeper.config import StoreConfig
from wishkeeper.errors import ValidationError
from wishkeeper.models import Collection, Container, Entry

CONTAINER_COLUMNS = frozenset({"name"})
COLLECTION_COLUMNS = frozenset({"name", "folder_id", "is_christmas"})
ENTRY_COLUMNS = frozenset(
    {"wish_list_id", "name", "link", "details", "is_bought", "starred", "priority"}
)


class RecordStore(ABC):
    """Remote record storage for folders, wish lists and wish items.

    Every call may raise ``PersistenceError``. No call spans more than one
    record atomically.
    """

    @abstractmethod
    async def list_containers(self) -> list[Container]:
        pass

    @abstractmethod
    async def create_container(self, name: str) -> Container:
        pass

    @abstractmethod
    async def update_container(self, container_id: str, fields: dict[str, Any]) -> None:
        pass

    @abstractmethod
    async def delete_container(self, container_id: str) -> None:
        pass

    @abstractmethod
    async def list_collections(self) -> list[Collection]:
        """Newest first."""
        pass

    @abstractmethod
    async def create_collection(self, fields: dict[str, Any]) -> Collection:
        pass

    @abstractmethod
    async def update_collection(self, collection_id: str, fields: dict[str, Any]) -> None:
        pass

    @abstractmethod
    async def delete_collection(self, collection_id: str) -> None:
        """Also removes the list's entries."""
        pass

    @abstractmethod
    async def list_entries(self, collection_id: str) -> list[Entry]:
        """Lowest priority first."""
        pass

    @abstractmethod
    async def create_entry(self, fields: dict[str, Any]) -> Entry:
        pass

    @abstractmethod
    async def update_entry(self, entry_id: str, fields: dict[str, Any]) -> None:
        pass

    @abstractmethod
    async def delete_entry(self, entry_id: str) -> None:
        pass

    async def close(self) -> None:
        return None


def build_record_store(config: StoreConfig) -> RecordStore:
    if config.backend == "rest":
        from wishkeeper.store.rest import RestRecordStore

        return RestRecordStore(
            base_url=config.rest_url,
            api_key=config.rest_key,
            timeout=config.timeout,
        )

    from wishkeeper.store.sqlite import SqliteRecordStore

    store = SqliteRecordStore(config.sqlite_path)
    store.init_schema()
    return store


def check_columns(fields: dict[str, Any], allowed: frozenset[str]) -> None:
    unknown = sorted(set(fields) - allowed)
    if unknown:
        raise ValidationError(f"unsupported fields: {', '.join(unknown)}")
