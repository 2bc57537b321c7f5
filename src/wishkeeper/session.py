from dataclasses import dataclass, field

from wishkeeper.models import Collection, Container, Entry


@dataclass
class SessionState:
    """In-memory view of the store for one client session.

    Only ``MutationCoordinator`` writes to it. Entries are cached per list
    once that list has been loaded.
    """

    containers: list[Container] = field(default_factory=list)
    collections: list[Collection] = field(default_factory=list)
    entries_by_collection: dict[str, list[Entry]] = field(default_factory=dict)
    selected_collection_id: str | None = None
    hide_bought: bool = False
    reorder_tip_shown: bool = False
    stale: bool = False

    def has_entries(self, collection_id: str) -> bool:
        return collection_id in self.entries_by_collection

    def entries(self, collection_id: str) -> list[Entry]:
        return list(self.entries_by_collection.get(collection_id, []))

    def visible_entries(self, collection_id: str) -> list[Entry]:
        entries = self.entries(collection_id)
        if self.hide_bought:
            return [entry for entry in entries if not entry.bought]
        return entries

    def set_entries(self, collection_id: str, entries: list[Entry]) -> None:
        self.entries_by_collection[collection_id] = list(entries)

    def replace_entry(self, entry: Entry) -> None:
        entries = self.entries_by_collection.get(entry.collection_id, [])
        self.entries_by_collection[entry.collection_id] = [
            entry if item.id == entry.id else item for item in entries
        ]

    def replace_collection(self, collection: Collection) -> None:
        self.collections = [
            collection if item.id == collection.id else item for item in self.collections
        ]

    def replace_container(self, container: Container) -> None:
        self.containers = [
            container if item.id == container.id else item for item in self.containers
        ]

    def drop_collection(self, collection_id: str) -> None:
        self.collections = [item for item in self.collections if item.id != collection_id]
        self.entries_by_collection.pop(collection_id, None)
        if self.selected_collection_id == collection_id:
            self.selected_collection_id = None

    def selected_collection(self) -> Collection | None:
        for item in self.collections:
            if item.id == self.selected_collection_id:
                return item
        return None
