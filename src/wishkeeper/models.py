from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class Container:
    """A folder that groups wish lists."""

    id: str
    name: str
    created_at: str = ""
    updated_at: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Container":
        return cls(
            id=str(data["id"]),
            name=data.get("name", ""),
            created_at=data.get("created_at") or "",
            updated_at=data.get("updated_at") or "",
        )

    def apply(self, fields: dict[str, Any]) -> "Container":
        return Container.from_dict({**self.to_dict(), **fields})


@dataclass(frozen=True)
class Collection:
    """A wish list. ``container_id`` is None while the list is unassigned."""

    id: str
    name: str
    container_id: str | None = None
    is_christmas: bool = False
    created_at: str = ""
    updated_at: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "folder_id": self.container_id,
            "is_christmas": self.is_christmas,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Collection":
        folder_id = data.get("folder_id")
        return cls(
            id=str(data["id"]),
            name=data.get("name", ""),
            container_id=str(folder_id) if folder_id is not None else None,
            is_christmas=bool(data.get("is_christmas", False)),
            created_at=data.get("created_at") or "",
            updated_at=data.get("updated_at") or "",
        )

    def apply(self, fields: dict[str, Any]) -> "Collection":
        return Collection.from_dict({**self.to_dict(), **fields})


@dataclass(frozen=True)
class Entry:
    """A single wish inside a list, ordered by ``priority``."""

    id: str
    collection_id: str
    name: str
    link: str | None = None
    details: str | None = None
    bought: bool = False
    starred: bool = False
    priority: int = 0
    created_at: str = ""
    updated_at: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "wish_list_id": self.collection_id,
            "name": self.name,
            "link": self.link,
            "details": self.details,
            "is_bought": self.bought,
            "starred": self.starred,
            "priority": self.priority,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Entry":
        return cls(
            id=str(data["id"]),
            collection_id=str(data["wish_list_id"]),
            name=data.get("name", ""),
            link=data.get("link"),
            details=data.get("details"),
            bought=bool(data.get("is_bought", False)),
            starred=bool(data.get("starred", False)),
            priority=int(data.get("priority") or 0),
            created_at=data.get("created_at") or "",
            updated_at=data.get("updated_at") or "",
        )

    def apply(self, fields: dict[str, Any]) -> "Entry":
        return Entry.from_dict({**self.to_dict(), **fields})
