from dataclasses import dataclass, replace
from typing import Iterable, Sequence

from wishkeeper.errors import ValidationError
from wishkeeper.models import Collection, Container


@dataclass(frozen=True)
class ContainerDeletePlan:
    container_id: str
    members: tuple[Collection, ...]

    @property
    def requires_confirmation(self) -> bool:
        return bool(self.members)

    def detached(self) -> list[Collection]:
        return [replace(member, container_id=None) for member in self.members]


def collections_in_container(
    collections: Iterable[Collection], container_id: str
) -> list[Collection]:
    return [item for item in collections if item.container_id == container_id]


def unassigned_collections(collections: Iterable[Collection]) -> list[Collection]:
    return [item for item in collections if item.container_id is None]


def find_collection(collections: Iterable[Collection], collection_id: str) -> Collection:
    for item in collections:
        if item.id == collection_id:
            return item
    raise ValidationError(f"unknown collection id: {collection_id}")


def find_container(containers: Iterable[Container], container_id: str) -> Container:
    for item in containers:
        if item.id == container_id:
            return item
    raise ValidationError(f"unknown container id: {container_id}")


class ContainmentEngine:
    """Moves lists in and out of folders and tracks which folders are expanded.

    Expanded state is per session and never persisted. Revealing a folder
    when a list is moved into it is one-way: clearing the list again does
    not collapse the folder.
    """

    def __init__(self) -> None:
        self._expanded: set[str] = set()

    def is_expanded(self, container_id: str) -> bool:
        return container_id in self._expanded

    def expanded_ids(self) -> list[str]:
        return sorted(self._expanded)

    def expand(self, container_id: str) -> None:
        self._expanded.add(container_id)

    def collapse(self, container_id: str) -> None:
        self._expanded.discard(container_id)

    def toggle(self, container_id: str) -> bool:
        if container_id in self._expanded:
            self._expanded.discard(container_id)
            return False
        self._expanded.add(container_id)
        return True

    def forget(self, known_ids: Iterable[str]) -> None:
        self._expanded &= set(known_ids)

    def assign_to_container(
        self,
        collections: Sequence[Collection],
        containers: Sequence[Container],
        collection_id: str,
        container_id: str,
    ) -> Collection | None:
        """Return the reassigned list, or None when it already lives there."""
        collection = find_collection(collections, collection_id)
        find_container(containers, container_id)
        if collection.container_id == container_id:
            return None
        self.expand(container_id)
        return replace(collection, container_id=container_id)

    def clear_container(
        self, collections: Sequence[Collection], collection_id: str
    ) -> Collection | None:
        collection = find_collection(collections, collection_id)
        if collection.container_id is None:
            return None
        return replace(collection, container_id=None)

    def plan_delete(
        self,
        collections: Sequence[Collection],
        containers: Sequence[Container],
        container_id: str,
    ) -> ContainerDeletePlan:
        find_container(containers, container_id)
        return ContainerDeletePlan(
            container_id=container_id,
            members=tuple(collections_in_container(collections, container_id)),
        )
