"""Priority ordering for the entries of a single wish list.

Every function here is pure: it takes the current display order and
returns a new full sequence with dense priorities ``0..N-1``. Nothing is
written to the record store from this module.
"""
from dataclasses import replace
from enum import Enum
from typing import Callable, Sequence, TypeVar

from wishkeeper.errors import InvalidRange
from wishkeeper.models import Entry

T = TypeVar("T")

Visibility = Callable[[Entry], bool]


class MergePolicy(str, Enum):
    # hidden entries go after every visible entry once the view is reordered
    APPEND_HIDDEN = "append_hidden"
    # hidden entries keep their slots, visible entries fill the rest
    PRESERVE_INTERLEAVING = "preserve_interleaving"


class StepDirection(str, Enum):
    UP = "up"
    DOWN = "down"


def move_item(items: Sequence[T], source: int, destination: int) -> list[T]:
    size = len(items)
    _check_index(source, size, "source")
    _check_index(destination, size, "destination")
    moved = list(items)
    moved.insert(destination, moved.pop(source))
    return moved


def assign_dense_priorities(entries: Sequence[Entry]) -> list[Entry]:
    return [
        entry if entry.priority == index else replace(entry, priority=index)
        for index, entry in enumerate(entries)
    ]


def reorder_entries(
    entries: Sequence[Entry],
    source: int,
    destination: int,
    visible: Visibility | None = None,
    policy: MergePolicy = MergePolicy.APPEND_HIDDEN,
) -> list[Entry]:
    """Move one entry inside a possibly filtered view.

    ``source`` and ``destination`` index into the view produced by
    ``visible`` (the whole list when it is None). The returned list is the
    full, unfiltered sequence; entries the view hides keep their relative
    order.
    """
    ordered = list(entries)
    if visible is None:
        view, hidden = ordered, []
    else:
        view = [entry for entry in ordered if visible(entry)]
        hidden = [entry for entry in ordered if not visible(entry)]

    _check_index(source, len(view), "source")
    _check_index(destination, len(view), "destination")
    if source == destination:
        return ordered

    moved_view = move_item(view, source, destination)
    if not hidden:
        merged = moved_view
    elif policy is MergePolicy.PRESERVE_INTERLEAVING:
        merged = _interleave(ordered, moved_view, visible)
    else:
        merged = moved_view + hidden
    return assign_dense_priorities(merged)


def move_entry_step(
    entries: Sequence[Entry], index: int, direction: StepDirection
) -> list[Entry]:
    """Swap the entry at ``index`` with its neighbour in the unfiltered list."""
    ordered = list(entries)
    _check_index(index, len(ordered), "index")
    target = index - 1 if StepDirection(direction) is StepDirection.UP else index + 1
    if target < 0 or target >= len(ordered):
        return ordered
    ordered[index], ordered[target] = ordered[target], ordered[index]
    return assign_dense_priorities(ordered)


def changed_priorities(before: Sequence[Entry], after: Sequence[Entry]) -> list[Entry]:
    """Entries of ``after`` whose priority differs from the same id in ``before``.

    Returned in ``after`` order, which is the order the writes are issued in.
    """
    previous = {entry.id: entry.priority for entry in before}
    return [entry for entry in after if previous.get(entry.id) != entry.priority]


def _interleave(
    ordered: list[Entry], moved_view: list[Entry], visible: Visibility
) -> list[Entry]:
    remaining = iter(moved_view)
    return [next(remaining) if visible(entry) else entry for entry in ordered]


def _check_index(index: int, size: int, label: str) -> None:
    if not isinstance(index, int) or isinstance(index, bool) or not 0 <= index < size:
        raise InvalidRange(index, size, label)
