"""
Repository abstractions for provider and subscriber storage.

TombstoneStore  : keyed by sequential id, supports deletion; a deleted id
                   is remembered and never handed out again.
AppendOnlyStore : dense sequence keyed by sequential id; no deletion.

Ids start at 1. Neither store exposes its underlying container.
"""

from typing import Callable, Dict, Generic, Iterator, List, Optional, Set, TypeVar

T = TypeVar("T")


class TombstoneStore(Generic[T]):

    def __init__(self) -> None:
        self._items: Dict[int, T] = {}
        self._tombstones: Set[int] = set()
        self._highest_id = 0

    @property
    def highest_id(self) -> int:
        """Highest id ever issued, including removed ones."""
        return self._highest_id

    def next_id(self) -> int:
        return self._highest_id + 1

    def add(self, build: Callable[[int], T]) -> T:
        """Allocate the next id and store build(id)."""
        new_id = self.next_id()
        item = build(new_id)
        self._items[new_id] = item
        self._highest_id = new_id
        return item

    def get(self, item_id: int) -> Optional[T]:
        return self._items.get(item_id)

    def was_issued(self, item_id: int) -> bool:
        if isinstance(item_id, bool) or not isinstance(item_id, int):
            return False
        return 1 <= item_id <= self._highest_id

    def is_tombstoned(self, item_id: int) -> bool:
        return item_id in self._tombstones

    def remove(self, item_id: int) -> T:
        item = self._items.pop(item_id)
        self._tombstones.add(item_id)
        return item

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._items

    def __iter__(self) -> Iterator[T]:
        for item_id in sorted(self._items):
            yield self._items[item_id]

    def __len__(self) -> int:
        return len(self._items)


class AppendOnlyStore(Generic[T]):

    def __init__(self) -> None:
        self._items: List[T] = []

    def next_id(self) -> int:
        return len(self._items) + 1

    def append(self, build: Callable[[int], T]) -> T:
        item = build(self.next_id())
        self._items.append(item)
        return item

    def get(self, item_id: int) -> Optional[T]:
        if item_id in self:
            return self._items[item_id - 1]
        return None

    def __contains__(self, item_id: object) -> bool:
        if isinstance(item_id, bool) or not isinstance(item_id, int):
            return False
        return 1 <= item_id <= len(self._items)

    def __iter__(self) -> Iterator[T]:
        return iter(list(self._items))

    def __len__(self) -> int:
        return len(self._items)
