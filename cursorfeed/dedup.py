from collections.abc import Sequence
from typing import TypeVar

from ._logging import logger
from .pagination import Item

T = TypeVar("T")


def duplicate_ratio(accepted_count: int, raw_count: int) -> float:
    """Fraction of a page rejected as duplicates. 0.0 for an empty page."""
    if raw_count <= 0:
        return 0.0
    return (raw_count - accepted_count) / raw_count


class DedupStore:
    """
    Primary and secondary keys seen by one active view.

    The store only grows while the view is active. It remembers which owner
    (normally a source key) inserted each key, so a single controller can
    drop its own keys on reset without touching the other sources of a
    merged view.
    """

    def __init__(self) -> None:
        self.primary_keys: set[str] = set()
        self.secondary_keys: set[str] = set()
        self._owned: dict[str | None, tuple[set[str], set[str]]] = {}

    def __len__(self) -> int:
        return len(self.secondary_keys)

    def is_empty(self) -> bool:
        return not self.primary_keys and not self.secondary_keys

    def contains(self, item: Item[T]) -> bool:
        if item.primary_key is not None and item.primary_key in self.primary_keys:
            return True
        return item.secondary_key in self.secondary_keys

    def add(self, item: Item[T], owner: str | None = None) -> None:
        primaries, secondaries = self._owned.setdefault(owner, (set(), set()))
        if item.primary_key is not None:
            self.primary_keys.add(item.primary_key)
            primaries.add(item.primary_key)
        self.secondary_keys.add(item.secondary_key)
        secondaries.add(item.secondary_key)

    def filter_new_items(self, items: Sequence[Item[T]], owner: str | None = None) -> list[Item[T]]:
        """
        Returns the items not seen before, in input order, and records their keys.

        An item is rejected when its primary key is known or its secondary key
        is known. Keys are recorded as soon as an item is accepted, so
        duplicates inside the same page are rejected too.
        """
        accepted: list[Item[T]] = []
        for item in items:
            if self.contains(item):
                continue
            self.add(item, owner)
            accepted.append(item)

        logger.debug(
            "Filtered page",
            extra={
                "owner": owner,
                "raw_count": len(items),
                "accepted_count": len(accepted),
                "known_keys": len(self.secondary_keys),
            },
        )
        return accepted

    def clear(self, owner: str | None = None) -> None:
        """
        Forgets keys. Without an owner the whole store is cleared, otherwise
        only the keys that owner inserted.
        """
        if owner is None:
            self.primary_keys.clear()
            self.secondary_keys.clear()
            self._owned.clear()
            return

        # A key is only ever inserted once, so owners never share keys.
        primaries, secondaries = self._owned.pop(owner, (set(), set()))
        self.primary_keys -= primaries
        self.secondary_keys -= secondaries
