from collections.abc import Callable, Sequence
from typing import Any

from .pagination import Item

# Extracts a key from a raw record. Returning None (or "") means "no key".
KeyFunc = Callable[[Any], Any]


def _lookup(record: Any, name: str) -> Any:
    """Reads a field from a mapping or an attribute from an object."""
    if isinstance(record, dict):
        return record.get(name)
    return getattr(record, name, None)


def _normalize(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value)
    return text or None


class ItemKeyer:
    """
    Derives the identity keys used for deduplication.

    The primary key is the backend identifier, read from ``primary`` (a field
    name or a callable) and may be missing. The secondary key is always
    present: it comes from ``secondary`` when that yields a value, otherwise
    it is assigned locally as ``"<source>-<position>"`` where position counts
    every record the source has delivered so far. Locally assigned keys are
    therefore unique within a page by construction.

    Usage:
        keyer = ItemKeyer(primary="imageDocId")
        items = keyer.build_items(records, source_key="likes", start_index=0, group_key=0)
    """

    def __init__(
        self,
        primary: str | KeyFunc | None = "id",
        secondary: str | KeyFunc | None = None,
    ) -> None:
        self._primary = self._as_func(primary)
        self._secondary = self._as_func(secondary)

    @staticmethod
    def _as_func(extractor: str | KeyFunc | None) -> KeyFunc | None:
        if extractor is None:
            return None
        if isinstance(extractor, str):
            return lambda record: _lookup(record, extractor)
        return extractor

    def primary_key(self, record: Any) -> str | None:
        if self._primary is None:
            return None
        return _normalize(self._primary(record))

    def secondary_key(self, record: Any, source_key: str, position: int) -> str:
        if self._secondary is not None:
            key = _normalize(self._secondary(record))
            if key is not None:
                return key
        return f"{source_key}-{position}"

    def keys(self, record: Any, source_key: str, position: int) -> tuple[str | None, str]:
        return self.primary_key(record), self.secondary_key(record, source_key, position)

    def build_items(
        self,
        records: Sequence[Any],
        source_key: str,
        start_index: int = 0,
        group_key: int = 0,
    ) -> list[Item[Any]]:
        """
        Wraps a raw page into Items, preserving order.

        Args:
            records: Raw records as returned by the fetcher
            source_key: Name of the source the page came from
            start_index: Number of records the source delivered before this page
            group_key: Page index within the source
        """
        items: list[Item[Any]] = []
        for offset, record in enumerate(records):
            primary, secondary = self.keys(record, source_key, start_index + offset)
            items.append(
                Item(
                    id=primary if primary is not None else secondary,
                    primary_key=primary,
                    secondary_key=secondary,
                    source_key=source_key,
                    group_key=group_key,
                    payload=record,
                )
            )
        return items
