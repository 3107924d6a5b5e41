"""
Pagination data structures for cursorfeed.

This module provides the values exchanged between a SourceFetcher, the
pagination controllers and the caller: feed items, fetch outcomes, loop
decisions and the state snapshot exposed to the UI layer.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, TypeVar, Union

from pydantic import BaseModel, ConfigDict

T = TypeVar("T")

# Opaque pagination token. None means "from the beginning" when passed to a
# fetcher and "no further pages" when returned as a next cursor.
Cursor = Union[str, None]


class Item(BaseModel, Generic[T]):
    """
    A record accepted into a feed.

    Attributes:
        id: Display identity (primary_key when present, else secondary_key)
        primary_key: Stable backend identifier (e.g. an image document id), may be absent
        secondary_key: Locally assigned fallback identity, always present
        source_key: Name of the source the record was fetched from ("likes", ...)
        group_key: Index of the page that delivered the record within its source
        payload: The raw record as returned by the fetcher
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    id: str
    primary_key: str | None = None
    secondary_key: str
    source_key: str
    group_key: int = 0
    payload: T


@dataclass
class Ok:
    """
    A page fetched successfully.

    Attributes:
        items: Raw records of the page, in backend order
        next_cursor: Cursor for the next page (None if no more pages)
    """

    items: list[Any]
    next_cursor: Cursor = None

    @property
    def count(self) -> int:
        return len(self.items)

    @property
    def has_more(self) -> bool:
        """Returns True if the backend announced another page."""
        return self.next_cursor is not None


@dataclass
class TransientError:
    """A failed fetch that may succeed if retried with the same cursor."""

    cause: Exception


@dataclass
class FatalError:
    """A failed fetch that must not be retried."""

    cause: Exception


FetchOutcome = Union[Ok, TransientError, FatalError]


class LoopDecision(str, Enum):
    """What a controller does after a page has been applied."""

    CONTINUE = "continue"
    RETRY_SAME_CURSOR = "retry_same_cursor"
    STOP = "stop"


@dataclass
class FeedState(Generic[T]):
    """
    Snapshot of a feed for the caller.

    Attributes:
        items: Every item accepted so far, in display order
        is_loading: True while a fetch is in flight
        has_more: False once the feed is exhausted (end reached, loop detected or failed)
        last_error: Most recent error, cleared by the next successful fetch
    """

    items: list[Item[T]] = field(default_factory=list)
    is_loading: bool = False
    has_more: bool = True
    last_error: Exception | None = None
