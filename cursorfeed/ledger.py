from dataclasses import dataclass, field

from .pagination import Cursor


@dataclass
class CursorLedger:
    """
    Cursor history of one source.

    ``current`` is always an *input* cursor: the one the next fetch will be
    issued with (None = from the beginning). A None *output* cursor is never
    stored there; it sets ``end_reached`` instead.

    Invariant: repeat_count[c] > 0 implies c in issued.
    """

    current: Cursor = None
    issued: set[str] = field(default_factory=set)
    repeat_count: dict[str, int] = field(default_factory=dict)
    end_reached: bool = False

    def mark_issued(self, cursor: Cursor) -> None:
        """Records that ``cursor`` is about to be used as a fetch input."""
        if cursor is None:
            return
        self.issued.add(cursor)
        self.repeat_count[cursor] = self.repeat_count.get(cursor, 0) + 1

    def is_repeated(self, cursor: Cursor) -> bool:
        return cursor is not None and cursor in self.issued

    def repeat_count_of(self, cursor: Cursor) -> int:
        if cursor is None:
            return 0
        return self.repeat_count.get(cursor, 0)

    def record_repeat(self, cursor: str) -> int:
        """
        Counts one more sighting of an already issued cursor.

        Returns:
            The updated repeat count

        Raises:
            KeyError: If the cursor was never issued
        """
        if cursor not in self.issued:
            raise KeyError(cursor)
        self.repeat_count[cursor] = self.repeat_count.get(cursor, 0) + 1
        return self.repeat_count[cursor]

    def advance(self, next_cursor: Cursor) -> None:
        self.current = next_cursor

    def reset(self) -> None:
        """Forgets the whole history. Used when the caller switches filter or view."""
        self.current = None
        self.issued.clear()
        self.repeat_count.clear()
        self.end_reached = False
