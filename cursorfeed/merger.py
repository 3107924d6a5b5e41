from collections.abc import Sequence
from typing import Any

from ._logging import logger
from .controller import PaginationController
from .cursors import MergedCursor
from .pagination import FeedState, Item


class MultiSourceMerger:
    """
    Combines several sources into one feed ("all").

    Merge policy: strict priority order with exhaustion fallthrough. Each
    ``load_more()`` advances the first source, in the order given, that still
    has pages. Items are appended in the order they are accepted, including
    items delivered by a source's own retry timer.

    The merger never touches a ledger itself; advancing one source leaves the
    others exactly as they were. Sources should share one DedupStore so that
    a record reachable from two endpoints is shown once.

    While ``active`` is False (another filter of the same view is showing
    the sources) delivered items are not collected.
    """

    def __init__(
        self, controllers: Sequence[PaginationController[Any]], view_key: str = "all"
    ) -> None:
        if not controllers:
            raise ValueError("MultiSourceMerger needs at least one source")
        keys = [c.source_key for c in controllers]
        if len(set(keys)) != len(keys):
            raise ValueError(f"Duplicate source keys in merged view: {keys}")

        self.view_key = view_key
        self.controllers: list[PaginationController[Any]] = list(controllers)
        self._items: list[Item[Any]] = []
        self._in_flight = False
        self._generation = 0
        self._error_source: PaginationController[Any] | None = None
        self.active = True

        for controller in self.controllers:
            controller.subscribe(self._on_items)

    def controller(self, source_key: str) -> PaginationController[Any]:
        for controller in self.controllers:
            if controller.source_key == source_key:
                return controller
        raise KeyError(source_key)

    # --- STATE ---

    @property
    def is_loading(self) -> bool:
        return self._in_flight or any(c.is_loading for c in self.controllers)

    @property
    def has_more(self) -> bool:
        return any(c.has_more for c in self.controllers)

    @property
    def last_error(self) -> Exception | None:
        """
        Error of the source advanced last.

        It follows that source (a scheduled retry that succeeds clears it)
        and is dropped as soon as another source is advanced successfully.
        """
        if self._error_source is None:
            return None
        return self._error_source.last_error

    def state(self) -> FeedState[Any]:
        return FeedState(
            items=list(self._items),
            is_loading=self.is_loading,
            has_more=self.has_more,
            last_error=self.last_error,
        )

    def next_cursor(self) -> MergedCursor:
        return MergedCursor(
            per_source={c.source_key: c.ledger.current for c in self.controllers},
            exhausted=[c.source_key for c in self.controllers if not c.has_more],
        )

    def next_cursor_token(self) -> str:
        """The combined cursor as one opaque string, for callers that need a single token."""
        return self.next_cursor().to_token()

    # --- OPERATIONS ---

    def _next_source(self) -> PaginationController[Any] | None:
        for controller in self.controllers:
            if controller.has_more:
                return controller
        return None

    async def load_more(self) -> list[Item[Any]]:
        """
        Advances the highest-priority source that is not exhausted.

        Returns:
            The items accepted by this call
        """
        if self._in_flight:
            logger.debug("Merged fetch already in flight", extra={"view": self.view_key})
            return []

        controller = self._next_source()
        if controller is None:
            logger.debug("All sources exhausted", extra={"view": self.view_key})
            return []

        generation = self._generation
        self._in_flight = True
        try:
            accepted = await controller.load_more()
        finally:
            if generation == self._generation:
                self._in_flight = False

        if generation != self._generation:
            return []

        self._error_source = controller
        logger.info(
            "Merged view advanced",
            extra={
                "view": self.view_key,
                "source": controller.source_key,
                "accepted_count": len(accepted),
                "has_more": self.has_more,
            },
        )
        return accepted

    def reset(self) -> None:
        """Resets every source and drops the combined item list."""
        self._generation += 1
        self._in_flight = False
        self._items.clear()
        self._error_source = None
        for controller in self.controllers:
            controller.reset()
        logger.info("Merged view reset", extra={"view": self.view_key})

    async def aclose(self) -> None:
        for controller in self.controllers:
            await controller.aclose()

    def _on_items(self, controller: PaginationController[Any], items: list[Item[Any]]) -> None:
        if self.active:
            self._items.extend(items)
