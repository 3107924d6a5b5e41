from collections.abc import Mapping
from typing import Any

from ._logging import logger
from .config import PaginationConfig
from .controller import PaginationController
from .dedup import DedupStore
from .fetchers import SourceFetcher
from .keys import ItemKeyer
from .merger import MultiSourceMerger
from .pagination import Cursor, FeedState, Item


class FeedView:
    """
    A filterable feed such as a profile page with "likes", "provides",
    "requests" and a combined "all" tab.

    One controller per source and one merger for the combined filter share a
    single DedupStore. Switching filter invalidates everything: cursors from
    one filter are never valid for another, so every controller, the merger
    and the store are reset and results still in flight are discarded.

    Usage:
        view = FeedView({"likes": likes, "provides": provides, "requests": requests})
        await view.load_more()                 # "all": likes first, then provides, ...
        view.set_filter("provides")
        await view.load_more()
    """

    def __init__(
        self,
        fetchers: Mapping[str, SourceFetcher],
        keyers: Mapping[str, ItemKeyer] | None = None,
        config: PaginationConfig | None = None,
        combined_filter: str = "all",
        initial_filter: str | None = None,
        initial_cursors: Mapping[str, Cursor] | None = None,
    ) -> None:
        if not fetchers:
            raise ValueError("FeedView needs at least one source")
        if combined_filter in fetchers:
            raise ValueError(f"Source key '{combined_filter}' collides with the combined filter")

        keyers = keyers or {}
        self._initial_cursors = dict(initial_cursors or {})
        self.combined_filter = combined_filter
        self.dedup = DedupStore()
        self.controllers: dict[str, PaginationController[Any]] = {
            key: PaginationController(
                key,
                fetcher,
                keyer=keyers.get(key),
                dedup=self.dedup,
                config=config,
                initial_cursor=self._initial_cursors.get(key),
            )
            for key, fetcher in fetchers.items()
        }
        self.merger = MultiSourceMerger(list(self.controllers.values()), view_key=combined_filter)
        self._generation = 0
        self._filter = initial_filter or combined_filter
        self._check_filter(self._filter)
        self.merger.active = self._filter == combined_filter

    @property
    def filters(self) -> list[str]:
        return [self.combined_filter, *self.controllers]

    @property
    def active_filter(self) -> str:
        return self._filter

    @property
    def generation(self) -> int:
        return self._generation

    def _check_filter(self, name: str) -> None:
        if name != self.combined_filter and name not in self.controllers:
            raise ValueError(f"Unknown filter '{name}', expected one of {self.filters}")

    def _active(self) -> PaginationController[Any] | MultiSourceMerger:
        if self._filter == self.combined_filter:
            return self.merger
        return self.controllers[self._filter]

    def set_filter(self, name: str) -> None:
        """
        Switches the active filter and starts it from scratch.

        Setting the filter that is already active still resets it, which is
        how a caller forces a full refresh.
        """
        self._check_filter(name)
        self._generation += 1
        previous, self._filter = self._filter, name

        self.merger.reset()
        self.merger.active = name == self.combined_filter
        self.dedup.clear()
        for key, controller in self.controllers.items():
            initial = self._initial_cursors.get(key)
            if initial is not None:
                controller.reset(initial)

        logger.info(
            "Filter changed",
            extra={"previous": previous, "filter": name, "generation": self._generation},
        )

    async def load_more(self) -> list[Item[Any]]:
        generation = self._generation
        accepted = await self._active().load_more()
        if generation != self._generation:
            return []
        return accepted

    def state(self) -> FeedState[Any]:
        return self._active().state()

    def is_loading(self, name: str | None = None) -> bool:
        name = name or self._filter
        self._check_filter(name)
        if name == self.combined_filter:
            return self.merger.is_loading
        return self.controllers[name].is_loading

    def next_cursor_token(self) -> str | None:
        """
        Opaque continuation token of the active filter: the combined
        MergedCursor token for the combined filter, the source cursor
        otherwise (None once the source is exhausted).
        """
        active = self._active()
        if isinstance(active, MultiSourceMerger):
            return active.next_cursor_token()
        return active.ledger.current if active.has_more else None

    async def aclose(self) -> None:
        await self.merger.aclose()
