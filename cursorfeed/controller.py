import asyncio
from collections.abc import Callable
from typing import Any, Generic, TypeVar

from ._logging import logger, redact_cursor
from .config import DEFAULT_CONFIG, PaginationConfig
from .dedup import DedupStore, duplicate_ratio
from .exceptions import FatalFetchError, RetriesExhaustedError, TransientFetchError
from .fetchers import SourceFetcher
from .keys import ItemKeyer
from .ledger import CursorLedger
from .loop import LoopDetector
from .pagination import (
    Cursor,
    FatalError,
    FeedState,
    FetchOutcome,
    Item,
    LoopDecision,
    Ok,
    TransientError,
)
from .retry import RetryPolicy

T = TypeVar("T")

PageListener = Callable[["PaginationController[Any]", list[Item[Any]]], None]


class PaginationController(Generic[T]):
    """
    Drives "load more" for a single source.

    Owns the source's CursorLedger and RetryState, filters every page through
    a DedupStore (its own, or one shared with the other sources of a view)
    and lets a LoopDetector decide when to stop.

    Concurrency:
    ------------
    At most one fetch is in flight. ``load_more()`` while a fetch is
    outstanding, or after the source is exhausted, does nothing. Every
    ``reset()`` bumps a generation counter; fetch results and retry timers
    captured under an older generation are discarded when they resolve.

    Errors never escape ``load_more()``: they end up in ``state().last_error``.

    Usage:
        controller = PaginationController("likes", fetcher, keyer=ItemKeyer(primary="imageDocId"))
        await controller.load_more()
        snapshot = controller.state()
    """

    def __init__(
        self,
        source_key: str,
        fetcher: SourceFetcher,
        keyer: ItemKeyer | None = None,
        dedup: DedupStore | None = None,
        config: PaginationConfig | None = None,
        initial_cursor: Cursor = None,
    ) -> None:
        self.source_key = source_key
        self.fetcher = fetcher
        self.keyer = keyer or ItemKeyer()
        self.dedup = dedup if dedup is not None else DedupStore()
        self.config = config or DEFAULT_CONFIG
        self.detector = LoopDetector(self.config)
        self.retry_policy = RetryPolicy.from_config(self.config)
        self.retry_state = self.retry_policy.new_state()
        self.ledger = CursorLedger()

        self._items: list[Item[T]] = []
        self._listeners: list[PageListener] = []
        self._in_flight = False
        self._exhausted = False
        self._last_error: Exception | None = None
        self._generation = 0
        self._next_group_key = 0
        self._delivered = 0
        self._retry_handle: asyncio.TimerHandle | None = None
        self._retry_tasks: set[asyncio.Task[Any]] = set()

        self._start_from(initial_cursor)

    # --- STATE ---

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def is_loading(self) -> bool:
        return self._in_flight

    @property
    def has_more(self) -> bool:
        return not self._exhausted

    @property
    def last_error(self) -> Exception | None:
        return self._last_error

    @property
    def items(self) -> list[Item[T]]:
        return list(self._items)

    @property
    def retry_pending(self) -> bool:
        return self._retry_handle is not None

    def state(self) -> FeedState[T]:
        return FeedState(
            items=list(self._items),
            is_loading=self._in_flight,
            has_more=not self._exhausted,
            last_error=self._last_error,
        )

    def subscribe(self, listener: PageListener) -> None:
        """Registers a callback invoked with every non-empty batch of accepted items."""
        self._listeners.append(listener)

    # --- OPERATIONS ---

    async def load_more(self) -> list[Item[T]]:
        """
        Fetches the next page, if allowed.

        Returns:
            The items accepted by this call (empty on a no-op, a failure,
            or a page made only of duplicates)
        """
        if self._in_flight:
            logger.debug("Fetch already in flight", extra={"source": self.source_key})
            return []
        if self._exhausted:
            logger.debug("Source exhausted", extra={"source": self.source_key})
            return []

        # A manual call supersedes a scheduled retry
        self._cancel_retry()

        generation = self._generation
        cursor = self.ledger.current
        self._in_flight = True
        try:
            outcome = await self._fetch(cursor)
        finally:
            if generation == self._generation:
                self._in_flight = False

        if generation != self._generation:
            logger.info(
                "Discarding page from a previous generation",
                extra={"source": self.source_key, "generation": generation},
            )
            return []

        if isinstance(outcome, Ok):
            return self._apply_page(cursor, outcome)
        if isinstance(outcome, FatalError):
            self._fail(outcome.cause)
            return []
        self._handle_transient(outcome.cause)
        return []

    def reset(self, new_initial_cursor: Cursor = None) -> None:
        """
        Forgets everything this controller knows: cursor history, dedup keys
        it inserted, retry counters, visible items and exhaustion.

        Any fetch still in flight, and any scheduled retry, is discarded.
        """
        self._generation += 1
        self._cancel_retry()
        self.ledger.reset()
        self.dedup.clear(owner=self.source_key)
        self.retry_state.reset(self.retry_policy)
        self._items.clear()
        self._in_flight = False
        self._exhausted = False
        self._last_error = None
        self._next_group_key = 0
        self._delivered = 0
        self._start_from(new_initial_cursor)

        logger.info(
            "Source reset",
            extra={
                "source": self.source_key,
                "generation": self._generation,
                "cursor_hash": redact_cursor(new_initial_cursor),
            },
        )

    def resume(self, cursor: str) -> bool:
        """
        Continues from a cursor supplied from outside (e.g. one the caller
        kept from an earlier response).

        The cursor is treated as a new input: it is recorded as issued, so a
        backend echoing it back is caught by the repeat detection. Resuming
        is refused when the cursor already reached the repeat limit or when
        the source stopped because of an error.

        Returns:
            True if the next load_more() will fetch from ``cursor``
        """
        if self._in_flight:
            return False
        if self._exhausted and self._last_error is not None:
            return False
        if self.ledger.repeat_count_of(cursor) >= self.config.max_repeat:
            logger.warning(
                "Refusing to resume from an exhausted cursor",
                extra={"source": self.source_key, "cursor_hash": redact_cursor(cursor)},
            )
            return False

        self._cancel_retry()
        self._start_from(cursor)
        self._exhausted = False
        logger.info(
            "Resuming source",
            extra={"source": self.source_key, "cursor_hash": redact_cursor(cursor)},
        )
        return True

    async def aclose(self) -> None:
        """Cancels a scheduled retry and waits for retry tasks already running."""
        self._cancel_retry()
        tasks = list(self._retry_tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # --- INTERNALS ---

    def _start_from(self, cursor: Cursor) -> None:
        self.ledger.end_reached = False
        self.ledger.mark_issued(cursor)
        self.ledger.advance(cursor)

    async def _fetch(self, cursor: Cursor) -> FetchOutcome:
        logger.debug(
            "Fetching page",
            extra={"source": self.source_key, "cursor_hash": redact_cursor(cursor)},
        )
        try:
            return await self.fetcher.fetch(cursor)
        except TransientFetchError as e:
            return TransientError(e)
        except FatalFetchError as e:
            return FatalError(e)
        except Exception as e:
            # Unclassified failures are never retried
            logger.exception(
                "Fetcher raised an unexpected error", extra={"source": self.source_key}
            )
            return FatalError(e)

    def _apply_page(self, cursor: Cursor, outcome: Ok) -> list[Item[T]]:
        self.retry_state.reset(self.retry_policy)
        self._last_error = None

        raw_count = len(outcome.items)
        page = self.keyer.build_items(
            outcome.items,
            source_key=self.source_key,
            start_index=self._delivered,
            group_key=self._next_group_key,
        )
        self._delivered += raw_count
        accepted: list[Item[T]] = self.dedup.filter_new_items(page, owner=self.source_key)
        ratio = duplicate_ratio(len(accepted), raw_count)

        decision = self.detector.evaluate(
            outcome.next_cursor, self.ledger, ratio, len(accepted), raw_count
        )

        if accepted:
            self._items.extend(accepted)
            self._next_group_key += 1

        if decision is LoopDecision.STOP:
            self._exhausted = True
        else:
            self.ledger.mark_issued(outcome.next_cursor)
            self.ledger.advance(outcome.next_cursor)
            if outcome.next_cursor is None:
                # Output None means "no further pages", never "start over"
                self.ledger.end_reached = True
                self._exhausted = True

        logger.info(
            "Page applied",
            extra={
                "source": self.source_key,
                "cursor_hash": redact_cursor(cursor),
                "next_cursor_hash": redact_cursor(outcome.next_cursor),
                "raw_count": raw_count,
                "accepted_count": len(accepted),
                "decision": decision.value,
                "has_more": not self._exhausted,
            },
        )

        if accepted:
            for listener in list(self._listeners):
                listener(self, list(accepted))
        return accepted

    def _handle_transient(self, cause: Exception) -> None:
        delay_ms = self.retry_state.record_failure(self.retry_policy)
        if delay_ms is None:
            self._fail(
                RetriesExhaustedError(
                    self.source_key, self.retry_state.attempt, original_error=cause
                )
            )
            return

        self._last_error = cause
        logger.warning(
            "Transient fetch failure",
            extra={
                "source": self.source_key,
                "attempt": self.retry_state.attempt,
                "max_attempts": self.retry_state.max_attempts,
                "retry_in_ms": delay_ms,
                "error": str(cause),
            },
        )
        if self.config.auto_retry:
            self._schedule_retry(delay_ms)

    def _fail(self, error: Exception) -> None:
        self._exhausted = True
        self._last_error = error
        logger.error(
            "Source stopped after an error",
            extra={"source": self.source_key, "error": str(error)},
        )

    def _schedule_retry(self, delay_ms: int) -> None:
        loop = asyncio.get_running_loop()
        self._retry_handle = loop.call_later(
            delay_ms / 1000, self._fire_retry, self._generation
        )

    def _fire_retry(self, generation: int) -> None:
        if generation != self._generation:
            return
        self._retry_handle = None
        task = asyncio.ensure_future(self.load_more())
        self._retry_tasks.add(task)
        task.add_done_callback(self._retry_tasks.discard)

    def _cancel_retry(self) -> None:
        if self._retry_handle is not None:
            self._retry_handle.cancel()
            self._retry_handle = None
