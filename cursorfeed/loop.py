from ._logging import logger, redact_cursor
from .config import DEFAULT_CONFIG, PaginationConfig
from .ledger import CursorLedger
from .pagination import Cursor, LoopDecision


class LoopDetector:
    """
    Decides whether a source may keep paginating after a page was filtered.

    Rules are evaluated in order, first match wins:

    1. Empty page and no next cursor: natural end -> STOP.
    2. Next cursor already issued: count the repeat. STOP once it reached
       ``max_repeat``; otherwise CONTINUE only if the page still brought new
       items (the backend may be replaying a window).
    3. No next cursor and nothing new -> STOP.
    4. High duplicate ratio on a meaningful sample: one more attempt is
       allowed only with a genuinely new cursor.
    5. Almost nothing new, mostly duplicates, and no fresh cursor -> STOP.
    6. CONTINUE.

    Issuing a cursor already counts as its first sighting, so with the
    default ``max_repeat`` of 2 the first echo stops the source even when the
    page brought new items. The CONTINUE branch of rule 2 only applies to a
    ``max_repeat`` of 3 or more.

    RETRY_SAME_CURSOR is never returned here; it belongs to failed fetches.
    Rule 2 mutates the ledger (repeat count); everything else is read-only.
    """

    def __init__(self, config: PaginationConfig | None = None) -> None:
        self.config = config or DEFAULT_CONFIG

    def evaluate(
        self,
        next_cursor: Cursor,
        ledger: CursorLedger,
        duplicate_ratio: float,
        accepted_count: int,
        raw_count: int,
    ) -> LoopDecision:
        decision, reason = self._evaluate(
            next_cursor, ledger, duplicate_ratio, accepted_count, raw_count
        )
        logger.debug(
            "Loop evaluation",
            extra={
                "decision": decision.value,
                "reason": reason,
                "cursor_hash": redact_cursor(next_cursor),
                "duplicate_ratio": round(duplicate_ratio, 3),
                "accepted_count": accepted_count,
                "raw_count": raw_count,
            },
        )
        return decision

    def _evaluate(
        self,
        next_cursor: Cursor,
        ledger: CursorLedger,
        duplicate_ratio: float,
        accepted_count: int,
        raw_count: int,
    ) -> tuple[LoopDecision, str]:
        cfg = self.config

        if raw_count == 0 and next_cursor is None:
            return LoopDecision.STOP, "end_of_data"

        if next_cursor is not None and ledger.is_repeated(next_cursor):
            count = ledger.record_repeat(next_cursor)
            logger.warning(
                "Backend returned an already issued cursor",
                extra={"cursor_hash": redact_cursor(next_cursor), "repeat_count": count},
            )
            if count >= cfg.max_repeat:
                return LoopDecision.STOP, "repeat_limit"
            if accepted_count > 0:
                return LoopDecision.CONTINUE, "repeated_cursor_with_new_items"
            return LoopDecision.STOP, "repeated_cursor_without_new_items"

        if next_cursor is None and accepted_count == 0:
            return LoopDecision.STOP, "end_without_new_items"

        sampled = raw_count >= cfg.min_sample_size

        if sampled and duplicate_ratio >= cfg.high_duplicate_ratio:
            if next_cursor is not None and not ledger.is_repeated(next_cursor):
                return LoopDecision.CONTINUE, "high_duplicates_new_cursor"
            return LoopDecision.STOP, "high_duplicates"

        if (
            sampled
            and accepted_count <= cfg.stall_max_accepted
            and duplicate_ratio >= cfg.stall_duplicate_ratio
            and (next_cursor is None or ledger.is_repeated(next_cursor))
        ):
            return LoopDecision.STOP, "stalled"

        return LoopDecision.CONTINUE, "new_data"
