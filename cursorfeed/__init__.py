from .config import PaginationConfig
from .controller import PaginationController
from .cursors import MergedCursor, decode_cursor, encode_cursor
from .dedup import DedupStore, duplicate_ratio
from .dynamo import DynamoSourceFetcher
from .exceptions import (
    CursorDecodeError,
    CursorFeedError,
    FatalFetchError,
    FetchError,
    MalformedPageError,
    RetriesExhaustedError,
    TransientFetchError,
)
from .fetchers import CallableFetcher, HttpSourceFetcher, SourceFetcher
from .keys import ItemKeyer
from .ledger import CursorLedger
from .loop import LoopDetector
from .merger import MultiSourceMerger
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
from .retry import RetryPolicy, RetryState
from .view import FeedView

__all__ = [
    "PaginationController",
    "MultiSourceMerger",
    "FeedView",
    "PaginationConfig",
    # Building blocks
    "CursorLedger",
    "DedupStore",
    "duplicate_ratio",
    "ItemKeyer",
    "LoopDetector",
    "LoopDecision",
    "RetryPolicy",
    "RetryState",
    # Data
    "Cursor",
    "Item",
    "FeedState",
    "FetchOutcome",
    "Ok",
    "TransientError",
    "FatalError",
    "MergedCursor",
    "encode_cursor",
    "decode_cursor",
    # Fetchers
    "SourceFetcher",
    "CallableFetcher",
    "HttpSourceFetcher",
    "DynamoSourceFetcher",
    # Exceptions
    "CursorFeedError",
    "FetchError",
    "TransientFetchError",
    "FatalFetchError",
    "MalformedPageError",
    "CursorDecodeError",
    "RetriesExhaustedError",
]
