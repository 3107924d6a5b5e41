from collections.abc import Generator
from contextlib import contextmanager

import httpx
from botocore.exceptions import BotoCoreError, ClientError, ReadTimeoutError
from botocore.exceptions import ConnectionError as BotoConnectionError


class CursorFeedError(Exception):
    """Base exception for all cursorfeed errors."""

    def __init__(self, message: str, original_error: Exception | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.original_error = original_error


class FetchError(CursorFeedError):
    """Raised by a SourceFetcher when a page could not be fetched."""

    retryable: bool = False


class TransientFetchError(FetchError):
    """Network, timeout or server-side failure. The same cursor may be retried."""

    retryable = True


class FatalFetchError(FetchError):
    """Failure that retrying cannot fix (bad request, auth, malformed response)."""

    retryable = False


class MalformedPageError(FatalFetchError):
    """Raised when a backend response does not have the expected page shape."""

    def __init__(
        self, message: str, payload: object | None = None, original_error: Exception | None = None
    ) -> None:
        super().__init__(message, original_error)
        self.payload = payload


class CursorDecodeError(FatalFetchError):
    """Raised when an opaque cursor token cannot be decoded."""

    def __init__(self, token: str, original_error: Exception | None = None) -> None:
        super().__init__("Invalid pagination cursor", original_error)
        self.token = token


class RetriesExhaustedError(CursorFeedError):
    """Surfaced when a source keeps failing transiently after the last allowed attempt."""

    def __init__(
        self, source_key: str, attempts: int, original_error: Exception | None = None
    ) -> None:
        super().__init__(
            f"Source '{source_key}' failed after {attempts} attempts", original_error
        )
        self.source_key = source_key
        self.attempts = attempts


# DynamoDB error codes that are worth retrying with the same ExclusiveStartKey
_TRANSIENT_DYNAMO_CODES = frozenset(
    {
        "ProvisionedThroughputExceededException",
        "ThrottlingException",
        "RequestLimitExceeded",
        "InternalServerError",
        "ServiceUnavailable",
        "RequestTimeout",
        "RequestTimeoutException",
        "TransactionConflictException",
    }
)

# HTTP statuses that are worth retrying: timeouts, rate limits and 5xx
_TRANSIENT_HTTP_STATUSES = frozenset({408, 425, 429})


@contextmanager
def handle_dynamo_errors(table_name: str | None = None) -> Generator[None, None, None]:
    """
    Context manager that catches botocore errors raised while reading a page
    and raises the appropriate FetchError subclass.

    Args:
        table_name: Optional table name for better error messages

    Usage:
        with handle_dynamo_errors(table_name="likes"):
            client.query(...)
    """
    try:
        yield
    except ClientError as e:
        error_code = e.response.get("Error", {}).get("Code", "Unknown")
        error_message = e.response.get("Error", {}).get("Message", str(e))
        message = f"DynamoDB error on '{table_name or 'unknown'}' ({error_code}): {error_message}"

        if error_code in _TRANSIENT_DYNAMO_CODES:
            raise TransientFetchError(message, original_error=e) from e

        if error_code in ("ValidationException", "SerializationException"):
            raise MalformedPageError(message, original_error=e) from e

        # ResourceNotFound, AccessDenied, UnrecognizedClient and anything unknown
        raise FatalFetchError(message, original_error=e) from e
    except (BotoConnectionError, ReadTimeoutError) as e:
        raise TransientFetchError(
            f"Could not reach DynamoDB table '{table_name or 'unknown'}': {e}", original_error=e
        ) from e
    except BotoCoreError as e:
        raise FatalFetchError(f"DynamoDB client error: {e}", original_error=e) from e


@contextmanager
def handle_http_errors(url: str | None = None) -> Generator[None, None, None]:
    """
    Context manager that translates httpx failures into FetchError subclasses.

    Timeouts, transport failures, 5xx and rate limiting are transient;
    every other 4xx (including 401/403) is fatal.
    """
    try:
        yield
    except httpx.HTTPStatusError as e:
        status = e.response.status_code
        message = f"GET {url or e.request.url} returned HTTP {status}"
        if status >= 500 or status in _TRANSIENT_HTTP_STATUSES:
            raise TransientFetchError(message, original_error=e) from e
        raise FatalFetchError(message, original_error=e) from e
    except httpx.TimeoutException as e:
        raise TransientFetchError(f"GET {url} timed out", original_error=e) from e
    except httpx.TransportError as e:
        raise TransientFetchError(f"GET {url} failed: {e}", original_error=e) from e
