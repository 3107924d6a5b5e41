"""
SourceFetcher contract and the adapters shipped with cursorfeed.

A fetcher turns a cursor into one page. It either returns a FetchOutcome or
raises a FetchError subclass; controllers accept both styles.
"""

from collections.abc import Awaitable, Callable, Mapping, Sequence
from typing import Any, Protocol, runtime_checkable

import httpx

from ._logging import logger, redact_cursor
from .exceptions import FatalFetchError, MalformedPageError, TransientFetchError, handle_http_errors
from .pagination import Cursor, FatalError, FetchOutcome, Ok, TransientError

PageFunc = Callable[[Cursor], Awaitable[tuple[Sequence[Any], Cursor]]]


@runtime_checkable
class SourceFetcher(Protocol):
    """
    Fetches one page of a source.

    Calling twice with the same cursor may legitimately return overlapping
    records; a None next cursor means "no further pages as of this call".
    """

    async def fetch(self, cursor: Cursor) -> FetchOutcome: ...


class CallableFetcher:
    """
    Adapts a coroutine function ``fn(cursor) -> (records, next_cursor)``.

    TransientFetchError and FatalFetchError raised by ``fn`` become the
    matching outcomes; any other exception propagates to the controller.

    Usage:
        async def load_likes(cursor):
            page = await api.get_likes(next_id=cursor)
            return page.likes, page.next_id

        fetcher = CallableFetcher(load_likes)
    """

    def __init__(self, fn: PageFunc) -> None:
        self._fn = fn

    async def fetch(self, cursor: Cursor) -> FetchOutcome:
        try:
            records, next_cursor = await self._fn(cursor)
        except TransientFetchError as e:
            return TransientError(e)
        except FatalFetchError as e:
            return FatalError(e)
        return Ok(items=list(records), next_cursor=next_cursor or None)


class HttpSourceFetcher:
    """
    Fetches pages from a REST endpoint with httpx.

    The backend answers ``{"data": {"<collection>": [...], "next_id": ...}}``;
    the ``data`` envelope is optional. The cursor travels in the ``next_id``
    query parameter and is omitted for the first page.

    Args:
        client: Shared httpx.AsyncClient (base_url, auth headers, timeouts)
        url: Endpoint path or absolute URL
        collection: Name of the list field in the page ("likes", "provides", ...)
        params: Extra query parameters sent with every request
        cursor_param: Query parameter carrying the cursor
        next_field: Response field holding the next cursor
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        url: str,
        collection: str,
        params: Mapping[str, Any] | None = None,
        cursor_param: str = "next_id",
        next_field: str = "next_id",
    ) -> None:
        self.client = client
        self.url = url
        self.collection = collection
        self.params = dict(params or {})
        self.cursor_param = cursor_param
        self.next_field = next_field

    async def fetch(self, cursor: Cursor) -> FetchOutcome:
        params = dict(self.params)
        if cursor is not None:
            params[self.cursor_param] = cursor

        logger.debug(
            "Requesting page",
            extra={
                "url": self.url,
                "collection": self.collection,
                "cursor_hash": redact_cursor(cursor),
            },
        )

        try:
            with handle_http_errors(url=self.url):
                response = await self.client.get(self.url, params=params)
                response.raise_for_status()
            return self._parse(response)
        except TransientFetchError as e:
            return TransientError(e)
        except FatalFetchError as e:
            return FatalError(e)

    def _parse(self, response: httpx.Response) -> Ok:
        try:
            body = response.json()
        except ValueError as e:
            raise MalformedPageError(
                f"GET {self.url} returned a non-JSON body", original_error=e
            ) from e

        page = body.get("data", body) if isinstance(body, dict) else None
        if not isinstance(page, dict):
            raise MalformedPageError(f"GET {self.url} returned an unexpected body", payload=body)

        records = page.get(self.collection)
        if records is None:
            records = []
        if not isinstance(records, list):
            raise MalformedPageError(
                f"Field '{self.collection}' of GET {self.url} is not a list", payload=body
            )

        next_cursor = page.get(self.next_field)
        if next_cursor is not None and not isinstance(next_cursor, (str, int)):
            raise MalformedPageError(
                f"Field '{self.next_field}' of GET {self.url} is not a cursor", payload=body
            )
        # Some endpoints send "" instead of null on the last page
        if next_cursor == "":
            next_cursor = None
        return Ok(items=records, next_cursor=None if next_cursor is None else str(next_cursor))
