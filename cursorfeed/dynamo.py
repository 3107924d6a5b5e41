import asyncio
from typing import Any

import boto3

from ._logging import logger, redact_cursor
from .exceptions import FatalFetchError, TransientFetchError, handle_dynamo_errors
from .pagination import Cursor, FatalError, FetchOutcome, Ok, TransientError
from .serializer import DynamoSerializer


class DynamoSourceFetcher:
    """
    Pages through a DynamoDB partition, one Query per page.

    The LastEvaluatedKey of each response becomes an opaque cursor token;
    passing that token back sets ExclusiveStartKey. Boto3 is blocking, so
    the request runs in a worker thread and the event loop stays free.

    Args:
        table_name: DynamoDB table
        pk_name: Partition key attribute (of the table or of ``index_name``)
        pk_value: Partition to read, e.g. the user id of a "likes" feed
        client: Boto3 DynamoDB client (a default client is created if omitted)
        index_name: Optional GSI to query instead of the table
        limit: Page size (DynamoDB "Limit")
        scan_forward: False for newest-first when the sort key is a timestamp

    Usage:
        likes = DynamoSourceFetcher("user_likes", "user_id", "u-42", limit=20, scan_forward=False)
        controller = PaginationController("likes", likes, keyer=ItemKeyer(primary="image_doc_id"))
    """

    _serializer = DynamoSerializer()

    def __init__(
        self,
        table_name: str,
        pk_name: str,
        pk_value: Any,
        client: Any | None = None,
        index_name: str | None = None,
        limit: int | None = None,
        scan_forward: bool = True,
    ) -> None:
        self.table_name = table_name
        self.pk_name = pk_name
        self.pk_value = pk_value
        self.client = client if client is not None else boto3.client("dynamodb")
        self.index_name = index_name
        self.limit = limit
        self.scan_forward = scan_forward

    def _build_kwargs(self, cursor: Cursor) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "TableName": self.table_name,
            "KeyConditionExpression": "#pk = :pk",
            "ExpressionAttributeNames": {"#pk": self.pk_name},
            "ExpressionAttributeValues": {":pk": self._serializer.to_dynamo_value(self.pk_value)},
            "ScanIndexForward": self.scan_forward,
        }
        if self.limit:
            kwargs["Limit"] = self.limit
        if self.index_name:
            kwargs["IndexName"] = self.index_name
        if cursor is not None:
            kwargs["ExclusiveStartKey"] = self._serializer.deserialize_cursor(cursor)
        return kwargs

    def fetch_page(self, cursor: Cursor) -> Ok:
        """
        Executes a single Query synchronously.

        Raises:
            TransientFetchError: Throttling, timeouts, service errors
            FatalFetchError: Missing table, access denied, invalid cursor
        """
        kwargs = self._build_kwargs(cursor)

        logger.info(
            "Executing query page",
            extra={
                "table": self.table_name,
                "index": self.index_name,
                "limit": self.limit,
                "cursor_hash": redact_cursor(cursor),
            },
        )

        with handle_dynamo_errors(table_name=self.table_name):
            response = self.client.query(**kwargs)

        records = [self._serializer.from_dynamo(item) for item in response.get("Items", [])]
        raw_key = response.get("LastEvaluatedKey")
        next_cursor = self._serializer.serialize_cursor(raw_key) if raw_key else None
        return Ok(items=records, next_cursor=next_cursor)

    async def fetch(self, cursor: Cursor) -> FetchOutcome:
        try:
            return await asyncio.to_thread(self.fetch_page, cursor)
        except TransientFetchError as e:
            return TransientError(e)
        except FatalFetchError as e:
            return FatalError(e)
