"""
Fixtures for integration tests against LocalStack.

Every test in this package is skipped when LocalStack is not reachable.
"""

import os
from collections.abc import Iterator
from typing import Any

import boto3
import pytest
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

FEED_TABLE = "cursorfeed_feeds"


class LocalStackHelper:
    """
    Helper class for managing LocalStack resources in integration tests.

    Provides methods for creating the feed table, seeding feed records and
    cleaning up between tests.
    """

    def __init__(self, client: Any) -> None:
        self.client = client

    def create_table(self, table_name: str, pk_name: str, sk_name: str) -> None:
        """Create a table with a string partition key and a numeric sort key."""
        try:
            self.client.create_table(
                TableName=table_name,
                KeySchema=[
                    {"AttributeName": pk_name, "KeyType": "HASH"},
                    {"AttributeName": sk_name, "KeyType": "RANGE"},
                ],
                AttributeDefinitions=[
                    {"AttributeName": pk_name, "AttributeType": "S"},
                    {"AttributeName": sk_name, "AttributeType": "N"},
                ],
                ProvisionedThroughput={"ReadCapacityUnits": 5, "WriteCapacityUnits": 5},
            )
        except ClientError as e:
            if e.response["Error"]["Code"] != "ResourceInUseException":
                raise
        # Wait for table to be active
        self.client.get_waiter("table_exists").wait(TableName=table_name)

    def put_items(self, table_name: str, items: list[dict[str, Any]]) -> None:
        """Put items given in DynamoDB JSON format."""
        for item in items:
            self.client.put_item(TableName=table_name, Item=item)

    def clear_table(self, table_name: str, pk_name: str, sk_name: str) -> None:
        """Delete all items from a table."""
        paginator = self.client.get_paginator("scan")
        for page in paginator.paginate(TableName=table_name):
            for item in page["Items"]:
                self.client.delete_item(
                    TableName=table_name, Key={pk_name: item[pk_name], sk_name: item[sk_name]}
                )


def feed_record(feed: str, position: int, image_doc_id: str) -> dict[str, Any]:
    """One feed entry in DynamoDB JSON format."""
    return {
        "feed_id": {"S": feed},
        "created_at": {"N": str(1_700_000_000 + position)},
        "image_doc_id": {"S": image_doc_id},
        "title": {"S": f"Entry {position} of {feed}"},
    }


@pytest.fixture(scope="session")
def localstack_endpoint() -> str:
    """Get LocalStack endpoint URL from environment or default."""
    return os.getenv("LOCALSTACK_ENDPOINT", "http://localhost:4566")


@pytest.fixture(scope="session")
def localstack_client(localstack_endpoint: str):
    """
    Creates a boto3 client connected to LocalStack.

    This fixture is session-scoped to avoid creating multiple clients.
    """
    client = boto3.client(
        "dynamodb",
        endpoint_url=localstack_endpoint,
        region_name="eu-south-1",
        aws_access_key_id="test",
        aws_secret_access_key="test",
        config=Config(connect_timeout=2, read_timeout=5, retries={"max_attempts": 1}),
    )
    try:
        client.list_tables(Limit=1)
    except (BotoCoreError, ClientError) as e:
        pytest.skip(f"LocalStack is not reachable at {localstack_endpoint}: {e}")
    return client


@pytest.fixture(scope="session")
def localstack_helper(localstack_client) -> LocalStackHelper:
    return LocalStackHelper(localstack_client)


@pytest.fixture
def feed_table(localstack_helper) -> Iterator[LocalStackHelper]:
    """
    Creates the feed table and cleans it before and after each test.

    Records are keyed by ``feed_id`` (e.g. "likes#u-1") and ``created_at``.
    """
    localstack_helper.create_table(FEED_TABLE, "feed_id", "created_at")
    localstack_helper.clear_table(FEED_TABLE, "feed_id", "created_at")

    yield localstack_helper

    localstack_helper.clear_table(FEED_TABLE, "feed_id", "created_at")


@pytest.fixture
def seed_feed(feed_table):
    """
    Seeds a feed with records whose image ids are given in order.

    Usage:
        seed_feed("likes#u-1", ["img-1", "img-2"])
    """

    def _seed(feed: str, image_doc_ids: list[str]) -> None:
        feed_table.put_items(
            FEED_TABLE,
            [feed_record(feed, i, image_doc_id) for i, image_doc_id in enumerate(image_doc_ids)],
        )

    return _seed
