"""
Shared pytest fixtures and configuration for cursorfeed tests.

This module provides a scripted SourceFetcher, fast configurations for the
retry paths, record factories and a mocked boto3 client.
"""

import asyncio
from collections.abc import Iterable
from typing import Any
from unittest.mock import MagicMock

import pytest

from cursorfeed import ItemKeyer, Ok, PaginationConfig, PaginationController
from cursorfeed.pagination import Cursor, FetchOutcome


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests with mocked dependencies")
    config.addinivalue_line("markers", "integration: Integration tests against LocalStack")
    config.addinivalue_line("markers", "slow: Slow tests that may take longer")


class ScriptedFetcher:
    """
    SourceFetcher that replays a fixed list of outcomes.

    Each entry is a FetchOutcome or an exception to raise. Once the script
    runs out, every fetch returns an empty last page. Setting ``gate`` to an
    asyncio.Event holds every fetch until the event is set, which lets tests
    observe the in-flight state.
    """

    def __init__(self, script: Iterable[FetchOutcome | Exception] = ()) -> None:
        self.script: list[FetchOutcome | Exception] = list(script)
        self.calls: list[Cursor] = []
        self.gate: asyncio.Event | None = None

    def add(self, *outcomes: FetchOutcome | Exception) -> "ScriptedFetcher":
        self.script.extend(outcomes)
        return self

    async def fetch(self, cursor: Cursor) -> FetchOutcome:
        self.calls.append(cursor)
        if self.gate is not None:
            await self.gate.wait()
        if not self.script:
            return Ok(items=[], next_cursor=None)
        outcome = self.script.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def records(*ids: str) -> list[dict[str, Any]]:
    """Builds raw records with the given ids."""
    return [{"id": record_id, "title": f"Item {record_id}"} for record_id in ids]


@pytest.fixture
def make_records():
    return records


@pytest.fixture
def scripted_fetcher():
    """Returns a factory of ScriptedFetcher instances."""
    return ScriptedFetcher


@pytest.fixture
def fast_config() -> PaginationConfig:
    """Default policy with millisecond backoffs so retry paths run quickly."""
    return PaginationConfig(base_backoff_ms=1, max_backoff_ms=8, max_attempts=3)


@pytest.fixture
def manual_retry_config() -> PaginationConfig:
    """Policy that never schedules retries on its own."""
    return PaginationConfig(auto_retry=False, max_attempts=6)


@pytest.fixture
def make_controller():
    """
    Creates a PaginationController over a ScriptedFetcher.

    Usage:
        controller, fetcher = make_controller([Ok(items=records("a"), next_cursor="c1")])
    """

    def _make(
        script: Iterable[FetchOutcome | Exception] = (),
        source_key: str = "likes",
        config: PaginationConfig | None = None,
        **kwargs: Any,
    ) -> tuple[PaginationController[Any], ScriptedFetcher]:
        fetcher = ScriptedFetcher(script)
        kwargs.setdefault("keyer", ItemKeyer(primary="id"))
        controller = PaginationController(source_key, fetcher, config=config, **kwargs)
        return controller, fetcher

    return _make


@pytest.fixture
def mock_client():
    """
    Creates a fully mocked boto3 DynamoDB client.

    This fixture provides a mock client for unit tests that don't need
    real DynamoDB interactions.
    """
    return MagicMock()


@pytest.fixture
def wait_until():
    """
    Returns a coroutine function polling a predicate until it holds.

    Used to wait for retry timers scheduled on the running loop.
    """

    async def _wait(predicate, timeout: float = 2.0) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError("Condition not met before timeout")
            await asyncio.sleep(0.005)

    return _wait
