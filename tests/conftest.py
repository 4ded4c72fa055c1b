"""Pytest fixtures for testing."""

import json
from collections.abc import AsyncGenerator, Callable
from typing import Any

import httpx
import pytest
import pytest_asyncio
from mongomock_motor import AsyncMongoMockClient

from bookkeeper.db import mongo
from bookkeeper.llm import client as llm_client


@pytest_asyncio.fixture
async def mock_db() -> AsyncGenerator[Any, None]:
    """Provide a mock MongoDB database for testing."""
    mock_client = AsyncMongoMockClient()
    mock_database = mock_client[mongo.DATABASE_NAME]

    # Replace the real client with mock
    mongo.set_client(mock_client)

    yield mock_database

    # Cleanup
    mongo.set_client(None)


@pytest.fixture(autouse=True)
def reset_llm_client() -> Any:
    """Make sure no shared completion client leaks between tests."""
    llm_client.set_client(None)
    yield
    llm_client.set_client(None)


def _completion_body(
    content: str = '{"text": "An answer", "low_confidence": false}',
    model: str = "openai/gpt-4o-mini",
    usage: dict[str, int] | None = None,
    completion_id: str = "gen-123",
) -> dict[str, Any]:
    """Chat completions response body."""
    body: dict[str, Any] = {
        "id": completion_id,
        "model": model,
        "choices": [
            {
                "index": 0,
                "message": {"role": "assistant", "content": content},
                "finish_reason": "stop",
            }
        ],
    }
    if usage is not None:
        body["usage"] = usage
    return body


class RecordingHandler:
    """httpx.MockTransport handler replaying scripted responses.

    Each script item is an ``httpx.Response`` or an exception to raise.
    Requests are recorded for assertions.
    """

    def __init__(self, script: list[httpx.Response | Exception]):
        self._script = list(script)
        self.requests: list[httpx.Request] = []

    @property
    def call_count(self) -> int:
        return len(self.requests)

    def json_bodies(self) -> list[dict[str, Any]]:
        return [json.loads(request.content) for request in self.requests]

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        assert self._script, "unexpected extra request"
        item = self._script.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


@pytest.fixture
def completion_body() -> Callable[..., dict[str, Any]]:
    """Builder for chat completions response bodies."""
    return _completion_body


@pytest.fixture
def mock_llm_http() -> Callable[[list[httpx.Response | Exception]], tuple[RecordingHandler, httpx.AsyncClient]]:
    """Factory returning a scripted handler and an httpx client routed to it."""

    def _make(script: list[httpx.Response | Exception]) -> tuple[RecordingHandler, httpx.AsyncClient]:
        handler = RecordingHandler(script)
        return handler, httpx.AsyncClient(transport=httpx.MockTransport(handler))

    return _make
