"""Unit tests for the AI query service.

Uses mongomock-motor for storage and a mocked completion client.
"""

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, patch
from uuid import uuid4

import pytest
from pymongo.errors import PyMongoError

from bookkeeper.api.exceptions import ScopeNotFoundError
from bookkeeper.llm import AI_ANSWER_JSON_SCHEMA, AiAnswer, CompletionResult, LLMError, set_client
from bookkeeper.models.ai import AiQueryRequest
from bookkeeper.services import ai_service, notes_service
from bookkeeper.services.ai_service import (
    NO_NOTES_CONTEXT,
    build_notes_context,
    classify_error_source,
    query_ai,
)
from bookkeeper.services.prompts import EN_SYSTEM_PROMPT, PL_SYSTEM_PROMPT

BASE_TIME = datetime(2024, 1, 1, tzinfo=UTC)


def _fake_client(answer: AiAnswer | None = None, error: Exception | None = None) -> AsyncMock:
    client = AsyncMock()
    if error is not None:
        client.complete.side_effect = error
    else:
        client.complete.return_value = CompletionResult(
            data=answer or AiAnswer(text="You wrote about habits.", low_confidence=False),
            raw_text="{}",
            model="openai/gpt-4o-mini",
        )
    return client


async def _insert_note(db, note_id: str, content: str, chapter_id: str = "ch-1", minutes: int = 0, **fields):
    await db["notes"].insert_one(
        {
            "_id": note_id,
            "chapter_id": chapter_id,
            "content": content,
            "created_at": BASE_TIME + timedelta(minutes=minutes),
            **fields,
        }
    )


def _sent_kwargs(client: AsyncMock) -> dict:
    return client.complete.await_args.kwargs


class TestBuildNotesContext:
    """Tests for build_notes_context function."""

    def test_empty(self):
        """Test placeholder text when there are no notes."""
        assert build_notes_context([]) == NO_NOTES_CONTEXT

    def test_grouped_by_chapter_in_first_seen_order(self):
        """Test that notes are grouped per chapter and numbered globally."""
        notes = [
            {"id": "a", "chapter_id": "c1", "content": "first"},
            {"id": "b", "chapter_id": "c2", "content": "second"},
            {"id": "c", "chapter_id": "c1", "content": "third"},
        ]

        context = build_notes_context(notes)

        assert context == (
            "[Note 1] (ID: a)\nfirst\n\n"
            "[Note 2] (ID: c)\nthird\n\n"
            "[Note 3] (ID: b)\nsecond\n"
        )


class TestClassifyErrorSource:
    """Tests for classify_error_source function."""

    def test_sources(self):
        assert classify_error_source(LLMError.timeout(60)) == "llm"
        assert classify_error_source(PyMongoError("down")) == "database"
        assert classify_error_source(ScopeNotFoundError("book", "x")) == "unknown"
        assert classify_error_source(ValueError("x")) == "unknown"


class TestNotesService:
    """Tests for scope checks and note listing."""

    @pytest.mark.asyncio
    async def test_list_notes_oldest_first(self, mock_db):
        """Test that notes come back in creation order."""
        await _insert_note(mock_db, "late", "later", minutes=10)
        await _insert_note(mock_db, "early", "earlier", minutes=1)

        notes = await notes_service.list_notes(AiQueryRequest(query_text="q").scope)

        assert [n["id"] for n in notes] == ["early", "late"]
        assert notes[0] == {"id": "early", "chapter_id": "ch-1", "content": "earlier"}

    @pytest.mark.asyncio
    async def test_list_notes_respects_limit(self, mock_db):
        """Test that the note limit caps the context size."""
        for i in range(5):
            await _insert_note(mock_db, f"n{i}", f"note {i}", minutes=i)

        notes = await notes_service.list_notes(AiQueryRequest(query_text="q").scope, limit=3)

        assert [n["id"] for n in notes] == ["n0", "n1", "n2"]

    @pytest.mark.asyncio
    async def test_verify_scope_missing_series(self, mock_db):
        """Test that an unknown series raises ScopeNotFoundError."""
        series_id = uuid4()
        scope = AiQueryRequest(query_text="q", scope={"series_id": str(series_id)}).scope

        with pytest.raises(ScopeNotFoundError) as exc_info:
            await notes_service.verify_scope(scope)

        assert exc_info.value.resource == "series"
        assert str(exc_info.value) == f"Series with ID '{series_id}' not found"


class TestQueryAi:
    """Tests for query_ai function."""

    @pytest.mark.asyncio
    async def test_answers_with_all_notes(self, mock_db):
        """Test unscoped query uses every note and returns the answer."""
        await _insert_note(mock_db, "n1", "Habits compound over time.")
        await _insert_note(mock_db, "n2", "Start with two minutes.", chapter_id="ch-2", minutes=1)
        client = _fake_client()

        response = await query_ai(AiQueryRequest(query_text="  What about habits?  "), client=client)

        assert response.answer.text == "You wrote about habits."
        assert response.answer.low_confidence is False
        assert response.usage.model == "openai/gpt-4o-mini"
        assert response.usage.latency_ms >= 0

        kwargs = _sent_kwargs(client)
        assert kwargs["system"] == EN_SYSTEM_PROMPT
        assert "[Note 1] (ID: n1)\nHabits compound over time." in kwargs["user"]
        assert "[Note 2] (ID: n2)" in kwargs["user"]
        assert "User's question: What about habits?" in kwargs["user"]
        assert kwargs["json_schema"] == AI_ANSWER_JSON_SCHEMA
        assert kwargs["output_type"] is AiAnswer
        assert kwargs["schema_name"] == "AiAnswer"
        assert kwargs["parameters"] == {"max_tokens": 800}

    @pytest.mark.asyncio
    async def test_logs_query(self, mock_db):
        """Test that every query is recorded in search_logs."""
        await query_ai(AiQueryRequest(query_text="What did I read?"), client=_fake_client())

        logs = await mock_db["search_logs"].find({}).to_list(length=None)
        assert len(logs) == 1
        assert logs[0]["query_text"] == "What did I read?"
        assert "created_at" in logs[0]

    @pytest.mark.asyncio
    async def test_book_scope_filters_notes(self, mock_db):
        """Test that a book scope only sends that book's notes."""
        book_id, other_id = str(uuid4()), str(uuid4())
        await mock_db["books"].insert_one({"_id": book_id, "title": "Atomic Habits"})
        await _insert_note(mock_db, "mine", "In scope.", book_id=book_id)
        await _insert_note(mock_db, "other", "Out of scope.", book_id=other_id, minutes=1)
        client = _fake_client()

        await query_ai(AiQueryRequest(query_text="q", scope={"book_id": book_id}), client=client)

        user_prompt = _sent_kwargs(client)["user"]
        assert "In scope." in user_prompt
        assert "Out of scope." not in user_prompt

    @pytest.mark.asyncio
    async def test_series_scope_filters_notes(self, mock_db):
        """Test that a series scope only sends that series' notes."""
        series_id = str(uuid4())
        await mock_db["series"].insert_one({"_id": series_id, "name": "Dune"})
        await _insert_note(mock_db, "s1", "Spice must flow.", series_id=series_id)
        await _insert_note(mock_db, "x1", "Unrelated.", minutes=1)
        client = _fake_client()

        await query_ai(AiQueryRequest(query_text="q", scope={"series_id": series_id}), client=client)

        user_prompt = _sent_kwargs(client)["user"]
        assert "Spice must flow." in user_prompt
        assert "Unrelated." not in user_prompt

    @pytest.mark.asyncio
    async def test_no_notes_placeholder(self, mock_db):
        """Test that an empty scope still asks the model with a placeholder."""
        client = _fake_client(AiAnswer(text="I don't know.", low_confidence=True))

        response = await query_ai(AiQueryRequest(query_text="q"), client=client)

        assert NO_NOTES_CONTEXT in _sent_kwargs(client)["user"]
        assert response.answer.low_confidence is True

    @pytest.mark.asyncio
    async def test_polish_locale(self, mock_db):
        """Test that the pl locale selects Polish prompts."""
        client = _fake_client()

        await query_ai(AiQueryRequest(query_text="Co czytałem?"), locale="pl", client=client)

        assert _sent_kwargs(client)["system"] == PL_SYSTEM_PROMPT

    @pytest.mark.asyncio
    async def test_uses_shared_client_by_default(self, mock_db):
        """Test fallback to the module-level completion client."""
        client = _fake_client()
        set_client(client)

        await query_ai(AiQueryRequest(query_text="q"))

        client.complete.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_missing_book_records_error(self, mock_db):
        """Test that a missing book fails before calling the model."""
        book_id = str(uuid4())
        client = _fake_client()

        with pytest.raises(ScopeNotFoundError):
            await query_ai(AiQueryRequest(query_text="q", scope={"book_id": book_id}), client=client)

        client.complete.assert_not_awaited()
        errors = await mock_db["search_errors"].find({}).to_list(length=None)
        assert len(errors) == 1
        assert errors[0]["source"] == "unknown"
        assert errors[0]["error_message"] == f"Book with ID '{book_id}' not found"

    @pytest.mark.asyncio
    async def test_llm_error_recorded_and_reraised(self, mock_db):
        """Test that completion failures are logged with the llm source."""
        error = LLMError.rate_limit(retry_after=5)
        client = _fake_client(error=error)

        with pytest.raises(LLMError) as exc_info:
            await query_ai(AiQueryRequest(query_text="q"), client=client)

        assert exc_info.value is error
        log = await mock_db["search_logs"].find_one({})
        errors = await mock_db["search_errors"].find({}).to_list(length=None)
        assert len(errors) == 1
        assert errors[0]["source"] == "llm"
        assert errors[0]["search_log_id"] == str(log["_id"])
        assert "Rate limit exceeded." in errors[0]["error_message"]

    @pytest.mark.asyncio
    async def test_unexpected_error_stores_type_only(self, mock_db):
        """Test that unknown exceptions are recorded by type name."""
        client = _fake_client(error=RuntimeError("private details"))

        with pytest.raises(RuntimeError):
            await query_ai(AiQueryRequest(query_text="q"), client=client)

        errors = await mock_db["search_errors"].find({}).to_list(length=None)
        assert errors[0]["source"] == "unknown"
        assert errors[0]["error_message"] == "RuntimeError"

    @pytest.mark.asyncio
    async def test_error_message_truncated(self, mock_db):
        """Test that stored error messages are capped at 500 characters."""
        client = _fake_client(error=LLMError.upstream("x" * 2000))

        with pytest.raises(LLMError):
            await query_ai(AiQueryRequest(query_text="q"), client=client)

        errors = await mock_db["search_errors"].find({}).to_list(length=None)
        assert len(errors[0]["error_message"]) == 500

    @pytest.mark.asyncio
    async def test_search_log_failure_tolerated(self, mock_db):
        """Test that a failing query log does not block the answer."""
        with patch.object(
            ai_service.search_log_service,
            "create_search_log",
            AsyncMock(side_effect=PyMongoError("down")),
        ):
            response = await query_ai(AiQueryRequest(query_text="q"), client=_fake_client())

        assert response.answer.text == "You wrote about habits."

    @pytest.mark.asyncio
    async def test_error_record_failure_keeps_raised_error(self, mock_db):
        """Test that the query error still surfaces when the error record cannot be stored."""
        error = LLMError.timeout(60)
        client = _fake_client(error=error)

        with patch(
            "bookkeeper.services.search_log_service.get_database",
            AsyncMock(side_effect=PyMongoError("down")),
        ):
            with pytest.raises(LLMError) as exc_info:
                await query_ai(AiQueryRequest(query_text="q"), client=client)

        assert exc_info.value is error
