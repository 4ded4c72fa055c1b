"""AI query service.

Answers a question about the user's reading notes:
- Logs the query
- Verifies the requested scope (book or series)
- Builds note context and locale-specific prompts
- Calls the structured completion client
- Records a search error for any failure, then re-raises
"""

import logging
import time

from pymongo.errors import PyMongoError

from bookkeeper.api.exceptions import ScopeNotFoundError
from bookkeeper.llm import (
    AI_ANSWER_JSON_SCHEMA,
    AI_ANSWER_SCHEMA_NAME,
    AiAnswer,
    CompletionClient,
    LLMError,
    get_client,
)
from bookkeeper.models.ai import AiQueryRequest, AiQueryResponse, AiQueryUsage, ErrorSource
from bookkeeper.services import notes_service, search_log_service
from bookkeeper.services.prompts import build_ai_prompts

logger = logging.getLogger(__name__)

NO_NOTES_CONTEXT = "No notes available for this query scope."

# Token budget for AI query answers
AI_QUERY_MAX_TOKENS = 800


def build_notes_context(notes: list[dict]) -> str:
    """Format notes for the prompt, grouped by chapter.

    Chapters appear in order of their first note; notes are numbered
    across the whole context.
    """
    if not notes:
        return NO_NOTES_CONTEXT

    by_chapter: dict[str, list[dict]] = {}
    for note in notes:
        by_chapter.setdefault(note["chapter_id"], []).append(note)

    parts: list[str] = []
    note_index = 1
    for chapter_notes in by_chapter.values():
        for note in chapter_notes:
            parts.append(f"[Note {note_index}] (ID: {note['id']})")
            parts.append(note["content"])
            parts.append("")
            note_index += 1

    return "\n".join(parts)


def classify_error_source(error: BaseException) -> ErrorSource:
    """Coarse origin of a failure for search error records."""
    if isinstance(error, LLMError):
        return "llm"
    if isinstance(error, PyMongoError):
        return "database"
    return "unknown"


def _describe_error(error: BaseException) -> str:
    if isinstance(error, (LLMError, ScopeNotFoundError)):
        return str(error)
    return type(error).__name__


async def _create_search_log(query_text: str) -> str | None:
    """Write the query log. Failure is logged and tolerated."""
    try:
        return await search_log_service.create_search_log(query_text)
    except PyMongoError as e:
        logger.warning("Failed to create search log: %s", type(e).__name__)
        return None


async def query_ai(
    request: AiQueryRequest,
    locale: str = "en",
    client: CompletionClient | None = None,
) -> AiQueryResponse:
    """Answer a question using the notes in scope.

    Args:
        request: Validated query text and optional scope.
        locale: Prompt language ("en" or "pl").
        client: Completion client. Defaults to the shared env-configured one.

    Returns:
        The structured answer with model and latency.

    Raises:
        ScopeNotFoundError: If the scoped book or series does not exist.
        LLMError: If the completion fails.
        PyMongoError: If notes cannot be read.
    """
    start_time = time.perf_counter()
    search_log_id = await _create_search_log(request.query_text)

    try:
        await notes_service.verify_scope(request.scope)
        notes = await notes_service.list_notes(request.scope)
        notes_context = build_notes_context(notes)

        system_prompt, user_prompt = build_ai_prompts(
            locale,
            notes_context=notes_context,
            question=request.query_text,
        )

        client = client or get_client(schema_name=AI_ANSWER_SCHEMA_NAME)
        result = await client.complete(
            system=system_prompt,
            user=user_prompt,
            json_schema=AI_ANSWER_JSON_SCHEMA,
            output_type=AiAnswer,
            schema_name=AI_ANSWER_SCHEMA_NAME,
            parameters={"max_tokens": AI_QUERY_MAX_TOKENS},
        )

    except Exception as e:
        source = classify_error_source(e)
        logger.error(
            "AI query failed",
            extra={
                "search_log_id": search_log_id,
                "source": source,
                "error_type": type(e).__name__,
            },
        )
        await search_log_service.log_search_error(
            search_log_id=search_log_id,
            source=source,
            error_message=_describe_error(e),
        )
        raise

    latency_ms = int((time.perf_counter() - start_time) * 1000)
    logger.info(
        "AI query answered",
        extra={
            "search_log_id": search_log_id,
            "model": result.model,
            "latency_ms": latency_ms,
            "low_confidence": result.data.low_confidence,
        },
    )

    return AiQueryResponse(
        answer=result.data,
        usage=AiQueryUsage(model=result.model, latency_ms=latency_ms),
    )
