"""Structured LLM completion client.

Turns a prompt plus note context into a validated, typed answer from an
OpenAI-compatible chat completions endpoint, with retry, timeout and
classified errors.
"""

from .client import CompletionClient, get_client, set_client
from .errors import (
    ErrorKind,
    LLMError,
    error_to_status_code,
    get_safe_message,
    normalize_error,
)
from .models import (
    ChatMessage,
    CompletionRequest,
    CompletionResult,
    ModelParameters,
    ParsedChatResponse,
    RawResponse,
    RetryPolicy,
    TokenUsage,
    ValidationIssue,
)
from .schemas import (
    AI_ANSWER_JSON_SCHEMA,
    AI_ANSWER_SCHEMA_NAME,
    ANSWER_WITH_CITATIONS_JSON_SCHEMA,
    ANSWER_WITH_CITATIONS_SCHEMA_NAME,
    AiAnswer,
    AnswerWithCitations,
)

__all__ = [
    "CompletionClient",
    "get_client",
    "set_client",
    "ErrorKind",
    "LLMError",
    "error_to_status_code",
    "get_safe_message",
    "normalize_error",
    "ChatMessage",
    "CompletionRequest",
    "CompletionResult",
    "ModelParameters",
    "ParsedChatResponse",
    "RawResponse",
    "RetryPolicy",
    "TokenUsage",
    "ValidationIssue",
    "AI_ANSWER_JSON_SCHEMA",
    "AI_ANSWER_SCHEMA_NAME",
    "ANSWER_WITH_CITATIONS_JSON_SCHEMA",
    "ANSWER_WITH_CITATIONS_SCHEMA_NAME",
    "AiAnswer",
    "AnswerWithCitations",
]
