"""API models package."""

from .ai import (
    AiQueryRequest,
    AiQueryResponse,
    AiQueryScope,
    AiQueryUsage,
    ErrorSource,
    MAX_QUERY_TEXT_LENGTH,
)

__all__ = [
    "AiQueryRequest",
    "AiQueryResponse",
    "AiQueryScope",
    "AiQueryUsage",
    "ErrorSource",
    "MAX_QUERY_TEXT_LENGTH",
]
