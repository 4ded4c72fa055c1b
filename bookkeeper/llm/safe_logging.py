"""Allow-list of metadata that may be attached to LLM log records.

Credentials, prompts, history and model output must never reach the logs.
Every log call in the llm package builds its ``extra`` through
``safe_extra`` so only structural fields listed here are emitted.
"""

from typing import Any

SAFE_LOG_FIELDS = frozenset(
    {
        "model",
        "path",
        "status_code",
        "outcome",
        "attempt",
        "attempts",
        "max_attempts",
        "latency_ms",
        "elapsed_ms",
        "delay_ms",
        "error_kind",
        "request_id",
        "prompt_tokens",
        "completion_tokens",
        "total_tokens",
        "retry_after",
        "message_count",
        "content_length",
        "issue_count",
        "schema_name",
    }
)


def safe_extra(**fields: Any) -> dict[str, Any]:
    """Build a logging ``extra`` dict from allowed, non-None fields."""
    return {
        key: value
        for key, value in fields.items()
        if key in SAFE_LOG_FIELDS and value is not None
    }
