"""Chat completion envelope decoding."""

import json
import logging

from pydantic import ValidationError

from .errors import BODY_SNIPPET_LENGTH, LLMError
from .models import ChatCompletionEnvelope, ParsedChatResponse, RawResponse
from .safe_logging import safe_extra

logger = logging.getLogger(__name__)


def decode_chat_response(raw: RawResponse, requested_model: str) -> ParsedChatResponse:
    """Validate the response envelope and pull out the assistant text.

    Args:
        raw: Successful transport response.
        requested_model: Model to report when the envelope names none.

    Returns:
        Assistant text with model, usage and request id.

    Raises:
        LLMError: UPSTREAM when the body is not a usable completion.
    """
    try:
        payload = json.loads(raw.text)
    except json.JSONDecodeError as e:
        raise LLMError.upstream(
            f"Failed to parse response as JSON: {e.msg}",
            body_snippet=raw.text,
            request_id=raw.request_id,
        ) from e

    try:
        envelope = ChatCompletionEnvelope.model_validate(payload)
    except ValidationError as e:
        raise LLMError.upstream(
            "Response structure validation failed",
            body_snippet=json.dumps(payload)[:BODY_SNIPPET_LENGTH],
            request_id=raw.request_id,
        ) from e

    request_id = envelope.id or raw.request_id

    if not envelope.choices:
        raise LLMError.upstream("No choices in response", request_id=request_id)

    content_text = envelope.choices[0].message.content
    if not content_text.strip():
        raise LLMError.upstream("Empty completion content", request_id=request_id)

    model = envelope.model or requested_model

    if envelope.usage:
        logger.info(
            "LLM token usage",
            extra=safe_extra(
                model=model,
                request_id=request_id,
                prompt_tokens=envelope.usage.prompt_tokens,
                completion_tokens=envelope.usage.completion_tokens,
                total_tokens=envelope.usage.total_tokens,
            ),
        )

    return ParsedChatResponse(
        content_text=content_text,
        model=model,
        usage=envelope.usage,
        request_id=request_id,
    )
