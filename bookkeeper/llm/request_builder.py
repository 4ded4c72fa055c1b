"""Request assembly for structured chat completions.

Validates caller input and builds an immutable CompletionRequest:
system message, capped history, then the user message, plus the merged
model parameters and a strict JSON-schema output declaration.
"""

import copy
from collections.abc import Mapping, Sequence
from typing import Any

from pydantic import ValidationError

from .errors import LLMError
from .models import (
    DEFAULT_MODEL_PARAMETERS,
    DEFAULT_RETRY_POLICY,
    ChatMessage,
    CompletionRequest,
    ModelParameters,
    RetryPolicy,
)

MAX_USER_PROMPT_LENGTH = 50_000
MAX_SYSTEM_PROMPT_LENGTH = 10_000
MAX_HISTORY_MESSAGES = 10


def _describe_validation_error(error: ValidationError) -> str:
    """Summarize a pydantic error by field path only.

    ``str(error)`` would echo the rejected input, which may be prompt text.
    """
    parts = []
    for issue in error.errors():
        location = ".".join(str(part) for part in issue["loc"]) or "value"
        parts.append(f"{location}: {issue['msg']}")
    return "; ".join(parts)


def merge_parameters(
    defaults: ModelParameters = DEFAULT_MODEL_PARAMETERS,
    overrides: ModelParameters | Mapping[str, Any] | None = None,
) -> ModelParameters:
    """Merge caller parameters over defaults, field by field.

    Raises:
        LLMError: CONFIG if the merged parameters are out of range.
    """
    merged = defaults.model_dump(exclude_none=True)
    if overrides is not None:
        if isinstance(overrides, ModelParameters):
            overrides = overrides.model_dump(exclude_none=True)
        merged.update({key: value for key, value in overrides.items() if value is not None})

    try:
        return ModelParameters.model_validate(merged)
    except ValidationError as e:
        raise LLMError.config(f"Invalid model parameters: {_describe_validation_error(e)}") from e


def merge_retry_policy(
    overrides: RetryPolicy | Mapping[str, Any] | None = None,
    defaults: RetryPolicy = DEFAULT_RETRY_POLICY,
) -> RetryPolicy:
    """Merge a partial retry policy over the defaults.

    Raises:
        LLMError: CONFIG if the merged policy is invalid.
    """
    merged = defaults.model_dump()
    if overrides is not None:
        if isinstance(overrides, RetryPolicy):
            overrides = overrides.model_dump()
        merged.update({key: value for key, value in overrides.items() if value is not None})

    try:
        return RetryPolicy.model_validate(merged)
    except ValidationError as e:
        raise LLMError.config(f"Invalid retry policy: {_describe_validation_error(e)}") from e


def validate_user_prompt(user: Any) -> str:
    if not isinstance(user, str) or not user.strip():
        raise LLMError.validation("Invalid user prompt: User prompt cannot be empty")
    if len(user) > MAX_USER_PROMPT_LENGTH:
        raise LLMError.validation(
            f"Invalid user prompt: User prompt exceeds maximum length of {MAX_USER_PROMPT_LENGTH} characters"
        )
    return user


def validate_system_prompt(system: Any) -> str | None:
    if system is None:
        return None
    if not isinstance(system, str):
        raise LLMError.validation("Invalid system prompt: System prompt must be a string")
    if len(system) > MAX_SYSTEM_PROMPT_LENGTH:
        raise LLMError.validation(
            f"Invalid system prompt: System prompt exceeds maximum length of {MAX_SYSTEM_PROMPT_LENGTH} characters"
        )
    return system


def validate_history(
    history: Sequence[ChatMessage | Mapping[str, Any]] | None,
) -> list[ChatMessage]:
    """Validate every history entry (role and non-empty content)."""
    if history is None:
        return []
    if isinstance(history, (str, bytes)) or not isinstance(history, Sequence):
        raise LLMError.validation("Invalid history: history must be a list of messages")

    messages = []
    for index, entry in enumerate(history):
        if isinstance(entry, ChatMessage):
            messages.append(entry)
            continue
        try:
            messages.append(ChatMessage.model_validate(entry))
        except ValidationError as e:
            raise LLMError.validation(
                f"Invalid history message at index {index}: {_describe_validation_error(e)}"
            ) from e
    return messages


def validate_schema(schema_name: Any, json_schema: Any) -> None:
    if not isinstance(schema_name, str) or not schema_name.strip():
        raise LLMError.validation("Schema name is required")
    if not isinstance(json_schema, Mapping) or not json_schema:
        raise LLMError.validation("Valid JSON schema object is required")


def build_messages(
    user: str,
    system: str | None = None,
    history: Sequence[ChatMessage] | None = None,
    max_history: int = MAX_HISTORY_MESSAGES,
) -> tuple[ChatMessage, ...]:
    """Order messages as system -> history -> user.

    History entries that are blank after trimming are dropped, then only
    the ``max_history`` most recent ones are kept.
    """
    messages: list[ChatMessage] = []

    if system and system.strip():
        messages.append(ChatMessage(role="system", content=system.strip()))

    if history:
        non_empty = [
            ChatMessage(role=msg.role, content=msg.content.strip())
            for msg in history
            if msg.content.strip()
        ]
        if max_history > 0:
            messages.extend(non_empty[-max_history:])

    messages.append(ChatMessage(role="user", content=user.strip()))
    return tuple(messages)


def build_request(
    *,
    user: str,
    model: str,
    schema_name: str,
    json_schema: Mapping[str, Any],
    system: str | None = None,
    history: Sequence[ChatMessage | Mapping[str, Any]] | None = None,
    parameters: ModelParameters = DEFAULT_MODEL_PARAMETERS,
) -> CompletionRequest:
    """Validate input and build a CompletionRequest.

    Args:
        user: Final user prompt. Required, non-blank.
        model: Model identifier sent to the endpoint.
        schema_name: Name of the JSON-schema output contract.
        json_schema: JSON Schema the model output must conform to.
        system: Optional system prompt.
        history: Optional prior turns (ChatMessage or role/content mappings).
        parameters: Already-merged model parameters.

    Returns:
        The immutable request.

    Raises:
        LLMError: VALIDATION if any input breaks the contract.
    """
    user = validate_user_prompt(user)
    system = validate_system_prompt(system)
    history_messages = validate_history(history)
    validate_schema(schema_name, json_schema)

    return CompletionRequest(
        model=model,
        messages=build_messages(user=user, system=system, history=history_messages),
        parameters=parameters,
        schema_name=schema_name.strip(),
        json_schema=copy.deepcopy(dict(json_schema)),
    )
