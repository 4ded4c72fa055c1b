"""LLM data models.

Request, response and configuration models for the completion client.
Wire shapes follow the OpenAI-compatible chat completions protocol.
"""

from dataclasses import dataclass, field
from typing import Any, Generic, Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")


class ChatMessage(BaseModel):
    """A single message in the conversation."""

    model_config = ConfigDict(frozen=True)

    role: Literal["system", "user", "assistant"]
    content: str = Field(min_length=1)


class ModelParameters(BaseModel):
    """Sampling parameters sent with every request.

    All fields are optional; unset fields are omitted from the payload.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    top_p: float | None = Field(default=None, ge=0.0, le=1.0)
    max_tokens: int | None = Field(default=None, gt=0)
    frequency_penalty: float | None = Field(default=None, ge=-2.0, le=2.0)
    presence_penalty: float | None = Field(default=None, ge=-2.0, le=2.0)
    seed: int | None = None


# Tuned for short structured JSON answers
DEFAULT_MODEL_PARAMETERS = ModelParameters(temperature=0.2, top_p=0.9, max_tokens=600)


class RetryPolicy(BaseModel):
    """Bounded retry with exponential backoff. Delays are in seconds."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    max_attempts: int = Field(default=3, ge=1)
    initial_delay: float = Field(default=1.0, ge=0.0)
    max_delay: float = Field(default=10.0, ge=0.0)
    backoff_multiplier: float = Field(default=2.0, ge=1.0)


DEFAULT_RETRY_POLICY = RetryPolicy()


class CompletionRequest(BaseModel):
    """One fully-built chat completion request.

    Immutable; the retry orchestrator resubmits the same payload verbatim.
    """

    model_config = ConfigDict(frozen=True)

    model: str
    messages: tuple[ChatMessage, ...]
    parameters: ModelParameters
    schema_name: str
    json_schema: dict[str, Any]

    def response_format(self) -> dict[str, Any]:
        """Strict, named JSON-schema output declaration."""
        return {
            "type": "json_schema",
            "json_schema": {
                "name": self.schema_name,
                "strict": True,
                "schema": self.json_schema,
            },
        }

    def to_payload(self) -> dict[str, Any]:
        """Render the request body for the chat completions endpoint."""
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": [{"role": m.role, "content": m.content} for m in self.messages],
        }
        payload.update(self.parameters.model_dump(exclude_none=True))
        payload["response_format"] = self.response_format()
        return payload


@dataclass(frozen=True)
class RawResponse:
    """Successful transport response, before envelope decoding."""

    status_code: int
    text: str
    headers: dict[str, str] = field(default_factory=dict)
    request_id: str | None = None
    elapsed_ms: int = 0
    attempts: int = 1


class TokenUsage(BaseModel):
    """Token usage statistics reported by the endpoint."""

    prompt_tokens: int | None = None
    completion_tokens: int | None = None
    total_tokens: int | None = None


class EnvelopeMessage(BaseModel):
    role: str
    content: str


class EnvelopeChoice(BaseModel):
    message: EnvelopeMessage
    finish_reason: str | None = None


class ChatCompletionEnvelope(BaseModel):
    """Structural shape of a chat completions response body."""

    id: str | None = None
    choices: list[EnvelopeChoice]
    usage: TokenUsage | None = None
    model: str | None = None


class ParsedChatResponse(BaseModel):
    """Assistant text and metadata extracted from the envelope."""

    content_text: str
    model: str
    usage: TokenUsage | None = None
    request_id: str | None = None


class ValidationIssue(BaseModel):
    """One schema violation in model output."""

    path: str
    message: str


class CompletionResult(BaseModel, Generic[T]):
    """Validated structured answer plus call metadata."""

    data: T
    raw_text: str
    model: str
    usage: TokenUsage | None = None
    request_id: str | None = None
    attempts: int = 1
    latency_ms: int = 0
