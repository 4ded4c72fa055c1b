"""Structured completion client.

Composes request building, retrying transport, envelope decoding and
structured output extraction into a single ``complete`` call that returns
a validated, typed result or raises a classified LLMError.
"""

import logging
import os
from collections.abc import Mapping, Sequence
from typing import Any, TypeVar
from urllib.parse import urlparse

import httpx

from .decoder import decode_chat_response
from .errors import LLMError
from .extractor import extract_structured_output
from .models import (
    DEFAULT_MODEL_PARAMETERS,
    ChatMessage,
    CompletionResult,
    ModelParameters,
    RetryPolicy,
)
from .request_builder import build_request, merge_parameters, merge_retry_policy
from .retry import RetryOrchestrator, Transport
from .safe_logging import safe_extra
from .transport import OpenRouterTransport

logger = logging.getLogger(__name__)

T = TypeVar("T")

CHAT_COMPLETIONS_PATH = "/chat/completions"


class CompletionClient:
    """Client for schema-constrained chat completions.

    Instances hold immutable configuration only and can be shared across
    concurrent calls.

    Configuration (env vars, used by ``from_env``):
    - OPENROUTER_API_KEY: Endpoint credential (required)
    - OPENROUTER_BASE_URL: API root (default: https://openrouter.ai/api/v1)
    - OPENROUTER_MODEL: Model identifier (default: openai/gpt-4o-mini)
    - LLM_TIMEOUT_SECONDS: Per-attempt timeout (default: 60)
    - LLM_MAX_ATTEMPTS: Total attempts per call (default: 3)
    - LLM_APP_NAME / LLM_APP_URL: Optional attribution headers
    """

    # Default configuration
    DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"
    DEFAULT_MODEL = "openai/gpt-4o-mini"
    DEFAULT_TIMEOUT = 60.0

    def __init__(
        self,
        api_key: str | None,
        schema_name: str,
        base_url: str | None = None,
        model: str | None = None,
        parameters: ModelParameters | Mapping[str, Any] | None = None,
        retry_policy: RetryPolicy | Mapping[str, Any] | None = None,
        timeout: float | None = None,
        app_name: str | None = None,
        app_url: str | None = None,
        transport: Transport | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        """Initialize and validate the client configuration.

        Args:
            api_key: Endpoint credential.
            schema_name: Default name of the JSON-schema output contract.
            base_url: API root. Must be an http(s) URL.
            model: Model identifier.
            parameters: Overrides merged over the default model parameters.
            retry_policy: Overrides merged over the default retry policy.
            timeout: Per-attempt timeout in seconds.
            app_name: Optional ``X-Title`` header.
            app_url: Optional ``HTTP-Referer`` header.
            transport: Custom transport (defaults to OpenRouterTransport).
            http_client: httpx client handed to the default transport.

        Raises:
            LLMError: CONFIG for any invalid setting.
        """
        if not api_key or not api_key.strip():
            raise LLMError.config("API key is required")

        base_url = self.DEFAULT_BASE_URL if base_url is None else base_url
        parsed_url = urlparse(base_url.strip())
        if parsed_url.scheme not in ("http", "https") or not parsed_url.netloc:
            raise LLMError.config("Base URL must start with http:// or https://")

        model = self.DEFAULT_MODEL if model is None else model
        if not model.strip():
            raise LLMError.config("Model must be specified")

        if not schema_name or not schema_name.strip():
            raise LLMError.config("Schema name is required")

        timeout = self.DEFAULT_TIMEOUT if timeout is None else timeout
        if timeout <= 0:
            raise LLMError.config("Timeout must be positive")

        self._base_url = base_url.strip().rstrip("/")
        self._model = model.strip()
        self._schema_name = schema_name.strip()
        self._timeout = float(timeout)
        self._parameters = merge_parameters(DEFAULT_MODEL_PARAMETERS, parameters)
        self._retry_policy = merge_retry_policy(retry_policy)

        self._transport = transport or OpenRouterTransport(
            api_key=api_key,
            base_url=self._base_url,
            timeout=self._timeout,
            app_name=app_name,
            app_url=app_url,
            http_client=http_client,
        )
        self._orchestrator = RetryOrchestrator(self._transport, self._retry_policy)

    @classmethod
    def from_env(cls, schema_name: str, **overrides: Any) -> "CompletionClient":
        """Build a client from environment variables.

        Explicit keyword arguments take precedence over the environment.
        """
        config: dict[str, Any] = {
            "api_key": os.environ.get("OPENROUTER_API_KEY"),
            "base_url": os.environ.get("OPENROUTER_BASE_URL") or None,
            "model": os.environ.get("OPENROUTER_MODEL") or None,
            "app_name": os.environ.get("LLM_APP_NAME") or None,
            "app_url": os.environ.get("LLM_APP_URL") or None,
        }

        timeout = os.environ.get("LLM_TIMEOUT_SECONDS")
        max_attempts = os.environ.get("LLM_MAX_ATTEMPTS")
        try:
            if timeout:
                config["timeout"] = float(timeout)
            if max_attempts:
                config["retry_policy"] = {"max_attempts": int(max_attempts)}
        except ValueError as e:
            raise LLMError.config("Invalid numeric LLM setting in environment") from e

        config.update(overrides)
        return cls(schema_name=schema_name, **config)

    @property
    def model(self) -> str:
        return self._model

    @property
    def schema_name(self) -> str:
        return self._schema_name

    @property
    def timeout(self) -> float:
        return self._timeout

    @property
    def parameters(self) -> ModelParameters:
        return self._parameters

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._retry_policy

    async def complete(
        self,
        *,
        user: str,
        json_schema: Mapping[str, Any],
        output_type: type[T],
        system: str | None = None,
        history: Sequence[ChatMessage | Mapping[str, Any]] | None = None,
        schema_name: str | None = None,
        parameters: ModelParameters | Mapping[str, Any] | None = None,
    ) -> CompletionResult[T]:
        """Run one structured completion.

        Args:
            user: User prompt.
            json_schema: JSON Schema declared as the strict response format.
            output_type: Type the answer is validated into (e.g. a BaseModel).
            system: Optional system prompt.
            history: Optional prior turns; only the most recent are sent.
            schema_name: Overrides the client's default schema name.
            parameters: Per-call overrides merged over the client's parameters.

        Returns:
            Validated data plus raw text, model, usage and request id.

        Raises:
            LLMError: The first failure of any stage, already classified.
        """
        call_parameters = self._parameters
        if parameters is not None:
            call_parameters = merge_parameters(self._parameters, parameters)

        request = build_request(
            user=user,
            system=system,
            history=history,
            model=self._model,
            parameters=call_parameters,
            schema_name=self._schema_name if schema_name is None else schema_name,
            json_schema=json_schema,
        )
        if output_type is None:
            raise LLMError.validation("Output type is required")

        logger.debug(
            "Sending structured completion request",
            extra=safe_extra(
                model=self._model,
                schema_name=request.schema_name,
                message_count=len(request.messages),
            ),
        )

        raw = await self._orchestrator.execute(CHAT_COMPLETIONS_PATH, request.to_payload())
        parsed = decode_chat_response(raw, requested_model=self._model)
        data = extract_structured_output(parsed.content_text, output_type)

        return CompletionResult(
            data=data,
            raw_text=parsed.content_text,
            model=parsed.model,
            usage=parsed.usage,
            request_id=parsed.request_id,
            attempts=raw.attempts,
            latency_ms=raw.elapsed_ms,
        )

    async def aclose(self) -> None:
        close = getattr(self._transport, "aclose", None)
        if close is not None:
            await close()

    async def __aenter__(self) -> "CompletionClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()


# Convenience functions for module-level access
_default_client: CompletionClient | None = None


def get_client(schema_name: str = "response") -> CompletionClient:
    """Get the shared client built from environment variables.

    ``schema_name`` only applies when the client is first created; pass
    ``schema_name`` to ``complete`` for per-call names.
    """
    global _default_client
    if _default_client is None:
        _default_client = CompletionClient.from_env(schema_name=schema_name)
    return _default_client


def set_client(client: CompletionClient | None) -> None:
    """Replace the shared client (for testing)."""
    global _default_client
    _default_client = client
