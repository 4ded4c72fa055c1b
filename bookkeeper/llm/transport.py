"""HTTP transport for the chat completions endpoint.

One network call per ``send``: enforces the timeout and maps failures to
LLMError kinds. Retries are the orchestrator's job, so the underlying
OpenAI SDK client is created with ``max_retries=0``.
"""

import asyncio
import logging
import math
import time
from typing import Any

import httpx
from openai import APIConnectionError, APIStatusError, APITimeoutError, AsyncOpenAI

from .errors import BODY_SNIPPET_LENGTH, LLMError
from .models import RawResponse
from .safe_logging import safe_extra

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "x-request-id"
RETRY_AFTER_HEADER = "retry-after"


def parse_retry_after(value: str | None) -> float | None:
    """Parse a ``Retry-After`` header given in seconds.

    Anything that is not a finite, non-negative number (HTTP dates,
    ``inf``, ``nan``) yields None so the computed backoff applies.
    """
    if not value:
        return None
    try:
        seconds = float(value.strip())
    except ValueError:
        return None
    if not math.isfinite(seconds) or seconds < 0:
        return None
    return seconds


def classify_error_response(response: httpx.Response) -> LLMError:
    """Map a non-success HTTP response to an LLMError."""
    status = response.status_code
    request_id = response.headers.get(REQUEST_ID_HEADER)

    try:
        body_snippet = response.text[:BODY_SNIPPET_LENGTH]
    except (httpx.ResponseNotRead, UnicodeDecodeError):
        body_snippet = ""

    if status in (401, 403):
        return LLMError.auth(status, request_id=request_id)

    if status == 429:
        return LLMError.rate_limit(
            retry_after=parse_retry_after(response.headers.get(RETRY_AFTER_HEADER)),
            request_id=request_id,
        )

    if status >= 500:
        return LLMError.upstream(
            "Upstream service error.",
            status=status,
            body_snippet=body_snippet,
            request_id=request_id,
        )

    return LLMError.upstream(
        f"Request failed with status {status}.",
        status=status,
        body_snippet=body_snippet,
        request_id=request_id,
    )


class OpenRouterTransport:
    """Single-shot POST client for an OpenAI-compatible endpoint.

    Works with OpenRouter (the default) and any other service that speaks
    the chat completions protocol.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str,
        timeout: float = 60.0,
        app_name: str | None = None,
        app_url: str | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        """Initialize the transport.

        Args:
            api_key: Bearer credential for the endpoint.
            base_url: API root, e.g. ``https://openrouter.ai/api/v1``.
            timeout: Default per-call timeout in seconds.
            app_name: Optional ``X-Title`` attribution header.
            app_url: Optional ``HTTP-Referer`` attribution header.
            http_client: Optional preconfigured httpx client (tests, proxies).
        """
        self._timeout = timeout

        headers: dict[str, str] = {}
        if app_url:
            headers["HTTP-Referer"] = app_url
        if app_name:
            headers["X-Title"] = app_name

        self._client = AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout,
            max_retries=0,
            default_headers=headers or None,
            http_client=http_client,
        )

    @property
    def timeout(self) -> float:
        return self._timeout

    async def send(
        self,
        path: str,
        body: dict[str, Any],
        timeout: float | None = None,
    ) -> RawResponse:
        """POST ``body`` to ``path`` once.

        Args:
            path: Endpoint path relative to the base URL.
            body: JSON request body.
            timeout: Wall-clock limit in seconds. Defaults to the transport timeout.

        Returns:
            The successful response.

        Raises:
            LLMError: TIMEOUT, AUTH, RATE_LIMIT or UPSTREAM.
        """
        timeout = self._timeout if timeout is None else timeout
        start_time = time.perf_counter()

        try:
            # wait_for cancels the in-flight request once the deadline passes
            response: httpx.Response = await asyncio.wait_for(
                self._client.post(
                    path,
                    cast_to=httpx.Response,
                    body=body,
                    options={"timeout": timeout},
                ),
                timeout=timeout,
            )

        except (asyncio.TimeoutError, APITimeoutError) as e:
            self._log_outcome(path, start_time, "timeout")
            raise LLMError.timeout(timeout) from e

        except APIStatusError as e:
            self._log_outcome(path, start_time, "http_error", status_code=e.status_code)
            raise classify_error_response(e.response) from e

        except APIConnectionError as e:
            self._log_outcome(path, start_time, "network_error")
            cause = type(e.__cause__).__name__ if e.__cause__ else type(e).__name__
            raise LLMError.upstream(f"Network error: {cause}") from e

        elapsed_ms = self._log_outcome(
            path, start_time, "success", status_code=response.status_code
        )
        return RawResponse(
            status_code=response.status_code,
            text=response.text,
            headers={
                key: value
                for key, value in response.headers.items()
                if key.lower() in (REQUEST_ID_HEADER, RETRY_AFTER_HEADER, "content-type")
            },
            request_id=response.headers.get(REQUEST_ID_HEADER),
            elapsed_ms=elapsed_ms,
        )

    def _log_outcome(
        self,
        path: str,
        start_time: float,
        outcome: str,
        status_code: int | None = None,
    ) -> int:
        elapsed_ms = int((time.perf_counter() - start_time) * 1000)
        logger.debug(
            "LLM transport call finished: %s",
            outcome,
            extra=safe_extra(
                path=path,
                outcome=outcome,
                status_code=status_code,
                elapsed_ms=elapsed_ms,
            ),
        )
        return elapsed_ms

    async def aclose(self) -> None:
        await self._client.close()
