"""LLM error taxonomy.

A single exception type with a kind discriminator. Every failure in the
completion pipeline is classified into exactly one ErrorKind before it
crosses a component boundary; status codes, retryability and user-facing
text are looked up per kind.
"""

import math
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import ValidationIssue

# Upper bounds for diagnostic snippets attached to errors
BODY_SNIPPET_LENGTH = 500
CONTENT_SNIPPET_LENGTH = 200


class ErrorKind(str, Enum):
    """Closed set of failure kinds."""

    CONFIG = "config"
    VALIDATION = "validation"
    AUTH = "auth"
    RATE_LIMIT = "rate_limit"
    TIMEOUT = "timeout"
    UPSTREAM = "upstream"
    PARSE = "parse"
    SCHEMA_MISMATCH = "schema_mismatch"


class LLMError(Exception):
    """Classified failure of a completion call.

    Build instances through the per-kind factories (``LLMError.config``,
    ``LLMError.rate_limit`` ...) so each kind only carries its own payload:

    - AUTH: ``status`` (401 or 403), ``request_id``
    - RATE_LIMIT: ``retry_after`` seconds, ``request_id``
    - UPSTREAM: ``status`` (None for network-level failures),
      ``body_snippet``, ``request_id``
    - PARSE: ``content_length``, ``content_snippet``
    - SCHEMA_MISMATCH: ``issues``

    ``str(error)`` is the internal diagnostic message. It may contain
    truncated response snippets but never the credential or prompt content.
    Use ``safe_message`` for anything shown to end users.
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        *,
        status: int | None = None,
        retry_after: float | None = None,
        body_snippet: str | None = None,
        request_id: str | None = None,
        content_length: int | None = None,
        content_snippet: str | None = None,
        issues: "list[ValidationIssue] | None" = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.status = status
        self.retry_after = retry_after
        self.body_snippet = body_snippet
        self.request_id = request_id
        self.content_length = content_length
        self.content_snippet = content_snippet
        self.issues = issues or []

    def __str__(self) -> str:
        parts = [super().__str__(), f"kind={self.kind.value}"]
        if self.status is not None:
            parts.append(f"status={self.status}")
        if self.request_id:
            parts.append(f"request_id={self.request_id}")
        return " ".join(parts)

    def __repr__(self) -> str:
        return f"LLMError(kind={self.kind.value!r}, message={self.message!r})"

    # -- factories ---------------------------------------------------------

    @classmethod
    def config(cls, message: str) -> "LLMError":
        """Client misconfigured (credential, base URL, model, schema name, params)."""
        return cls(ErrorKind.CONFIG, message)

    @classmethod
    def validation(cls, message: str) -> "LLMError":
        """Caller input breaks the request contract."""
        return cls(ErrorKind.VALIDATION, message)

    @classmethod
    def auth(cls, status: int, request_id: str | None = None) -> "LLMError":
        return cls(
            ErrorKind.AUTH,
            "Authentication failed. Invalid or expired API key.",
            status=status,
            request_id=request_id,
        )

    @classmethod
    def rate_limit(
        cls,
        retry_after: float | None = None,
        request_id: str | None = None,
    ) -> "LLMError":
        # Unusable waits fall back to computed backoff
        if retry_after is not None and not (math.isfinite(retry_after) and retry_after >= 0):
            retry_after = None
        return cls(
            ErrorKind.RATE_LIMIT,
            "Rate limit exceeded.",
            retry_after=retry_after,
            request_id=request_id,
        )

    @classmethod
    def timeout(cls, timeout: float) -> "LLMError":
        return cls(ErrorKind.TIMEOUT, f"Request timed out after {timeout:g}s")

    @classmethod
    def upstream(
        cls,
        message: str,
        status: int | None = None,
        body_snippet: str | None = None,
        request_id: str | None = None,
    ) -> "LLMError":
        if body_snippet is not None:
            body_snippet = body_snippet[:BODY_SNIPPET_LENGTH]
        return cls(
            ErrorKind.UPSTREAM,
            message,
            status=status,
            body_snippet=body_snippet,
            request_id=request_id,
        )

    @classmethod
    def parse(cls, message: str, content: str) -> "LLMError":
        return cls(
            ErrorKind.PARSE,
            message,
            content_length=len(content),
            content_snippet=content[:CONTENT_SNIPPET_LENGTH],
        )

    @classmethod
    def schema_mismatch(cls, issues: "list[ValidationIssue]") -> "LLMError":
        return cls(
            ErrorKind.SCHEMA_MISMATCH,
            f"Response JSON does not match expected schema ({len(issues)} issue(s))",
            issues=issues,
        )

    # -- classification ----------------------------------------------------

    @property
    def is_network_error(self) -> bool:
        """Upstream failure below HTTP (no status was received)."""
        return self.kind is ErrorKind.UPSTREAM and self.status is None

    @property
    def is_retryable_kind(self) -> bool:
        """Whether this failure may be retried at all.

        Attempt-dependent limits (timeouts are retried once) are applied by
        the retry orchestrator.
        """
        if self.kind in (ErrorKind.RATE_LIMIT, ErrorKind.TIMEOUT):
            return True
        if self.kind is ErrorKind.UPSTREAM:
            return self.status is None or self.status >= 500
        return False

    @property
    def status_code(self) -> int:
        return error_to_status_code(self)

    @property
    def safe_message(self) -> str:
        return get_safe_message(self)


_STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.CONFIG: 400,
    ErrorKind.VALIDATION: 400,
    ErrorKind.AUTH: 401,
    ErrorKind.RATE_LIMIT: 429,
    ErrorKind.TIMEOUT: 504,
    ErrorKind.UPSTREAM: 502,
    ErrorKind.PARSE: 502,
    ErrorKind.SCHEMA_MISMATCH: 502,
}

_SAFE_MESSAGES: dict[ErrorKind, str] = {
    ErrorKind.CONFIG: "Service configuration error. Please contact support.",
    ErrorKind.VALIDATION: "Invalid request.",
    ErrorKind.AUTH: "Authentication failed. Please contact support.",
    ErrorKind.RATE_LIMIT: "Rate limit exceeded. Please try again later.",
    ErrorKind.TIMEOUT: "Request timed out. Please try again.",
    ErrorKind.UPSTREAM: "Service temporarily unavailable. Please try again later.",
    ErrorKind.PARSE: "Failed to parse response. Please try again.",
    ErrorKind.SCHEMA_MISMATCH: "Response format mismatch. Please try again.",
}


def error_to_status_code(error: LLMError) -> int:
    """Map an error to the HTTP status the application should answer with."""
    if error.kind in (ErrorKind.AUTH, ErrorKind.UPSTREAM) and error.status is not None:
        return error.status
    return _STATUS_BY_KIND[error.kind]


def get_safe_message(error: LLMError) -> str:
    """User-facing text for an error. Never contains secrets or raw output.

    Validation messages are written without input values, so they are
    passed through to help callers fix their request.
    """
    if error.kind is ErrorKind.VALIDATION:
        return error.message
    return _SAFE_MESSAGES[error.kind]


def normalize_error(error: BaseException) -> LLMError:
    """Classify an arbitrary exception.

    Anything that is not already an LLMError is treated as an upstream
    failure without status; only the exception type name is kept.
    """
    if isinstance(error, LLMError):
        return error
    return LLMError.upstream(f"Unexpected error: {type(error).__name__}")


RETRYABLE_KINDS = frozenset({ErrorKind.RATE_LIMIT, ErrorKind.TIMEOUT, ErrorKind.UPSTREAM})
NON_RETRYABLE_KINDS = frozenset(ErrorKind) - RETRYABLE_KINDS
