"""Response envelope helpers for consistent API responses.

Every error body has the shape ``{"data": null, "error": {"code", "message"}}``.
LLM failures are mapped to a status code and a fixed user-safe message; model
output, upstream bodies and request details never reach the client.
"""

import math
from typing import Any

from fastapi.responses import JSONResponse

from bookkeeper.llm import ErrorKind, LLMError, error_to_status_code, get_safe_message

# Error codes for LLM failures the client may act on; everything else is generic
LLM_ERROR_CODES: dict[ErrorKind, str] = {
    ErrorKind.RATE_LIMIT: "RATE_LIMITED",
    ErrorKind.VALIDATION: "VALIDATION_ERROR",
}
DEFAULT_LLM_ERROR_CODE = "AI_SERVICE_ERROR"


def success_response(data: Any) -> dict[str, Any]:
    """Create a success response envelope."""
    return {"data": data, "error": None}


def error_response(code: str, message: str) -> dict[str, Any]:
    """Create an error response envelope."""
    return {"data": None, "error": {"code": code, "message": message}}


def retry_after_header(retry_after: float | None) -> dict[str, str] | None:
    """Build a ``Retry-After`` header in whole seconds, rounded up."""
    if retry_after is None or not math.isfinite(retry_after) or retry_after < 0:
        return None
    return {"Retry-After": str(math.ceil(retry_after))}


def llm_error_response(error: LLMError) -> JSONResponse:
    """Map a classified LLM error to a safe JSON error response."""
    headers = None
    if error.kind is ErrorKind.RATE_LIMIT:
        headers = retry_after_header(error.retry_after)

    return JSONResponse(
        status_code=error_to_status_code(error),
        content=error_response(
            LLM_ERROR_CODES.get(error.kind, DEFAULT_LLM_ERROR_CODE),
            get_safe_message(error),
        ),
        headers=headers,
    )


def database_unavailable_response(message: str) -> JSONResponse:
    """503 response for MongoDB outages."""
    return JSONResponse(status_code=503, content=error_response("DATABASE_UNAVAILABLE", message))
