"""Structured output recovery and validation.

Models asked for strict JSON still occasionally wrap it in prose or code
fences. Parsing tries the whole text first, then each outermost balanced
``{...}`` / ``[...]`` block in turn, never a fragment nested inside one.
The recovered value is then validated against the caller's type with
pydantic.
"""

import json
import logging
from typing import Any, TypeVar

from pydantic import TypeAdapter, ValidationError

from .errors import LLMError
from .models import ValidationIssue
from .safe_logging import safe_extra

logger = logging.getLogger(__name__)

T = TypeVar("T")

_CLOSERS = {"{": "}", "[": "]"}


def _balanced_block_end(text: str, start: int) -> int | None:
    """Index of the bracket closing the one at ``start``, or None.

    Brackets inside JSON string literals are ignored.
    """
    stack: list[str] = []
    in_string = False
    escaped = False

    for index in range(start, len(text)):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue

        if char == '"':
            in_string = True
        elif char in _CLOSERS:
            stack.append(_CLOSERS[char])
        elif char in ("}", "]"):
            if not stack or stack.pop() != char:
                return None
            if not stack:
                return index
    return None


def find_json_candidates(text: str):
    """Yield outermost balanced ``{...}`` / ``[...]`` substrings in order.

    Blocks nested inside a balanced block are never yielded on their own;
    scanning resumes after the block's closing bracket.
    """
    index = 0
    while index < len(text):
        if text[index] in _CLOSERS:
            end = _balanced_block_end(text, index)
            if end is not None:
                yield text[index : end + 1]
                index = end + 1
                continue
        index += 1


def parse_json_from_model(content_text: str) -> Any:
    """Parse JSON from model output.

    Raises:
        LLMError: PARSE when neither the full text nor any embedded block
            is valid JSON.
    """
    try:
        return json.loads(content_text)
    except json.JSONDecodeError:
        pass

    for candidate in find_json_candidates(content_text):
        try:
            value = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        logger.debug(
            "Recovered JSON embedded in model output",
            extra=safe_extra(content_length=len(content_text)),
        )
        return value

    raise LLMError.parse("Failed to parse JSON from model output", content_text)


def _to_issues(error: ValidationError) -> list[ValidationIssue]:
    return [
        ValidationIssue(
            path=".".join(str(part) for part in issue["loc"]),
            message=issue["msg"],
        )
        for issue in error.errors()
    ]


def validate_structured_output(value: Any, output_type: type[T]) -> T:
    """Validate a parsed JSON value against ``output_type``.

    ``output_type`` is anything pydantic can validate: a BaseModel subclass,
    a TypedDict, ``list[SomeModel]`` and so on.

    Raises:
        LLMError: SCHEMA_MISMATCH with the list of issues.
    """
    try:
        return TypeAdapter(output_type).validate_python(value)
    except ValidationError as e:
        issues = _to_issues(e)
        logger.warning(
            "Model output does not match expected schema",
            extra=safe_extra(issue_count=len(issues)),
        )
        raise LLMError.schema_mismatch(issues) from e


def extract_structured_output(content_text: str, output_type: type[T]) -> T:
    """Parse model text and validate it in one step."""
    return validate_structured_output(parse_json_from_model(content_text), output_type)
