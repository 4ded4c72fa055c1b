"""Structured output schemas for completion calls.

Each schema comes as a pair: a strict JSON Schema sent to the endpoint as
the response format, and the pydantic model used to validate the answer.
Keep both halves in sync.
"""

from typing import Any

from pydantic import BaseModel


# ==============================================================================
# AI query answer
# ==============================================================================

AI_ANSWER_SCHEMA_NAME = "AiAnswer"

AI_ANSWER_JSON_SCHEMA: dict[str, Any] = {
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "text": {
            "type": "string",
            "description": "The answer to the user's question based on the provided notes context",
        },
        "low_confidence": {
            "type": "boolean",
            "description": (
                "True when the notes do not contain enough information to answer "
                "confidently or the answer requires speculation"
            ),
        },
    },
    "required": ["text", "low_confidence"],
}


class AiAnswer(BaseModel):
    """Answer to a question about the user's notes."""

    text: str
    low_confidence: bool


# ==============================================================================
# Answer with citations
# ==============================================================================

ANSWER_WITH_CITATIONS_SCHEMA_NAME = "AnswerWithCitations"

ANSWER_WITH_CITATIONS_JSON_SCHEMA: dict[str, Any] = {
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "answer": {
            "type": "string",
            "description": "The answer to the user's question based on the provided context",
        },
        "citations": {
            "type": "array",
            "description": "Citations from the notes that support the answer",
            "items": {
                "type": "object",
                "additionalProperties": False,
                "properties": {
                    "note_id": {
                        "type": "string",
                        "description": "ID of the cited note",
                    },
                    "quote": {
                        "type": "string",
                        "description": "Exact quote from the note that supports the answer",
                    },
                },
                "required": ["note_id", "quote"],
            },
        },
    },
    "required": ["answer", "citations"],
}


class Citation(BaseModel):
    note_id: str
    quote: str


class AnswerWithCitations(BaseModel):
    """Answer plus the note quotes it is based on."""

    answer: str
    citations: list[Citation]
