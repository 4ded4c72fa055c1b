"""Request and response models for AI queries over reading notes."""

from typing import Annotated, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, StringConstraints, model_validator

from bookkeeper.llm.schemas import AiAnswer

MAX_QUERY_TEXT_LENGTH = 500

# Coarse origin of a failed query, stored with search error records
ErrorSource = Literal["embedding", "llm", "database", "unknown"]


class AiQueryScope(BaseModel):
    """Limits which notes are used as context. At most one id may be set."""

    model_config = ConfigDict(extra="forbid")

    book_id: UUID | None = None
    series_id: UUID | None = None

    @model_validator(mode="after")
    def check_single_scope(self) -> "AiQueryScope":
        if self.book_id is not None and self.series_id is not None:
            raise ValueError("Cannot specify both book_id and series_id in scope")
        return self


class AiQueryRequest(BaseModel):
    """Request body for POST /api/v1/ai/query."""

    model_config = ConfigDict(extra="forbid")

    query_text: Annotated[
        str,
        StringConstraints(strip_whitespace=True, min_length=1, max_length=MAX_QUERY_TEXT_LENGTH),
    ]
    scope: AiQueryScope = Field(default_factory=AiQueryScope)


class AiQueryUsage(BaseModel):
    model: str
    latency_ms: int


class AiQueryResponse(BaseModel):
    """Answer plus usage metadata."""

    answer: AiAnswer
    usage: AiQueryUsage
