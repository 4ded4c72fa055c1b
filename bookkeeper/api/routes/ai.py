"""AI query endpoint.

POST /api/v1/ai/query: answer a question from the user's reading notes,
optionally scoped to one book or series.
"""

from typing import Annotated

from fastapi import APIRouter, Header

from bookkeeper.models.ai import AiQueryRequest, AiQueryResponse
from bookkeeper.services import ai_service
from bookkeeper.services.prompts import normalize_locale

router = APIRouter(prefix="/ai", tags=["AI"])


@router.post("/query", response_model=AiQueryResponse)
async def query(
    request: AiQueryRequest,
    accept_language: Annotated[str | None, Header()] = None,
) -> AiQueryResponse:
    """Answer a natural-language question about the user's notes.

    The answer language follows the first Accept-Language tag (en or pl).
    ``low_confidence`` is set when the notes do not support a clear answer.
    """
    locale = normalize_locale(accept_language)
    return await ai_service.query_ai(request, locale=locale)
