"""Health check endpoint.

Reports whether the notes database is reachable and whether a completion
endpoint is configured. The LLM endpoint itself is never called here.
"""

import os

from fastapi import APIRouter

from bookkeeper.api.response import success_response
from bookkeeper.db.mongo import ping_database
from bookkeeper.llm import CompletionClient

router = APIRouter(tags=["System"])


@router.get("/health")
async def health_check() -> dict:
    """Return database and AI configuration status.

    ``status`` is ``degraded`` when the database is unreachable or no API
    key is set. The endpoint answers 200 in both cases.
    """
    database_ok = await ping_database()
    llm_configured = bool(os.environ.get("OPENROUTER_API_KEY", "").strip())

    return success_response(
        {
            "status": "ok" if database_ok and llm_configured else "degraded",
            "database": database_ok,
            "llm": {
                "configured": llm_configured,
                "model": os.environ.get("OPENROUTER_MODEL") or CompletionClient.DEFAULT_MODEL,
            },
        }
    )
