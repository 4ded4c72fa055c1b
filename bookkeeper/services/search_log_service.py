"""Search logs: one record per AI query, plus error records for failures."""

import logging
from datetime import UTC, datetime

from pymongo.errors import PyMongoError

from bookkeeper.db.mongo import get_database
from bookkeeper.models.ai import ErrorSource

logger = logging.getLogger(__name__)

SEARCH_LOGS_COLLECTION = "search_logs"
SEARCH_ERRORS_COLLECTION = "search_errors"

MAX_ERROR_MESSAGE_LENGTH = 500


async def create_search_log(query_text: str) -> str:
    """Insert a query log record and return its id."""
    db = await get_database()
    result = await db[SEARCH_LOGS_COLLECTION].insert_one(
        {
            "query_text": query_text,
            "created_at": datetime.now(UTC),
        }
    )
    return str(result.inserted_id)


async def log_search_error(
    search_log_id: str | None,
    source: ErrorSource,
    error_message: str,
) -> None:
    """Record a failed query. Never raises; storage failures are logged."""
    try:
        db = await get_database()
        await db[SEARCH_ERRORS_COLLECTION].insert_one(
            {
                "search_log_id": search_log_id,
                "source": source,
                "error_message": error_message[:MAX_ERROR_MESSAGE_LENGTH],
                "created_at": datetime.now(UTC),
            }
        )
    except PyMongoError as e:
        logger.error(
            "Failed to store search error record: %s",
            type(e).__name__,
            extra={"search_log_id": search_log_id, "source": source},
        )
