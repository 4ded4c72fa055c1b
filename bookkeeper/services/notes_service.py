"""Read access to notes for building AI query context."""

from bookkeeper.api.exceptions import ScopeNotFoundError
from bookkeeper.db.mongo import get_database
from bookkeeper.models.ai import AiQueryScope

NOTES_COLLECTION = "notes"
BOOKS_COLLECTION = "books"
SERIES_COLLECTION = "series"

# Upper bound on notes sent as context, keeps prompts within token limits
DEFAULT_NOTES_LIMIT = 100


async def verify_scope(scope: AiQueryScope) -> None:
    """Check that the book or series referenced by ``scope`` exists.

    Raises:
        ScopeNotFoundError: If the referenced document is missing.
    """
    db = await get_database()

    if scope.book_id is not None:
        book_id = str(scope.book_id)
        if await db[BOOKS_COLLECTION].find_one({"_id": book_id}, {"_id": 1}) is None:
            raise ScopeNotFoundError("book", book_id)
    elif scope.series_id is not None:
        series_id = str(scope.series_id)
        if await db[SERIES_COLLECTION].find_one({"_id": series_id}, {"_id": 1}) is None:
            raise ScopeNotFoundError("series", series_id)


async def list_notes(scope: AiQueryScope, limit: int = DEFAULT_NOTES_LIMIT) -> list[dict]:
    """List notes within ``scope``, oldest first, as plain dicts.

    Each dict has ``id``, ``chapter_id`` and ``content``.
    """
    db = await get_database()

    query: dict = {}
    if scope.book_id is not None:
        query["book_id"] = str(scope.book_id)
    elif scope.series_id is not None:
        query["series_id"] = str(scope.series_id)

    cursor = db[NOTES_COLLECTION].find(query, sort=[("created_at", 1)], limit=limit)
    docs = await cursor.to_list(length=limit)

    return [
        {
            "id": str(doc["_id"]),
            "chapter_id": str(doc.get("chapter_id", "")),
            "content": doc.get("content", ""),
        }
        for doc in docs
    ]
