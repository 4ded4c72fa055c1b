"""MongoDB access for notes, scopes and search logs (Motor async driver)."""

import logging
import os

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo.errors import PyMongoError

logger = logging.getLogger(__name__)

# Configuration from environment variables with defaults
MONGODB_URL = os.getenv("MONGODB_URL", "mongodb://localhost:27017")
DATABASE_NAME = os.getenv("DATABASE_NAME", "bookkeeper")

# Fail fast if MongoDB is unavailable
SERVER_SELECTION_TIMEOUT_MS = 5000

_client: AsyncIOMotorClient | None = None


async def get_database() -> AsyncIOMotorDatabase:
    """Get the notes database, creating the client on first use."""
    global _client
    if _client is None:
        _client = AsyncIOMotorClient(
            MONGODB_URL,
            serverSelectionTimeoutMS=SERVER_SELECTION_TIMEOUT_MS,
            connectTimeoutMS=SERVER_SELECTION_TIMEOUT_MS,
        )
    return _client[DATABASE_NAME]


async def ping_database() -> bool:
    """Return True if the notes database answers a ping."""
    try:
        db = await get_database()
        await db.command("ping")
    except PyMongoError as e:
        logger.warning("Notes database ping failed: %s", type(e).__name__)
        return False
    return True


async def close_database() -> None:
    """Close the database connection."""
    global _client
    if _client is not None:
        _client.close()
        _client = None


def set_client(client: AsyncIOMotorClient | None) -> None:
    """Set the client instance (for testing)."""
    global _client
    _client = client
