"""
MongoDB connection management using Motor (async driver).

Architecture decision: single DatabaseClient instance shared across all
requests via a module-level singleton. FastAPI's dependency injection
(get_db) gives routes clean access without importing the singleton directly.

The connection is opened in FastAPI's lifespan (startup) and closed
on shutdown.
"""

import asyncio
import logging
import re
from typing import Awaitable, TypeVar

import certifi
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo.errors import DuplicateKeyError, PyMongoError

from campus_safety.core.config import settings
from campus_safety.core.errors import ConflictError, OperationTimeout, TransientError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class DatabaseClient:
    """
    Holds the Motor client and selected database.

    A class rather than bare globals so tests can swap .client and .db.
    """

    client: AsyncIOMotorClient | None = None
    db: AsyncIOMotorDatabase | None = None


# Module-level singleton — all app code references this object
db_client = DatabaseClient()


async def connect_to_mongo() -> None:
    """
    Create the MongoDB connection, validate it with a ping and ensure indexes.

    Fails soft: if MongoDB is unavailable the API still starts and
    DB-backed routes answer 503 (TransientError) until it comes back.
    """
    logger.info("Connecting to MongoDB at %s", _redact_uri(settings.mongo_uri))
    try:
        db_client.client = AsyncIOMotorClient(
            settings.mongo_uri,
            serverSelectionTimeoutMS=5000,
            tlsCAFile=certifi.where(),
            tz_aware=True,
        )
        db_client.db = db_client.client[settings.mongo_db_name]
        await db_client.client.admin.command("ping")
        await ensure_indexes(db_client.db)
        logger.info("MongoDB connection established (db: %s)", settings.mongo_db_name)
    except Exception as exc:
        logger.warning(
            "MongoDB unavailable at startup: %s. "
            "API running in degraded mode — DB endpoints will fail.",
            exc,
        )
        db_client.client = None
        db_client.db = None


async def ensure_indexes(db: AsyncIOMotorDatabase) -> None:
    """Indexes backing the duplicate-candidate query and the login lookup."""
    await db["incidents"].create_index([("location", 1), ("timestamp", -1)])
    await db["incidents"].create_index([("timestamp", -1)])
    await db["users"].create_index("college_id", unique=True)


async def close_mongo_connection() -> None:
    """Close the MongoDB connection gracefully on app shutdown."""
    if db_client.client is not None:
        db_client.client.close()
        logger.info("MongoDB connection closed")


def get_db() -> AsyncIOMotorDatabase | None:
    """
    FastAPI dependency — inject the database into route handlers.

    Returns None when MongoDB is unavailable; repositories turn that into
    a TransientError.
    """
    return db_client.db


def require_db(db: AsyncIOMotorDatabase | None) -> AsyncIOMotorDatabase:
    """Turn a missing connection into a retryable 503."""
    if db is None:
        raise TransientError("Database unavailable")
    return db


async def bounded(awaitable: Awaitable[T], operation: str) -> T:
    """
    Await a driver call under the configured timeout.

    asyncio.TimeoutError → OperationTimeout, DuplicateKeyError → ConflictError,
    any other PyMongoError → TransientError.
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=settings.external_call_timeout_seconds)
    except asyncio.TimeoutError:
        logger.error("MongoDB %s timed out after %.1fs", operation, settings.external_call_timeout_seconds)
        raise OperationTimeout(f"Database timed out during {operation}")
    except DuplicateKeyError:
        raise ConflictError(f"Duplicate record during {operation}")
    except PyMongoError as exc:
        logger.error("MongoDB %s failed: %s", operation, exc)
        raise TransientError(f"Database error during {operation}")


def _redact_uri(uri: str) -> str:
    """Strip credentials from URI before logging."""
    return re.sub(r"://[^:]+:[^@]+@", "://<redacted>@", uri)
