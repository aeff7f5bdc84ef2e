"""
health.py — Liveness check for the Campus Safety API.

  GET /health → { status, version, environment, database, stream_subscribers }

`database` separates "API down" from "API up but MongoDB unreachable";
the ping runs under the same timeout as every other driver call, so a
hung cluster reports "disconnected" instead of hanging the check.
`stream_subscribers` is the number of open incident-stream sockets.
"""

import logging

from fastapi import APIRouter
from pydantic import BaseModel

from campus_safety import __version__
from campus_safety.core import database as db_module
from campus_safety.core.config import settings
from campus_safety.core.errors import CampusSafetyError
from campus_safety.services.broadcaster import broadcaster

logger = logging.getLogger(__name__)
router = APIRouter()


class HealthResponse(BaseModel):
    status: str  # "ok" whenever the process answers
    version: str
    environment: str
    database: str  # "connected" | "disconnected"
    stream_subscribers: int


async def _database_status() -> str:
    # Module reference, so tests can swap db_module.db_client
    client = db_module.db_client.client
    if client is None:
        return "disconnected"
    try:
        await db_module.bounded(client.admin.command("ping"), "ping")
    except CampusSafetyError as exc:
        logger.warning("Health ping failed: %s", exc.message)
        return "disconnected"
    return "connected"


@router.get("", response_model=HealthResponse, summary="API health check")
async def health_check() -> HealthResponse:
    """Always 200 while the process is alive; the body says what is degraded."""
    return HealthResponse(
        status="ok",
        version=__version__,
        environment=settings.environment,
        database=await _database_status(),
        stream_subscribers=broadcaster.subscriber_count,
    )
