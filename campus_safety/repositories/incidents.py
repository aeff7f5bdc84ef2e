"""
incidents.py — Incident repository over the `incidents` collection.

Document shape:
  {
    "_id": ObjectId,
    "location": "Gate A",
    "type": "fire",
    "description": "...",
    "video_url": null,
    "timestamp": ISODate,
    "reported_by": "Asha",
    "status": "reported",
    "priority": 1,
    "duplicate_count": 1,
    "client_ref": "temp-…"       # optional, echoed back to the submitting client
  }

Every driver call goes through `bounded()` so it is time-limited and
driver errors surface as TransientError / OperationTimeout.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ReturnDocument

from campus_safety.core.database import bounded, require_db
from campus_safety.core.errors import NotFoundError, ValidationError
from campus_safety.models.incident import (
    LEGACY_STATUS_ALIASES,
    CampusLocation,
    Incident,
    IncidentDraft,
    IncidentStatus,
)

logger = logging.getLogger(__name__)

COLLECTION = "incidents"


# ── Helpers ───────────────────────────────────────────────────────────────────

def doc_to_incident(doc: dict) -> Incident:
    """Convert a raw MongoDB document to an Incident model."""
    return Incident(
        id=str(doc["_id"]),
        location=doc["location"],
        type=doc["type"],
        description=doc["description"],
        video_url=doc.get("video_url"),
        timestamp=doc["timestamp"],
        reported_by=doc.get("reported_by", "Anonymous"),
        status=doc.get("status", IncidentStatus.REPORTED.value),
        priority=doc.get("priority", 1),
        duplicate_count=max(doc.get("duplicate_count", 1), 1),
        client_ref=doc.get("client_ref"),
    )


def draft_to_doc(draft: IncidentDraft) -> dict:
    doc = draft.model_dump(mode="json")
    # Keep a real datetime so range queries work
    doc["timestamp"] = draft.timestamp
    return doc


def parse_incident_id(incident_id: str) -> ObjectId:
    try:
        return ObjectId(incident_id)
    except (InvalidId, TypeError):
        raise ValidationError("Invalid incident ID format")


def _status_query(status: IncidentStatus) -> dict:
    spellings = [status.value] + [
        legacy for legacy, canonical in LEGACY_STATUS_ALIASES.items() if canonical is status
    ]
    return {"$in": spellings} if len(spellings) > 1 else status.value


# ── Repository ────────────────────────────────────────────────────────────────

class IncidentRepository:
    def __init__(self, db) -> None:
        self.collection = require_db(db)[COLLECTION]

    async def _find(self, query: dict) -> list[Incident]:
        cursor = self.collection.find(query).sort("timestamp", -1)
        docs = await bounded(cursor.to_list(length=None), "list incidents")

        items = []
        for doc in docs:
            try:
                items.append(doc_to_incident(doc))
            except Exception as exc:
                logger.warning("Skipping malformed incident doc %s: %s", doc.get("_id"), exc)
        return items

    async def list_incidents(
        self,
        location: Optional[CampusLocation] = None,
        status: Optional[IncidentStatus] = None,
    ) -> list[Incident]:
        """All incidents, newest first, optionally filtered."""
        query: dict = {}
        if location is not None:
            query["location"] = location.value
        if status is not None:
            query["status"] = _status_query(status)
        return await self._find(query)

    async def candidates(
        self,
        location: CampusLocation,
        around: datetime,
        window: timedelta,
    ) -> list[Incident]:
        """Incidents that could be corroborated by a report at `location` / `around`."""
        return await self._find({
            "location": location.value,
            "timestamp": {"$gte": around - window, "$lte": around + window},
        })

    async def get(self, incident_id: str) -> Incident:
        oid = parse_incident_id(incident_id)
        doc = await bounded(self.collection.find_one({"_id": oid}), "get incident")
        if not doc:
            raise NotFoundError("Incident not found")
        return doc_to_incident(doc)

    async def create(self, draft: IncidentDraft) -> Incident:
        doc = draft_to_doc(draft)
        result = await bounded(self.collection.insert_one(doc), "create incident")
        doc["_id"] = result.inserted_id
        return doc_to_incident(doc)

    async def increment_counters(self, incident_id: str, step: int = 1) -> Incident:
        """Atomically move duplicate_count and priority by `step`."""
        doc = await bounded(
            self.collection.find_one_and_update(
                {"_id": parse_incident_id(incident_id)},
                {"$inc": {"duplicate_count": step, "priority": step}},
                return_document=ReturnDocument.AFTER,
            ),
            "link duplicate",
        )
        if not doc:
            raise NotFoundError("Incident not found")
        return doc_to_incident(doc)

    async def update_status(self, incident_id: str, status: IncidentStatus) -> Incident:
        doc = await bounded(
            self.collection.find_one_and_update(
                {"_id": parse_incident_id(incident_id)},
                {"$set": {"status": status.value}},
                return_document=ReturnDocument.AFTER,
            ),
            "update incident status",
        )
        if not doc:
            raise NotFoundError("Incident not found")
        return doc_to_incident(doc)

    async def delete(self, incident_id: str) -> None:
        result = await bounded(
            self.collection.delete_one({"_id": parse_incident_id(incident_id)}),
            "delete incident",
        )
        if not result.deleted_count:
            raise NotFoundError("Incident not found")
