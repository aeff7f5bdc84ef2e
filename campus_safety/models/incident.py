"""
incident.py — Pydantic schemas and enumerations for campus incidents.

Enumerations are the single source of truth for dropdowns, validation
and aggregation order:

  CampusLocation — fixed set of campus blocks; declaration order is the
                   stable tie-break order for the heatmap
  IncidentType   — report categories
  IncidentStatus — canonical lifecycle vocabulary

Schemas:
  IncidentCreate  — what the client sends
  IncidentDraft   — a validated report before it has an id
  Incident        — stored incident returned by the API
  StatusUpdate    — payload for PATCH /incidents/{id}/status
  LocationStats   — derived per-location rollup for the heatmap
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator


# ── Enumerations ──────────────────────────────────────────────────────────────

class CampusLocation(str, Enum):
    BLOCK_A = "Block A"
    BLOCK_R9 = "Block R9"
    BTECH_EM_MAIN_BLOCK = "Btech EM Main Block"
    NEW_BLOCK = "New Block"
    PLAYGROUND = "Playground"
    PHARMACY_BLOCK = "Pharmacy Block"
    PARKING = "Parking"
    BOYS_HOSTEL = "Boys Hostel"
    RC_MAIN_BLOCK = "RC Main Block"
    GIRLS_HOSTEL = "Girls Hostel"
    RC_DIPLOMA_BLOCK = "RC Diploma Block"
    RC_CIVIL_BLOCK = "RC Civil Block"
    CANTEEN = "Canteen"
    BLOCK_T = "Block T"
    GATE_C = "Gate C"
    GATE_B = "Gate B"
    GATE_A = "Gate A"


class IncidentType(str, Enum):
    FIRE = "fire"
    FIGHT = "fight"
    MEDICAL = "medical"
    HARASSMENT = "harassment"
    THEFT = "theft"
    SUSPICIOUS_ACTIVITY = "suspicious_activity"
    VANDALISM = "vandalism"
    OTHER = "other"


INCIDENT_TYPE_LABELS: dict[IncidentType, str] = {
    IncidentType.FIRE: "Fire Hazard",
    IncidentType.FIGHT: "Physical Altercation",
    IncidentType.MEDICAL: "Medical Emergency",
    IncidentType.HARASSMENT: "Harassment/Bullying",
    IncidentType.THEFT: "Theft",
    IncidentType.SUSPICIOUS_ACTIVITY: "Suspicious Activity",
    IncidentType.VANDALISM: "Vandalism",
    IncidentType.OTHER: "Other",
}


class IncidentStatus(str, Enum):
    REPORTED = "reported"            # initial state
    INVESTIGATING = "investigating"  # security is on the way
    ACTION_TAKEN = "action_taken"    # steps taken to mitigate
    RESOLVED = "resolved"            # case closed


# Older documents and clients spell "investigating" as "under_review".
LEGACY_STATUS_ALIASES: dict[str, IncidentStatus] = {
    "under_review": IncidentStatus.INVESTIGATING,
}

INCIDENT_STATUS_LABELS: dict[IncidentStatus, str] = {
    IncidentStatus.REPORTED: "Reported",
    IncidentStatus.INVESTIGATING: "Under Review",
    IncidentStatus.ACTION_TAKEN: "Action Taken",
    IncidentStatus.RESOLVED: "Resolved",
}


def normalize_status(value):
    """Map legacy spellings onto the canonical status vocabulary."""
    if isinstance(value, str) and value in LEGACY_STATUS_ALIASES:
        return LEGACY_STATUS_ALIASES[value]
    return value


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


# ── Incident ──────────────────────────────────────────────────────────────────

class IncidentCreate(BaseModel):
    """Payload for POST /api/v1/incidents."""
    location: CampusLocation
    type: IncidentType
    description: str = Field(min_length=1, max_length=5000)
    video_url: Optional[str] = Field(default=None, max_length=2048)
    # Hide the submitter's name on the report
    anonymous: bool = False
    # Optimistic id the submitting client shows the report under; echoed back
    client_ref: Optional[str] = Field(default=None, max_length=64)

    @field_validator("description")
    @classmethod
    def _description_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("description must not be blank")
        return v

    @field_validator("video_url")
    @classmethod
    def _blank_url_is_none(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            return None
        return v


class IncidentDraft(BaseModel):
    """A validated report that has not been assigned an id yet."""
    location: CampusLocation
    type: IncidentType
    description: str
    video_url: Optional[str] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(tz=timezone.utc))
    reported_by: str = "Anonymous"
    status: IncidentStatus = IncidentStatus.REPORTED
    priority: int = Field(default=1, ge=1)
    duplicate_count: int = Field(default=1, ge=1)
    client_ref: Optional[str] = None

    @field_validator("status", mode="before")
    @classmethod
    def _canonical_status(cls, v):
        return normalize_status(v)


class Incident(IncidentDraft):
    """A stored incident."""
    id: str


class StatusUpdate(BaseModel):
    """Payload for PATCH /api/v1/incidents/{id}/status."""
    status: IncidentStatus

    @field_validator("status", mode="before")
    @classmethod
    def _canonical_status(cls, v):
        return normalize_status(v)


class SubmitResponse(BaseModel):
    """Response body for POST /api/v1/incidents."""
    incident: Incident
    is_duplicate: bool
    # Ids of existing incidents this report corroborated
    linked_ids: list[str] = Field(default_factory=list)


# ── Aggregates ────────────────────────────────────────────────────────────────

class LocationStats(BaseModel):
    """One heatmap cell / leaderboard row."""
    location: CampusLocation
    count: int = Field(ge=0)
    severity: Severity


class HeatmapResponse(BaseModel):
    """Combined snapshot returned by GET /api/v1/heatmap."""
    stats: list[LocationStats]
    total_incidents: int
    policy: str
    include_resolved: bool


class CatalogOption(BaseModel):
    value: str
    label: str


class CatalogResponse(BaseModel):
    """Dropdown values for the report form and admin filters."""
    locations: list[str]
    types: list[CatalogOption]
    statuses: list[CatalogOption]
