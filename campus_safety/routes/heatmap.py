"""
heatmap.py — Campus incident density.

Routes:
  GET /api/v1/heatmap — one LocationStats per campus location, busiest first

HOW THE DATA FLOWS
──────────────────
1. The dashboard calls GET /api/v1/heatmap on load and again whenever
   the incident stream pushes an event.
2. Incidents are read from MongoDB and rolled up by
   services/severity.aggregate_locations() (pure, no I/O).
3. The same list drives the block grid (look up by location) and the
   intensity bar chart (already sorted by count).

Query params:
  policy           — "relative" | "absolute" (defaults to SEVERITY_POLICY)
  include_resolved — count resolved incidents too (defaults to HEATMAP_INCLUDE_RESOLVED)

  curl -H "Authorization: Bearer $TOKEN" "http://localhost:8000/api/v1/heatmap?policy=absolute"
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from campus_safety.core.config import settings
from campus_safety.core.database import get_db
from campus_safety.models.incident import HeatmapResponse
from campus_safety.repositories.incidents import IncidentRepository
from campus_safety.routes.auth import CurrentUser
from campus_safety.services.severity import SeverityPolicy, aggregate_locations

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/heatmap", tags=["heatmap"])


@router.get("", response_model=HeatmapResponse)
async def get_heatmap(
    user: CurrentUser,
    policy: Optional[SeverityPolicy] = Query(default=None, description="Severity tiering policy"),
    include_resolved: Optional[bool] = Query(default=None, description="Count resolved incidents"),
    db=Depends(get_db),
):
    """Per-location incident count and severity tier."""
    policy = policy or SeverityPolicy(settings.severity_policy)
    if include_resolved is None:
        include_resolved = settings.heatmap_include_resolved

    incidents = await IncidentRepository(db).list_incidents()
    stats = aggregate_locations(incidents, policy=policy, include_resolved=include_resolved)

    return HeatmapResponse(
        stats=stats,
        total_incidents=sum(s.count for s in stats),
        policy=policy.value,
        include_resolved=include_resolved,
    )
