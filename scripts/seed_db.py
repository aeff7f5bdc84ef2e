#!/usr/bin/env python3
"""
seed_db.py — Populate MongoDB with sample data for local development.

Creates:
  - indexes used by the duplicate-candidate query and login lookup
  - an approved admin account (skipped if the College ID already exists)
  - sample incidents spread over the last few hours, some corroborated

Usage:
    python scripts/seed_db.py
    python scripts/seed_db.py --admin-id ADMIN248 --admin-password changeme123
    python scripts/seed_db.py --append      # keep existing seed incidents

Reads MONGO_URI / MONGO_DB_NAME from the environment or .env
(campus_safety.core.config.Settings).

Safe to re-run: deletes seed incidents first, then re-inserts.
"""

import argparse
import asyncio
from datetime import datetime, timedelta, timezone

import certifi
from motor.motor_asyncio import AsyncIOMotorClient

from campus_safety.core.config import settings
from campus_safety.core.database import ensure_indexes
from campus_safety.core.security import hash_password
from campus_safety.models.incident import CampusLocation, IncidentStatus, IncidentType
from campus_safety.models.user import Role, UserStatus

SEED_REPORTER = "Seed Data"

# (location, type, description, minutes ago, status, priority)
SAMPLE_INCIDENTS = [
    (CampusLocation.GATE_A, IncidentType.FIRE, "small fire near gate", 20, IncidentStatus.REPORTED, 2),
    (CampusLocation.GATE_A, IncidentType.FIRE, "fire spotted near the gate", 10, IncidentStatus.REPORTED, 2),
    (CampusLocation.CANTEEN, IncidentType.FIGHT, "two students fighting in the queue", 45, IncidentStatus.INVESTIGATING, 1),
    (CampusLocation.BOYS_HOSTEL, IncidentType.THEFT, "laptop stolen from room 204", 180, IncidentStatus.ACTION_TAKEN, 1),
    (CampusLocation.PARKING, IncidentType.VANDALISM, "scratched cars in row C", 240, IncidentStatus.RESOLVED, 1),
    (CampusLocation.BLOCK_A, IncidentType.MEDICAL, "student fainted outside lab 3", 5, IncidentStatus.REPORTED, 1),
    (CampusLocation.GIRLS_HOSTEL, IncidentType.SUSPICIOUS_ACTIVITY, "unknown person near the back entrance", 60, IncidentStatus.REPORTED, 1),
    (CampusLocation.PLAYGROUND, IncidentType.HARASSMENT, "group teasing juniors after practice", 90, IncidentStatus.INVESTIGATING, 1),
]


def build_incident_docs(now: datetime) -> list[dict]:
    docs = []
    for location, kind, description, minutes_ago, status, priority in SAMPLE_INCIDENTS:
        docs.append({
            "location": location.value,
            "type": kind.value,
            "description": description,
            "video_url": None,
            "timestamp": now - timedelta(minutes=minutes_ago),
            "reported_by": SEED_REPORTER,
            "status": status.value,
            "priority": priority,
            "duplicate_count": priority,
        })
    return docs


async def seed(admin_id: str, admin_password: str, append: bool) -> None:
    print("Connecting to MongoDB...")
    client = AsyncIOMotorClient(settings.mongo_uri, tlsCAFile=certifi.where(), tz_aware=True)
    db = client[settings.mongo_db_name]

    try:
        await client.admin.command("ping")
        print("Connected.")

        # ─── Indexes ──────────────────────────────────────────────────────────
        await ensure_indexes(db)
        print("Indexes ensured.")

        # ─── Admin account ────────────────────────────────────────────────────
        if await db.users.find_one({"college_id": admin_id}):
            print(f"Admin {admin_id} already exists, skipping.")
        else:
            await db.users.insert_one({
                "college_id": admin_id,
                "name": "Campus Admin",
                "role": Role.ADMIN.value,
                "status": UserStatus.APPROVED.value,
                "phone": None,
                "hashed_password": hash_password(admin_password),
                "created_at": datetime.now(timezone.utc),
            })
            print(f"Created admin {admin_id}.")

        # ─── Incidents ────────────────────────────────────────────────────────
        if not append:
            deleted = await db.incidents.delete_many({"reported_by": SEED_REPORTER})
            print(f"Removed {deleted.deleted_count} existing seed incidents.")

        result = await db.incidents.insert_many(build_incident_docs(datetime.now(timezone.utc)))
        print(f"Inserted {len(result.inserted_ids)} incidents.")

        print("\nSeed complete! Incidents per location:")
        pipeline = [{"$group": {"_id": "$location", "count": {"$sum": 1}}}, {"$sort": {"count": -1}}]
        async for doc in db.incidents.aggregate(pipeline):
            print(f"  {doc['_id']}: {doc['count']}")

    finally:
        client.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed the campus safety database")
    parser.add_argument("--admin-id", default="ADMIN248", help="College ID of the seeded admin")
    parser.add_argument("--admin-password", default="admin-password-248", help="Password of the seeded admin")
    parser.add_argument("--append", action="store_true", help="Keep previously seeded incidents")
    args = parser.parse_args()

    asyncio.run(seed(args.admin_id, args.admin_password, args.append))
