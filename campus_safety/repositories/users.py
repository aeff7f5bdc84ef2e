"""
users.py — User directory over the `users` collection.

Document shape:
  {
    "_id": ObjectId,
    "college_id": "248CS1021",
    "name": "Asha",
    "role": "student",
    "status": "pending" | "approved" | "banned",
    "phone": "BIO-1234",          # biometric id for students
    "hashed_password": "$2b$...",
    "created_at": ISODate
  }
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ReturnDocument

from campus_safety.core.database import bounded, require_db
from campus_safety.core.errors import ConflictError, NotFoundError
from campus_safety.core.security import hash_password
from campus_safety.models.user import Role, UserOut, UserStatus

logger = logging.getLogger(__name__)

COLLECTION = "users"


def doc_to_user_out(doc: dict) -> UserOut:
    """Convert a raw MongoDB document to a UserOut model."""
    return UserOut(
        id=str(doc["_id"]),
        college_id=doc.get("college_id"),
        name=doc.get("name") or doc.get("college_id") or "Unknown",
        role=doc.get("role", Role.STUDENT.value),
        status=doc.get("status", UserStatus.PENDING.value),
        phone=doc.get("phone"),
        created_at=doc.get("created_at"),
    )


def _parse_user_id(user_id: str) -> Optional[ObjectId]:
    try:
        return ObjectId(user_id)
    except (InvalidId, TypeError):
        return None


class UserDirectory:
    def __init__(self, db) -> None:
        self.collection = require_db(db)[COLLECTION]

    async def find_by_college_id(self, college_id: str) -> Optional[dict]:
        """Raw document (including the password hash), or None."""
        return await bounded(
            self.collection.find_one({"college_id": college_id}), "find user"
        )

    async def get(self, user_id: str) -> Optional[dict]:
        oid = _parse_user_id(user_id)
        if oid is None:
            return None
        return await bounded(self.collection.find_one({"_id": oid}), "get user")

    async def create(
        self,
        *,
        college_id: str,
        name: str,
        password: str,
        role: Role,
        status: UserStatus,
        phone: Optional[str] = None,
    ) -> UserOut:
        if await self.find_by_college_id(college_id):
            raise ConflictError("This College ID is already registered")

        doc = {
            "college_id": college_id,
            "name": name,
            "role": role.value,
            "status": status.value,
            "phone": phone,
            "hashed_password": hash_password(password),
            "created_at": datetime.now(tz=timezone.utc),
        }
        result = await bounded(self.collection.insert_one(doc), "create user")
        doc["_id"] = result.inserted_id
        logger.info("Created %s account %s (%s)", role.value, college_id, status.value)
        return doc_to_user_out(doc)

    async def list_users(
        self,
        role: Optional[Role] = None,
        status: Optional[UserStatus] = None,
    ) -> list[UserOut]:
        query: dict = {}
        if role is not None:
            query["role"] = role.value
        if status is not None:
            query["status"] = status.value

        cursor = self.collection.find(query).sort("created_at", -1)
        docs = await bounded(cursor.to_list(length=None), "list users")
        return [doc_to_user_out(d) for d in docs]

    async def set_status(self, user_id: str, status: UserStatus) -> UserOut:
        oid = _parse_user_id(user_id)
        if oid is None:
            raise NotFoundError("User not found")

        doc = await bounded(
            self.collection.find_one_and_update(
                {"_id": oid},
                {"$set": {"status": status.value}},
                return_document=ReturnDocument.AFTER,
            ),
            "update user status",
        )
        if not doc:
            raise NotFoundError("User not found")
        logger.info("User %s status → %s", user_id, status.value)
        return doc_to_user_out(doc)
