# SPDX-FileCopyrightText: (C) ORCD
#
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Exporters for user accounts and families.

Exports:
    - users: User accounts (passwordHash only on request)
    - users-with-students: Every user with their students nested
    - single-user-with-students: One user with their students
"""

from typing import Any, Dict, List
import logging

from ...store import to_object_id
from ..base import BaseExporter
from ..formats import (
    EXPORT_SINGLE_USER_WITH_STUDENTS,
    EXPORT_USERS,
    EXPORT_USERS_WITH_STUDENTS,
)
from ..registry import ExporterRegistry
from ..sanitizer import sanitize_student, sanitize_user
from ..utils import to_id_string, utc_timestamp

logger = logging.getLogger(__name__)


def _user_query(filters: Dict[str, Any]) -> Dict[str, Any]:
    query = {}
    if filters.get("role"):
        query["role"] = filters["role"]
    return query


@ExporterRegistry.register
class UserExporter(BaseExporter):
    """Exporter for user accounts, newest first.

    Filters:
        role: Only users with this role
    """

    model_name = "users"
    export_type = EXPORT_USERS
    export_key = "users"
    dependencies = []

    def get_records(self, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        return self.collections.users.find(_user_query(filters), sort=[("createdAt", -1)])

    def serialize_record(self, record: Dict[str, Any], options: Dict[str, Any]) -> Dict[str, Any]:
        return sanitize_user(record, bool(options.get("preserve_passwords")))

    def extra_metadata(self, filters, options):
        return {"preservePasswords": bool(options.get("preserve_passwords"))}


class UsersWithStudentsExporter:
    """Exports users with their students nested under each user.

    Not registered: the full backup exports users and students separately.
    """

    export_type = EXPORT_USERS_WITH_STUDENTS

    def __init__(self, collections):
        self.collections = collections

    def _students_of(self, user: Dict[str, Any]) -> List[Dict[str, Any]]:
        ids = [to_object_id(to_id_string(s)) for s in user.get("students") or []]
        if not ids:
            return []
        return self.collections.students.find({"_id": {"$in": ids}})

    def _family(self, user: Dict[str, Any], options: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "user": sanitize_user(user, bool(options.get("preserve_passwords"))),
            "students": [sanitize_student(s) for s in self._students_of(user)],
        }

    def export(self, filters=None, options=None) -> Dict[str, Any]:
        filters = filters or {}
        options = options or {}

        users = self.collections.users.find(_user_query(filters), sort=[("createdAt", -1)])
        data = [self._family(user, options) for user in users]
        logger.info(f"Exporting {len(data)} users with their students...")

        return {
            "_metadata": {
                "exportType": self.export_type,
                "exportTimestamp": utc_timestamp(),
                "totalUsers": len(data),
                "totalStudents": sum(len(family["students"]) for family in data),
                "filters": filters,
                "preservePasswords": bool(options.get("preserve_passwords")),
            },
            "data": data,
        }

    def export_one(self, user_id: Any) -> Dict[str, Any]:
        """Export a single user and their students.

        Raises:
            LookupError: If the user does not exist
        """
        user = self.collections.users.find_by_id(user_id)
        if user is None:
            raise LookupError("User not found")

        family = self._family(user, {})
        return {
            "_metadata": {
                "exportType": EXPORT_SINGLE_USER_WITH_STUDENTS,
                "exportTimestamp": utc_timestamp(),
                "userId": to_id_string(user_id),
            },
            **family,
        }
