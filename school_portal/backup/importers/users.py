# SPDX-FileCopyrightText: (C) ORCD
#
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Importers for user accounts.

Users are matched by username, then by email. Two modes:

    single import    records carry a plaintext "password", which is
                     validated and hashed; any incoming passwordHash is
                     ignored
    backup mode      records carry the exported passwordHash (or none,
                     when the backup was made without passwords)

Back-references (students, books) are never imported; they are rebuilt as
students and books are imported.
"""

from typing import Any, Dict, List, Optional
import logging
import re

from django.contrib.auth.hashers import make_password

from ..base import BaseImporter
from ..merge import REPLACE, apply_merge, merge_record
from ..registry import ImporterRegistry
from ..sanitizer import strip_portable_fields
from ..schemas import get_schema
from ..utils import coerce_dates, is_empty, to_id_string, to_portable, utc_now

logger = logging.getLogger(__name__)

MIN_USERNAME_LENGTH = 3
MIN_PASSWORD_LENGTH = 8
SPECIAL_CHARACTERS = '!@#$%^&*(),.?":{}|<>'


def validate_password(password: Optional[str]) -> Optional[str]:
    """Check password strength.

    Returns:
        Error message, or None if the password is acceptable
    """
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        return f"Password must be at least {MIN_PASSWORD_LENGTH} characters long"
    if not re.search(r"[a-z]", password):
        return "Password must contain at least one lowercase letter"
    if not re.search(r"[A-Z]", password):
        return "Password must contain at least one uppercase letter"
    if not re.search(r"[0-9]", password):
        return "Password must contain at least one number"
    if not any(c in SPECIAL_CHARACTERS for c in password):
        return f"Password must contain at least one special character ({SPECIAL_CHARACTERS})"
    return None


def validate_user_fields(record: Dict[str, Any]) -> None:
    """Raise ValueError unless username and email are usable."""
    username = record.get("username")
    if not username or len(username) < MIN_USERNAME_LENGTH:
        raise ValueError(
            f"Username must be at least {MIN_USERNAME_LENGTH} characters long"
        )
    if not record.get("email"):
        raise ValueError("Email is required")


@ImporterRegistry.register
class UserImporter(BaseImporter):
    """Importer for user accounts."""

    model_name = "users"
    dependencies = []

    def prepare_record(self, record: Dict[str, Any]) -> Dict[str, Any]:
        validate_user_fields(record)

        prepared = strip_portable_fields(record, "students", "books")
        prepared = coerce_dates(prepared, self.schema.date_fields)
        password = prepared.pop("password", None)

        if self.backup_mode:
            return prepared

        # Single import never trusts an incoming hash
        prepared.pop("passwordHash", None)
        if not is_empty(password):
            error = validate_password(password)
            if error:
                raise ValueError(error)
            prepared["passwordHash"] = make_password(password)
        return prepared

    def create_record(self, prepared: Dict[str, Any]) -> Any:
        if not self.backup_mode and "passwordHash" not in prepared:
            raise ValueError(validate_password(None))

        user = dict(prepared)
        user.setdefault("role", "user")
        user.setdefault("createdAt", utc_now())
        user["students"] = []
        user["books"] = []
        return super().create_record(user)

    def update_record(self, existing, prepared, strategy):
        merged = merge_record(existing, prepared, strategy, self.model_name)
        if not self.backup_mode and prepared.get("passwordHash"):
            merged["passwordHash"] = prepared["passwordHash"]

        audit = apply_merge(existing, merged)
        self.collection.update_by_id(existing["_id"], merged)
        logger.debug(f"Updated user {existing.get('username')} ({strategy})")

        if strategy == REPLACE:
            return {}
        return {"changesCount": audit["changeCount"], "changes": audit["changes"]}

    def success_details(self, prepared):
        return {"email": prepared.get("email")}

    def conflict_summary(self, existing):
        return to_portable({
            "id": existing.get("_id"),
            "username": existing.get("username"),
            "email": existing.get("email"),
            "name": existing.get("name"),
        })


def import_family(
    collections,
    user_data: Dict[str, Any],
    students_data: Optional[List[Dict[str, Any]]] = None,
) -> Dict[str, Any]:
    """Create one new user together with their students.

    Unlike import_records this is all-new: an existing username or email
    rejects the whole request. A student that fails to insert is reported
    and does not undo the user.

    Args:
        collections: Collections bundle
        user_data: User fields including a plaintext "password"
        students_data: Students to create under the new user

    Returns:
        Dict with message, user summary, created students and errors

    Raises:
        ValueError: If the user is invalid or already exists
    """
    validate_user_fields(user_data)
    error = validate_password(user_data.get("password"))
    if error:
        raise ValueError(error)

    users = collections.users
    if users.find_one({"username": user_data["username"]}) or users.find_one(
        {"email": user_data["email"]}
    ):
        raise ValueError("Username or email already exists")

    importer = UserImporter(collections)
    user_id = importer.create_record(importer.prepare_record(user_data))
    logger.info(f"Created user {user_data['username']} with family import")

    created: List[Dict[str, Any]] = []
    errors: List[Dict[str, Any]] = []
    for student in students_data or []:
        name = f"{student.get('firstName') or 'Unknown'} {student.get('lastName') or 'Student'}"
        try:
            record = coerce_dates(
                strip_portable_fields(student, "parentUsername", "dashboard"),
                get_schema("students").date_fields,
            )
            record["userId"] = user_id
            student_id = collections.students.insert(record)
            collections.users.add_to_set(user_id, "students", student_id)
            created.append({
                "id": to_id_string(student_id),
                "firstName": student.get("firstName"),
                "lastName": student.get("lastName"),
            })
        except Exception as e:
            logger.error(f"Error creating student {name} for {user_data['username']}: {e}")
            errors.append({"name": name, "error": str(e)})

    return {
        "message": "User and students imported successfully",
        "user": {
            "id": to_id_string(user_id),
            "username": user_data["username"],
            "email": user_data["email"],
        },
        "students": created,
        "errors": errors,
    }
