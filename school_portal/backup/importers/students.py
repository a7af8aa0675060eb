# SPDX-FileCopyrightText: (C) ORCD
#
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Importer for students and their dashboards.

Students are matched by firstName + lastName + dateOfBirth. The parent is
found by parentUsername, falling back to userId; a student whose parent
cannot be found is rejected. A nested "dashboard" is restored to the
stored shape and created, replaced or merged alongside the student.
"""

from typing import Any, Dict
import logging

from ..base import BackupFormatError, BaseImporter, ImportResult, ReferenceResolutionError
from ..file_validation import validate_dashboard_files
from ..formats import EXPORT_STUDENTS, SKIP
from ..merge import REPLACE, apply_merge, merge_dashboard, merge_student
from ..registry import ImporterRegistry
from ..sanitizer import restore_dashboard, strip_portable_fields
from ..utils import coerce_dates, deserialize_datetime, get_user_by_id, get_user_by_username

logger = logging.getLogger(__name__)

DASHBOARD_DATE_FIELDS = {
    "portfolios": ("uploadDate",),
    "documents": ("uploadDate",),
    "history": ("date",),
}


def _coerce_dashboard_dates(dashboard: Dict[str, Any]) -> Dict[str, Any]:
    coerced = dict(dashboard)
    for list_name, field_names in DASHBOARD_DATE_FIELDS.items():
        if isinstance(coerced.get(list_name), list):
            coerced[list_name] = [
                {
                    k: (deserialize_datetime(v) or v) if k in field_names else v
                    for k, v in entry.items()
                }
                for entry in coerced[list_name]
            ]
    return coerced


@ImporterRegistry.register
class StudentImporter(BaseImporter):
    """Importer for students, with their dashboards."""

    model_name = "students"
    dependencies = ["users"]
    validation_subject = "student"

    def label(self, record: Dict[str, Any]) -> str:
        return f"{record.get('firstName') or 'Unknown'} {record.get('lastName') or 'Student'}"

    def resolve_parent(self, record: Dict[str, Any]) -> Dict[str, Any]:
        """Find the student's parent user.

        Raises:
            ReferenceResolutionError: If no parent can be found
        """
        users = self.collections.users
        if record.get("parentUsername"):
            parent = get_user_by_username(users, record["parentUsername"])
            if parent is None:
                raise ReferenceResolutionError(
                    f"Parent user '{record['parentUsername']}' not found"
                )
            return parent

        if record.get("userId"):
            parent = get_user_by_id(users, record["userId"])
            if parent is None:
                raise ReferenceResolutionError(
                    f"Parent user with ID '{record['userId']}' not found"
                )
            return parent

        raise ReferenceResolutionError(
            "No parent user reference found (parentUsername or userId required)"
        )

    def prepare_record(self, record: Dict[str, Any]) -> Dict[str, Any]:
        parent = self.resolve_parent(record)

        if not record.get("firstName") or not record.get("lastName"):
            raise ValueError("First name and last name are required")
        if not record.get("dateOfBirth"):
            raise ValueError("Date of birth is required")

        prepared = strip_portable_fields(record, "parentUsername", "dashboard")
        prepared = coerce_dates(prepared, self.schema.date_fields)
        prepared["userId"] = parent["_id"]

        dashboard = restore_dashboard(record.get("dashboard"))
        if dashboard:
            prepared["dashboard"] = _coerce_dashboard_dates(dashboard)
        return prepared

    def validate_files(self, record: Dict[str, Any]):
        if not record.get("dashboard"):
            return None
        return validate_dashboard_files(record["dashboard"], self.media_host)

    def create_record(self, prepared: Dict[str, Any]) -> Any:
        student = dict(prepared)
        dashboard = student.pop("dashboard", None)

        student_id = super().create_record(student)
        if dashboard:
            self.collections.dashboards.insert(dict(dashboard, studentId=student_id))
        self.collections.users.add_to_set(student["userId"], "students", student_id)
        return student_id

    def update_record(self, existing, prepared, strategy):
        student, dashboard = merge_student(existing, prepared, strategy)
        audit = apply_merge(existing, student)
        self.collection.update_by_id(existing["_id"], student)

        if dashboard:
            self._write_dashboard(existing["_id"], dashboard, strategy)

        if student.get("userId") is not None:
            self.collections.users.add_to_set(student["userId"], "students", existing["_id"])

        logger.debug(f"Updated student {self.label(existing)} ({strategy})")
        if strategy == REPLACE:
            return {}
        return {"changesCount": audit["changeCount"], "changes": audit["changes"]}

    def _write_dashboard(self, student_id: Any, dashboard: Dict[str, Any], strategy: str) -> None:
        dashboards = self.collections.dashboards
        existing = dashboards.find_one({"studentId": student_id})
        merged = merge_dashboard(existing, dashboard, strategy)
        if existing is not None:
            dashboards.update_by_id(existing["_id"], merged)
        else:
            dashboards.insert(dict(merged, studentId=student_id))


def import_student_backup(
    collections,
    backup: Dict[str, Any],
    duplicate_handling: str = SKIP,
    media_host=None,
    identity=None,
) -> Dict[str, Any]:
    """Import a students export file.

    Args:
        collections: Collections bundle
        backup: Envelope with "_metadata" and "students"
        duplicate_handling: skip, replace, merge or interactive

    Returns:
        Dict with message, results, summary and backupMetadata

    Raises:
        BackupFormatError: If the envelope is not a students export
    """
    if not isinstance(backup, dict) or "_metadata" not in backup or "students" not in backup:
        raise BackupFormatError(
            "Invalid backup format - missing required fields (_metadata, students)"
        )

    export_type = (backup["_metadata"] or {}).get("exportType")
    if export_type != EXPORT_STUDENTS:
        raise BackupFormatError(
            f"Invalid backup type - expected '{EXPORT_STUDENTS}', got '{export_type}'"
        )

    records = backup["students"] or []
    importer = StudentImporter(collections, media_host=media_host, identity=identity)
    result: ImportResult = importer.import_records(records, duplicate_handling)

    return {
        "message": result.message("Backup import completed"),
        "results": result.to_dict(),
        "summary": result.summary(len(records)),
        "backupMetadata": backup["_metadata"],
    }
