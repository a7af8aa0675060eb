# SPDX-FileCopyrightText: (C) ORCD
#
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Importer for notifications."""

from typing import Any, Dict
import logging

from ..base import BaseImporter
from ..file_validation import validate_notification_files
from ..registry import ImporterRegistry
from ..sanitizer import strip_portable_fields
from ..utils import coerce_dates, to_id_string

logger = logging.getLogger(__name__)

TIMESTAMP_FIELDS = ("createdAt", "updatedAt")


@ImporterRegistry.register
class NotificationImporter(BaseImporter):
    """Importer for notifications, matched by title + message.

    The creator is re-resolved by createdByUsername. Target students that
    no longer exist are dropped from targetStudents.
    """

    model_name = "notifications"
    dependencies = ["students"]
    validation_subject = "notification"

    def prepare_record(self, record: Dict[str, Any]) -> Dict[str, Any]:
        if not record.get("title") or not record.get("message"):
            raise ValueError("Title and message are required")

        prepared = strip_portable_fields(record, "createdByUsername")
        prepared = coerce_dates(prepared, TIMESTAMP_FIELDS)

        creator = self.resolve_creator(record)
        if creator is not None:
            prepared["createdBy"] = creator
        else:
            prepared.pop("createdBy", None)

        if "targetStudents" in prepared:
            prepared["targetStudents"] = self._resolve_students(prepared["targetStudents"])

        return prepared

    def _resolve_students(self, refs) -> list:
        resolved = []
        for ref in refs or []:
            student = self.collections.students.find_by_id(to_id_string(ref))
            if student is None:
                logger.warning(f"Dropping unknown target student {ref}")
                continue
            resolved.append(student["_id"])
        return resolved

    def validate_files(self, record: Dict[str, Any]):
        if not record.get("attachmentUrl"):
            return None
        return validate_notification_files(record, self.media_host)
