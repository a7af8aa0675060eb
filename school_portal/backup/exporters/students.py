# SPDX-FileCopyrightText: (C) ORCD
#
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Exporter for students and their dashboards."""

from typing import Any, Dict, List

from ...store import to_object_id
from ..base import BaseExporter
from ..formats import EXPORT_STUDENTS
from ..registry import ExporterRegistry
from ..sanitizer import sanitize_student
from ..utils import month_range, to_id_string


@ExporterRegistry.register
class StudentExporter(BaseExporter):
    """Exporter for students, most recent enrollment first.

    Filters:
        startMonth / endMonth: "YYYY-MM", inclusive range on enrollmentStartDate
        userId: Only students of this parent
        includeDashboard: Nest each student's dashboard under "dashboard"

    The owning user is loaded so that every record carries parentUsername,
    which is how the import side finds the parent again.
    """

    model_name = "students"
    export_type = EXPORT_STUDENTS
    export_key = "students"
    dependencies = ["users"]

    def __init__(self, collections):
        super().__init__(collections)
        self._parents: Dict[str, Dict[str, Any]] = {}
        self._dashboards: Dict[str, Dict[str, Any]] = {}

    def get_records(self, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        query: Dict[str, Any] = {}
        if filters.get("startMonth") or filters.get("endMonth"):
            query["enrollmentStartDate"] = month_range(
                filters.get("startMonth"), filters.get("endMonth")
            )
        if filters.get("userId"):
            query["userId"] = to_object_id(filters["userId"])

        students = self.collections.students.find(
            query, sort=[("enrollmentStartDate", -1), ("createdAt", -1)]
        )

        self._parents = self.users_by_id(s.get("userId") for s in students)
        self._dashboards = {}
        if filters.get("includeDashboard"):
            dashboards = self.collections.dashboards.find(
                {"studentId": {"$in": [s["_id"] for s in students]}}
            )
            self._dashboards = {to_id_string(d["studentId"]): d for d in dashboards}

        return students

    def serialize_record(self, record: Dict[str, Any], options: Dict[str, Any]) -> Dict[str, Any]:
        student = dict(record)
        parent = self._parents.get(to_id_string(record.get("userId")))
        if parent is not None:
            student["userId"] = parent
        return sanitize_student(student, self._dashboards.get(to_id_string(record["_id"])))

    def extra_metadata(self, filters, options):
        return {"includeDashboard": bool(filters.get("includeDashboard"))}
