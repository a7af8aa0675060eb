# SPDX-FileCopyrightText: (C) ORCD
#
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Exporter for notifications."""

from typing import Any, Dict, List

from ..base import BaseExporter
from ..formats import EXPORT_NOTIFICATIONS
from ..registry import ExporterRegistry
from ..sanitizer import sanitize_notification
from ..utils import date_range, to_id_string


@ExporterRegistry.register
class NotificationExporter(BaseExporter):
    """Exporter for notifications, newest first.

    Filters:
        startDate / endDate: Range on createdAt, endDate covers the whole day
        targetType: "public" or "student-specific"
    """

    model_name = "notifications"
    export_type = EXPORT_NOTIFICATIONS
    export_key = "notifications"
    dependencies = ["students"]
    _creators: Dict[str, Dict[str, Any]] = {}

    def get_records(self, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        query: Dict[str, Any] = {}
        if filters.get("startDate") or filters.get("endDate"):
            query["createdAt"] = date_range(filters.get("startDate"), filters.get("endDate"))
        if filters.get("targetType"):
            query["targetType"] = filters["targetType"]

        notifications = self.collections.notifications.find(query, sort=[("createdAt", -1)])
        self._creators = self.users_by_id(n.get("createdBy") for n in notifications)
        return notifications

    def serialize_record(self, record: Dict[str, Any], options: Dict[str, Any]) -> Dict[str, Any]:
        notification = dict(record)
        creator = self._creators.get(to_id_string(record.get("createdBy")))
        if creator is not None:
            notification["createdBy"] = creator
        return sanitize_notification(notification)
