# SPDX-FileCopyrightText: (C) ORCD
#
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Exporter for event signup sheets."""

from typing import Any, Dict, List

from ..base import BaseExporter
from ..formats import EXPORT_EVENT_SIGNUPS
from ..registry import ExporterRegistry
from ..sanitizer import sanitize_event_signup
from ..utils import date_range, to_id_string


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return bool(value)


@ExporterRegistry.register
class EventSignupExporter(BaseExporter):
    """Exporter for events, latest event first.

    Filters:
        startDate / endDate: Range on eventDate, endDate covers the whole day
        isActive: Only active (or only inactive) events
    """

    model_name = "event_signups"
    export_type = EXPORT_EVENT_SIGNUPS
    export_key = "eventSignups"
    dependencies = ["users"]
    _users: Dict[str, Dict[str, Any]] = {}

    def get_records(self, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        query: Dict[str, Any] = {}
        if filters.get("startDate") or filters.get("endDate"):
            query["eventDate"] = date_range(filters.get("startDate"), filters.get("endDate"))
        if filters.get("isActive") is not None:
            query["isActive"] = _as_bool(filters["isActive"])

        events = self.collections.event_signups.find(query, sort=[("eventDate", -1)])

        referenced = []
        for event in events:
            referenced.append(event.get("createdBy"))
            referenced.extend(s.get("userId") for s in event.get("signups") or [])
        self._users = self.users_by_id(referenced)

        return events

    def serialize_record(self, record: Dict[str, Any], options: Dict[str, Any]) -> Dict[str, Any]:
        event = dict(record)
        creator = self._users.get(to_id_string(record.get("createdBy")))
        if creator is not None:
            event["createdBy"] = creator
        if event.get("signups"):
            event["signups"] = [
                dict(s, userId=self._users.get(to_id_string(s.get("userId")), s.get("userId")))
                for s in event["signups"]
            ]
        return sanitize_event_signup(event)
