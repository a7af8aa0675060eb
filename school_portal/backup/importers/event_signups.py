# SPDX-FileCopyrightText: (C) ORCD
#
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Importer for event signup sheets.

Events are matched by eventTitle + eventDate. Each signup is re-resolved
by userUsername, then userId; signups of users that no longer exist are
dropped. Merging into an existing event adds the signups of users who are
not signed up yet and refreshes the event's descriptive fields.
"""

from typing import Any, Dict, List
import logging

from ..base import BaseImporter
from ..formats import MERGE, REPLACE
from ..merge import apply_merge, merge_record
from ..registry import ImporterRegistry
from ..sanitizer import strip_portable_fields
from ..utils import coerce_dates, to_id_string

logger = logging.getLogger(__name__)

TIMESTAMP_FIELDS = ("createdAt", "updatedAt")

# Refreshed from the incoming event when new signups are merged in
REFRESHED_FIELDS = ("eventTitle", "eventDescription", "googleCalendarLink", "maxSignups", "isActive")


@ImporterRegistry.register
class EventSignupImporter(BaseImporter):
    """Importer for events and their signups."""

    model_name = "event_signups"
    dependencies = ["users"]
    skip_message = "Skipped - duplicate event found"
    nothing_to_merge_message = "No new signups to merge"

    def prepare_record(self, record: Dict[str, Any]) -> Dict[str, Any]:
        if not record.get("eventTitle") or not record.get("eventDate"):
            raise ValueError("Event title and event date are required")

        prepared = strip_portable_fields(record, "createdByUsername")
        prepared = coerce_dates(prepared, self.schema.date_fields + TIMESTAMP_FIELDS)

        creator = self.resolve_creator(record)
        if creator is not None:
            prepared["createdBy"] = creator
        else:
            prepared.pop("createdBy", None)

        prepared["signups"] = self._resolve_signups(record.get("signups"))
        return prepared

    def _resolve_signups(self, signups) -> List[Dict[str, Any]]:
        resolved = []
        for signup in signups or []:
            user = self.resolve_user(signup.get("userUsername"), signup.get("userId"))
            if user is None:
                logger.warning(
                    f"Dropping signup of unknown user "
                    f"{signup.get('userUsername') or signup.get('userId')}"
                )
                continue
            clean = strip_portable_fields(signup, "userUsername")
            clean["userId"] = user["_id"]
            clean["userName"] = user.get("name") or user.get("username")
            resolved.append(coerce_dates(clean, TIMESTAMP_FIELDS))
        return resolved

    def update_record(self, existing, prepared, strategy):
        if strategy != MERGE:
            return super().update_record(existing, prepared, strategy)

        signed_up = {to_id_string(s.get("userId")) for s in existing.get("signups") or []}
        new_signups = [
            s for s in prepared["signups"] if to_id_string(s["userId"]) not in signed_up
        ]
        if not new_signups:
            return None

        merged = dict(existing)
        merged["signups"] = list(existing.get("signups") or []) + new_signups
        for name in REFRESHED_FIELDS:
            if name in prepared:
                merged[name] = prepared[name]
        merged = merge_record(existing, merged, REPLACE, self.model_name)

        audit = apply_merge(existing, merged)
        self.collection.update_by_id(existing["_id"], merged)
        logger.debug(
            f"Added {len(new_signups)} signups to event {existing.get('eventTitle')}"
        )
        return {
            "signupsAdded": len(new_signups),
            "changesCount": audit["changeCount"],
            "changes": audit["changes"],
        }

    def success_details(self, prepared):
        return {"signupsCount": len(prepared.get("signups") or [])}
