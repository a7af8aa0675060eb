# SPDX-FileCopyrightText: (C) ORCD
#
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Importer for the lending library.

Books are matched by title + author (a missing author matches ""). The
owner is re-resolved from ownerUsername / user, falling back to the
importing user when that user is stored here. The current borrower is
re-resolved from lentToUsername / lentTo; when the borrower cannot be
found the book is imported as not lent. Lending history entries are
re-resolved by username and dropped when the user is gone; a merge only
appends entries whose (user, lentDate) is not already recorded.
"""

from typing import Any, Dict, List, Optional
import logging

from ..base import BaseImporter
from ..formats import MERGE
from ..registry import ImporterRegistry
from ..sanitizer import strip_portable_fields
from ..utils import coerce_dates, is_empty, to_id_string, to_portable

logger = logging.getLogger(__name__)

LENDING_DATE_FIELDS = ("lentDate", "dueDate")
HISTORY_DATE_FIELDS = ("lentDate", "dueDate", "returnedDate")
TIMESTAMP_FIELDS = ("createdAt", "updatedAt")


def _not_lent() -> Dict[str, Any]:
    return {"isLent": False, "borrower": None, "lentDate": None, "dueDate": None}


def _history_key(entry: Dict[str, Any]):
    return (to_id_string(entry.get("user")), to_portable(entry.get("lentDate")))


def _new_history(existing, incoming) -> List[Dict[str, Any]]:
    """Incoming history entries not already recorded, by (user, lentDate)."""
    seen = {_history_key(entry) for entry in existing or []}
    fresh = []
    for entry in incoming:
        key = _history_key(entry)
        if key not in seen:
            seen.add(key)
            fresh.append(entry)
    return fresh


@ImporterRegistry.register
class BookImporter(BaseImporter):
    """Importer for books."""

    model_name = "books"
    dependencies = ["users"]
    skip_message = "Skipped - duplicate book found"

    def prepare_record(self, record: Dict[str, Any]) -> Dict[str, Any]:
        if not record.get("title"):
            raise ValueError("Title is required")

        prepared = strip_portable_fields(record, "lentTo", "lentToUsername", "ownerUsername")
        prepared = coerce_dates(prepared, TIMESTAMP_FIELDS)
        prepared["author"] = prepared.get("author") or ""

        owner = self._resolve_owner(record.get("ownerUsername"), record.get("user"))
        if owner is not None:
            prepared["user"] = owner
        else:
            prepared.pop("user", None)

        lending = record.get("lending") if isinstance(record.get("lending"), dict) else {}
        borrower_ref = record.get("lentTo") or lending.get("borrower")
        if record.get("lentToUsername") or not is_empty(borrower_ref):
            borrower = self.resolve_user(record.get("lentToUsername"), borrower_ref)
            if borrower is None:
                logger.warning(
                    f"Borrower {record.get('lentToUsername') or borrower_ref} of "
                    f"'{record['title']}' not found, importing as not lent"
                )
                prepared["lending"] = _not_lent()
            else:
                prepared["lending"] = coerce_dates(
                    dict(lending, borrower=borrower["_id"], isLent=True),
                    LENDING_DATE_FIELDS,
                )
        elif lending:
            prepared["lending"] = coerce_dates(lending, LENDING_DATE_FIELDS)

        if "lendingHistory" in prepared:
            prepared["lendingHistory"] = self._resolve_history(prepared["lendingHistory"])

        return prepared

    def _resolve_owner(self, username: Optional[str], ref: Any) -> Optional[Any]:
        owner = self.resolve_user(username, to_id_string(ref))
        if owner is not None:
            return owner["_id"]
        # Unknown owner falls back to the importing user, if stored
        return self.resolve_creator({})

    def _resolve_history(self, entries) -> List[Dict[str, Any]]:
        history = []
        for entry in entries or []:
            user = self.resolve_user(entry.get("username"), entry.get("user"))
            if user is None:
                logger.warning(
                    f"Dropping lending history entry for unknown user "
                    f"{entry.get('username') or entry.get('user')}"
                )
                continue
            clean = {k: v for k, v in entry.items() if k not in ("username", "borrower")}
            clean["user"] = user["_id"]
            history.append(coerce_dates(clean, HISTORY_DATE_FIELDS))
        return history

    def create_record(self, prepared: Dict[str, Any]) -> Any:
        book = dict(prepared)
        book.setdefault("lending", _not_lent())
        book.setdefault("lendingHistory", [])
        book_id = super().create_record(book)
        if book.get("user") is not None:
            self.collections.users.add_to_set(book["user"], "books", book_id)
        return book_id

    def update_record(self, existing, prepared, strategy):
        if strategy == MERGE and prepared.get("lendingHistory"):
            prepared = dict(prepared, lendingHistory=_new_history(
                existing.get("lendingHistory"), prepared["lendingHistory"]
            ))
        details = super().update_record(existing, prepared, strategy)
        if prepared.get("user") is not None:
            self.collections.users.add_to_set(prepared["user"], "books", existing["_id"])
        return details
