# SPDX-FileCopyrightText: (C) ORCD
#
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Exporter for the lending library."""

from typing import Any, Dict, List

from ..base import BaseExporter
from ..formats import EXPORT_BOOKS
from ..registry import ExporterRegistry
from ..sanitizer import sanitize_book
from ..utils import to_id_string


@ExporterRegistry.register
class BookExporter(BaseExporter):
    """Exporter for books, by title.

    Filters:
        availability: "available" (no borrower) or "lent"

    Owners and borrowers, current and past, are loaded so that records carry
    usernames the import side can resolve.
    """

    model_name = "books"
    export_type = EXPORT_BOOKS
    export_key = "books"
    dependencies = ["users"]
    _users: Dict[str, Dict[str, Any]] = {}

    def get_records(self, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        query: Dict[str, Any] = {}
        availability = filters.get("availability")
        if availability == "available":
            query["lending.borrower"] = None
        elif availability == "lent":
            query["lending.borrower"] = {"$ne": None}

        books = self.collections.books.find(query, sort=[("title", 1)])

        referenced = []
        for book in books:
            referenced.append(book.get("user"))
            referenced.append((book.get("lending") or {}).get("borrower"))
            for entry in book.get("lendingHistory") or []:
                referenced.append(entry.get("user", entry.get("borrower")))
        self._users = self.users_by_id(referenced)

        return books

    def _loaded(self, ref: Any) -> Any:
        return self._users.get(to_id_string(ref), ref)

    def serialize_record(self, record: Dict[str, Any], options: Dict[str, Any]) -> Dict[str, Any]:
        book = dict(record)
        if book.get("user") is not None:
            book["user"] = self._loaded(book["user"])

        lending = book.get("lending")
        if isinstance(lending, dict) and lending.get("borrower") is not None:
            book["lending"] = dict(lending, borrower=self._loaded(lending["borrower"]))

        if book.get("lendingHistory"):
            book["lendingHistory"] = [
                dict(entry, user=self._loaded(entry.get("user", entry.get("borrower"))))
                for entry in book["lendingHistory"]
            ]

        return sanitize_book(book)
