# SPDX-FileCopyrightText: (C) ORCD
#
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Importers for document sections and GA document sections.

Both collections share one shape: a titled section holding an ordered list
of sub-documents (files, URLs, inline text or member upload areas).
Portable files carry "documentUrl"; the store uses "fileUrl".
"""

from typing import Any, Dict, List
import logging

from ..base import BaseImporter
from ..file_validation import validate_document_files
from ..registry import ImporterRegistry
from ..sanitizer import restore_document_files, strip_portable_fields
from ..utils import coerce_dates, deserialize_datetime, get_user_by_id

logger = logging.getLogger(__name__)

TIMESTAMP_FIELDS = ("createdAt", "updatedAt")


@ImporterRegistry.register
class DocumentSectionImporter(BaseImporter):
    """Importer for document sections, matched by title."""

    model_name = "documents"
    dependencies = ["users"]
    skip_message = "Skipped - duplicate section found"
    validation_subject = "documentSection"

    def prepare_record(self, record: Dict[str, Any]) -> Dict[str, Any]:
        if not record.get("title"):
            raise ValueError("Section title is required")

        prepared = strip_portable_fields(record, "createdByUsername")
        prepared = coerce_dates(prepared, TIMESTAMP_FIELDS)

        creator = self.resolve_creator(record)
        if creator is not None:
            prepared["createdBy"] = creator
        else:
            prepared.pop("createdBy", None)

        if "documents" in prepared:
            prepared["documents"] = self._restore_files(prepared["documents"])
        return prepared

    def _restore_files(self, documents) -> List[Dict[str, Any]]:
        files = restore_document_files(documents)
        for item in files:
            self._restore_upload_fields(item)
            for upload in item.get("userUploads") or []:
                self._restore_upload_fields(upload)
        return files

    def _restore_upload_fields(self, entry: Dict[str, Any]) -> None:
        if entry.get("uploadDate"):
            entry["uploadDate"] = deserialize_datetime(entry["uploadDate"]) or entry["uploadDate"]
        if "uploadedBy" in entry:
            uploader = get_user_by_id(self.collections.users, entry["uploadedBy"])
            if uploader is None:
                entry.pop("uploadedBy")
            else:
                entry["uploadedBy"] = uploader["_id"]

    def validate_files(self, record: Dict[str, Any]):
        if not isinstance(record.get("documents"), list):
            return None
        return validate_document_files(record, self.media_host)

    def create_record(self, prepared: Dict[str, Any]) -> Any:
        section = dict(prepared)
        if section.get("order") is None:
            section["order"] = self.collection.count() + 1
        section.setdefault("documents", [])
        return super().create_record(section)


@ImporterRegistry.register
class GADocumentSectionImporter(DocumentSectionImporter):
    """Importer for GA document sections."""

    model_name = "ga_documents"
    dependencies = ["users"]
