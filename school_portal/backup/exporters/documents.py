# SPDX-FileCopyrightText: (C) ORCD
#
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Exporters for document sections.

Exports:
    - documents: Document sections shown to all families
    - ga-documents: GA member document sections (file, text and
      upload_area sub-documents)
"""

from typing import Any, Dict, List

from ..base import BaseExporter
from ..formats import EXPORT_DOCUMENTS, EXPORT_GA_DOCUMENTS
from ..registry import ExporterRegistry
from ..sanitizer import sanitize_document_section
from ..utils import to_id_string


@ExporterRegistry.register
class DocumentSectionExporter(BaseExporter):
    """Exporter for document sections, newest first. No filters."""

    model_name = "documents"
    export_type = EXPORT_DOCUMENTS
    export_key = "documents"
    dependencies = ["users"]
    _creators: Dict[str, Dict[str, Any]] = {}

    def get_records(self, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        sections = self.collections.get(self.model_name).find({}, sort=[("createdAt", -1)])
        self._creators = self.users_by_id(s.get("createdBy") for s in sections)
        return sections

    def serialize_record(self, record: Dict[str, Any], options: Dict[str, Any]) -> Dict[str, Any]:
        section = dict(record)
        creator = self._creators.get(to_id_string(record.get("createdBy")))
        if creator is not None:
            section["createdBy"] = creator
        return sanitize_document_section(section)


@ExporterRegistry.register
class GADocumentSectionExporter(DocumentSectionExporter):
    """Exporter for GA document sections."""

    model_name = "ga_documents"
    export_type = EXPORT_GA_DOCUMENTS
    export_key = "gaDocuments"
    dependencies = ["users"]
