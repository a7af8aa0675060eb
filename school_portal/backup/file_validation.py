# SPDX-FileCopyrightText: (C) ORCD
#
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Revalidation of file references found in backups.

Backups carry media host URLs, not file contents. Before an imported
record is written, each referenced file is checked against the media
host and sorted into valid, invalid and external files. Problems never
block an import; they become warnings on the import result.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
import logging

from ..media import MISSING_FILE_SENTINEL

logger = logging.getLogger(__name__)


@dataclass
class FileValidation:
    """Outcome of validating the files of one record.

    Attributes:
        valid_files: Files found on the media host
        invalid_files: Files missing or unreadable, with error and suggestion
        external_files: URLs outside the media host (not checked)
        warnings: Validation failures that are not about a specific file
    """
    valid_files: List[Dict[str, Any]] = field(default_factory=list)
    invalid_files: List[Dict[str, Any]] = field(default_factory=list)
    external_files: List[Dict[str, Any]] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def has_problems(self) -> bool:
        return bool(self.invalid_files or self.external_files or self.warnings)

    def check(self, media_host, file_type: str, url: Optional[str], **details) -> None:
        """Validate one URL and file it under the matching bucket."""
        if not url:
            return

        entry = {"type": file_type, "url": url, **details}

        if media_host is None:
            # Without a configured host only the sentinel can be judged
            if url == MISSING_FILE_SENTINEL:
                self.invalid_files.append({
                    **entry,
                    "error": "File missing from backup - requires re-upload",
                    "suggestion": "Re-upload the original file after import",
                })
            return

        validation = media_host.validate_file_url(url, details.get("fileName"))
        if validation.get("isValid"):
            if validation.get("isExternal"):
                self.external_files.append({**entry, "message": validation.get("message")})
            else:
                self.valid_files.append(entry)
        else:
            logger.warning(f"Invalid {file_type} file {details.get('fileName')}: {validation.get('error')}")
            self.invalid_files.append({
                **entry,
                "error": validation.get("error"),
                "suggestion": validation.get("suggestion"),
            })


def validate_notification_files(data: Dict[str, Any], media_host) -> FileValidation:
    result = FileValidation()
    result.check(
        media_host,
        "attachment",
        data.get("attachmentUrl"),
        fileName=data.get("attachmentFileName"),
    )
    return result


def validate_document_files(data: Dict[str, Any], media_host) -> FileValidation:
    """Validate the files of a document section (portable or stored shape)."""
    result = FileValidation()
    for doc in data.get("documents") or []:
        result.check(
            media_host,
            "document",
            doc.get("documentUrl") or doc.get("fileUrl"),
            fileName=doc.get("fileName"),
            name=doc.get("name"),
        )
        for upload in doc.get("userUploads") or []:
            result.check(
                media_host,
                "userUpload",
                upload.get("fileUrl"),
                fileName=upload.get("fileName"),
                name=doc.get("name"),
            )
    return result


def validate_dashboard_files(data: Optional[Dict[str, Any]], media_host) -> FileValidation:
    """Validate portfolio, document and receipt files of a dashboard."""
    result = FileValidation()
    if not data:
        return result

    for portfolio in data.get("portfolios") or []:
        result.check(
            media_host,
            "portfolio",
            portfolio.get("portfolioUrl") or portfolio.get("pdfUrl"),
            fileName=portfolio.get("fileName"),
        )

    for doc in data.get("documents") or []:
        result.check(
            media_host,
            "document",
            doc.get("documentUrl") or doc.get("url"),
            fileName=doc.get("fileName"),
            name=doc.get("name"),
        )

    for event in data.get("history") or []:
        result.check(
            media_host,
            "receipt",
            event.get("receiptUrl") or event.get("downloadUrl"),
            fileName=event.get("fileName"),
            eventType=event.get("type"),
        )

    return result


def warning_entries(subject_key: str, subject: str, validation: FileValidation) -> List[Dict[str, Any]]:
    """Turn a FileValidation into result warning entries.

    Args:
        subject_key: Key naming the record kind, e.g. "student"
        subject: Record label, e.g. "Ana Silva"
        validation: Validation outcome

    Returns:
        Zero to three warning dicts
    """
    entries = []
    if validation.invalid_files:
        entries.append({
            subject_key: subject,
            "invalidFiles": [
                {k: v for k, v in f.items() if k != "url"}
                for f in validation.invalid_files
            ],
        })
    if validation.external_files:
        entries.append({
            subject_key: subject,
            "externalFiles": [
                {k: v for k, v in f.items() if k != "url"}
                for f in validation.external_files
            ],
        })
    for message in validation.warnings:
        entries.append({subject_key: subject, "fileValidationError": message})
    return entries
