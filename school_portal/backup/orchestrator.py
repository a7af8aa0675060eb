# SPDX-FileCopyrightText: (C) ORCD
#
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Complete system backup and restore.

export_all() runs every section exporter and combines the results into
one "complete-system-backup" document. import_all() restores such a
document section by section, in dependency order:

    users -> students (+ dashboards) -> notifications -> documents
          -> books -> eventSignups

The envelope and the requested strategies are validated before anything
is written. After that, every record is imported on its own: a failing
record is reported and the import moves on.
"""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple
import json
import logging

from ..conf import get_setting
from .base import BackupFormatError, ImportResult, ReferenceResolutionError
from .formats import (
    BACKUP_VERSION,
    EXPORT_COMPLETE,
    FILE_NOTE,
    FULL_BACKUP_SECTIONS,
    FULL_IMPORT_STRATEGIES,
    PASSWORDS_EXCLUDED_NOTE,
    PASSWORDS_INCLUDED_NOTE,
    SECTION_ENTITY_TYPES,
    SKIP,
    STRATEGY_OPTION_KEYS,
)
from .registry import ExporterRegistry, ImporterRegistry
from .sanitizer import strip_portable_fields
from .schemas import get_schema
from .utils import coerce_dates, to_id_string, to_portable, utc_timestamp
from .version import CompatibilityReport, check_backup_compatibility

# Import exporters and importers to register them
from . import exporters  # noqa: F401
from . import importers  # noqa: F401

logger = logging.getLogger(__name__)

SYSTEM_INFO_KEYS = {
    "users": "totalUsers",
    "students": "totalStudents",
    "notifications": "totalNotifications",
    "documents": "totalDocumentSections",
    "books": "totalBooks",
    "eventSignups": "totalEventSignups",
}

SECTION_NOUNS = {
    "users": "users",
    "students": "students",
    "notifications": "notifications",
    "documents": "documents",
    "books": "books",
    "eventSignups": "event signups",
}


def _ordered_sections(get_ordered) -> List[Tuple[str, type]]:
    """(section, class) pairs of the full backup in registry dependency order."""
    sections_by_type = {SECTION_ENTITY_TYPES[section]: section for section in FULL_BACKUP_SECTIONS}
    ordered = get_ordered(include=list(sections_by_type))
    return [(sections_by_type[item.model_name], item) for item in ordered]


def _export_section(collections, exporter_class, filters: Dict[str, Any], options: Dict[str, Any]):
    return exporter_class(collections).export(filters, options)


def export_all(
    collections,
    filters: Optional[Dict[str, Any]] = None,
    options: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Export every section into one complete system backup.

    Args:
        collections: Collections bundle
        filters: Per-section filters keyed by section name
            (e.g. {"books": {"availability": "lent"}})
        options: Export options; preserve_passwords defaults to the
            SCHOOL_PORTAL_BACKUP_PRESERVE_PASSWORDS setting

    Returns:
        Backup dict with "_metadata" and one {metadata, data} per section
    """
    filters = filters or {}
    options = dict(options or {})
    options.setdefault(
        "preserve_passwords", bool(get_setting("SCHOOL_PORTAL_BACKUP_PRESERVE_PASSWORDS"))
    )

    section_filters = {section: dict(filters.get(section) or {}) for section in FULL_BACKUP_SECTIONS}
    # Students always carry their dashboards in a complete backup
    section_filters["students"]["includeDashboard"] = True

    logger.info("Starting complete system export")
    section_exporters = _ordered_sections(ExporterRegistry.get_ordered_exporters)
    with ThreadPoolExecutor(max_workers=len(section_exporters)) as executor:
        futures = {
            section: executor.submit(
                _export_section, collections, exporter_class, section_filters[section], options
            )
            for section, exporter_class in section_exporters
        }
        envelopes = {section: future.result() for section, future in futures.items()}

    backup: Dict[str, Any] = {
        "_metadata": {
            "exportType": EXPORT_COMPLETE,
            "exportTimestamp": utc_timestamp(),
            "version": BACKUP_VERSION,
            "systemInfo": {},
            "filters": filters,
            "options": {"preservePasswords": options["preserve_passwords"]},
            "sections": [section for section, _ in section_exporters],
            "notes": {
                "students": "Includes dashboard data (portfolios, documents, history)",
                "files": FILE_NOTE,
                "import": "Import users first, then students, then other data types",
                "passwords": (
                    PASSWORDS_INCLUDED_NOTE if options["preserve_passwords"]
                    else PASSWORDS_EXCLUDED_NOTE
                ),
            },
        },
    }

    for section, exporter_class in section_exporters:
        envelope = envelopes[section]
        data = envelope[exporter_class.export_key]
        metadata = dict(envelope["_metadata"])
        if section == "students":
            metadata["dashboardNote"] = "Dashboard data included for complete backup"
        backup[section] = {"metadata": metadata, "data": data}
        backup["_metadata"]["systemInfo"][SYSTEM_INFO_KEYS[section]] = len(data)

    logger.info(f"Complete system export finished: {backup['_metadata']['systemInfo']}")
    return backup


def write_backup(backup: Dict[str, Any], output_path: str) -> Path:
    """Write a backup document as JSON; returns the path written."""
    path = Path(output_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        json.dump(backup, f, indent=2, default=str)
    logger.info(f"Backup written to {path}")
    return path


def validate_backup(backup: Any) -> Dict[str, Any]:
    """Check the envelope of a complete system backup.

    Returns:
        The backup's "_metadata" block

    Raises:
        BackupFormatError: If the document is not a complete system backup
    """
    if not isinstance(backup, dict):
        raise BackupFormatError("Invalid backup data format")

    metadata = backup.get("_metadata")
    if not isinstance(metadata, dict) or metadata.get("exportType") != EXPORT_COMPLETE:
        raise BackupFormatError("Invalid backup format - not a complete system backup")

    for section in FULL_BACKUP_SECTIONS:
        if section not in backup or backup[section] is None:
            continue
        content = backup[section]
        if not isinstance(content, dict) or not isinstance(content.get("data", []), list):
            raise BackupFormatError(
                f"Invalid backup section '{section}' - expected an object with a data list"
            )
        for position, record in enumerate(content.get("data") or []):
            if not isinstance(record, dict):
                raise BackupFormatError(
                    f"Invalid backup section '{section}' - record {position + 1} is not an object"
                )
    return metadata


def resolve_strategies(options: Optional[Dict[str, Any]] = None) -> Dict[str, str]:
    """Duplicate handling strategy per section.

    A per-section key (e.g. "bookDuplicateHandling") wins over the global
    "duplicateHandling"; the default is skip.

    Raises:
        BackupFormatError: If a strategy is not supported by the full import
    """
    options = options or {}
    default = options.get("duplicateHandling") or SKIP

    strategies = {}
    for section in FULL_BACKUP_SECTIONS:
        strategy = options.get(STRATEGY_OPTION_KEYS[section]) or default
        if strategy not in FULL_IMPORT_STRATEGIES:
            raise BackupFormatError(
                f"Unsupported duplicate handling strategy for {section}: {strategy} "
                f"(expected one of {', '.join(FULL_IMPORT_STRATEGIES)})"
            )
        strategies[section] = strategy
    return strategies


def _section_records(backup: Dict[str, Any], section: str) -> List[Dict[str, Any]]:
    content = backup.get(section) or {}
    return content.get("data") or []


@dataclass
class FullImportResult:
    """Result of restoring a complete system backup.

    Attributes:
        sections: ImportResult per section key, in import order
        totals: Record count per section as found in the backup
        compatibility: Version compatibility report of the backup
        imported_by: Identity that ran the import, if known
        strategies: Strategy used per section
    """
    sections: Dict[str, ImportResult] = field(default_factory=dict)
    totals: Dict[str, int] = field(default_factory=dict)
    compatibility: Optional[CompatibilityReport] = None
    imported_by: Optional[Dict[str, Any]] = None
    strategies: Dict[str, str] = field(default_factory=dict)
    imported_at: str = field(default_factory=utc_timestamp)

    def summary(self) -> Dict[str, Dict[str, int]]:
        result = {}
        for section, section_result in self.sections.items():
            counts = section_result.summary(self.totals.get(section, 0))
            counts.pop("conflicts", None)
            result[section] = counts
        return result

    def grand_totals(self) -> Dict[str, int]:
        summary = self.summary()
        return {
            "totalProcessed": sum(s["total"] for s in summary.values()),
            "totalCreated": sum(s["created"] for s in summary.values()),
            "totalMerged": sum(s["merged"] for s in summary.values()),
            "totalSkipped": sum(s["skipped"] for s in summary.values()),
            "totalErrors": sum(s["errors"] for s in summary.values()),
        }

    def message(self) -> str:
        parts = [
            f"{result.created} {SECTION_NOUNS[section]} created"
            for section, result in self.sections.items()
            if result.created
        ]
        return "System restore completed: " + (", ".join(parts) if parts else "No new records created")

    def to_dict(self) -> Dict[str, Any]:
        results = {}
        for section, section_result in self.sections.items():
            phase = section_result.to_dict()
            phase.pop("conflicts", None)
            results[section] = phase
        results["summary"] = self.summary()

        return {
            "message": self.message(),
            "results": results,
            "summary": self.grand_totals(),
            "strategies": dict(self.strategies),
            "compatibility": self.compatibility.to_dict() if self.compatibility else None,
            "importedBy": self.imported_by,
            "importedAt": self.imported_at,
        }


def import_all(
    backup: Dict[str, Any],
    options: Optional[Dict[str, Any]] = None,
    collections=None,
    media_host=None,
    identity=None,
) -> FullImportResult:
    """Restore a complete system backup.

    Args:
        backup: Complete system backup document
        options: Strategy options (duplicateHandling, userDuplicateHandling,
            studentDuplicateHandling, ...); only skip and merge are accepted
        collections: Collections bundle to import into
        media_host: MediaHost used to revalidate file references (optional)
        identity: Identity running the import

    Returns:
        FullImportResult

    Raises:
        BackupFormatError: If the envelope or a strategy is invalid; raised
            before any record is written
    """
    metadata = validate_backup(backup)
    strategies = resolve_strategies(options)

    compatibility = check_backup_compatibility(metadata)
    for warning in compatibility.warnings:
        logger.warning(f"Backup compatibility: {warning}")
    for error in compatibility.errors:
        logger.warning(f"Backup compatibility: {error}")

    result = FullImportResult(
        compatibility=compatibility,
        strategies=strategies,
        imported_by=(
            {"userId": identity.user_id, "username": identity.username}
            if identity is not None else None
        ),
    )

    logger.info(
        f"Starting complete system import"
        f"{' by ' + identity.username if identity is not None else ''}"
    )
    for section, importer_class in _ordered_sections(ImporterRegistry.get_ordered_importers):
        records = _section_records(backup, section)
        result.totals[section] = len(records)

        importer = importer_class(
            collections, media_host=media_host, backup_mode=True, identity=identity
        )
        logger.info(f"Importing {len(records)} {section} records ({strategies[section]})")
        section_result = importer.import_records(records, strategies[section])
        section_result.model_name = section
        result.sections[section] = section_result

    logger.info(f"Complete system import finished: {result.grand_totals()}")
    return result


def _preview_prepare(importer, record, section, backup_usernames):
    """Prepare a record for preview; parents arriving with the backup count as resolved."""
    try:
        return importer.prepare_record(record)
    except ReferenceResolutionError:
        if section == "students" and record.get("parentUsername") in backup_usernames:
            prepared = strip_portable_fields(record, "parentUsername", "dashboard")
            return coerce_dates(prepared, get_schema("students").date_fields)
        raise


def preview_import(
    backup: Dict[str, Any],
    collections,
    options: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Report what import_all would do, without writing anything.

    Every record is classified as new, duplicate, missing a reference or
    invalid. Duplicates come with their field conflicts.

    Returns:
        Dict with preview flag, per-section counts, conflicts, missing
        references, invalid records and the compatibility report

    Raises:
        BackupFormatError: If the envelope or a strategy is invalid
    """
    metadata = validate_backup(backup)
    strategies = resolve_strategies(options)
    compatibility = check_backup_compatibility(metadata)

    backup_usernames = {
        u.get("username") for u in _section_records(backup, "users") if u.get("username")
    }

    sections: Dict[str, Dict[str, Any]] = {}
    conflicts: List[Dict[str, Any]] = []
    missing: List[Dict[str, Any]] = []
    invalid: List[Dict[str, Any]] = []

    for section, importer_class in _ordered_sections(ImporterRegistry.get_ordered_importers):
        records = _section_records(backup, section)
        importer = importer_class(collections, backup_mode=True)
        counts = {"total": len(records), "new": 0, "duplicates": 0, "missingReferences": 0, "invalid": 0}

        for record in records:
            label = importer.label(record)
            try:
                prepared = _preview_prepare(importer, record, section, backup_usernames)
            except ReferenceResolutionError as e:
                counts["missingReferences"] += 1
                missing.append({"section": section, "label": label, "error": str(e)})
                continue
            except ValueError as e:
                counts["invalid"] += 1
                invalid.append({"section": section, "label": label, "error": str(e)})
                continue

            duplicates = importer.find_existing(prepared)
            if not duplicates:
                counts["new"] += 1
                continue

            counts["duplicates"] += 1
            duplicate = duplicates[0]
            conflicts.append({
                "section": section,
                "label": label,
                "duplicateType": duplicate["type"],
                "existingId": to_id_string(duplicate["existing"].get("_id")),
                "action": strategies[section],
                "conflicts": duplicate["conflicts"],
            })

        sections[section] = counts

    return to_portable({
        "preview": True,
        "sections": sections,
        "strategies": strategies,
        "conflicts": conflicts,
        "missingReferences": missing,
        "invalidRecords": invalid,
        "compatibility": compatibility.to_dict(),
        "summary": {
            "totalRecords": sum(s["total"] for s in sections.values()),
            "totalNew": sum(s["new"] for s in sections.values()),
            "totalDuplicates": sum(s["duplicates"] for s in sections.values()),
            "totalMissingReferences": len(missing),
            "totalInvalid": len(invalid),
        },
    })
