# SPDX-FileCopyrightText: (C) ORCD
#
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Base classes for export/import operations.

This module provides abstract base classes that define the interface
for all exporters and importers. Each entity type has a corresponding
exporter/importer that inherits from these.

Architecture:
    BaseExporter -> UserExporter, StudentExporter, BookExporter, etc.
    BaseImporter -> UserImporter, StudentImporter, BookImporter, etc.

The base classes handle common operations:
    - The {_metadata, <entity>} export envelope
    - The per-record import loop: duplicate detection, the duplicate
      handling strategy, fault isolation and result collection
    - Dependency ordering declarations for the registry
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
import logging

from ..store import to_object_id
from .duplicates import find_duplicates
from .file_validation import warning_entries
from .formats import INTERACTIVE, REPLACE, SINGLE_IMPORT_STRATEGIES, SKIP
from .merge import apply_merge, merge_record
from .sanitizer import strip_portable_fields
from .schemas import get_schema
from .utils import (
    coerce_dates,
    get_user_by_id,
    get_user_by_username,
    to_id_string,
    to_portable,
    utc_timestamp,
)

logger = logging.getLogger(__name__)

INVALID_RECORD_ERROR = "Invalid record format - expected an object"


class BackupError(Exception):
    """Base exception for backup and restore errors."""
    pass


class BackupFormatError(BackupError):
    """Raised for a malformed backup envelope or an unsupported strategy.

    Raised before any record is written.
    """
    pass


class ReferenceResolutionError(BackupError):
    """Raised when a record's required reference cannot be resolved."""
    pass


@dataclass
class ImportResult:
    """Result of an import operation.

    Every processed record lands in exactly one of success, errors,
    duplicates, merged or conflicts. Warnings are extra and never count as
    an outcome.

    Attributes:
        model_name: Identifier for the imported entity
        success: Records created
        errors: Records that failed, with the error message
        duplicates: Records skipped as duplicates
        merged: Existing records replaced or merged
        conflicts: Duplicates awaiting a manual decision (interactive)
        warnings: File validation problems and similar non-fatal issues
    """
    model_name: str
    success: List[Dict[str, Any]] = field(default_factory=list)
    errors: List[Dict[str, Any]] = field(default_factory=list)
    duplicates: List[Dict[str, Any]] = field(default_factory=list)
    merged: List[Dict[str, Any]] = field(default_factory=list)
    conflicts: List[Dict[str, Any]] = field(default_factory=list)
    warnings: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def created(self) -> int:
        return len(self.success)

    @property
    def skipped(self) -> int:
        return len(self.duplicates)

    @property
    def total_processed(self) -> int:
        """Total number of records with an outcome."""
        return (
            len(self.success) + len(self.errors) + len(self.duplicates)
            + len(self.merged) + len(self.conflicts)
        )

    def summary(self, total: Optional[int] = None) -> Dict[str, int]:
        return {
            "total": self.total_processed if total is None else total,
            "created": len(self.success),
            "merged": len(self.merged),
            "skipped": len(self.duplicates),
            "conflicts": len(self.conflicts),
            "errors": len(self.errors),
        }

    def message(self, prefix: str = "Import completed") -> str:
        """Human-readable one-line outcome."""
        message = f"{prefix}: {len(self.success)} created"
        if self.merged:
            message += f", {len(self.merged)} merged"
        if self.duplicates:
            message += f", {len(self.duplicates)} skipped"
        if self.conflicts:
            message += f", {len(self.conflicts)} conflicts need resolution"
        return message

    def to_dict(self) -> Dict[str, Any]:
        return to_portable({
            "success": self.success,
            "errors": self.errors,
            "duplicates": self.duplicates,
            "merged": self.merged,
            "conflicts": self.conflicts,
            "warnings": self.warnings,
        })


class BaseExporter(ABC):
    """Abstract base class for entity exporters.

    Subclasses must implement:
        - model_name: Unique identifier for this exporter
        - export_type: Value of "_metadata.exportType"
        - export_key: Top-level key holding the records
        - get_records(): Returns stored documents matching the filters
        - serialize_record(): Converts a stored document to a portable dict

    The base class provides:
        - export(): Builds the {_metadata, <export_key>} envelope

    Example:
        @ExporterRegistry.register
        class BookExporter(BaseExporter):
            model_name = "books"
            export_type = "books"
            export_key = "books"

            def get_records(self, filters):
                return self.collections.books.find({}, sort=[("title", 1)])

            def serialize_record(self, record, options):
                return sanitize_book(record)
    """

    model_name: str = ""
    export_type: str = ""
    export_key: str = ""
    dependencies: List[str] = []

    def __init__(self, collections):
        self.collections = collections

    @abstractmethod
    def get_records(self, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Return stored documents to export, in export order.

        Args:
            filters: Exporter-specific filters

        Returns:
            List of stored documents
        """
        pass

    @abstractmethod
    def serialize_record(self, record: Dict[str, Any], options: Dict[str, Any]) -> Dict[str, Any]:
        """Convert a stored document to a portable dict.

        Args:
            record: Stored document
            options: Export options (e.g. preserve_passwords)

        Returns:
            Dict suitable for JSON serialization
        """
        pass

    def extra_metadata(self, filters: Dict[str, Any], options: Dict[str, Any]) -> Dict[str, Any]:
        """Exporter-specific "_metadata" keys."""
        return {}

    def users_by_id(self, ids) -> Dict[str, Dict[str, Any]]:
        """Load the users referenced by ids, keyed by id string."""
        wanted = {to_id_string(i) for i in ids if i is not None}
        if not wanted:
            return {}
        users = self.collections.users.find(
            {"_id": {"$in": [to_object_id(i) for i in wanted]}}
        )
        return {to_id_string(u["_id"]): u for u in users}

    def export(
        self,
        filters: Optional[Dict[str, Any]] = None,
        options: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Export matching records into an envelope.

        Args:
            filters: Exporter-specific filters
            options: Export options

        Returns:
            {"_metadata": {...}, <export_key>: [...]}
        """
        filters = filters or {}
        options = options or {}

        records = self.get_records(filters)
        logger.info(f"Exporting {len(records)} {self.model_name} records...")
        data = [self.serialize_record(record, options) for record in records]

        metadata = {
            "exportType": self.export_type,
            "exportTimestamp": utc_timestamp(),
            "totalRecords": len(data),
            "filters": filters,
        }
        metadata.update(self.extra_metadata(filters, options))

        return {"_metadata": metadata, self.export_key: data}


class BaseImporter(ABC):
    """Abstract base class for entity importers.

    Subclasses must define model_name and may override:
        - prepare_record(): Map a portable record to the stored shape,
          resolving references (raise ReferenceResolutionError or
          ValueError to reject the record)
        - validate_files(): Revalidate file references
        - create_record(): Insert a new document
        - update_record(): Write a replaced/merged document
        - label(): Identify the record in results

    The base class provides:
        - import_records(): Main entry point, one strategy for the batch

    Duplicate handling strategies:
        - "skip": Leave the existing record, report a duplicate
        - "replace": Overwrite existing fields with the incoming ones
        - "merge": Fill existing fields with non-empty incoming ones
        - "interactive": Write nothing, report the conflicts
    """

    model_name: str = ""
    dependencies: List[str] = []
    skip_message: str = "Skipped - duplicate found"
    nothing_to_merge_message: str = "No changes to merge"
    validation_subject: str = "record"

    def __init__(self, collections, media_host=None, backup_mode: bool = False, identity=None):
        """
        Args:
            collections: Collections bundle
            media_host: MediaHost used to revalidate file URLs (optional)
            backup_mode: True when records come from a full backup (keeps
                password hashes, resolves references by username)
            identity: Identity of the caller, used as default creator
        """
        self.collections = collections
        self.media_host = media_host
        self.backup_mode = backup_mode
        self.identity = identity

    @property
    def collection(self):
        return self.collections.get(self.model_name)

    @property
    def schema(self):
        return get_schema(self.model_name)

    def label(self, record: Dict[str, Any]) -> str:
        return record.get(self.schema.label_key) or "Unknown"

    def resolve_user(self, username: Optional[str] = None, user_id: Any = None) -> Optional[Dict[str, Any]]:
        """Find a live user by username, falling back to id.

        Usernames are tried first since ids from another instance are
        meaningless here.
        """
        if username:
            user = get_user_by_username(self.collections.users, username)
            if user is not None:
                return user
        return get_user_by_id(self.collections.users, user_id)

    def resolve_creator(self, record: Dict[str, Any]) -> Any:
        """Id of the record's creator, defaulting to the importing user.

        The importing identity only counts when it names a stored user;
        otherwise the record has no creator.
        """
        creator = self.resolve_user(record.get("createdByUsername"), record.get("createdBy"))
        if creator is None and self.identity is not None:
            creator = self.resolve_user(self.identity.username, self.identity.user_id)
        if creator is None:
            return None
        return creator["_id"]

    def entry(self, record: Dict[str, Any], **values) -> Dict[str, Any]:
        """Result entry keyed by the record label."""
        return {self.schema.label_key: self.label(record), **values}

    def prepare_record(self, record: Dict[str, Any]) -> Dict[str, Any]:
        """Map a portable record to the stored shape.

        Args:
            record: Incoming record

        Returns:
            Dict ready to insert or merge

        Raises:
            ReferenceResolutionError: If a required reference is missing
            ValueError: If the record is invalid
        """
        return coerce_dates(strip_portable_fields(record), self.schema.date_fields)

    def validate_files(self, record: Dict[str, Any]):
        """Return a FileValidation for the record's files, or None."""
        return None

    def find_existing(self, prepared: Dict[str, Any]) -> List[Dict[str, Any]]:
        return find_duplicates(prepared, self.model_name, self.collection)

    def create_record(self, prepared: Dict[str, Any]) -> Any:
        """Insert a new record; returns its id."""
        new_id = self.collection.insert(prepared)
        logger.debug(f"Created {self.model_name} record {new_id}")
        return new_id

    def update_record(
        self,
        existing: Dict[str, Any],
        prepared: Dict[str, Any],
        strategy: str,
    ) -> Optional[Dict[str, Any]]:
        """Replace or merge an existing record.

        Returns:
            Extra values for the merged result entry, or None when there
            was nothing to merge
        """
        merged = merge_record(existing, prepared, strategy, self.model_name)
        audit = apply_merge(existing, merged)
        self.collection.update_by_id(existing["_id"], merged)
        logger.debug(f"Updated {self.model_name} record {existing['_id']} ({strategy})")
        return {"changesCount": audit["changeCount"], "changes": audit["changes"]}

    def success_details(self, prepared: Dict[str, Any]) -> Dict[str, Any]:
        """Extra values for the success entry of a created record."""
        return {}

    def conflict_summary(self, existing: Dict[str, Any]) -> Dict[str, Any]:
        """Short view of the existing record for interactive conflicts."""
        summary = {"id": to_id_string(existing.get("_id"))}
        for key in self.schema.natural_key:
            summary[key] = existing.get(key)
        return to_portable(summary)

    def record_warnings(self, record: Dict[str, Any], result: ImportResult) -> None:
        validation = self.validate_files(record)
        if validation is not None:
            result.warnings.extend(
                warning_entries(self.validation_subject, self.label(record), validation)
            )

    def import_record(self, record: Dict[str, Any], strategy: str, result: ImportResult) -> None:
        """Import one record, appending its outcome to result."""
        prepared = self.prepare_record(record)
        duplicates = self.find_existing(prepared)

        if duplicates:
            duplicate = duplicates[0]
            existing = duplicate["existing"]

            if strategy == SKIP:
                result.duplicates.append(self.entry(
                    record,
                    message=self.skip_message,
                    duplicateType=duplicate["type"],
                    existingId=to_id_string(existing["_id"]),
                ))
                return

            if strategy == INTERACTIVE:
                result.conflicts.append(self.entry(
                    record,
                    existing=self.conflict_summary(existing),
                    incomingData=to_portable(record),
                    duplicateType=duplicate["type"],
                    conflicts=duplicate["conflicts"],
                ))
                return

            self.record_warnings(record, result)
            details = self.update_record(existing, prepared, strategy)
            if details is None:
                result.duplicates.append(self.entry(
                    record,
                    message=self.nothing_to_merge_message,
                    duplicateType=duplicate["type"],
                    existingId=to_id_string(existing["_id"]),
                ))
                return

            result.merged.append(self.entry(
                record,
                id=to_id_string(existing["_id"]),
                action="replaced" if strategy == REPLACE else "merged",
                duplicateType=duplicate["type"],
                **details,
            ))
            return

        self.record_warnings(record, result)
        new_id = self.create_record(prepared)
        result.success.append(self.entry(
            record, id=to_id_string(new_id), **self.success_details(prepared)
        ))

    def import_records(
        self,
        records: List[Dict[str, Any]],
        duplicate_handling: str = SKIP,
    ) -> ImportResult:
        """Import records one at a time.

        A failing record never stops the batch: its error is recorded and
        the loop moves on. Records are processed in order, so later records
        see the writes of earlier ones.

        Args:
            records: Portable records
            duplicate_handling: One of skip, replace, merge, interactive

        Returns:
            ImportResult with per-record outcomes
        """
        result = ImportResult(model_name=self.model_name)

        for record in records:
            if not isinstance(record, dict):
                logger.warning(f"Rejected {self.model_name} record: not an object")
                result.errors.append({
                    self.schema.label_key: "Unknown",
                    "error": INVALID_RECORD_ERROR,
                })
                continue

            if duplicate_handling not in SINGLE_IMPORT_STRATEGIES:
                result.errors.append(self.entry(
                    record,
                    error=f"Invalid duplicate handling strategy: {duplicate_handling}",
                ))
                continue

            try:
                self.import_record(record, duplicate_handling, result)
            except (ReferenceResolutionError, ValueError) as e:
                logger.warning(f"Rejected {self.model_name} record {self.label(record)}: {e}")
                result.errors.append(self.entry(record, error=str(e)))
            except Exception as e:
                logger.error(f"Error importing {self.model_name} record {self.label(record)}: {e}")
                result.errors.append(self.entry(record, error=str(e)))

        logger.info(
            f"Imported {self.model_name}: "
            f"{len(result.success)} created, {len(result.merged)} merged, "
            f"{len(result.duplicates)} skipped, {len(result.errors)} errors"
        )
        return result

