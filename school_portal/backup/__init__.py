# SPDX-FileCopyrightText: (C) ORCD
#
# SPDX-License-Identifier: AGPL-3.0-or-later

"""School data backup, restore and merge system.

This package exports school data into portable JSON records and imports
them back, detecting duplicates by natural key and resolving them with a
duplicate handling strategy (skip, replace, merge, interactive).

Entity types:
    - users: Parent, tutor and admin accounts
    - students: Students, each with an optional dashboard
    - notifications, documents, ga_documents: Published content
    - books: Lending library with lending state and history
    - event_signups: Events and who signed up

Key classes:
    - BaseExporter, BaseImporter: Abstract base classes for entity (de)serialization
    - ExporterRegistry, ImporterRegistry: Dependency-ordered registries
    - ImportResult, FullImportResult: Per-record import outcomes
    - CompatibilityReport: Backup version compatibility checking

Usage:
    from school_portal.backup import export_all, import_all
    from school_portal.store import get_collections

    collections = get_collections()
    backup = export_all(collections)
    result = import_all(backup, {"duplicateHandling": "merge"}, collections)

Example management commands:
    python manage.py export_school_data --output /backups/school.json
    python manage.py import_school_data /backups/school.json --duplicate-handling merge
    python manage.py import_school_data /backups/school.json --validate
"""

from .base import (
    BackupError,
    BackupFormatError,
    BaseExporter,
    BaseImporter,
    ImportResult,
    ReferenceResolutionError,
)
from .registry import (
    CyclicDependencyError,
    ExporterRegistry,
    ImporterRegistry,
    RegistryError,
)
from .version import (
    CompatibilityReport,
    CompatibilityStatus,
    check_backup_compatibility,
)
from .orchestrator import (
    FullImportResult,
    export_all,
    import_all,
    preview_import,
    validate_backup,
    write_backup,
)
from .importers.students import import_student_backup
from .importers.users import import_family

__all__ = [
    # Exceptions
    "BackupError",
    "BackupFormatError",
    "ReferenceResolutionError",
    "RegistryError",
    "CyclicDependencyError",
    # Base classes
    "BaseExporter",
    "BaseImporter",
    "ImportResult",
    # Registries
    "ExporterRegistry",
    "ImporterRegistry",
    # Compatibility
    "CompatibilityStatus",
    "CompatibilityReport",
    "check_backup_compatibility",
    # Full backup
    "FullImportResult",
    "export_all",
    "import_all",
    "preview_import",
    "validate_backup",
    "write_backup",
    # Special imports
    "import_student_backup",
    "import_family",
]
