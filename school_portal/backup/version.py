# SPDX-FileCopyrightText: (C) ORCD
#
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Version compatibility checking.

Determines if a backup can be imported by this instance based on the
backup format version recorded in "_metadata.version".

Compatibility Levels:
    COMPATIBLE: Backup can be imported without issues
    COMPATIBLE_WITH_WARNINGS: Import possible but may need attention
    INCOMPATIBLE: Import cannot proceed safely

Version Comparison:
    - Versions are MAJOR.MINOR (a PATCH part is accepted and ignored)
    - Major version differences are incompatible
    - Minor version differences produce warnings
    - A backup without a version produces a warning
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple
import logging

from .formats import BACKUP_VERSION

logger = logging.getLogger(__name__)


class CompatibilityStatus(Enum):
    """Compatibility status for import operations."""
    COMPATIBLE = "compatible"
    COMPATIBLE_WITH_WARNINGS = "compatible_with_warnings"
    INCOMPATIBLE = "incompatible"


@dataclass
class CompatibilityReport:
    """Compatibility report for a backup.

    Attributes:
        status: Overall compatibility status
        backup_version: Version recorded in the backup ("unknown" if absent)
        target_version: Backup format version of this instance
        warnings: List of warning messages
        errors: List of error messages
    """
    status: CompatibilityStatus
    backup_version: str
    target_version: str
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    def summary(self) -> str:
        """Generate human-readable summary."""
        lines = [
            f"Compatibility: {self.status.value}",
            f"Backup Version: {self.backup_version}",
            f"Target Version: {self.target_version}",
        ]

        if self.warnings:
            lines.append("Warnings:")
            for warning in self.warnings:
                lines.append(f"  - {warning}")

        if self.errors:
            lines.append("Errors:")
            for error in self.errors:
                lines.append(f"  - {error}")

        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "backupVersion": self.backup_version,
            "targetVersion": self.target_version,
            "warnings": list(self.warnings),
            "errors": list(self.errors),
        }


def parse_version(version_str: str) -> Tuple[int, int, int]:
    """Parse version string to tuple.

    Handles version strings like "1.0.0" or "1.0".

    Returns:
        Tuple of (major, minor, patch) integers
    """
    try:
        parts = version_str.split(".")
        major = int(parts[0]) if len(parts) > 0 else 0
        minor = int(parts[1]) if len(parts) > 1 else 0
        patch = int(parts[2]) if len(parts) > 2 else 0
        return (major, minor, patch)
    except (AttributeError, ValueError, IndexError):
        return (0, 0, 0)


def check_backup_compatibility(
    metadata: Optional[Dict[str, Any]],
    target_version: str = BACKUP_VERSION,
) -> CompatibilityReport:
    """Check whether a backup's format version can be imported.

    Args:
        metadata: The backup's "_metadata" block
        target_version: Format version of this instance

    Returns:
        CompatibilityReport
    """
    backup_version = (metadata or {}).get("version")

    if not backup_version:
        return CompatibilityReport(
            status=CompatibilityStatus.COMPATIBLE_WITH_WARNINGS,
            backup_version="unknown",
            target_version=target_version,
            warnings=["Backup does not record a format version; assuming current format."],
        )

    backup_major, backup_minor, _ = parse_version(str(backup_version))
    target_major, target_minor, _ = parse_version(target_version)

    if backup_major != target_major:
        logger.warning(f"Backup version {backup_version} is incompatible with {target_version}")
        return CompatibilityReport(
            status=CompatibilityStatus.INCOMPATIBLE,
            backup_version=str(backup_version),
            target_version=target_version,
            errors=[
                f"Major version mismatch: backup is v{backup_major}.x, "
                f"target is v{target_major}.x"
            ],
        )

    if backup_minor > target_minor:
        return CompatibilityReport(
            status=CompatibilityStatus.COMPATIBLE_WITH_WARNINGS,
            backup_version=str(backup_version),
            target_version=target_version,
            warnings=[
                f"Backup version ({backup_version}) is newer than target ({target_version}). "
                "Some data may not be fully supported."
            ],
        )

    if backup_minor < target_minor:
        return CompatibilityReport(
            status=CompatibilityStatus.COMPATIBLE_WITH_WARNINGS,
            backup_version=str(backup_version),
            target_version=target_version,
            warnings=[
                f"Backup version ({backup_version}) is older than target ({target_version}). "
                "Some fields may use default values."
            ],
        )

    return CompatibilityReport(
        status=CompatibilityStatus.COMPATIBLE,
        backup_version=str(backup_version),
        target_version=target_version,
    )
