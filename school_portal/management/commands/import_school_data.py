# SPDX-FileCopyrightText: (C) ORCD
#
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Import school data from a complete system backup file.

Sections are restored in dependency order (users, students, notifications,
documents, books, event signups). Records that already exist are skipped
or merged, per section.

Usage:
    python manage.py import_school_data /path/to/backup.json --validate
    python manage.py import_school_data /path/to/backup.json --dry-run
    python manage.py import_school_data /path/to/backup.json --duplicate-handling merge
    python manage.py import_school_data /path/to/backup.json --user-handling merge

Example:
    # Check the file and its format version only
    python manage.py import_school_data /backups/school.json --validate

    # Show what would be created, skipped and merged
    python manage.py import_school_data /backups/school.json --dry-run

    # Restore, merging users and skipping everything else that exists
    python manage.py import_school_data /backups/school.json --user-handling merge
"""

import json

from django.core.management.base import BaseCommand, CommandError

from school_portal.backup import (
    BackupFormatError,
    CompatibilityStatus,
    check_backup_compatibility,
    import_all,
    preview_import,
    validate_backup,
)
from school_portal.backup.formats import FULL_BACKUP_SECTIONS, FULL_IMPORT_STRATEGIES
from school_portal.media import MediaHost
from school_portal.store import get_collections

# Command line option -> full import option key
HANDLING_OPTIONS = {
    "user_handling": "userDuplicateHandling",
    "student_handling": "studentDuplicateHandling",
    "notification_handling": "notificationDuplicateHandling",
    "document_handling": "documentDuplicateHandling",
    "book_handling": "bookDuplicateHandling",
    "event_signup_handling": "eventSignupDuplicateHandling",
}


class Command(BaseCommand):
    """Import school data from a JSON backup file."""

    help = "Import school data from a complete system backup JSON file"

    def add_arguments(self, parser):
        """Add command arguments."""
        parser.add_argument(
            "backup_file",
            help="Path of the complete system backup file.",
        )
        parser.add_argument(
            "--duplicate-handling",
            choices=FULL_IMPORT_STRATEGIES,
            default="skip",
            help="What to do with records that already exist (default: skip).",
        )
        for option in HANDLING_OPTIONS:
            parser.add_argument(
                f"--{option.replace('_', '-')}",
                dest=option,
                choices=FULL_IMPORT_STRATEGIES,
                help=f"Override --duplicate-handling for {option.rsplit('_', 1)[0].replace('_', ' ')} records.",
            )
        parser.add_argument(
            "--validate",
            action="store_true",
            help="Only validate the backup file, don't import.",
        )
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Show what would be imported without making changes.",
        )
        parser.add_argument(
            "--force",
            action="store_true",
            help="Proceed even when the backup format version is incompatible.",
        )

    def handle(self, *args, **options):
        """Execute the import command."""
        backup_file = options["backup_file"]

        self.stdout.write(f"Loading backup from {backup_file}...")
        try:
            with open(backup_file) as f:
                backup = json.load(f)
        except (OSError, ValueError) as e:
            raise CommandError(f"Failed to load backup file: {e}")

        try:
            metadata = validate_backup(backup)
        except BackupFormatError as e:
            raise CommandError(str(e))

        self.stdout.write(f"Backup version: {metadata.get('version', 'unknown')}")
        self.stdout.write(f"Created: {metadata.get('exportTimestamp', 'unknown')}")

        # Check compatibility
        self.stdout.write("\nChecking compatibility...")
        report = check_backup_compatibility(metadata)
        self.stdout.write(f"Status: {report.status.value}")

        if report.warnings:
            self.stdout.write(self.style.WARNING("\nWarnings:"))
            for warning in report.warnings:
                self.stdout.write(self.style.WARNING(f"  - {warning}"))

        if report.errors:
            self.stdout.write(self.style.ERROR("\nErrors:"))
            for error in report.errors:
                self.stdout.write(self.style.ERROR(f"  - {error}"))

        if report.status == CompatibilityStatus.INCOMPATIBLE and not options["force"]:
            raise CommandError("Import cannot proceed due to compatibility errors. Use --force to proceed.")

        self.stdout.write("\nData in backup:")
        for section in FULL_BACKUP_SECTIONS:
            records = (backup.get(section) or {}).get("data") or []
            self.stdout.write(f"  {section}: {len(records)} records")

        if options["validate"]:
            self.stdout.write(self.style.SUCCESS("\nValidation complete."))
            return

        import_options = {"duplicateHandling": options["duplicate_handling"]}
        for option, key in HANDLING_OPTIONS.items():
            if options.get(option):
                import_options[key] = options[option]

        collections = get_collections()

        if options["dry_run"]:
            self._show_preview(preview_import(backup, collections, import_options))
            return

        try:
            result = import_all(
                backup,
                import_options,
                collections,
                media_host=MediaHost.from_settings(),
            )
        except BackupFormatError as e:
            raise CommandError(f"Import failed: {e}")

        self._show_result(result)

    def _show_preview(self, preview):
        self.stdout.write("\nDRY RUN - No changes will be made")
        self.stdout.write("=" * 50)
        for section, counts in preview["sections"].items():
            self.stdout.write(
                f"  {section}: {counts['new']} new, {counts['duplicates']} existing, "
                f"{counts['missingReferences']} missing references, {counts['invalid']} invalid"
            )
            for conflict in preview["conflicts"]:
                if conflict["section"] == section and conflict["conflicts"]:
                    fields = ", ".join(c["field"] for c in conflict["conflicts"])
                    self.stdout.write(f"    {conflict['label']}: differs in {fields}")

        for missing in preview["missingReferences"]:
            self.stdout.write(
                self.style.WARNING(f"  {missing['section']} {missing['label']}: {missing['error']}")
            )

        summary = preview["summary"]
        self.stdout.write("\n" + "=" * 50)
        self.stdout.write(
            f"Would import: {summary['totalNew']} new, {summary['totalDuplicates']} existing"
        )

    def _show_result(self, result):
        summary = result.summary()
        self.stdout.write("\n" + "=" * 50)
        for section, section_result in result.sections.items():
            counts = summary[section]
            status_parts = []
            if counts["created"]:
                status_parts.append(f"{counts['created']} created")
            if counts["merged"]:
                status_parts.append(f"{counts['merged']} merged")
            if counts["skipped"]:
                status_parts.append(f"{counts['skipped']} skipped")
            status_str = ", ".join(status_parts) if status_parts else "no changes"

            if section_result.errors:
                self.stdout.write(
                    self.style.ERROR(f"  {section}: {status_str}, {len(section_result.errors)} errors")
                )
                for error in section_result.errors:
                    label = next(v for k, v in error.items() if k != "error")
                    self.stdout.write(self.style.ERROR(f"    {label}: {error['error']}"))
            else:
                self.stdout.write(self.style.SUCCESS(f"  {section}: {status_str}"))

            for warning in section_result.warnings:
                self.stdout.write(self.style.WARNING(f"    Warning: {warning}"))

        totals = result.grand_totals()
        self.stdout.write("\n" + "=" * 50)
        self.stdout.write(result.message())
        self.stdout.write(
            f"Processed {totals['totalProcessed']}: {totals['totalCreated']} created, "
            f"{totals['totalMerged']} merged, {totals['totalSkipped']} skipped"
        )
        if totals["totalErrors"]:
            self.stdout.write(self.style.ERROR(f"Total errors: {totals['totalErrors']}"))
