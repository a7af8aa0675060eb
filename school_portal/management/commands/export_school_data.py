# SPDX-FileCopyrightText: (C) ORCD
#
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Export school data to a complete system backup file.

The backup is one JSON document holding every section (users, students
with dashboards, notifications, documents, books, event signups) plus a
"_metadata" block with counts, filters and notes.

Usage:
    python manage.py export_school_data --output /path/to/backup.json
    python manage.py export_school_data -o backup.json --no-passwords
    python manage.py export_school_data -o backup.json --user-role tutor
    python manage.py export_school_data -o backup.json --book-availability lent
    python manage.py export_school_data -o backup.json --dry-run

Example:
    # Full backup including password hashes (store securely!)
    python manage.py export_school_data -o /backups/school-2024-06-01.json

    # Backup without password hashes; users reset passwords after restore
    python manage.py export_school_data -o /backups/school.json --no-passwords
"""

from django.core.management.base import BaseCommand, CommandError

from school_portal.backup import export_all, write_backup
from school_portal.backup.formats import FULL_BACKUP_SECTIONS
from school_portal.store import get_collections


class Command(BaseCommand):
    """Export school data to a JSON backup file."""

    help = "Export all school data to a complete system backup JSON file"

    def add_arguments(self, parser):
        """Add command arguments."""
        parser.add_argument(
            "--output", "-o",
            required=True,
            help="Path of the backup file to write.",
        )
        parser.add_argument(
            "--no-passwords",
            action="store_true",
            help="Leave password hashes out of the backup.",
        )
        parser.add_argument(
            "--user-role",
            choices=["user", "tutor", "admin"],
            help="Only export users with this role.",
        )
        parser.add_argument(
            "--book-availability",
            choices=["available", "lent"],
            help="Only export available or lent books.",
        )
        parser.add_argument(
            "--student-start-month",
            help="Only export students enrolled from this month (YYYY-MM).",
        )
        parser.add_argument(
            "--student-end-month",
            help="Only export students enrolled up to this month (YYYY-MM).",
        )
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Show what would be exported without writing the file.",
        )

    def handle(self, *args, **options):
        """Execute the export command."""
        filters = {}
        if options["user_role"]:
            filters["users"] = {"role": options["user_role"]}
        if options["book_availability"]:
            filters["books"] = {"availability": options["book_availability"]}
        if options["student_start_month"] or options["student_end_month"]:
            filters["students"] = {
                "startMonth": options["student_start_month"],
                "endMonth": options["student_end_month"],
            }

        export_options = {"preserve_passwords": not options["no_passwords"]}

        try:
            backup = export_all(get_collections(), filters, export_options)
        except ValueError as e:
            raise CommandError(f"Invalid filter: {e}")
        except Exception as e:
            raise CommandError(f"Export failed: {e}")

        if options["dry_run"]:
            self.stdout.write("DRY RUN - No files will be written\n")
        self.stdout.write("=" * 60)
        for section in FULL_BACKUP_SECTIONS:
            self.stdout.write(f"  {section}: {len(backup[section]['data'])} records")
        self.stdout.write("=" * 60)

        total_records = sum(len(backup[section]["data"]) for section in FULL_BACKUP_SECTIONS)
        if options["dry_run"]:
            self.stdout.write(f"Would export {total_records} total records")
            return

        try:
            path = write_backup(backup, options["output"])
        except OSError as e:
            raise CommandError(f"Could not write backup file: {e}")

        self.stdout.write(
            self.style.SUCCESS(f"Exported {total_records} total records to {path}")
        )
        self.stdout.write(self.style.WARNING(backup["_metadata"]["notes"]["passwords"]))
