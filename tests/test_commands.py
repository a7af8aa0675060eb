# SPDX-FileCopyrightText: (C) ORCD
#
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Tests for the export_school_data and import_school_data commands."""

import json
import tempfile
from datetime import datetime
from io import StringIO
from pathlib import Path
from unittest.mock import patch

from django.core.management import call_command
from django.core.management.base import CommandError
from django.test import SimpleTestCase

from tests.fakes import make_collections

EXPORT_COLLECTIONS = "school_portal.management.commands.export_school_data.get_collections"
IMPORT_COLLECTIONS = "school_portal.management.commands.import_school_data.get_collections"


def seed(collections):
    parent_id = collections.users.insert({
        "username": "parent1", "email": "p1@example.com", "role": "user",
        "passwordHash": "hash1", "createdAt": datetime(2024, 1, 1),
    })
    collections.students.insert({
        "firstName": "Ana", "lastName": "Silva", "dateOfBirth": datetime(2015, 3, 2),
        "enrollmentStartDate": datetime(2024, 1, 15), "userId": parent_id,
    })
    collections.books.insert({"title": "Heidi", "author": "Johanna Spyri", "user": parent_id})


class CommandTestCase(SimpleTestCase):
    """Creates a temporary directory and a seeded source store."""

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmpdir.cleanup)
        self.path = str(Path(self.tmpdir.name) / "backup.json")
        self.source = make_collections()
        seed(self.source)

    def export(self, *args):
        out = StringIO()
        with patch(EXPORT_COLLECTIONS, return_value=self.source):
            call_command("export_school_data", "--output", self.path, *args, stdout=out)
        return out.getvalue()

    def run_import(self, collections, *args, path=None):
        out = StringIO()
        with patch(IMPORT_COLLECTIONS, return_value=collections):
            call_command("import_school_data", path or self.path, *args, stdout=out)
        return out.getvalue()


class TestExportCommand(CommandTestCase):
    """Tests for export_school_data."""

    def test_writes_backup(self):
        output = self.export()

        with open(self.path) as f:
            backup = json.load(f)
        self.assertEqual(backup["_metadata"]["exportType"], "complete-system-backup")
        self.assertEqual(backup["users"]["data"][0]["passwordHash"], "hash1")
        self.assertIn("Exported 3 total records", output)

    def test_no_passwords(self):
        self.export("--no-passwords")

        with open(self.path) as f:
            backup = json.load(f)
        self.assertNotIn("passwordHash", backup["users"]["data"][0])

    def test_dry_run(self):
        output = self.export("--dry-run", "--book-availability", "lent")

        self.assertFalse(Path(self.path).exists())
        self.assertIn("books: 0 records", output)
        self.assertIn("Would export 2 total records", output)

    def test_invalid_month(self):
        with self.assertRaises(CommandError):
            self.export("--student-start-month", "January")


class TestImportCommand(CommandTestCase):
    """Tests for import_school_data."""

    def setUp(self):
        super().setUp()
        self.export()
        self.target = make_collections()

    def test_restore(self):
        output = self.run_import(self.target)

        self.assertIn("System restore completed: 1 users created", output)
        self.assertEqual(self.target.students.count(), 1)
        self.assertEqual(self.target.books.count(), 1)

    def test_validate_only(self):
        output = self.run_import(self.target, "--validate")

        self.assertIn("Validation complete.", output)
        self.assertIn("users: 1 records", output)
        self.assertEqual(self.target.users.count(), 0)

    def test_dry_run(self):
        output = self.run_import(self.target, "--dry-run")

        self.assertIn("DRY RUN", output)
        self.assertIn("Would import: 3 new, 0 existing", output)
        self.assertEqual(self.target.users.count(), 0)

    def test_merge_override(self):
        self.target.users.insert({"username": "parent1", "email": "p1@example.com", "name": "Old"})

        output = self.run_import(self.target, "--user-handling", "merge")

        self.assertIn("users: 1 merged", output)

    def test_missing_file(self):
        with self.assertRaisesRegex(CommandError, "Failed to load backup file"):
            self.run_import(self.target, path=str(Path(self.tmpdir.name) / "nope.json"))

    def test_wrong_backup_type(self):
        with open(self.path, "w") as f:
            json.dump({"_metadata": {"exportType": "users"}, "users": []}, f)

        with self.assertRaisesRegex(CommandError, "not a complete system backup"):
            self.run_import(self.target)

    def test_incompatible_needs_force(self):
        with open(self.path) as f:
            backup = json.load(f)
        backup["_metadata"]["version"] = "2.0"
        with open(self.path, "w") as f:
            json.dump(backup, f)

        with self.assertRaisesRegex(CommandError, "Use --force"):
            self.run_import(self.target)

        output = self.run_import(self.target, "--force")
        self.assertIn("users: 1 created", output)
