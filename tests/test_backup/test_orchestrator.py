# SPDX-FileCopyrightText: (C) ORCD
#
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Tests for complete system backup and restore."""

import json
import tempfile
from datetime import datetime
from pathlib import Path
from unittest import TestCase

from django.test import override_settings

from school_portal.backup import (
    BackupFormatError,
    export_all,
    import_all,
    preview_import,
    validate_backup,
    write_backup,
)
from school_portal.backup.formats import FULL_BACKUP_SECTIONS
from school_portal.backup.orchestrator import resolve_strategies
from school_portal.permissions import Identity, Role
from tests.fakes import make_collections


def seed_school(collections):
    """A parent with one student, a lent book and an event."""
    parent_id = collections.users.insert({
        "username": "parent1", "email": "p1@example.com", "name": "Parent One",
        "role": "user", "passwordHash": "hash1", "createdAt": datetime(2024, 1, 1),
    })
    student_id = collections.students.insert({
        "firstName": "Ana", "lastName": "Silva", "dateOfBirth": datetime(2015, 3, 2),
        "enrollmentStartDate": datetime(2024, 1, 15), "userId": parent_id,
    })
    collections.users.add_to_set(parent_id, "students", student_id)
    collections.dashboards.insert({"studentId": student_id, "portfolios": [{"pdfUrl": "https://example.com/p.pdf"}]})
    collections.notifications.insert({
        "title": "Closed", "message": "Snow day", "createdBy": parent_id,
        "targetType": "public", "createdAt": datetime(2024, 2, 1),
    })
    collections.documents.insert({"title": "Forms", "order": 1, "documents": []})
    collections.books.insert({
        "title": "Matilda", "author": "Roald Dahl", "user": parent_id,
        "lending": {"isLent": True, "borrower": parent_id, "lentDate": datetime(2024, 3, 1)},
        "lendingHistory": [],
    })
    collections.event_signups.insert({
        "eventTitle": "Fair", "eventDate": datetime(2024, 6, 1, 10, 0), "isActive": True,
        "signups": [{"userId": parent_id, "userName": "Parent One"}],
    })
    return parent_id


def empty_backup(**sections):
    backup = {"_metadata": {"exportType": "complete-system-backup", "version": "1.0"}}
    for section, data in sections.items():
        backup[section] = {"metadata": {}, "data": data}
    return backup


class TestExportAll(TestCase):
    """Tests for the complete export."""

    def setUp(self):
        self.collections = make_collections()
        seed_school(self.collections)

    def test_envelope(self):
        backup = export_all(self.collections)
        metadata = backup["_metadata"]

        self.assertEqual(metadata["exportType"], "complete-system-backup")
        self.assertEqual(metadata["version"], "1.0")
        self.assertEqual(metadata["sections"], FULL_BACKUP_SECTIONS)
        self.assertEqual(metadata["systemInfo"]["totalUsers"], 1)
        self.assertEqual(metadata["systemInfo"]["totalEventSignups"], 1)
        for section in FULL_BACKUP_SECTIONS:
            self.assertIn("metadata", backup[section])
            self.assertEqual(len(backup[section]["data"]), 1)

    def test_students_carry_dashboards(self):
        backup = export_all(self.collections)

        student = backup["students"]["data"][0]
        self.assertEqual(student["parentUsername"], "parent1")
        self.assertEqual(student["dashboard"]["portfolios"][0]["portfolioUrl"], "https://example.com/p.pdf")
        self.assertIn("dashboardNote", backup["students"]["metadata"])

    @override_settings(SCHOOL_PORTAL_BACKUP_PRESERVE_PASSWORDS=True)
    def test_passwords_preserved_by_setting(self):
        backup = export_all(self.collections)

        self.assertEqual(backup["users"]["data"][0]["passwordHash"], "hash1")
        self.assertTrue(backup["_metadata"]["options"]["preservePasswords"])
        self.assertTrue(backup["_metadata"]["notes"]["passwords"].startswith("WARNING"))

    def test_passwords_excluded_on_request(self):
        backup = export_all(self.collections, options={"preserve_passwords": False})

        self.assertNotIn("passwordHash", backup["users"]["data"][0])

    def test_section_filters(self):
        backup = export_all(self.collections, filters={"books": {"availability": "available"}})

        self.assertEqual(backup["books"]["data"], [])
        self.assertEqual(backup["_metadata"]["systemInfo"]["totalBooks"], 0)

    def test_write_backup(self):
        backup = export_all(self.collections)
        with tempfile.TemporaryDirectory() as tmpdir:
            path = write_backup(backup, str(Path(tmpdir) / "nested" / "backup.json"))

            with open(path) as f:
                self.assertEqual(json.load(f)["_metadata"]["exportType"], "complete-system-backup")


class TestValidateBackup(TestCase):
    """Tests for envelope validation and strategy resolution."""

    def test_not_a_dict(self):
        with self.assertRaisesRegex(BackupFormatError, "Invalid backup data format"):
            validate_backup(["users"])

    def test_wrong_export_type(self):
        with self.assertRaisesRegex(BackupFormatError, "not a complete system backup"):
            validate_backup({"_metadata": {"exportType": "users"}})

    def test_bad_section(self):
        backup = empty_backup()
        backup["users"] = {"data": "nope"}
        with self.assertRaises(BackupFormatError):
            validate_backup(backup)

    def test_missing_sections_allowed(self):
        self.assertEqual(validate_backup(empty_backup())["version"], "1.0")

    def test_strategy_precedence(self):
        strategies = resolve_strategies({"duplicateHandling": "merge", "bookDuplicateHandling": "skip"})

        self.assertEqual(strategies["users"], "merge")
        self.assertEqual(strategies["books"], "skip")

    def test_default_skip(self):
        self.assertEqual(set(resolve_strategies().values()), {"skip"})

    def test_unsupported_strategy(self):
        with self.assertRaises(BackupFormatError):
            resolve_strategies({"duplicateHandling": "replace"})


class TestImportAll(TestCase):
    """Tests for restoring a complete backup."""

    def setUp(self):
        source = make_collections()
        seed_school(source)
        self.backup = json.loads(json.dumps(
            export_all(source, options={"preserve_passwords": True}), default=str
        ))
        self.collections = make_collections()
        self.identity = Identity(user_id=None, username="admin", role=Role.ADMIN)

    def test_restore_into_empty_store(self):
        result = import_all(self.backup, {}, self.collections, identity=self.identity)

        totals = result.grand_totals()
        self.assertEqual(totals["totalCreated"], 6)
        self.assertEqual(totals["totalErrors"], 0)

        parent = self.collections.users.find_one({"username": "parent1"})
        student = self.collections.students.find_one({"firstName": "Ana"})
        book = self.collections.books.find_one({"title": "Matilda"})
        event = self.collections.event_signups.find_one({"eventTitle": "Fair"})
        self.assertEqual(parent["passwordHash"], "hash1")
        self.assertEqual(student["userId"], parent["_id"])
        self.assertEqual(parent["students"], [student["_id"]])
        self.assertEqual(book["lending"]["borrower"], parent["_id"])
        self.assertEqual(parent["books"], [book["_id"]])
        self.assertEqual(event["signups"][0]["userId"], parent["_id"])
        self.assertEqual(self.collections.dashboards.count({"studentId": student["_id"]}), 1)

    def test_second_import_is_idempotent(self):
        import_all(self.backup, {}, self.collections)

        result = import_all(self.backup, {}, self.collections)

        totals = result.grand_totals()
        self.assertEqual(totals["totalCreated"], 0)
        self.assertEqual(totals["totalSkipped"], 6)
        self.assertEqual(result.message(), "System restore completed: No new records created")
        self.assertEqual(self.collections.users.count(), 1)
        self.assertEqual(self.collections.dashboards.count(), 1)

    def test_ghost_parent(self):
        """A student whose parent is neither stored nor in the backup is an error."""
        self.backup["users"]["data"] = []

        result = import_all(self.backup, {}, self.collections)

        students = result.sections["students"]
        self.assertEqual(students.errors[0]["error"], "Parent user 'parent1' not found")
        self.assertEqual(self.collections.students.count(), 0)
        self.assertEqual(result.summary()["students"]["errors"], 1)

    def test_merge_users(self):
        self.collections.users.insert({
            "username": "parent1", "email": "p1@example.com", "name": "Old Name",
            "passwordHash": "local-hash",
        })

        result = import_all(self.backup, {"userDuplicateHandling": "merge"}, self.collections)

        users = result.sections["users"]
        self.assertEqual(users.merged[0]["action"], "merged")
        parent = self.collections.users.find_one({"username": "parent1"})
        self.assertEqual(parent["name"], "Parent One")
        self.assertEqual(parent["passwordHash"], "local-hash")
        self.assertEqual(result.strategies["users"], "merge")
        self.assertEqual(result.strategies["books"], "skip")

    def test_duplicate_book_skipped(self):
        self.collections.books.insert({"title": "Matilda", "author": "Roald Dahl"})

        result = import_all(self.backup, {}, self.collections)

        books = result.sections["books"]
        self.assertEqual(books.duplicates[0]["message"], "Skipped - duplicate book found")
        self.assertEqual(self.collections.books.count(), 1)

    def test_sections_imported_in_dependency_order(self):
        result = import_all(self.backup, {}, self.collections, identity=self.identity)

        self.assertEqual(list(result.sections), FULL_BACKUP_SECTIONS)

    def test_malformed_envelope_writes_nothing(self):
        self.backup["_metadata"]["exportType"] = "users"

        with self.assertRaises(BackupFormatError):
            import_all(self.backup, {}, self.collections)

        self.assertEqual(self.collections.users.count(), 0)

    def test_non_object_record_writes_nothing(self):
        self.backup["books"]["data"].insert(0, None)

        with self.assertRaisesRegex(BackupFormatError, "record 1 is not an object"):
            import_all(self.backup, {}, self.collections, identity=self.identity)

        self.assertEqual(self.collections.users.count(), 0)
        self.assertEqual(self.collections.students.count(), 0)

    def test_bad_strategy_writes_nothing(self):
        with self.assertRaises(BackupFormatError):
            import_all(self.backup, {"studentDuplicateHandling": "interactive"}, self.collections)

        self.assertEqual(self.collections.users.count(), 0)

    def test_to_dict(self):
        result = import_all(self.backup, {}, self.collections, identity=self.identity)

        data = result.to_dict()

        self.assertTrue(data["message"].startswith("System restore completed: 1 users created"))
        self.assertEqual(data["results"]["summary"]["books"]["created"], 1)
        self.assertNotIn("conflicts", data["results"]["users"])
        self.assertEqual(data["summary"]["totalProcessed"], 6)
        self.assertEqual(data["compatibility"]["status"], "compatible")
        self.assertEqual(data["importedBy"]["username"], "admin")

    def test_incompatible_version_still_reported(self):
        self.backup["_metadata"]["version"] = "2.0"

        result = import_all(self.backup, {}, self.collections)

        self.assertEqual(result.compatibility.status.value, "incompatible")


class TestPreviewImport(TestCase):
    """Tests for the dry run."""

    def setUp(self):
        source = make_collections()
        seed_school(source)
        self.backup = json.loads(json.dumps(export_all(source), default=str))
        self.collections = make_collections()

    def test_preview_writes_nothing(self):
        preview = preview_import(self.backup, self.collections)

        self.assertTrue(preview["preview"])
        self.assertEqual(preview["summary"]["totalNew"], 6)
        self.assertEqual(preview["summary"]["totalMissingReferences"], 0)
        self.assertEqual(self.collections.users.count(), 0)
        self.assertEqual(self.collections.students.count(), 0)

    def test_preview_reports_conflicts(self):
        self.collections.users.insert({"username": "parent1", "email": "p1@example.com", "name": "Other"})

        preview = preview_import(self.backup, self.collections, {"duplicateHandling": "merge"})

        conflict = preview["conflicts"][0]
        self.assertEqual(conflict["section"], "users")
        self.assertEqual(conflict["action"], "merge")
        self.assertEqual(conflict["conflicts"][0]["field"], "name")
        self.assertEqual(preview["sections"]["users"]["duplicates"], 1)

    def test_preview_missing_parent(self):
        self.backup["users"]["data"] = []

        preview = preview_import(self.backup, self.collections)

        self.assertEqual(preview["sections"]["students"]["missingReferences"], 1)
        self.assertEqual(preview["missingReferences"][0]["label"], "Ana Silva")

    def test_preview_invalid_record(self):
        self.backup["books"]["data"] = [{"author": "Nobody"}]

        preview = preview_import(self.backup, self.collections)

        self.assertEqual(preview["sections"]["books"]["invalid"], 1)
        self.assertEqual(preview["invalidRecords"][0]["error"], "Title is required")

    def test_preview_rejects_non_object_record(self):
        self.backup["users"]["data"].append(["parent2"])

        with self.assertRaises(BackupFormatError):
            preview_import(self.backup, self.collections)
