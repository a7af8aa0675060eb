# SPDX-FileCopyrightText: (C) ORCD
#
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Tests for the entity importers."""

from datetime import datetime
from types import SimpleNamespace
from unittest import TestCase

from bson import ObjectId
from django.contrib.auth.hashers import check_password

from school_portal.backup.base import BackupFormatError
from school_portal.backup.importers.books import BookImporter
from school_portal.backup.importers.documents import (
    DocumentSectionImporter,
    GADocumentSectionImporter,
)
from school_portal.backup.importers.event_signups import EventSignupImporter
from school_portal.backup.importers.notifications import NotificationImporter
from school_portal.backup.importers.students import StudentImporter, import_student_backup
from school_portal.backup.importers.users import (
    UserImporter,
    import_family,
    validate_password,
)
from school_portal.media import MISSING_FILE_SENTINEL
from school_portal.permissions import Identity, Role
from tests.fakes import FakeMediaHost, make_collections

STRONG_PASSWORD = "Secret#2024"


class ImporterTestCase(TestCase):
    """Seeds one parent and an importing admin."""

    def setUp(self):
        self.collections = make_collections()
        self.admin_id = self.collections.users.insert({
            "username": "admin", "email": "admin@example.com", "role": "admin",
        })
        self.parent_id = self.collections.users.insert({
            "username": "parent1", "email": "p1@example.com", "name": "Parent One",
            "role": "user", "passwordHash": "old-hash", "students": [], "books": [],
        })
        self.identity = Identity(user_id=str(self.admin_id), username="admin", role=Role.ADMIN)


class TestValidatePassword(TestCase):
    """Tests for password strength rules."""

    def test_strong_password(self):
        self.assertIsNone(validate_password(STRONG_PASSWORD))

    def test_weak_passwords(self):
        self.assertIn("at least 8", validate_password("Ab1!"))
        self.assertIn("lowercase", validate_password("ABCDEFG1!"))
        self.assertIn("uppercase", validate_password("abcdefg1!"))
        self.assertIn("number", validate_password("Abcdefgh!"))
        self.assertIn("special", validate_password("Abcdefgh1"))


class TestUserImporter(ImporterTestCase):
    """Tests for user import in single and backup mode."""

    def test_create_hashes_password(self):
        importer = UserImporter(self.collections)

        result = importer.import_records([{
            "username": "newparent", "email": "new@example.com", "password": STRONG_PASSWORD,
            "passwordHash": "smuggled",
        }])

        self.assertEqual(result.success[0]["email"], "new@example.com")
        stored = self.collections.users.find_one({"username": "newparent"})
        self.assertTrue(check_password(STRONG_PASSWORD, stored["passwordHash"]))
        self.assertEqual(stored["role"], "user")
        self.assertEqual(stored["students"], [])

    def test_create_without_password_rejected(self):
        result = UserImporter(self.collections).import_records([
            {"username": "nopass", "email": "np@example.com"},
        ])

        self.assertIn("at least 8", result.errors[0]["error"])
        self.assertIsNone(self.collections.users.find_one({"username": "nopass"}))

    def test_weak_password_rejected(self):
        result = UserImporter(self.collections).import_records([
            {"username": "weak", "email": "w@example.com", "password": "short"},
        ])
        self.assertEqual(len(result.errors), 1)

    def test_invalid_username(self):
        result = UserImporter(self.collections).import_records([{"username": "ab", "email": "x@example.com"}])
        self.assertIn("Username must be at least 3", result.errors[0]["error"])

    def test_backup_mode_keeps_hash(self):
        importer = UserImporter(self.collections, backup_mode=True)

        importer.import_records([{
            "id": "abc", "username": "restored", "email": "r@example.com",
            "passwordHash": "exported-hash", "students": ["s1"],
        }])

        stored = self.collections.users.find_one({"username": "restored"})
        self.assertEqual(stored["passwordHash"], "exported-hash")
        self.assertEqual(stored["students"], [])

    def test_merge_keeps_password_hash(self):
        importer = UserImporter(self.collections, backup_mode=True)

        result = importer.import_records([{
            "username": "parent1", "email": "p1@example.com", "phone": "555",
            "passwordHash": "other-hash",
        }], "merge")

        stored = self.collections.users.get(self.parent_id)
        self.assertEqual(result.merged[0]["changesCount"], 1)
        self.assertEqual(stored["phone"], "555")
        self.assertEqual(stored["passwordHash"], "old-hash")

    def test_single_import_password_change_on_merge(self):
        importer = UserImporter(self.collections)

        importer.import_records([{
            "username": "parent1", "email": "p1@example.com", "password": STRONG_PASSWORD,
        }], "merge")

        stored = self.collections.users.get(self.parent_id)
        self.assertTrue(check_password(STRONG_PASSWORD, stored["passwordHash"]))

    def test_replace_returns_no_change_list(self):
        result = UserImporter(self.collections, backup_mode=True).import_records(
            [{"username": "parent1", "email": "p1@example.com", "name": "Renamed"}], "replace"
        )

        self.assertEqual(result.merged[0]["action"], "replaced")
        self.assertNotIn("changes", result.merged[0])
        self.assertEqual(self.collections.users.get(self.parent_id)["name"], "Renamed")

    def test_interactive_conflict_summary(self):
        result = UserImporter(self.collections, backup_mode=True).import_records(
            [{"username": "parent1", "email": "p1@example.com", "name": "Other"}], "interactive"
        )

        conflict = result.conflicts[0]
        self.assertEqual(conflict["existing"]["username"], "parent1")
        self.assertEqual(conflict["conflicts"][0]["field"], "name")


class TestStudentImporter(ImporterTestCase):
    """Tests for students and dashboards."""

    def student(self, **overrides):
        record = {
            "id": str(ObjectId()),
            "firstName": "Ana",
            "lastName": "Silva",
            "dateOfBirth": "2015-03-02",
            "grade": "3",
            "parentUsername": "parent1",
            "userId": str(ObjectId()),
        }
        record.update(overrides)
        return record

    def test_create_links_parent(self):
        result = StudentImporter(self.collections).import_records([self.student()])

        self.assertEqual(result.success[0]["name"], "Ana Silva")
        stored = self.collections.students.find_one({"firstName": "Ana"})
        self.assertEqual(stored["userId"], self.parent_id)
        self.assertEqual(stored["dateOfBirth"], datetime(2015, 3, 2))
        self.assertEqual(self.collections.users.get(self.parent_id)["students"], [stored["_id"]])

    def test_parent_by_id_fallback(self):
        record = self.student(parentUsername=None, userId=str(self.parent_id))

        result = StudentImporter(self.collections).import_records([record])

        self.assertEqual(len(result.success), 1)

    def test_unknown_parent_username(self):
        """A ghost parent rejects the student and writes nothing."""
        result = StudentImporter(self.collections).import_records([self.student(parentUsername="ghost")])

        self.assertEqual(result.errors, [{"name": "Ana Silva", "error": "Parent user 'ghost' not found"}])
        self.assertEqual(self.collections.students.count(), 0)

    def test_no_parent_reference(self):
        result = StudentImporter(self.collections).import_records(
            [self.student(parentUsername=None, userId=None)]
        )
        self.assertIn("No parent user reference found", result.errors[0]["error"])

    def test_missing_birth_date(self):
        result = StudentImporter(self.collections).import_records([self.student(dateOfBirth="")])
        self.assertEqual(result.errors[0]["error"], "Date of birth is required")

    def test_dashboard_created_in_stored_shape(self):
        record = self.student(dashboard={
            "portfolios": [{"portfolioUrl": "https://example.com/p.pdf", "fileName": "p.pdf",
                            "uploadDate": "2024-02-01T00:00:00.000Z"}],
        })

        StudentImporter(self.collections).import_records([record])

        student = self.collections.students.find_one({"firstName": "Ana"})
        self.assertNotIn("dashboard", student)
        dashboard = self.collections.dashboards.find_one({"studentId": student["_id"]})
        self.assertEqual(dashboard["portfolios"][0]["pdfUrl"], "https://example.com/p.pdf")
        self.assertEqual(dashboard["portfolios"][0]["uploadDate"], datetime(2024, 2, 1))

    def test_merge_appends_dashboard_files(self):
        student_id = self.collections.students.insert({
            "firstName": "Ana", "lastName": "Silva", "dateOfBirth": datetime(2015, 3, 2),
            "grade": "2", "userId": self.parent_id,
        })
        self.collections.dashboards.insert({"studentId": student_id, "portfolios": [{"pdfUrl": "old"}]})
        record = self.student(dashboard={"portfolios": [{"portfolioUrl": "new"}]})

        result = StudentImporter(self.collections).import_records([record], "merge")

        self.assertEqual(result.merged[0]["id"], str(student_id))
        self.assertEqual(self.collections.students.get(student_id)["grade"], "3")
        dashboard = self.collections.dashboards.find_one({"studentId": student_id})
        self.assertEqual([p["pdfUrl"] for p in dashboard["portfolios"]], ["old", "new"])
        self.assertEqual(self.collections.dashboards.count(), 1)

    def test_invalid_files_become_warnings(self):
        media_host = FakeMediaHost()
        record = self.student(dashboard={"portfolios": [{"portfolioUrl": MISSING_FILE_SENTINEL}]})

        result = StudentImporter(self.collections, media_host=media_host).import_records([record])

        self.assertEqual(len(result.success), 1)
        self.assertEqual(result.warnings[0]["student"], "Ana Silva")
        self.assertEqual(len(result.warnings[0]["invalidFiles"]), 1)

    def test_skip_does_not_validate_files(self):
        self.collections.students.insert({
            "firstName": "Ana", "lastName": "Silva", "dateOfBirth": datetime(2015, 3, 2),
            "userId": self.parent_id,
        })
        media_host = FakeMediaHost()
        record = self.student(dashboard={"portfolios": [{"portfolioUrl": MISSING_FILE_SENTINEL}]})

        StudentImporter(self.collections, media_host=media_host).import_records([record], "skip")

        self.assertEqual(media_host.calls, [])


class TestStudentBackupImport(ImporterTestCase):
    """Tests for importing a students export file."""

    def test_import(self):
        backup = {
            "_metadata": {"exportType": "students", "totalRecords": 1},
            "students": [{"firstName": "Ana", "lastName": "Silva", "dateOfBirth": "2015-03-02",
                          "parentUsername": "parent1"}],
        }

        result = import_student_backup(self.collections, backup)

        self.assertEqual(result["message"], "Backup import completed: 1 created")
        self.assertEqual(result["summary"]["total"], 1)
        self.assertEqual(result["backupMetadata"]["exportType"], "students")

    def test_missing_fields(self):
        with self.assertRaises(BackupFormatError):
            import_student_backup(self.collections, {"students": []})

    def test_wrong_type(self):
        with self.assertRaisesRegex(BackupFormatError, "expected 'students', got 'books'"):
            import_student_backup(self.collections, {"_metadata": {"exportType": "books"}, "students": []})


class TestNotificationImporter(ImporterTestCase):
    """Tests for notifications."""

    def test_creator_and_targets_resolved(self):
        student_id = self.collections.students.insert({"firstName": "Ana"})
        gone = str(ObjectId())

        result = NotificationImporter(self.collections, identity=self.identity).import_records([{
            "title": "Trip", "message": "Zoo", "createdByUsername": "parent1",
            "createdBy": str(ObjectId()), "targetType": "student-specific",
            "targetStudents": [str(student_id), gone], "createdAt": "2024-05-01T08:00:00.000Z",
        }])

        self.assertEqual(len(result.success), 1)
        stored = self.collections.notifications.find_one({"title": "Trip"})
        self.assertEqual(stored["createdBy"], self.parent_id)
        self.assertEqual(stored["targetStudents"], [student_id])
        self.assertEqual(stored["createdAt"], datetime(2024, 5, 1, 8, 0))
        self.assertNotIn("createdByUsername", stored)

    def test_unknown_creator_defaults_to_importer(self):
        NotificationImporter(self.collections, identity=self.identity).import_records([{
            "title": "Closed", "message": "Snow", "createdByUsername": "ghost",
        }])

        stored = self.collections.notifications.find_one({"title": "Closed"})
        self.assertEqual(stored["createdBy"], self.admin_id)

    def test_title_and_message_required(self):
        result = NotificationImporter(self.collections).import_records([{"title": "Only title"}])
        self.assertEqual(result.errors[0]["error"], "Title and message are required")


class TestDocumentSectionImporter(ImporterTestCase):
    """Tests for document sections."""

    def test_files_restored(self):
        result = DocumentSectionImporter(self.collections).import_records([{
            "title": "Forms",
            "documents": [
                {"name": "Enrollment", "documentUrl": "https://example.com/e.pdf",
                 "uploadedBy": str(self.parent_id), "uploadDate": "2024-01-10T00:00:00.000Z"},
                {"name": "Lost", "documentUrl": "https://example.com/l.pdf",
                 "uploadedBy": str(ObjectId())},
            ],
        }])

        self.assertEqual(len(result.success), 1)
        stored = self.collections.documents.find_one({"title": "Forms"})
        self.assertEqual(stored["order"], 1)
        self.assertEqual(stored["documents"][0]["fileUrl"], "https://example.com/e.pdf")
        self.assertEqual(stored["documents"][0]["uploadedBy"], self.parent_id)
        self.assertEqual(stored["documents"][0]["uploadDate"], datetime(2024, 1, 10))
        self.assertNotIn("uploadedBy", stored["documents"][1])

    def test_duplicate_section_skipped(self):
        self.collections.documents.insert({"title": "Forms"})

        result = DocumentSectionImporter(self.collections).import_records([{"title": "Forms"}])

        self.assertEqual(result.duplicates[0]["message"], "Skipped - duplicate section found")

    def test_ga_sections_use_their_collection(self):
        GADocumentSectionImporter(self.collections).import_records([
            {"title": "Minutes", "documents": [
                {"name": "Uploads", "contentType": "upload_area", "allowUserUploads": True,
                 "userUploads": [
                     {"fileUrl": "https://example.com/m.pdf", "uploadedBy": str(self.parent_id),
                      "_fileNote": "note"},
                     {"fileUrl": "https://example.com/x.pdf", "uploadedBy": str(ObjectId())},
                 ]},
            ]},
        ])

        self.assertEqual(self.collections.ga_documents.count(), 1)
        self.assertEqual(self.collections.documents.count(), 0)
        item = self.collections.ga_documents.find_one({})["documents"][0]
        self.assertEqual(item["contentType"], "upload_area")
        self.assertEqual(item["userUploads"][0], {
            "fileUrl": "https://example.com/m.pdf", "uploadedBy": self.parent_id,
        })
        self.assertNotIn("uploadedBy", item["userUploads"][1])

    def test_user_upload_files_validated(self):
        media_host = FakeMediaHost()

        result = GADocumentSectionImporter(self.collections, media_host=media_host).import_records([
            {"title": "Minutes", "documents": [
                {"name": "Uploads", "contentType": "upload_area", "userUploads": [
                    {"fileUrl": MISSING_FILE_SENTINEL, "fileName": "gone.pdf"},
                ]},
            ]},
        ])

        self.assertEqual(len(result.success), 1)
        invalid = result.warnings[0]["invalidFiles"][0]
        self.assertEqual(invalid["type"], "userUpload")
        self.assertEqual(invalid["fileName"], "gone.pdf")


class TestBookImporter(ImporterTestCase):
    """Tests for books and lending state."""

    def test_borrower_resolved_by_username(self):
        result = BookImporter(self.collections, identity=self.identity).import_records([{
            "title": "Matilda", "author": "Roald Dahl", "user": str(ObjectId()),
            "lentTo": str(ObjectId()), "lentToUsername": "parent1",
            "lending": {"isLent": True, "lentDate": "2024-03-01T00:00:00.000Z"},
            "lendingHistory": [
                {"username": "parent1", "user": str(ObjectId()), "lentDate": "2023-01-01"},
                {"username": "ghost", "user": str(ObjectId())},
            ],
        }])

        self.assertEqual(len(result.success), 1)
        stored = self.collections.books.find_one({"title": "Matilda"})
        self.assertEqual(stored["lending"]["borrower"], self.parent_id)
        self.assertTrue(stored["lending"]["isLent"])
        self.assertEqual(stored["lending"]["lentDate"], datetime(2024, 3, 1))
        self.assertEqual(len(stored["lendingHistory"]), 1)
        self.assertEqual(stored["lendingHistory"][0]["user"], self.parent_id)
        self.assertNotIn("lentToUsername", stored)
        # Unknown owner falls back to the importing admin
        self.assertEqual(stored["user"], self.admin_id)
        self.assertEqual(self.collections.users.get(self.admin_id)["books"], [stored["_id"]])

    def test_unknown_borrower_not_lent(self):
        BookImporter(self.collections).import_records([{
            "title": "Heidi", "lentToUsername": "ghost", "lending": {"isLent": True},
        }])

        stored = self.collections.books.find_one({"title": "Heidi"})
        self.assertEqual(stored["author"], "")
        self.assertEqual(stored["lending"], {
            "isLent": False, "borrower": None, "lentDate": None, "dueDate": None,
        })

    def test_unknown_owner_falls_back_to_stored_importer(self):
        identity = Identity.from_user(SimpleNamespace(pk=1, username="admin", is_superuser=True))

        BookImporter(self.collections, identity=identity).import_records([{
            "title": "Heidi", "ownerUsername": "ghost", "user": str(ObjectId()),
        }])

        stored = self.collections.books.find_one({"title": "Heidi"})
        self.assertEqual(stored["user"], self.admin_id)
        self.assertIn(stored["_id"], self.collections.users.get(self.admin_id)["books"])

    def test_unknown_owner_without_stored_importer(self):
        identity = Identity.from_user(SimpleNamespace(pk=1, username="root", is_superuser=True))

        BookImporter(self.collections, identity=identity).import_records([{
            "title": "Heidi", "ownerUsername": "ghost",
        }])

        stored = self.collections.books.find_one({"title": "Heidi"})
        self.assertIsNone(stored.get("user"))

    def test_duplicate_without_author(self):
        self.collections.books.insert({"title": "Matilda", "author": ""})

        result = BookImporter(self.collections).import_records([{"title": "Matilda"}])

        self.assertEqual(result.duplicates[0]["message"], "Skipped - duplicate book found")
        self.assertEqual(self.collections.books.count(), 1)

    def test_merge_appends_history(self):
        book_id = self.collections.books.insert({
            "title": "Matilda", "author": "Roald Dahl",
            "lendingHistory": [{"user": self.admin_id}],
        })

        BookImporter(self.collections).import_records([{
            "title": "Matilda", "author": "Roald Dahl",
            "lendingHistory": [{"username": "parent1"}],
        }], "merge")

        history = self.collections.books.get(book_id)["lendingHistory"]
        self.assertEqual([h["user"] for h in history], [self.admin_id, self.parent_id])

    def test_merge_reimport_does_not_duplicate_history(self):
        book_id = self.collections.books.insert({
            "title": "Matilda", "author": "Roald Dahl",
            "lendingHistory": [{"user": self.parent_id, "lentDate": datetime(2023, 1, 1)}],
        })
        record = {
            "title": "Matilda", "author": "Roald Dahl",
            "lendingHistory": [
                {"username": "parent1", "lentDate": "2023-01-01T00:00:00.000Z"},
                {"username": "admin", "lentDate": "2024-02-01T00:00:00.000Z"},
            ],
        }

        importer = BookImporter(self.collections)
        importer.import_records([record], "merge")
        importer.import_records([record], "merge")

        history = self.collections.books.get(book_id)["lendingHistory"]
        self.assertEqual(
            [(h["user"], h["lentDate"]) for h in history],
            [(self.parent_id, datetime(2023, 1, 1)), (self.admin_id, datetime(2024, 2, 1))],
        )


class TestEventSignupImporter(ImporterTestCase):
    """Tests for events and signups."""

    def setUp(self):
        super().setUp()
        self.other_id = self.collections.users.insert({"username": "parent2", "email": "p2@example.com"})

    def event(self, signups, **overrides):
        record = {
            "eventTitle": "Fair",
            "eventDate": "2024-06-01T10:00:00.000Z",
            "eventDescription": "Spring fair",
            "maxSignups": 10,
            "signups": signups,
        }
        record.update(overrides)
        return record

    def test_create_drops_unknown_users(self):
        result = EventSignupImporter(self.collections).import_records([self.event([
            {"userUsername": "parent1", "userId": str(ObjectId()), "responsibility": "Cakes"},
            {"userUsername": "ghost"},
        ])])

        self.assertEqual(result.success[0]["signupsCount"], 1)
        stored = self.collections.event_signups.find_one({"eventTitle": "Fair"})
        self.assertEqual(stored["eventDate"], datetime(2024, 6, 1, 10, 0))
        self.assertEqual(stored["signups"][0]["userId"], self.parent_id)
        self.assertEqual(stored["signups"][0]["userName"], "Parent One")

    def test_event_date_required(self):
        result = EventSignupImporter(self.collections).import_records([self.event([], eventDate="")])
        self.assertEqual(len(result.errors), 1)

    def test_merge_adds_only_new_signups(self):
        event_id = self.collections.event_signups.insert({
            "eventTitle": "Fair", "eventDate": datetime(2024, 6, 1, 10, 0),
            "eventDescription": "Old description", "createdAt": datetime(2024, 1, 1),
            "signups": [{"userId": self.parent_id, "userName": "Parent One", "responsibility": "Cakes"}],
        })

        result = EventSignupImporter(self.collections).import_records([self.event([
            {"userUsername": "parent1", "responsibility": "Games"},
            {"userUsername": "parent2", "responsibility": "Music"},
        ], createdAt="2030-01-01")], "merge")

        merged = result.merged[0]
        self.assertEqual(merged["signupsAdded"], 1)
        stored = self.collections.event_signups.get(event_id)
        self.assertEqual([s["responsibility"] for s in stored["signups"]], ["Cakes", "Music"])
        self.assertEqual(stored["eventDescription"], "Spring fair")
        self.assertEqual(stored["createdAt"], datetime(2024, 1, 1))

    def test_merge_nothing_new(self):
        self.collections.event_signups.insert({
            "eventTitle": "Fair", "eventDate": datetime(2024, 6, 1, 10, 0),
            "signups": [{"userId": self.parent_id}],
        })

        result = EventSignupImporter(self.collections).import_records(
            [self.event([{"userUsername": "parent1"}])], "merge"
        )

        self.assertEqual(result.merged, [])
        self.assertEqual(result.duplicates[0]["message"], "No new signups to merge")


class TestImportFamily(ImporterTestCase):
    """Tests for creating a user together with their students."""

    def test_creates_user_and_students(self):
        result = import_family(
            self.collections,
            {"username": "family1", "email": "f1@example.com", "password": STRONG_PASSWORD},
            [
                {"firstName": "Ana", "lastName": "Costa", "dateOfBirth": "2016-01-01"},
                {"firstName": "Rui", "lastName": "Costa", "dateOfBirth": "2018-01-01"},
            ],
        )

        self.assertEqual(result["user"]["username"], "family1")
        self.assertEqual(len(result["students"]), 2)
        self.assertEqual(result["errors"], [])
        user = self.collections.users.find_one({"username": "family1"})
        self.assertEqual(len(user["students"]), 2)
        self.assertTrue(all(
            s["userId"] == user["_id"] for s in self.collections.students.find({})
        ))

    def test_existing_email_rejected(self):
        with self.assertRaisesRegex(ValueError, "already exists"):
            import_family(
                self.collections,
                {"username": "family1", "email": "p1@example.com", "password": STRONG_PASSWORD},
            )

    def test_weak_password_rejected(self):
        with self.assertRaises(ValueError):
            import_family(self.collections, {"username": "family1", "email": "f@example.com", "password": "x"})
        self.assertIsNone(self.collections.users.find_one({"username": "family1"}))
