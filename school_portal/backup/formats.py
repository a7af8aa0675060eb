# SPDX-FileCopyrightText: (C) ORCD
#
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Backup file format constants.

Every export is a JSON object with a "_metadata" block and one data key:

    {
        "_metadata": {"exportType": "books", "exportTimestamp": "...", ...},
        "books": [...]
    }

The complete system backup nests one {metadata, data} section per entity:

    {
        "_metadata": {"exportType": "complete-system-backup", "version": "1.0", ...},
        "users": {"metadata": {...}, "data": [...]},
        "students": {"metadata": {...}, "data": [...]},
        ...
    }
"""

from typing import Dict, List

BACKUP_VERSION = "1.0"

# Export types (the "_metadata.exportType" values)
EXPORT_USERS = "users"
EXPORT_STUDENTS = "students"
EXPORT_USERS_WITH_STUDENTS = "users-with-students"
EXPORT_SINGLE_USER_WITH_STUDENTS = "single-user-with-students"
EXPORT_NOTIFICATIONS = "notifications"
EXPORT_DOCUMENTS = "documents"
EXPORT_GA_DOCUMENTS = "ga-documents"
EXPORT_BOOKS = "books"
EXPORT_EVENT_SIGNUPS = "event-signups"
EXPORT_COMPLETE = "complete-system-backup"

FILE_NOTE = "File URL preserved - will be validated during import. Re-upload if inaccessible."

PASSWORDS_INCLUDED_NOTE = (
    "WARNING: User password hashes are included for login functionality - store securely!"
)
PASSWORDS_EXCLUDED_NOTE = (
    "User password hashes excluded - users will need password reset after import"
)

# Section keys of the complete backup, in import order
FULL_BACKUP_SECTIONS: List[str] = [
    "users",
    "students",
    "notifications",
    "documents",
    "books",
    "eventSignups",
]

# Duplicate handling strategies
SKIP = "skip"
REPLACE = "replace"
MERGE = "merge"
INTERACTIVE = "interactive"

SINGLE_IMPORT_STRATEGIES = (SKIP, REPLACE, MERGE, INTERACTIVE)
FULL_IMPORT_STRATEGIES = (SKIP, MERGE)

# Full import option key -> section key
STRATEGY_OPTION_KEYS: Dict[str, str] = {
    "users": "userDuplicateHandling",
    "students": "studentDuplicateHandling",
    "notifications": "notificationDuplicateHandling",
    "documents": "documentDuplicateHandling",
    "books": "bookDuplicateHandling",
    "eventSignups": "eventSignupDuplicateHandling",
}

# Section key -> entity type (registry model_name)
SECTION_ENTITY_TYPES: Dict[str, str] = {
    "users": "users",
    "students": "students",
    "notifications": "notifications",
    "documents": "documents",
    "books": "books",
    "eventSignups": "event_signups",
}
