# SPDX-FileCopyrightText: (C) ORCD
#
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Entity-specific importers.

Each module in this package provides importers for one entity group.
Importers are automatically registered with ImporterRegistry when imported,
in the order the full backup is restored.

Modules:
    users: User accounts, and the user-with-students family import
    students: Students with their dashboards, and the students backup import
    notifications: Notifications
    documents: Document sections and GA document sections
    books: Library books with lending state and history
    event_signups: Events with their signups
"""

# Import importers to trigger registration with ImporterRegistry
from . import users
from . import students
from . import notifications
from . import documents
from . import books
from . import event_signups

__all__ = [
    "users",
    "students",
    "notifications",
    "documents",
    "books",
    "event_signups",
]
