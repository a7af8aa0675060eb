# SPDX-FileCopyrightText: (C) ORCD
#
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Entity-specific exporters.

Each module in this package provides exporters for one entity group.
Exporters are automatically registered with ExporterRegistry when imported.

Modules:
    users: User accounts, users with students, single family
    students: Students (optionally with dashboards)
    notifications: Notifications
    documents: Document sections and GA document sections
    books: Library books with lending state and history
    event_signups: Events with their signups
"""

# Import exporters to trigger registration with ExporterRegistry
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
