# SPDX-FileCopyrightText: (C) ORCD
#
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Per-entity field policies.

Each entity type declares, in one place, how the backup engine treats its
fields:

    natural_key       fields used for duplicate detection
    protected_fields  fields no merge strategy may overwrite
    array_policies    how list-valued fields combine on merge
    date_fields       top-level fields parsed back into datetimes on import
    label_key         key used to identify a record in import results

Array fields not listed in array_policies are replaced wholesale.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, Tuple


class ArrayPolicy(Enum):
    """How an incoming list combines with the existing list on merge."""
    REPLACE = "replace"
    APPEND = "append"
    UNION = "union"


BASE_PROTECTED_FIELDS: FrozenSet[str] = frozenset({"_id", "id", "__v", "createdAt"})


@dataclass(frozen=True)
class EntitySchema:
    entity_type: str
    natural_key: Tuple[str, ...]
    label_key: str
    protected_fields: FrozenSet[str] = BASE_PROTECTED_FIELDS
    array_policies: Dict[str, ArrayPolicy] = field(default_factory=dict)
    date_fields: Tuple[str, ...] = ()


SCHEMAS: Dict[str, EntitySchema] = {
    "users": EntitySchema(
        entity_type="users",
        natural_key=("username",),
        label_key="username",
        protected_fields=BASE_PROTECTED_FIELDS | {"passwordHash", "students", "books"},
        date_fields=("createdAt", "updatedAt"),
    ),
    "students": EntitySchema(
        entity_type="students",
        natural_key=("firstName", "lastName", "dateOfBirth"),
        label_key="name",
        array_policies={"motivationForJoining": ArrayPolicy.REPLACE},
        date_fields=(
            "dateOfBirth", "enrollmentStartDate", "enrollmentEndDate", "createdAt", "updatedAt",
        ),
    ),
    "dashboards": EntitySchema(
        entity_type="dashboards",
        natural_key=("studentId",),
        label_key="studentId",
        protected_fields=BASE_PROTECTED_FIELDS | {"studentId"},
        array_policies={
            "portfolios": ArrayPolicy.APPEND,
            "documents": ArrayPolicy.APPEND,
            "history": ArrayPolicy.APPEND,
        },
    ),
    "notifications": EntitySchema(
        entity_type="notifications",
        natural_key=("title", "message"),
        label_key="title",
    ),
    "documents": EntitySchema(
        entity_type="documents",
        natural_key=("title",),
        label_key="title",
    ),
    "ga_documents": EntitySchema(
        entity_type="ga_documents",
        natural_key=("title",),
        label_key="title",
    ),
    "books": EntitySchema(
        entity_type="books",
        natural_key=("title", "author"),
        label_key="title",
        array_policies={"lendingHistory": ArrayPolicy.APPEND},
    ),
    "event_signups": EntitySchema(
        entity_type="event_signups",
        natural_key=("eventTitle", "eventDate"),
        label_key="eventTitle",
        date_fields=("eventDate",),
    ),
}


def get_schema(entity_type: str) -> EntitySchema:
    """Return the schema for an entity type.

    Raises:
        KeyError: If the entity type is unknown
    """
    if entity_type not in SCHEMAS:
        raise KeyError(f"No schema defined for entity type: {entity_type}")
    return SCHEMAS[entity_type]
