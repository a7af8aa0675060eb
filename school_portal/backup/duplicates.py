# SPDX-FileCopyrightText: (C) ORCD
#
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Duplicate detection.

An incoming record is a duplicate when an existing record shares its
natural key (see schemas.py). Each match is reported as:

    {
        "type": "username",              # which key matched
        "field": "username",             # field(s) compared
        "value": "parent1",              # the incoming key value
        "existing": {...},               # the stored document
        "conflicts": [...],              # detect_conflicts() output
    }

Callers act on the first match. A record whose natural key is incomplete
has no duplicates.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
import logging

from .sanitizer import PORTABLE_ONLY_FIELDS
from .schemas import get_schema
from .utils import deserialize_date, is_empty, to_portable

logger = logging.getLogger(__name__)

# Import-only aliases that never appear on stored documents
ALIAS_FIELDS = frozenset({
    "parentUsername",
    "ownerUsername",
    "createdByUsername",
    "lentToUsername",
    "dashboard",
    "password",
})


def _js_type(value: Any) -> str:
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    return "object"


def _comparable(existing_value: Any, incoming_value: Any) -> Any:
    """Bring an incoming value to the stored value's type where possible."""
    if isinstance(existing_value, datetime) and isinstance(incoming_value, str):
        parsed = deserialize_date(incoming_value)
        if parsed is not None:
            return parsed
    return incoming_value


def detect_conflicts(
    existing: Dict[str, Any],
    incoming: Dict[str, Any],
    entity_type: str = "users",
) -> List[Dict[str, Any]]:
    """List the fields where two records hold different non-empty values.

    A field is reported only when both sides are non-empty and differ.
    Protected fields and import-only aliases are never reported.

    Args:
        existing: Stored document
        incoming: Incoming (portable) record
        entity_type: Entity type, selects the protected fields

    Returns:
        List of {field, existingValue, incomingValue, type}
    """
    skipped = get_schema(entity_type).protected_fields | ALIAS_FIELDS | set(PORTABLE_ONLY_FIELDS)
    conflicts = []

    for key, incoming_value in incoming.items():
        if key in skipped:
            continue
        existing_value = existing.get(key)
        if is_empty(existing_value) or is_empty(incoming_value):
            continue
        if to_portable(existing_value) == to_portable(_comparable(existing_value, incoming_value)):
            continue
        conflicts.append({
            "field": key,
            "existingValue": to_portable(existing_value),
            "incomingValue": incoming_value,
            "type": _js_type(incoming_value),
        })

    return conflicts


def _match(
    existing: Dict[str, Any],
    candidate: Dict[str, Any],
    entity_type: str,
    match_type: str,
    field_label: str,
    value: Any,
) -> Dict[str, Any]:
    return {
        "type": match_type,
        "field": field_label,
        "value": value,
        "existing": existing,
        "conflicts": detect_conflicts(existing, candidate, entity_type),
    }


def find_user_duplicates(candidate: Dict[str, Any], users) -> List[Dict[str, Any]]:
    """Match a user by username, then by email.

    The email match is reported only when it finds a different record than
    the username match.
    """
    duplicates: List[Dict[str, Any]] = []

    username = candidate.get("username")
    if username:
        by_username = users.find_one({"username": username})
        if by_username:
            duplicates.append(
                _match(by_username, candidate, "users", "username", "username", username)
            )

    email = candidate.get("email")
    if email and (not duplicates or duplicates[0]["existing"].get("email") != email):
        by_email = users.find_one({"email": email})
        if by_email and (
            not duplicates
            or str(by_email["_id"]) != str(duplicates[0]["existing"]["_id"])
        ):
            duplicates.append(_match(by_email, candidate, "users", "email", "email", email))

    return duplicates


def _natural_key_query(candidate: Dict[str, Any], entity_type: str) -> Optional[Dict[str, Any]]:
    """Store query for a candidate's natural key, or None if incomplete."""
    schema = get_schema(entity_type)
    query = {}
    for key in schema.natural_key:
        value = candidate.get(key)
        if entity_type == "books" and key == "author" and is_empty(value):
            value = ""
        elif is_empty(value):
            return None
        if key in schema.date_fields:
            value = deserialize_date(value) or value
        query[key] = value
    return query


MATCH_TYPES = {
    "students": ("name-dob", "firstName + lastName + dateOfBirth"),
    "notifications": ("title-message", "title + message"),
    "documents": ("title", "title"),
    "ga_documents": ("title", "title"),
    "books": ("title-author", "title + author"),
    "event_signups": ("title-date", "eventTitle + eventDate"),
}


def find_duplicates(
    candidate: Dict[str, Any], entity_type: str, collection
) -> List[Dict[str, Any]]:
    """Find stored records sharing the candidate's natural key.

    Args:
        candidate: Incoming record
        entity_type: Entity type name
        collection: Accessor for the entity's collection

    Returns:
        List of duplicate entries (empty when there is no match)
    """
    if entity_type == "users":
        return find_user_duplicates(candidate, collection)

    query = _natural_key_query(candidate, entity_type)
    if query is None:
        return []

    existing = collection.find_one(query)
    if existing is None:
        return []

    match_type, field_label = MATCH_TYPES[entity_type]
    if entity_type == "students":
        value = (
            f"{candidate['firstName']} {candidate['lastName']} "
            f"({to_portable(candidate['dateOfBirth'])})"
        )
    else:
        value = " / ".join(str(to_portable(v)) for v in query.values())

    logger.debug(f"Duplicate {entity_type} found for {value}")
    return [_match(existing, candidate, entity_type, match_type, field_label, value)]
