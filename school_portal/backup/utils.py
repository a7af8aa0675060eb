# SPDX-FileCopyrightText: (C) ORCD
#
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Shared utilities for backup operations.

Common helper functions used across exporters, importers and the merge
engine: date conversion, id conversion, emptiness checks and reference
lookups.
"""

from calendar import monthrange
from datetime import datetime, date, time, timezone
from typing import Any, Dict, Iterable, Optional, Tuple
import logging

from bson import ObjectId

logger = logging.getLogger(__name__)


def serialize_datetime(dt: Optional[datetime]) -> Optional[str]:
    """Serialize datetime to ISO format string.

    Args:
        dt: Datetime object or None

    Returns:
        ISO format string or None
    """
    if dt is None:
        return None
    return dt.isoformat()


def serialize_date(d: Optional[date]) -> Optional[str]:
    """Serialize date to ISO format string (YYYY-MM-DD)."""
    if d is None:
        return None
    return d.isoformat()


def deserialize_datetime(s: Any) -> Optional[datetime]:
    """Deserialize ISO format string to datetime.

    Accepts a trailing "Z" for UTC. Strings with an offset are converted
    to naive UTC, the form the document store returns. Datetime objects
    are returned as-is.

    Args:
        s: ISO format string, datetime or None

    Returns:
        Datetime object or None
    """
    if isinstance(s, datetime):
        return s
    if s is None or s == "":
        return None
    if isinstance(s, str) and s.endswith("Z"):
        s = s[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(s)
    except (TypeError, ValueError):
        logger.warning(f"Could not parse datetime: {s}")
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def deserialize_date(s: Any) -> Optional[datetime]:
    """Deserialize a date string (YYYY-MM-DD or full ISO) to a datetime.

    The document store has no pure date type, so dates are stored as
    midnight datetimes.
    """
    if isinstance(s, datetime):
        return s
    if isinstance(s, date):
        return datetime.combine(s, time.min)
    parsed = deserialize_datetime(s)
    if parsed is not None:
        return parsed
    return None


def is_empty(value: Any) -> bool:
    """True for None and the empty string, the two "no value" markers."""
    return value is None or value == ""


def to_id_string(value: Any) -> Optional[str]:
    """Return the string form of an id or of a populated reference.

    Args:
        value: ObjectId, id string, or a referenced document with "_id"

    Returns:
        Id string or None
    """
    if value is None:
        return None
    if isinstance(value, dict):
        return to_id_string(value.get("_id", value.get("id")))
    return str(value)


def to_portable(value: Any) -> Any:
    """Recursively convert store values into JSON-friendly values.

    ObjectIds become strings, datetimes and dates become ISO strings.
    """
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        return serialize_datetime(value)
    if isinstance(value, date):
        return serialize_date(value)
    if isinstance(value, dict):
        return {k: to_portable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_portable(v) for v in value]
    return value


def coerce_dates(record: Dict[str, Any], field_names: Iterable[str]) -> Dict[str, Any]:
    """Return a copy of record with the given fields parsed into datetimes.

    Fields that are missing or empty are left untouched.
    """
    coerced = dict(record)
    for name in field_names:
        if name in coerced and not is_empty(coerced[name]):
            parsed = deserialize_date(coerced[name])
            if parsed is not None:
                coerced[name] = parsed
    return coerced


def parse_month(value: str) -> Tuple[int, int]:
    """Parse "YYYY-MM" into (year, month).

    Raises:
        ValueError: If the value is not a valid month
    """
    year_str, month_str = value.split("-")[:2]
    year, month = int(year_str), int(month_str)
    if not 1 <= month <= 12:
        raise ValueError(f"Invalid month: {value}")
    return year, month


def month_range(
    start_month: Optional[str], end_month: Optional[str]
) -> Dict[str, datetime]:
    """Build a store range query for an inclusive month range.

    The start is midnight on the first day of start_month; the end is the
    last microsecond of the last day of end_month.

    Args:
        start_month: "YYYY-MM" or None
        end_month: "YYYY-MM" or None

    Returns:
        Dict with "$gte" and/or "$lte" keys (empty if both are None)
    """
    query: Dict[str, datetime] = {}
    if start_month:
        year, month = parse_month(start_month)
        query["$gte"] = datetime(year, month, 1)
    if end_month:
        year, month = parse_month(end_month)
        last_day = monthrange(year, month)[1]
        query["$lte"] = datetime(year, month, last_day, 23, 59, 59, 999999)
    return query


def end_of_day(value: Any) -> Optional[datetime]:
    """Return the last microsecond of the day of value."""
    parsed = deserialize_date(value)
    if parsed is None:
        return None
    return parsed.replace(hour=23, minute=59, second=59, microsecond=999999)


def date_range(start: Any, end: Any) -> Dict[str, datetime]:
    """Build a store range query; the end bound includes the whole day."""
    query: Dict[str, datetime] = {}
    start_dt = deserialize_date(start) if start else None
    end_dt = end_of_day(end) if end else None
    if start_dt is not None:
        query["$gte"] = start_dt
    if end_dt is not None:
        query["$lte"] = end_dt
    return query


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def utc_timestamp() -> str:
    """Current UTC time as an ISO string ending in "Z"."""
    now = utc_now()
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"


def export_filename(export_type: str) -> str:
    """Generate the download filename for an export.

    Returns:
        Filename like "students-export-2024-06-01.json"
    """
    return f"{export_type}-export-{utc_now().strftime('%Y-%m-%d')}.json"


def get_user_by_username(users, username: Optional[str]) -> Optional[Dict[str, Any]]:
    """Get user by username.

    Centralized helper for resolving user references during import.

    Args:
        users: Users collection accessor
        username: Username to look up

    Returns:
        User document or None if not found
    """
    if not username:
        return None
    user = users.find_one({"username": username})
    if user is None:
        logger.warning(f"User not found: {username}")
    return user


def get_user_by_id(users, user_id: Any) -> Optional[Dict[str, Any]]:
    """Get user by id; returns None for missing or unknown ids."""
    if is_empty(user_id):
        return None
    return users.find_by_id(user_id)
