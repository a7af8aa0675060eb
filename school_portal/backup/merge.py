# SPDX-FileCopyrightText: (C) ORCD
#
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Merge engine.

Combines an existing stored record with an incoming record.

Strategies:
    replace                    shallow overlay, incoming wins every key it has
    merge                      recursive, empty incoming values are ignored,
                               APPEND arrays are concatenated
    prefer-incoming-non-empty  recursive, empty incoming values are ignored
    prefer-incoming            recursive, incoming wins even when empty
    merge-arrays               recursive, every array is set-unioned

Whatever the strategy, the entity's protected fields (see schemas.py) keep
the existing record's values.
"""

from typing import Any, Dict, Iterable, List, Optional, Tuple
import logging

from .schemas import ArrayPolicy, get_schema
from .utils import is_empty, to_portable, utc_timestamp

logger = logging.getLogger(__name__)

REPLACE = "replace"
MERGE = "merge"
PREFER_INCOMING = "prefer-incoming"
PREFER_INCOMING_NON_EMPTY = "prefer-incoming-non-empty"
MERGE_ARRAYS = "merge-arrays"

MERGE_STRATEGIES = (REPLACE, MERGE, PREFER_INCOMING, PREFER_INCOMING_NON_EMPTY, MERGE_ARRAYS)


def _union(existing: List[Any], incoming: List[Any]) -> List[Any]:
    """Order-preserving union; items compare by value."""
    result = list(existing)
    seen = [to_portable(item) for item in existing]
    for item in incoming:
        key = to_portable(item)
        if key not in seen:
            seen.append(key)
            result.append(item)
    return result


def deep_merge(
    existing: Dict[str, Any],
    incoming: Dict[str, Any],
    strategy: str = PREFER_INCOMING,
    union_fields: Iterable[str] = (),
) -> Dict[str, Any]:
    """Recursively merge incoming into a copy of existing.

    Args:
        existing: Base record (not modified)
        incoming: Values to apply
        strategy: PREFER_INCOMING, PREFER_INCOMING_NON_EMPTY or MERGE_ARRAYS
        union_fields: Top-level array fields combined by set union

    Returns:
        New merged dict
    """
    union_fields = set(union_fields)
    result = dict(existing)

    for key, incoming_value in incoming.items():
        if strategy == PREFER_INCOMING_NON_EMPTY and is_empty(incoming_value):
            continue

        existing_value = existing.get(key)

        if isinstance(incoming_value, list):
            if isinstance(existing_value, list) and (
                strategy == MERGE_ARRAYS or key in union_fields
            ):
                result[key] = _union(existing_value, incoming_value)
            else:
                result[key] = list(incoming_value)
        elif isinstance(incoming_value, dict):
            if isinstance(existing_value, dict):
                result[key] = deep_merge(existing_value, incoming_value, strategy)
            else:
                result[key] = dict(incoming_value)
        else:
            result[key] = incoming_value

    return result


def merge_record(
    existing: Dict[str, Any],
    incoming: Dict[str, Any],
    strategy: str,
    entity_type: str,
) -> Dict[str, Any]:
    """Merge an incoming record into an existing one.

    Args:
        existing: Stored document
        incoming: Incoming record (already mapped to the stored shape)
        strategy: One of MERGE_STRATEGIES
        entity_type: Entity type, selects protected fields and array policies

    Returns:
        Merged document, ready to be written over the existing one

    Raises:
        ValueError: If the strategy is unknown
    """
    schema = get_schema(entity_type)
    clean = {k: v for k, v in incoming.items() if k not in schema.protected_fields}
    union_fields = [
        name for name, policy in schema.array_policies.items()
        if policy == ArrayPolicy.UNION
    ]

    if strategy == REPLACE:
        merged = {**existing, **clean}
    elif strategy == MERGE:
        merged = deep_merge(existing, clean, PREFER_INCOMING_NON_EMPTY, union_fields)
        for name, policy in schema.array_policies.items():
            if policy == ArrayPolicy.APPEND and isinstance(clean.get(name), list):
                merged[name] = list(existing.get(name) or []) + list(clean[name])
    elif strategy in (PREFER_INCOMING, PREFER_INCOMING_NON_EMPTY, MERGE_ARRAYS):
        merged = deep_merge(existing, clean, strategy, union_fields)
    else:
        raise ValueError(f"Invalid duplicate handling strategy: {strategy}")

    for name in schema.protected_fields:
        if name in existing:
            merged[name] = existing[name]

    return merged


def merge_student(
    existing: Dict[str, Any],
    incoming: Dict[str, Any],
    strategy: str = PREFER_INCOMING_NON_EMPTY,
) -> Tuple[Dict[str, Any], Optional[Dict[str, Any]]]:
    """Merge a student; the incoming dashboard is split off, not merged.

    Returns:
        Tuple of (merged student, incoming dashboard or None)
    """
    clean = dict(incoming)
    dashboard = clean.pop("dashboard", None)
    return merge_record(existing, clean, strategy, "students"), dashboard


def merge_dashboard(
    existing: Optional[Dict[str, Any]],
    incoming: Optional[Dict[str, Any]],
    strategy: str = PREFER_INCOMING_NON_EMPTY,
) -> Optional[Dict[str, Any]]:
    """Merge dashboards; with no existing dashboard the incoming one is used.

    Under "merge", portfolios, documents and history are appended.
    """
    if not incoming:
        return existing
    if existing is None:
        protected = get_schema("dashboards").protected_fields
        return {k: v for k, v in incoming.items() if k not in protected}
    return merge_record(existing, incoming, strategy, "dashboards")


def apply_merge(existing: Dict[str, Any], merged: Dict[str, Any]) -> Dict[str, Any]:
    """Describe what a merge changed.

    Args:
        existing: Record before the merge
        merged: Record after the merge

    Returns:
        {"mergedData", "changes", "changeCount"}, where each change is
        {field, oldValue, newValue, timestamp}
    """
    timestamp = utc_timestamp()
    changes = []
    for key, new_value in merged.items():
        old_value = existing.get(key)
        if to_portable(old_value) != to_portable(new_value):
            changes.append({
                "field": key,
                "oldValue": to_portable(old_value),
                "newValue": to_portable(new_value),
                "timestamp": timestamp,
            })
    return {
        "mergedData": merged,
        "changes": changes,
        "changeCount": len(changes),
    }
