# SPDX-FileCopyrightText: (C) ORCD
#
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Role-based permission policy.

All authorization decisions for backup operations go through is_allowed(),
which evaluates the declarative PERMISSIONS table. Callers pass the
authenticated Identity explicitly; nothing reads a "current user" from
global state.

Example:
    identity = Identity.from_user(request.user)
    if not is_allowed(identity, Action.IMPORT_ALL):
        ...
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional


class Role(str, Enum):
    """Account roles."""
    USER = "user"
    TUTOR = "tutor"
    ADMIN = "admin"


class Action(str, Enum):
    """Operations guarded by the permission table."""
    EXPORT_ENTITY = "export_entity"
    IMPORT_ENTITY = "import_entity"
    EXPORT_ALL = "export_all"
    IMPORT_ALL = "import_all"
    EXPORT_OWN_FAMILY = "export_own_family"
    EXPORT_ANY_FAMILY = "export_any_family"


PERMISSIONS: Dict[Action, FrozenSet[Role]] = {
    Action.EXPORT_ENTITY: frozenset({Role.ADMIN}),
    Action.IMPORT_ENTITY: frozenset({Role.ADMIN}),
    Action.EXPORT_ALL: frozenset({Role.ADMIN}),
    Action.IMPORT_ALL: frozenset({Role.ADMIN}),
    Action.EXPORT_OWN_FAMILY: frozenset({Role.USER, Role.TUTOR, Role.ADMIN}),
    Action.EXPORT_ANY_FAMILY: frozenset({Role.ADMIN}),
}


@dataclass(frozen=True)
class Identity:
    """Authenticated caller of a core operation.

    Attributes:
        user_id: Identifier of the caller's user record (string form)
        username: Caller's username
        role: Caller's role
    """
    user_id: Optional[str]
    username: str
    role: Role = Role.USER

    @classmethod
    def from_user(cls, user: Any) -> "Identity":
        """Build an Identity from an authenticated request user.

        Accepts any object exposing ``username`` and either a ``role``
        attribute or Django's ``is_superuser`` flag.
        """
        raw_role = getattr(user, "role", None)
        if raw_role:
            role = Role(raw_role)
        elif getattr(user, "is_superuser", False):
            role = Role.ADMIN
        else:
            role = Role.USER

        user_id = getattr(user, "user_id", None) or getattr(user, "pk", None)
        return cls(
            user_id=str(user_id) if user_id is not None else None,
            username=getattr(user, "username", "") or "",
            role=role,
        )


def is_allowed(identity: Optional[Identity], action: Action) -> bool:
    """Evaluate the permission table for an identity and action."""
    if identity is None:
        return False
    return identity.role in PERMISSIONS.get(action, frozenset())

