# SPDX-FileCopyrightText: (C) ORCD
#
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Settings lookup for the school portal app.

Every setting can be provided three ways, in order of precedence:
    1. local_settings.py / Django settings module
    2. Environment variable with the same name
    3. The default listed in DEFAULTS
"""

import os
from typing import Any

from django.conf import settings

DEFAULTS = {
    "SCHOOL_PORTAL_MONGO_URI": "mongodb://localhost:27017",
    "SCHOOL_PORTAL_MONGO_DB": "school_portal",
    "SCHOOL_PORTAL_MEDIA_CLOUD_NAME": "",
    "SCHOOL_PORTAL_MEDIA_API_KEY": "",
    "SCHOOL_PORTAL_MEDIA_API_SECRET": "",
    "SCHOOL_PORTAL_MEDIA_TIMEOUT": 10,
    "SCHOOL_PORTAL_BACKUP_PRESERVE_PASSWORDS": True,
}

_BOOLEAN_SETTINGS = {"SCHOOL_PORTAL_BACKUP_PRESERVE_PASSWORDS"}
_INTEGER_SETTINGS = {"SCHOOL_PORTAL_MEDIA_TIMEOUT"}


def _coerce(name: str, raw: str) -> Any:
    if name in _BOOLEAN_SETTINGS:
        return raw.strip().lower() == "true"
    if name in _INTEGER_SETTINGS:
        return int(raw)
    return raw


def get_setting(name: str) -> Any:
    """Return the configured value for a school portal setting.

    Args:
        name: Setting name, must be one of DEFAULTS

    Returns:
        Value from Django settings, environment, or the default

    Raises:
        KeyError: If the setting name is unknown
    """
    if name not in DEFAULTS:
        raise KeyError(f"Unknown school portal setting: {name}")

    if settings.configured and hasattr(settings, name):
        return getattr(settings, name)

    raw = os.environ.get(name)
    if raw is not None and raw != "":
        return _coerce(name, raw)

    return DEFAULTS[name]
