# SPDX-FileCopyrightText: (C) ORCD
#
# SPDX-License-Identifier: AGPL-3.0-or-later

import logging

from django.apps import AppConfig
from django.conf import settings

logger = logging.getLogger(__name__)


class SchoolPortalConfig(AppConfig):
    name = "school_portal"
    verbose_name = "School Portal"

    def ready(self):
        from school_portal.conf import DEFAULTS, get_setting

        # Resolve every setting once so that the rest of the app can read
        # plain Django settings.
        # Precedence: local_settings.py > environment variable > default
        for name in DEFAULTS:
            if not hasattr(settings, name):
                setattr(settings, name, get_setting(name))

        if not settings.SCHOOL_PORTAL_MEDIA_CLOUD_NAME:
            logger.warning(
                "SCHOOL_PORTAL_MEDIA_CLOUD_NAME is not set; file references "
                "will not be revalidated during import"
            )
