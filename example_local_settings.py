# =============================================================================
# Example local_settings.py for a Django project with the School Portal app
# =============================================================================
# Copy this file next to your project's settings as local_settings.py and
# customize as needed for your deployment.

import os

# =============================================================================
# School Portal app
# =============================================================================
INSTALLED_APPS += [
                   'rest_framework',
                   'school_portal',
                  ]

# Mount the backup API in your urls.py, e.g.:
#   path("api/", include("school_portal.api.urls"))


# =============================================================================
# Document store
# =============================================================================
# Every SCHOOL_PORTAL_* setting can be provided:
#   1. Directly below (takes precedence)
#   2. As an environment variable with the same name
#   3. Otherwise the built-in default is used

# Default: mongodb://localhost:27017
SCHOOL_PORTAL_MONGO_URI = os.environ.get("SCHOOL_PORTAL_MONGO_URI", "mongodb://localhost:27017")

# Default: school_portal
SCHOOL_PORTAL_MONGO_DB = "school_portal"


# =============================================================================
# Media host (file revalidation during import)
# =============================================================================
# Backups carry file URLs, not file contents. When a cloud name is set,
# every file referenced by an imported record is checked against the media
# host; missing files are reported as import warnings. Leave the cloud name
# empty to skip revalidation.

# SCHOOL_PORTAL_MEDIA_CLOUD_NAME = "my-school"
# SCHOOL_PORTAL_MEDIA_API_KEY = "..."
# SCHOOL_PORTAL_MEDIA_API_SECRET = "..."

# Request timeout in seconds. Default: 10
SCHOOL_PORTAL_MEDIA_TIMEOUT = 10


# =============================================================================
# Backups
# =============================================================================
# Include password hashes in complete system backups so that users can log
# in after a restore. WARNING: such backups must be stored securely.
# Default: True
SCHOOL_PORTAL_BACKUP_PRESERVE_PASSWORDS = True

# Check for environment variable override
if os.environ.get("SCHOOL_PORTAL_BACKUP_PRESERVE_PASSWORDS", "").lower() == "false":
    SCHOOL_PORTAL_BACKUP_PRESERVE_PASSWORDS = False


# =============================================================================
# Logging
# =============================================================================
LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "handlers": {
        "console": {"class": "logging.StreamHandler"},
    },
    "loggers": {
        "school_portal": {
            "handlers": ["console"],
            "level": "INFO",
        },
    },
}
