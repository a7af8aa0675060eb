# SPDX-FileCopyrightText: (C) ORCD
#
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Media host access.

Uploaded files (portfolios, receipts, documents, attachments) live on
Cloudinary. Backups only carry the file URLs, so imports check that each
referenced file still exists on the host. Lookups go through the
Cloudinary admin API (cloudinary.api.resource); deletion goes through the
upload API (cloudinary.uploader.destroy).
"""

from typing import Any, Dict, List, Optional, Tuple
import logging
import re

import cloudinary.api
import cloudinary.uploader
from cloudinary.exceptions import Error as CloudinaryError
from cloudinary.exceptions import NotFound

from .conf import get_setting

logger = logging.getLogger(__name__)

HOST_DOMAIN = "cloudinary.com"

# Placeholder written into backups for files that could not be exported
MISSING_FILE_SENTINEL = "FILE_MISSING_REQUIRES_REUPLOAD"

IMAGE_FILE_PATTERN = re.compile(r"\.(jpg|jpeg|png|gif|webp)$", re.IGNORECASE)
VERSION_SEGMENT_PATTERN = re.compile(r"^v\d+$")


class MediaHostError(Exception):
    """Raised when the media host cannot be reached or answers unexpectedly."""
    pass


def get_public_id_from_url(url: Optional[str]) -> Optional[str]:
    """Extract the media host public id from a delivery URL.

    Handles plain, private, signed and attachment URLs, e.g.
    ``.../raw/private/s--sig--/fl_attachment:name/v123/folder/id.pdf``
    yields ``folder/id``.

    Args:
        url: Delivery URL

    Returns:
        Public id without extension, or None if the URL has no
        recognizable resource segment
    """
    if not url:
        return None

    parts = url.split("/")
    anchor = -1
    for marker in ("upload", "image", "raw"):
        if marker in parts:
            anchor = parts.index(marker)
            break
    if anchor == -1:
        return None

    start = anchor + 1
    if start < len(parts) and parts[start] == "private":
        start += 1

    if start < len(parts) and parts[start].startswith("s--") and parts[start].endswith("--"):
        start += 1

    while start < len(parts) and (
        parts[start].startswith("fl_")
        or parts[start].startswith("f_")
        or "attachment" in parts[start]
    ):
        start += 1

    if start < len(parts) and VERSION_SEGMENT_PATTERN.match(parts[start]):
        start += 1

    id_parts = parts[start:]
    if not id_parts:
        return None

    last = id_parts[-1].split("?")[0].split(".")[0]
    return "/".join(id_parts[:-1] + [last])


def is_image_file(file_name: Optional[str]) -> bool:
    return bool(file_name) and bool(IMAGE_FILE_PATTERN.search(file_name))


class MediaHost:
    """Client for one Cloudinary account.

    Credentials are passed with every call, so several hosts can coexist
    without touching the SDK's global configuration.

    Attributes:
        cloud_name: Account (cloud) name on the media host
        timeout: Request timeout in seconds
    """

    def __init__(self, cloud_name: str, api_key: str, api_secret: str, timeout: int = 10):
        self.cloud_name = cloud_name
        self.timeout = timeout
        self._credentials = {
            "cloud_name": cloud_name,
            "api_key": api_key,
            "api_secret": api_secret,
        }

    @classmethod
    def from_settings(cls) -> Optional["MediaHost"]:
        """Build a MediaHost from settings, or None when not configured."""
        cloud_name = get_setting("SCHOOL_PORTAL_MEDIA_CLOUD_NAME")
        if not cloud_name:
            return None
        return cls(
            cloud_name=cloud_name,
            api_key=get_setting("SCHOOL_PORTAL_MEDIA_API_KEY"),
            api_secret=get_setting("SCHOOL_PORTAL_MEDIA_API_SECRET"),
            timeout=get_setting("SCHOOL_PORTAL_MEDIA_TIMEOUT"),
        )

    @staticmethod
    def _lookup_order(file_name: Optional[str]) -> List[Tuple[str, str]]:
        """(resource_type, delivery_type) pairs to try, most likely first."""
        primary = "image" if is_image_file(file_name) else "raw"
        secondary = "raw" if primary == "image" else "image"
        return [
            (primary, "private"),
            (primary, "upload"),
            (secondary, "private"),
            (secondary, "upload"),
        ]

    @staticmethod
    def _resolve_public_id(public_id_or_url: str) -> Optional[str]:
        if "/" in public_id_or_url and public_id_or_url.startswith("http"):
            return get_public_id_from_url(public_id_or_url)
        return public_id_or_url

    def _get_resource(
        self, public_id: str, resource_type: str, delivery_type: str
    ) -> Optional[Dict[str, Any]]:
        try:
            return cloudinary.api.resource(
                public_id,
                resource_type=resource_type,
                type=delivery_type,
                timeout=self.timeout,
                **self._credentials,
            )
        except NotFound:
            return None
        except CloudinaryError as e:
            raise MediaHostError(f"Media host request failed for {public_id}: {e}")

    def check_exists(
        self, public_id_or_url: str, file_name: Optional[str] = None
    ) -> Optional[Dict[str, Any]]:
        """Check whether a file exists on the media host.

        Args:
            public_id_or_url: Public id or delivery URL of the file
            file_name: Original file name, used to guess the resource type

        Returns:
            Dict with found, format, publicId, resourceType, type, bytes and
            createdAt, or None when the file is not found

        Raises:
            MediaHostError: If the host cannot be queried
        """
        public_id = self._resolve_public_id(public_id_or_url)
        if not public_id:
            return None

        for resource_type, delivery_type in self._lookup_order(file_name):
            resource = self._get_resource(public_id, resource_type, delivery_type)
            if resource is not None:
                return {
                    "found": True,
                    "format": resource.get("format"),
                    "publicId": resource.get("public_id", public_id),
                    "resourceType": resource.get("resource_type", resource_type),
                    "type": resource.get("type", delivery_type),
                    "bytes": resource.get("bytes"),
                    "createdAt": resource.get("created_at"),
                }
        return None

    def delete(
        self, public_id_or_url: str, file_name: Optional[str] = None
    ) -> Dict[str, Any]:
        """Delete a file from the media host.

        Returns:
            {"result": "ok"} when deleted, {"result": "not found"} otherwise
        """
        public_id = self._resolve_public_id(public_id_or_url)
        if not public_id:
            return {"result": "not found"}

        found = self.check_exists(public_id, file_name)
        if not found:
            return {"result": "not found"}

        try:
            response = cloudinary.uploader.destroy(
                public_id,
                resource_type=found["resourceType"],
                type=found["type"],
                invalidate=True,
                timeout=self.timeout,
                **self._credentials,
            )
        except CloudinaryError as e:
            raise MediaHostError(f"Media host failed to delete {public_id}: {e}")

        if response.get("result") == "ok":
            logger.info(f"Deleted media file {public_id}")
            return {"result": "ok"}
        return {"result": "not found"}

    def validate_file_url(
        self, file_url: Optional[str], file_name: Optional[str] = None
    ) -> Dict[str, Any]:
        """Check that a file URL from a backup is still usable.

        Returns:
            Dict with isValid plus either isExternal/message, resource, or
            error/suggestion
        """
        if not file_url:
            return {"isValid": False, "error": "No URL provided"}

        if file_url == MISSING_FILE_SENTINEL:
            return {
                "isValid": False,
                "error": "File missing from backup - requires re-upload",
                "suggestion": "Re-upload the original file after import",
            }

        if HOST_DOMAIN not in file_url:
            return {
                "isValid": True,
                "isExternal": True,
                "message": "External URL - validation skipped",
            }

        public_id = get_public_id_from_url(file_url)
        if not public_id:
            return {
                "isValid": False,
                "error": "Could not extract public ID from media host URL",
            }

        try:
            resource = self.check_exists(public_id, file_name)
        except MediaHostError as e:
            return {
                "isValid": False,
                "error": f"Error validating file: {e}",
                "suggestion": "Please check the file URL and re-upload if necessary.",
            }

        if resource:
            return {"isValid": True, "isExternal": False, "resource": resource}

        return {
            "isValid": False,
            "error": "File not found on media host",
            "suggestion": "File may have been deleted or moved. Please re-upload the file.",
        }
