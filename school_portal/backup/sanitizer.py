# SPDX-FileCopyrightText: (C) ORCD
#
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Entity sanitizer.

Converts stored documents into portable records for backup files, and
converts portable sub-documents back into their stored shape on import.

Portable records:
    - carry the record id as a string "id" (no "_id", no "__v")
    - carry references as id strings plus, when the referenced user was
      loaded, a username alias (parentUsername, ownerUsername,
      lentToUsername, createdByUsername, userUsername, username)
    - carry dates as ISO-8601 strings
    - never carry passwordHash unless passwords are explicitly preserved
    - re-key file URLs (portfolioUrl, documentUrl, receiptUrl) and attach
      a note saying the URL is revalidated on import

All functions here are pure: they never touch the store.
"""

from typing import Any, Dict, List, Optional

from .formats import FILE_NOTE
from .utils import is_empty, to_id_string, to_portable

# Keys added by the sanitizer that never belong in the store
PORTABLE_ONLY_FIELDS = (
    "id",
    "_id",
    "__v",
    "_fileNote",
    "_attachmentNote",
    "attachmentMetadata",
)


def _compact(entry: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in entry.items() if v is not None}


def _reference(value: Any) -> Dict[str, Any]:
    """Split a (possibly loaded) user reference into id and username."""
    if isinstance(value, dict):
        return {"id": to_id_string(value), "username": value.get("username")}
    return {"id": to_id_string(value), "username": None}


def _base(entity: Dict[str, Any]) -> Dict[str, Any]:
    sanitized = dict(entity)
    sanitized.pop("__v", None)
    if "_id" in sanitized:
        sanitized["id"] = to_id_string(sanitized.pop("_id"))
    return sanitized


def sanitize_user(user: Dict[str, Any], preserve_passwords: bool = False) -> Dict[str, Any]:
    """Portable user record.

    Args:
        user: Stored user document
        preserve_passwords: Keep passwordHash in the output

    Returns:
        Portable user dict
    """
    sanitized = _base(user)
    if not preserve_passwords:
        sanitized.pop("passwordHash", None)

    for ref_list in ("students", "books"):
        if isinstance(sanitized.get(ref_list), list):
            sanitized[ref_list] = [to_id_string(ref) for ref in sanitized[ref_list]]

    return to_portable(sanitized)


def sanitize_dashboard(dashboard: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Portable dashboard with file URLs re-keyed and annotated."""
    if not dashboard:
        return None

    sanitized = _base(dashboard)
    if sanitized.get("studentId") is not None:
        sanitized["studentId"] = to_id_string(sanitized["studentId"])

    if "portfolios" in sanitized:
        sanitized["portfolios"] = [
            _compact({
                "fileName": portfolio.get("fileName"),
                "uploadDate": portfolio.get("uploadDate"),
                "portfolioUrl": portfolio.get("pdfUrl"),
                "cloudinaryPublicId": portfolio.get("cloudinaryPublicId"),
                "_fileNote": FILE_NOTE,
            })
            for portfolio in sanitized["portfolios"] or []
        ]

    if "documents" in sanitized:
        sanitized["documents"] = [
            _compact({
                "name": doc.get("name"),
                "fileName": doc.get("fileName"),
                "uploadDate": doc.get("uploadDate"),
                "documentUrl": doc.get("url"),
                "cloudinaryPublicId": doc.get("cloudinaryPublicId"),
                "_fileNote": FILE_NOTE,
            })
            for doc in sanitized["documents"] or []
        ]

    if "history" in sanitized:
        sanitized["history"] = [
            _compact({
                "type": event.get("type"),
                "date": event.get("date"),
                "month": event.get("month"),
                "year": event.get("year"),
                "donorName": event.get("donorName"),
                "donationAmount": event.get("donationAmount"),
                "paymentStatus": event.get("paymentStatus"),
                "fileName": event.get("fileName"),
                "receiptUrl": event.get("downloadUrl"),
                "cloudinaryPublicId": event.get("cloudinaryPublicId"),
                "description": event.get("description"),
                "_fileNote": (
                    FILE_NOTE if event.get("fileName") and event.get("downloadUrl") else None
                ),
            })
            for event in sanitized["history"] or []
        ]

    return to_portable(sanitized)


def sanitize_student(
    student: Dict[str, Any], dashboard: Optional[Dict[str, Any]] = None
) -> Dict[str, Any]:
    """Portable student, with parentUsername when the owner was loaded."""
    sanitized = _base(student)

    if sanitized.get("userId") is not None:
        owner = _reference(sanitized["userId"])
        if owner["username"]:
            sanitized["parentUsername"] = owner["username"]
        sanitized["userId"] = owner["id"]

    if dashboard:
        sanitized["dashboard"] = sanitize_dashboard(dashboard)

    return to_portable(sanitized)


def sanitize_notification(notification: Dict[str, Any]) -> Dict[str, Any]:
    sanitized = _base(notification)
    if sanitized.get("createdBy") is not None:
        creator = _reference(sanitized["createdBy"])
        if creator["username"]:
            sanitized["createdByUsername"] = creator["username"]
        sanitized["createdBy"] = creator["id"]
    if sanitized.get("attachmentUrl"):
        sanitized["_attachmentNote"] = FILE_NOTE
    return to_portable(sanitized)


def _sanitize_user_upload(upload: Dict[str, Any]) -> Dict[str, Any]:
    return _compact({
        "fileName": upload.get("fileName"),
        "fileUrl": upload.get("fileUrl"),
        "fileType": upload.get("fileType"),
        "cloudinaryPublicId": upload.get("cloudinaryPublicId"),
        "uploadedBy": to_id_string(upload.get("uploadedBy")),
        "uploadDate": upload.get("uploadDate"),
        "userDescription": upload.get("userDescription"),
        "_fileNote": FILE_NOTE if upload.get("fileUrl") else None,
    })


def sanitize_document_section(section: Dict[str, Any]) -> Dict[str, Any]:
    """Portable document section (regular or GA).

    Each sub-document is a hosted file, an external URL, inline text
    (contentType "text", textContent) or an upload area (contentType
    "upload_area", allowUserUploads, userUploads[]). Member uploads keep
    their fileUrl and carry the uploader as an id string.
    """
    sanitized = _base(section)

    if sanitized.get("createdBy") is not None:
        creator = _reference(sanitized["createdBy"])
        if creator["username"]:
            sanitized["createdByUsername"] = creator["username"]
        sanitized["createdBy"] = creator["id"]

    if "documents" in sanitized:
        files = []
        for item in sanitized["documents"] or []:
            url = item.get("fileUrl") or item.get("documentUrl")
            entry = _compact({
                "name": item.get("name"),
                "contentType": item.get("contentType"),
                "fileName": item.get("fileName"),
                "fileType": item.get("fileType"),
                "uploadDate": item.get("uploadDate"),
                "documentUrl": url,
                "textContent": item.get("textContent"),
                "allowUserUploads": item.get("allowUserUploads"),
                "uploadedBy": to_id_string(item.get("uploadedBy")),
                "cloudinaryPublicId": item.get("cloudinaryPublicId"),
                "_fileNote": FILE_NOTE if item.get("fileName") and url else None,
            })
            if "userUploads" in item:
                entry["userUploads"] = [
                    _sanitize_user_upload(upload) for upload in item["userUploads"] or []
                ]
            files.append(entry)
        sanitized["documents"] = files

    return to_portable(sanitized)


def sanitize_book(book: Dict[str, Any]) -> Dict[str, Any]:
    """Portable book.

    The owner gains an ownerUsername alias; the current borrower is exposed
    as lentTo / lentToUsername.
    """
    sanitized = _base(book)

    if sanitized.get("user") is not None:
        owner = _reference(sanitized["user"])
        if owner["username"]:
            sanitized["ownerUsername"] = owner["username"]
        sanitized["user"] = owner["id"]

    lending = sanitized.get("lending")
    if isinstance(lending, dict) and lending.get("borrower") is not None:
        borrower = _reference(lending["borrower"])
        if borrower["username"]:
            sanitized["lentToUsername"] = borrower["username"]
        sanitized["lentTo"] = borrower["id"]
        sanitized["lending"] = dict(lending, borrower=borrower["id"])

    if "lendingHistory" in sanitized:
        history = []
        for entry in sanitized["lendingHistory"] or []:
            user = _reference(entry.get("user", entry.get("borrower")))
            history.append(_compact({
                "user": user["id"],
                "username": user["username"],
                "lentDate": entry.get("lentDate"),
                "returnedDate": entry.get("returnedDate"),
            }))
        sanitized["lendingHistory"] = history

    return to_portable(sanitized)


def sanitize_event_signup(event: Dict[str, Any]) -> Dict[str, Any]:
    sanitized = _base(event)

    if sanitized.get("createdBy") is not None:
        creator = _reference(sanitized["createdBy"])
        if creator["username"]:
            sanitized["createdByUsername"] = creator["username"]
        sanitized["createdBy"] = creator["id"]

    if "signups" in sanitized:
        signups = []
        for signup in sanitized["signups"] or []:
            user = _reference(signup.get("userId"))
            signups.append(_compact({
                "id": to_id_string(signup.get("_id")),
                "userId": user["id"],
                "userUsername": user["username"],
                "userName": signup.get("userName"),
                "responsibility": signup.get("responsibility"),
                "notes": signup.get("notes"),
                "createdAt": signup.get("createdAt"),
                "updatedAt": signup.get("updatedAt"),
            }))
        sanitized["signups"] = signups

    return to_portable(sanitized)


def sanitize(
    entity: Dict[str, Any],
    entity_type: str,
    options: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Sanitize a stored document of any entity type.

    Args:
        entity: Stored document (references may be loaded user documents)
        entity_type: Registry name of the entity type
        options: preserve_passwords (users), dashboard (students)

    Returns:
        Portable record

    Raises:
        KeyError: If the entity type is unknown
    """
    options = options or {}
    if entity_type == "users":
        return sanitize_user(entity, bool(options.get("preserve_passwords")))
    if entity_type == "students":
        return sanitize_student(entity, options.get("dashboard"))
    if entity_type == "dashboards":
        return sanitize_dashboard(entity)
    if entity_type == "notifications":
        return sanitize_notification(entity)
    if entity_type in ("documents", "ga_documents"):
        return sanitize_document_section(entity)
    if entity_type == "books":
        return sanitize_book(entity)
    if entity_type == "event_signups":
        return sanitize_event_signup(entity)
    raise KeyError(f"Unknown entity type: {entity_type}")


def strip_portable_fields(record: Dict[str, Any], *extra: str) -> Dict[str, Any]:
    """Copy of a portable record without sanitizer-only keys."""
    drop = set(PORTABLE_ONLY_FIELDS) | set(extra)
    return {k: v for k, v in record.items() if k not in drop}


def restore_dashboard(
    portable: Optional[Dict[str, Any]], student_id: Any = None
) -> Optional[Dict[str, Any]]:
    """Rebuild the stored dashboard shape from a portable dashboard.

    Accepts both the portable keys (portfolioUrl, documentUrl, receiptUrl)
    and the stored keys (pdfUrl, url, downloadUrl).
    """
    if not portable:
        return None

    restored: Dict[str, Any] = {}
    if student_id is not None:
        restored["studentId"] = student_id

    if isinstance(portable.get("portfolios"), list):
        restored["portfolios"] = [
            _compact({
                "pdfUrl": p.get("portfolioUrl") or p.get("pdfUrl"),
                "fileName": p.get("fileName"),
                "cloudinaryPublicId": p.get("cloudinaryPublicId"),
                "uploadDate": p.get("uploadDate"),
            })
            for p in portable["portfolios"]
        ]

    if isinstance(portable.get("documents"), list):
        restored["documents"] = [
            _compact({
                "name": d.get("name"),
                "url": d.get("documentUrl") or d.get("url"),
                "fileName": d.get("fileName"),
                "cloudinaryPublicId": d.get("cloudinaryPublicId"),
                "uploadDate": d.get("uploadDate"),
            })
            for d in portable["documents"]
        ]

    if isinstance(portable.get("history"), list):
        restored["history"] = [
            _compact({
                "type": e.get("type"),
                "date": e.get("date"),
                "month": e.get("month"),
                "year": e.get("year"),
                "donorName": e.get("donorName"),
                "donationAmount": e.get("donationAmount"),
                "paymentStatus": e.get("paymentStatus"),
                "downloadUrl": e.get("receiptUrl") or e.get("downloadUrl"),
                "fileName": e.get("fileName"),
                "cloudinaryPublicId": e.get("cloudinaryPublicId"),
                "description": e.get("description"),
            })
            for e in portable["history"]
        ]

    return restored


def restore_document_files(documents: Optional[List[Dict[str, Any]]]) -> List[Dict[str, Any]]:
    """Map portable section files back to the stored shape (documentUrl -> fileUrl).

    Member uploads of upload areas lose their notes; an empty uploadedBy
    is dropped at both levels.
    """
    restored = []
    for item in documents or []:
        clean = strip_portable_fields(item)
        if clean.get("documentUrl") and not clean.get("fileUrl"):
            clean["fileUrl"] = clean.pop("documentUrl")
        if is_empty(clean.get("uploadedBy")):
            clean.pop("uploadedBy", None)
        if isinstance(clean.get("userUploads"), list):
            uploads = []
            for upload in clean["userUploads"]:
                upload = strip_portable_fields(upload)
                if is_empty(upload.get("uploadedBy")):
                    upload.pop("uploadedBy", None)
                uploads.append(upload)
            clean["userUploads"] = uploads
        restored.append(clean)
    return restored
