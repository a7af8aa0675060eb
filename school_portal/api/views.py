# SPDX-FileCopyrightText: (C) ORCD
#
# SPDX-License-Identifier: AGPL-3.0-or-later

import logging

from rest_framework import permissions, status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from school_portal.api.serializers import (
    EntityImportSerializer,
    FamilyImportSerializer,
    FullImportSerializer,
    StudentBackupImportSerializer,
)
from school_portal.backup import (
    BackupFormatError,
    CompatibilityStatus,
    ExporterRegistry,
    ImporterRegistry,
    check_backup_compatibility,
    export_all,
    import_all,
    import_family,
    import_student_backup,
    preview_import,
    validate_backup,
)
from school_portal.backup.exporters.users import UsersWithStudentsExporter
from school_portal.backup.formats import EXPORT_COMPLETE
from school_portal.backup.utils import export_filename
from school_portal.media import MediaHost
from school_portal.permissions import Action, Identity, is_allowed
from school_portal.store import get_collections

logger = logging.getLogger(__name__)

# URL slug -> registry model name
ENTITY_SLUGS = {
    "users": "users",
    "students": "students",
    "notifications": "notifications",
    "documents": "documents",
    "ga-documents": "ga_documents",
    "books": "books",
    "event-signups": "event_signups",
}

# Query parameters accepted as filters, per model name
ENTITY_FILTER_PARAMS = {
    "users": ("role",),
    "students": ("startMonth", "endMonth", "userId", "includeDashboard"),
    "notifications": ("startDate", "endDate", "targetType"),
    "documents": (),
    "ga_documents": (),
    "books": ("availability",),
    "event_signups": ("startDate", "endDate", "isActive"),
}

# Query parameter -> (section, filter) for the complete export
FULL_EXPORT_FILTER_PARAMS = {
    "userRole": ("users", "role"),
    "studentStartMonth": ("students", "startMonth"),
    "studentEndMonth": ("students", "endMonth"),
    "notificationStartDate": ("notifications", "startDate"),
    "notificationEndDate": ("notifications", "endDate"),
    "notificationTargetType": ("notifications", "targetType"),
    "bookAvailability": ("books", "availability"),
    "eventStartDate": ("eventSignups", "startDate"),
    "eventEndDate": ("eventSignups", "endDate"),
    "eventIsActive": ("eventSignups", "isActive"),
}


def _is_true(value) -> bool:
    return str(value).strip().lower() in ("1", "true", "yes")


def _attachment(data, export_type: str) -> Response:
    response = Response(data)
    response["Content-Disposition"] = f'attachment; filename="{export_filename(export_type)}"'
    return response


class HasBackupPermission(permissions.BasePermission):
    """Permission check against the backup permission table.

    The view declares the action it performs as ``required_action``.
    """

    def has_permission(self, request, view):
        action = getattr(view, "required_action", None)
        if action is None:
            return False
        return is_allowed(Identity.from_user(request.user), action)


class EntityExportView(APIView):
    """Export one entity type.

    GET /export/<entity>/

    Entities: users, users-with-students, students, notifications,
    documents, ga-documents, books, event-signups. Filters are passed as
    query parameters (e.g. ?role=tutor, ?availability=lent,
    ?startMonth=2024-01&endMonth=2024-06). Users are exported without
    password hashes unless ?preservePasswords=true.
    """

    permission_classes = [IsAuthenticated, HasBackupPermission]
    required_action = Action.EXPORT_ENTITY

    def get(self, request, entity):
        params = request.query_params
        options = {"preserve_passwords": _is_true(params.get("preservePasswords", "false"))}
        collections = get_collections()

        if entity == "users-with-students":
            filters = {"role": params["role"]} if params.get("role") else {}
            data = UsersWithStudentsExporter(collections).export(filters, options)
            return _attachment(data, data["_metadata"]["exportType"])

        if entity not in ENTITY_SLUGS:
            return Response(
                {"error": f"Unknown entity type: {entity}"},
                status=status.HTTP_404_NOT_FOUND,
            )

        model_name = ENTITY_SLUGS[entity]
        filters = {
            name: params[name]
            for name in ENTITY_FILTER_PARAMS[model_name]
            if params.get(name) not in (None, "")
        }
        if "includeDashboard" in filters:
            filters["includeDashboard"] = _is_true(filters["includeDashboard"])

        exporter = ExporterRegistry.get_exporter(model_name)(collections)
        data = exporter.export(filters, options)
        logger.info(f"{request.user.username} exported {data['_metadata']['totalRecords']} {entity}")
        return _attachment(data, exporter.export_type)


class EntityImportView(APIView):
    """Import records of one entity type.

    POST /import/<entity>/

    Body: {"records": [...], "duplicateHandling": "skip|replace|merge|interactive"}
    """

    permission_classes = [IsAuthenticated, HasBackupPermission]
    required_action = Action.IMPORT_ENTITY

    def post(self, request, entity):
        if entity not in ENTITY_SLUGS:
            return Response(
                {"error": f"Unknown entity type: {entity}"},
                status=status.HTTP_404_NOT_FOUND,
            )

        serializer = EntityImportSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        records = serializer.validated_data["records"]
        importer = ImporterRegistry.get_importer(ENTITY_SLUGS[entity])(
            get_collections(),
            media_host=MediaHost.from_settings(),
            identity=Identity.from_user(request.user),
        )
        result = importer.import_records(records, serializer.validated_data["duplicateHandling"])

        return Response({
            "message": result.message(),
            "results": result.to_dict(),
            "summary": result.summary(len(records)),
        })


class StudentBackupImportView(APIView):
    """Import a students export file.

    POST /import/students/backup/

    Body: {"backupData": {"_metadata": {...}, "students": [...]}, "duplicateHandling": "..."}
    """

    permission_classes = [IsAuthenticated, HasBackupPermission]
    required_action = Action.IMPORT_ENTITY

    def post(self, request):
        serializer = StudentBackupImportSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        try:
            result = import_student_backup(
                get_collections(),
                serializer.validated_data["backupData"],
                serializer.validated_data["duplicateHandling"],
                media_host=MediaHost.from_settings(),
                identity=Identity.from_user(request.user),
            )
        except BackupFormatError as e:
            return Response({"error": str(e)}, status=status.HTTP_400_BAD_REQUEST)

        return Response(result)


class FullExportView(APIView):
    """Export the complete system backup.

    GET /export-all/

    Optional filters: userRole, studentStartMonth, studentEndMonth,
    notificationStartDate, notificationEndDate, notificationTargetType,
    bookAvailability, eventStartDate, eventEndDate, eventIsActive.
    Password hashes are included unless ?preservePasswords=false.
    """

    permission_classes = [IsAuthenticated, HasBackupPermission]
    required_action = Action.EXPORT_ALL

    def get(self, request):
        params = request.query_params
        filters = {}
        for param, (section, name) in FULL_EXPORT_FILTER_PARAMS.items():
            if params.get(param) not in (None, ""):
                filters.setdefault(section, {})[name] = params[param]

        options = {}
        if "preservePasswords" in params:
            options["preserve_passwords"] = _is_true(params["preservePasswords"])

        data = export_all(get_collections(), filters, options)
        logger.info(f"{request.user.username} exported the complete system backup")
        return _attachment(data, EXPORT_COMPLETE)


class FullImportView(APIView):
    """Restore (or preview restoring) a complete system backup.

    POST /import-all/

    Body: {"backupData": {...}, "options": {"duplicateHandling": "skip|merge", ...},
           "preview": false, "force": false}

    A backup from an incompatible format version is refused unless
    "force" is set.
    """

    permission_classes = [IsAuthenticated, HasBackupPermission]
    required_action = Action.IMPORT_ALL

    def post(self, request):
        serializer = FullImportSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        backup = serializer.validated_data["backupData"]
        options = dict(serializer.validated_data.get("options") or {})
        collections = get_collections()

        try:
            metadata = validate_backup(backup)
            report = check_backup_compatibility(metadata)
            if (
                report.status == CompatibilityStatus.INCOMPATIBLE
                and not serializer.validated_data["force"]
            ):
                return Response(
                    {"error": "Incompatible backup version", "compatibility": report.to_dict()},
                    status=status.HTTP_400_BAD_REQUEST,
                )

            if serializer.validated_data["preview"]:
                return Response(preview_import(backup, collections, options))

            result = import_all(
                backup,
                options,
                collections,
                media_host=MediaHost.from_settings(),
                identity=Identity.from_user(request.user),
            )
        except BackupFormatError as e:
            return Response({"error": str(e)}, status=status.HTTP_400_BAD_REQUEST)

        return Response(result.to_dict())


class FamilyExportView(APIView):
    """Export one user together with their students.

    GET /families/<user_id>/

    Any caller may export their own family; exporting another user's
    family requires the export_any_family permission.
    """

    permission_classes = [IsAuthenticated, HasBackupPermission]
    required_action = Action.EXPORT_OWN_FAMILY

    def get(self, request, user_id):
        identity = Identity.from_user(request.user)
        if str(user_id) != str(identity.user_id) and not is_allowed(
            identity, Action.EXPORT_ANY_FAMILY
        ):
            return Response(
                {"error": "Permission denied - you can only export your own family"},
                status=status.HTTP_403_FORBIDDEN,
            )

        try:
            data = UsersWithStudentsExporter(get_collections()).export_one(user_id)
        except LookupError as e:
            return Response({"error": str(e)}, status=status.HTTP_404_NOT_FOUND)

        return _attachment(data, data["_metadata"]["exportType"])


class FamilyImportView(APIView):
    """Create a user together with their students.

    POST /import-with-students/

    Body: {"user": {"username", "email", "password", ...}, "students": [...]}
    """

    permission_classes = [IsAuthenticated, HasBackupPermission]
    required_action = Action.IMPORT_ENTITY

    def post(self, request):
        serializer = FamilyImportSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        try:
            result = import_family(
                get_collections(),
                serializer.validated_data["user"],
                serializer.validated_data["students"],
            )
        except ValueError as e:
            return Response({"error": str(e)}, status=status.HTTP_400_BAD_REQUEST)

        return Response(result, status=status.HTTP_201_CREATED)
