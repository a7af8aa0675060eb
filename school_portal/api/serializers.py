# SPDX-FileCopyrightText: (C) ORCD
#
# SPDX-License-Identifier: AGPL-3.0-or-later

from rest_framework import serializers

from school_portal.backup.formats import (
    FULL_IMPORT_STRATEGIES,
    SINGLE_IMPORT_STRATEGIES,
    SKIP,
)


class EntityImportSerializer(serializers.Serializer):
    """Request body for a single-entity import."""

    records = serializers.ListField(child=serializers.DictField(), allow_empty=True)
    duplicateHandling = serializers.ChoiceField(
        choices=SINGLE_IMPORT_STRATEGIES,
        default=SKIP,
    )


class StudentBackupImportSerializer(serializers.Serializer):
    """Request body for importing a students export file."""

    backupData = serializers.DictField()
    duplicateHandling = serializers.ChoiceField(
        choices=SINGLE_IMPORT_STRATEGIES,
        default=SKIP,
    )


class FullImportOptionsSerializer(serializers.Serializer):
    """Strategy options of a complete system import.

    Only skip and merge are accepted here; per-section keys override
    duplicateHandling.
    """

    duplicateHandling = serializers.ChoiceField(choices=FULL_IMPORT_STRATEGIES, required=False)
    userDuplicateHandling = serializers.ChoiceField(choices=FULL_IMPORT_STRATEGIES, required=False)
    studentDuplicateHandling = serializers.ChoiceField(choices=FULL_IMPORT_STRATEGIES, required=False)
    notificationDuplicateHandling = serializers.ChoiceField(
        choices=FULL_IMPORT_STRATEGIES, required=False
    )
    documentDuplicateHandling = serializers.ChoiceField(choices=FULL_IMPORT_STRATEGIES, required=False)
    bookDuplicateHandling = serializers.ChoiceField(choices=FULL_IMPORT_STRATEGIES, required=False)
    eventSignupDuplicateHandling = serializers.ChoiceField(
        choices=FULL_IMPORT_STRATEGIES, required=False
    )


class FullImportSerializer(serializers.Serializer):
    """Request body for a complete system import."""

    backupData = serializers.DictField()
    options = FullImportOptionsSerializer(required=False)
    preview = serializers.BooleanField(default=False)
    force = serializers.BooleanField(default=False)


class FamilyImportSerializer(serializers.Serializer):
    """Request body for creating a user together with their students."""

    user = serializers.DictField()
    students = serializers.ListField(
        child=serializers.DictField(), required=False, default=list
    )
