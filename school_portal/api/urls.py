# SPDX-FileCopyrightText: (C) ORCD
#
# SPDX-License-Identifier: AGPL-3.0-or-later

from django.urls import path

from school_portal.api import views

urlpatterns = [
    path("export-all/", views.FullExportView.as_view(), name="export-all"),
    path("export/<str:entity>/", views.EntityExportView.as_view(), name="export-entity"),
    path("import-all/", views.FullImportView.as_view(), name="import-all"),
    path(
        "import/students/backup/",
        views.StudentBackupImportView.as_view(),
        name="import-students-backup",
    ),
    path("import/<str:entity>/", views.EntityImportView.as_view(), name="import-entity"),
    path("import-with-students/", views.FamilyImportView.as_view(), name="import-with-students"),
    path("families/<str:user_id>/", views.FamilyExportView.as_view(), name="family-export"),
]
