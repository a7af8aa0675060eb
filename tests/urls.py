# SPDX-FileCopyrightText: (C) ORCD
#
# SPDX-License-Identifier: AGPL-3.0-or-later

from django.urls import include, path

urlpatterns = [
    path("api/", include("school_portal.api.urls")),
]
