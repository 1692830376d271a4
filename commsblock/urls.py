"""
URL configuration for commsblock project.

Tenant API under ``api/``; click, unsubscribe and webhook endpoints sit at
the root so tracked links stay short.
"""

from django.contrib import admin
from django.urls import path, include

urlpatterns = [
    # Django admin
    path("admin/", admin.site.urls),
    # Tenant API
    path("api/", include("campaigns.urls", namespace="campaigns")),
    path("api/", include("audience.urls", namespace="audience")),
    # Public tracking endpoints
    path("", include("tracking.urls", namespace="tracking")),
]
