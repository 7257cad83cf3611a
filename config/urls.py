"""
URL configuration for the Aggrekart promotion engine
"""

from django.urls import include, path

urlpatterns = [
    # API endpoints
    path("api/", include("apps.api.urls")),
]
