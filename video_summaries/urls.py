from django.urls import path

from . import views

urlpatterns = [
    # Summary pipeline: POST runs it, GET reports cached artifacts
    path("api/summarize/", views.api_summarize, name="api_summarize"),
    # Service credential
    path("api/keys/", views.api_keys, name="api_keys"),
    # Health check
    path("health/", views.health_check, name="health_check"),
]
