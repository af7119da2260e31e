from django.contrib import admin

from .models import ServiceCredential


@admin.register(ServiceCredential)
class ServiceCredentialAdmin(admin.ModelAdmin):
    """Admin interface for service credentials."""

    list_display = ["provider", "masked_key_display", "updated_at"]
    readonly_fields = ["created_at", "updated_at"]
    ordering = ["provider"]

    fieldsets = (
        ("Credential", {"fields": ("provider", "api_key")}),
        ("Timing", {"fields": ("created_at", "updated_at"), "classes": ("collapse",)}),
    )

    def masked_key_display(self, obj):
        """Display the API key without revealing it."""
        return obj.masked_key

    masked_key_display.short_description = "API Key"
