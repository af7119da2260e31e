from django.db import models

from credentials import mask_api_key


class ServiceProvider(models.TextChoices):
    """External AI service providers."""

    OPENAI = "openai", "OpenAI"


class ServiceCredential(models.Model):
    """
    Process-wide API credential for an external AI service.

    Replaces the JSON key file with a database record; there is at most one
    credential per provider.
    """

    provider = models.CharField(
        max_length=50,
        choices=ServiceProvider.choices,
        default=ServiceProvider.OPENAI,
        unique=True,
    )
    api_key = models.CharField(max_length=255, help_text="Secret API key")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["provider"]

    def __str__(self):
        return f"{self.get_provider_display()} ({self.masked_key})"

    @property
    def masked_key(self):
        """Get the API key in a form that is safe to display."""
        return mask_api_key(self.api_key)
