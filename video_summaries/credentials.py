"""Database-backed credential provider for the summary pipeline."""

import logging
from typing import Optional

from .models import ServiceCredential, ServiceProvider

logger = logging.getLogger(__name__)


class DatabaseCredentialProvider:
    """Keeps the service credential in the ServiceCredential table."""

    def __init__(self, provider: str = ServiceProvider.OPENAI):
        self.provider = provider

    def get(self) -> Optional[str]:
        api_key = (
            ServiceCredential.objects.filter(provider=self.provider)
            .values_list("api_key", flat=True)
            .first()
        )
        return api_key or None

    def set(self, api_key: str) -> None:
        if not api_key or not api_key.strip():
            raise ValueError("API key must not be empty")

        ServiceCredential.objects.update_or_create(
            provider=self.provider, defaults={"api_key": api_key.strip()}
        )
        logger.info(f"Stored {self.provider} API key")

    def clear(self) -> None:
        deleted_count, _ = ServiceCredential.objects.filter(provider=self.provider).delete()
        if deleted_count:
            logger.info(f"Cleared {self.provider} API key")
