"""Service credential storage for the summary pipeline."""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional, Protocol, Union

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_DIRECTORY = ".vnotes"
CONFIG_FILE_NAME = "keys.json"
API_KEY_FIELD = "openaiApiKey"


class CredentialProvider(Protocol):
    """Protocol for the process-wide service credential record."""

    def get(self) -> Optional[str]:
        """Get the configured credential, or None."""
        ...

    def set(self, api_key: str) -> None:
        """Store a credential, replacing any previous one."""
        ...

    def clear(self) -> None:
        """Remove the stored credential."""
        ...


def mask_api_key(api_key: Optional[str]) -> str:
    """Mask a credential for display."""
    if not api_key:
        return ""
    if len(api_key) <= 8:
        return "*" * len(api_key)
    return f"{api_key[:3]}...{api_key[-4:]}"


class JsonFileCredentialProvider:
    """
    Credential record kept in a JSON file.

    The file may hold other keys; only the API key field is touched. An
    unreadable file is treated as empty.
    """

    def __init__(self, config_directory: Union[str, Path, None] = None):
        config_directory = config_directory or os.getenv(
            "VNOTES_CONFIG_DIR", DEFAULT_CONFIG_DIRECTORY
        )
        self.config_file = Path(config_directory) / CONFIG_FILE_NAME

    def _read_config(self) -> Dict[str, Any]:
        if not self.config_file.is_file():
            return {}

        try:
            config = json.loads(self.config_file.read_text(encoding="utf-8"))
        except (OSError, ValueError) as read_error:
            logger.warning(f"Ignoring unreadable credential file {self.config_file}: {read_error}")
            return {}

        if not isinstance(config, dict):
            logger.warning(f"Ignoring malformed credential file {self.config_file}")
            return {}
        return config

    def _write_config(self, config: Dict[str, Any]) -> None:
        self.config_file.parent.mkdir(parents=True, exist_ok=True)

        file_descriptor, temporary_path = tempfile.mkstemp(
            dir=str(self.config_file.parent), suffix=".tmp"
        )
        with os.fdopen(file_descriptor, "w", encoding="utf-8") as temporary_file:
            json.dump(config, temporary_file, indent=2)
        os.replace(temporary_path, self.config_file)

    def get(self) -> Optional[str]:
        return self._read_config().get(API_KEY_FIELD) or None

    def set(self, api_key: str) -> None:
        if not api_key or not api_key.strip():
            raise ValueError("API key must not be empty")

        config = self._read_config()
        config[API_KEY_FIELD] = api_key.strip()
        self._write_config(config)
        logger.info(f"Stored API key in {self.config_file}")

    def clear(self) -> None:
        config = self._read_config()
        config.pop(API_KEY_FIELD, None)
        self._write_config(config)
        logger.info(f"Cleared API key from {self.config_file}")
