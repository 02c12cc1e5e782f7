"""Configuration management for pyfilesearch."""

import logging
import os
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://generativelanguage.googleapis.com"
DEFAULT_MODEL = "gemini-2.5-flash"

API_KEY_ENV = "GEMINI_API_KEY"
API_URL_ENV = "FILESEARCH_API_URL"
MODEL_ENV = "FILESEARCH_MODEL"


class Config:
    """Reads the API key and endpoint settings.

    Values come from the environment first and fall back to the
    ``key=value`` config file in ``~/.config/pyfilesearch/config``.
    """

    def __init__(self, config_dir: Optional[Path] = None):
        self.config_dir = config_dir or Path.home() / ".config" / "pyfilesearch"
        self.config_file = self.config_dir / "config"

    def _read_file(self) -> dict[str, str]:
        values: dict[str, str] = {}
        if not self.config_file.exists():
            return values
        try:
            with open(self.config_file, encoding="utf-8") as f:
                for line in f:
                    line = line.strip()
                    if not line or line.startswith("#") or "=" not in line:
                        continue
                    key, value = line.split("=", 1)
                    values[key.strip()] = value.strip()
        except OSError as e:
            logger.warning(f"Failed to read config file {self.config_file}: {e}")
        return values

    @property
    def api_key(self) -> Optional[str]:
        """API key from the environment or the config file."""
        return os.environ.get(API_KEY_ENV) or self._read_file().get(API_KEY_ENV)

    @property
    def api_url(self) -> str:
        return (
            os.environ.get(API_URL_ENV)
            or self._read_file().get(API_URL_ENV)
            or DEFAULT_API_URL
        )

    @property
    def model(self) -> str:
        return (
            os.environ.get(MODEL_ENV) or self._read_file().get(MODEL_ENV) or DEFAULT_MODEL
        )

    @property
    def state_dir(self) -> Path:
        """Directory holding per-project sync metadata."""
        return self.config_dir / "metadata"

    def is_configured(self) -> bool:
        return bool(self.api_key)

    def get_config_path(self) -> Path:
        return self.config_file

    def save_api_key(self, api_key: str) -> None:
        """Persist the API key, keeping any other settings in the file.

        Args:
            api_key: Gemini API key
        """
        values = self._read_file()
        values[API_KEY_ENV] = api_key
        self.config_dir.mkdir(parents=True, exist_ok=True)
        with open(self.config_file, "w", encoding="utf-8") as f:
            for key, value in values.items():
                f.write(f"{key}={value}\n")
        # The file holds a credential
        self.config_file.chmod(0o600)
        logger.debug(f"Saved API key to {self.config_file}")


config = Config()
