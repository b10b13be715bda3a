"""Helpers for constructing configuration instances."""

from pathlib import Path
from typing import Optional

from baton.config import Config


class ConfigProvider:
    """
    Provides configuration instances without import-time side effects.

    The loaded config is cached so a Runner and its provider agree on it.

    Args:
        path: Optional override path for the JSON config file.
    """

    def __init__(self, path: Optional[Path] = None) -> None:
        self._path = path
        self._config: Optional[Config] = None

    def load(self) -> Config:
        """
        Loads a configuration instance using the configured path.

        Returns:
            A validated configuration object.
        """
        if self._config is None:
            self._config = Config.load(self._path)
        return self._config
