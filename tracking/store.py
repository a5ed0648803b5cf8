"""
Persisted key-value state for Clast.

Each key is stored as its own JSON file so that clearing or corrupting
one record never affects the others.
"""

import json
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Any, Optional

import config

logger = logging.getLogger(__name__)

_SAFE_KEY = re.compile(r"^[A-Za-z0-9_\-]+$")


class StateStore:
    """
    JSON blob store backed by one file per key.

    Writes are atomic (temp file + os.replace) so a crash mid-save leaves
    the previous value intact.
    """

    def __init__(self, directory: Optional[Path] = None) -> None:
        """
        Args:
            directory: Where blobs live (defaults to config.STATE_DIR).
        """
        self.directory = Path(directory) if directory else config.STATE_DIR

    def _path_for(self, key: str) -> Path:
        if not _SAFE_KEY.match(key):
            raise ValueError(f"Invalid state key: {key!r}")
        return self.directory / f"{key}.json"

    def get(self, key: str) -> Optional[Any]:
        """
        Load the value stored under ``key``.

        Returns:
            Decoded JSON value, or None if missing or unreadable.
        """
        path = self._path_for(key)
        if not path.exists():
            return None
        try:
            with open(path, 'r', encoding='utf-8') as f:
                return json.load(f)
        except (json.JSONDecodeError, IOError, OSError) as e:
            logger.warning(f"Failed to load state '{key}': {e}")
            return None

    def set(self, key: str, value: Any) -> None:
        """Store ``value`` (must be JSON-serializable) under ``key``."""
        path = self._path_for(key)
        path.parent.mkdir(parents=True, exist_ok=True)

        temp_fd, temp_path = tempfile.mkstemp(suffix='.tmp', prefix=f'{key}_', dir=path.parent)
        try:
            with os.fdopen(temp_fd, 'w', encoding='utf-8') as f:
                json.dump(value, f, indent=2)
            os.replace(temp_path, path)
            logger.debug(f"Saved state '{key}'")
        except Exception:
            try:
                os.unlink(temp_path)
            except OSError:
                pass
            raise

    def remove(self, key: str) -> None:
        """Delete the value stored under ``key`` (no-op if missing)."""
        path = self._path_for(key)
        try:
            path.unlink()
        except FileNotFoundError:
            pass
