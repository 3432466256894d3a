"""Storage service interfaces and implementations.

Provides an abstract keyed document store and a JSON file-based
implementation used to persist ledgers and target settings.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)


class IStorageService(ABC):
    """Abstract base class for storage services.

    Defines the interface for saving, loading, and deleting data
    with string keys.
    """

    @abstractmethod
    def save(self, key: str, data: Any) -> None:
        """Save data with the given key.

        Args:
            key: Unique identifier for the data
            data: JSON-serializable data to store
        """
        ...

    @abstractmethod
    def load(self, key: str) -> Optional[Any]:
        """Load data for the given key.

        Returns:
            The stored data, or None if not found
        """
        ...

    @abstractmethod
    def delete(self, key: str) -> None:
        ...


class JsonFileStorage(IStorageService):
    """JSON file-based storage implementation.

    Stores each key as a separate JSON file in the base directory. Writes
    go to a temporary file that is then moved over the target, so a reader
    sees either the old document or the new one.
    """

    def __init__(self, base_path: str | Path) -> None:
        self._base_path = Path(base_path)
        self._base_path.mkdir(parents=True, exist_ok=True)

    @property
    def base_path(self) -> Path:
        return self._base_path

    def _get_file_path(self, key: str) -> Path:
        safe_key = key.replace("/", "_").replace("\\", "_")
        return self._base_path / f"{safe_key}.json"

    def save(self, key: str, data: Any) -> None:
        """Save data to a JSON file.

        Raises:
            TypeError: If data is not JSON-serializable
            OSError: If file cannot be written
        """
        file_path = self._get_file_path(key)
        fd, tmp_name = tempfile.mkstemp(dir=self._base_path, prefix=f".{file_path.stem}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
            os.replace(tmp_name, file_path)
        except (TypeError, OSError) as e:
            logger.error(f"Failed to save data for key '{key}': {e}")
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    def load(self, key: str) -> Optional[Any]:
        """Load data from a JSON file.

        Returns:
            The stored data, or None if file doesn't exist or is corrupted
        """
        file_path = self._get_file_path(key)
        if not file_path.exists():
            return None

        try:
            with file_path.open("r", encoding="utf-8") as f:
                return json.load(f)
        except json.JSONDecodeError as e:
            logger.error(f"Corrupted data for key '{key}': {e}")
            return None
        except OSError as e:
            logger.error(f"Failed to load data for key '{key}': {e}")
            return None

    def delete(self, key: str) -> None:
        file_path = self._get_file_path(key)
        try:
            if file_path.exists():
                file_path.unlink()
        except OSError as e:
            logger.error(f"Failed to delete data for key '{key}': {e}")
