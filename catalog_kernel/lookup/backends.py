"""
Lookup data sources — where hierarchy levels get their data.

A data source maps a level path (e.g. ``nodes/ci01.example.com`` or
``common``) to a flat dict of keys. Sources are read-only once a run starts.
"""

import logging
import threading
from pathlib import Path
from typing import Dict, Optional, Protocol

import yaml

logger = logging.getLogger(__name__)


class DataSource(Protocol):
    """Protocol for hierarchy data backends."""

    def load(self, path: str) -> Optional[dict]:
        """Data for a level path, or None if the level has no data."""
        ...


class DictDataSource:
    """In-memory data, keyed by level path."""

    def __init__(self, data: Optional[Dict[str, dict]] = None):
        self._data: Dict[str, dict] = dict(data or {})

    def load(self, path: str) -> Optional[dict]:
        return self._data.get(path)

    def set_level(self, path: str, values: dict) -> None:
        """Replace a level's data. Only between runs."""
        self._data[path] = dict(values)


class YamlDataSource:
    """
    A datadir of YAML files, one per level: ``<datadir>/<path>.yaml``.

    Files are parsed with ``yaml.safe_load`` on first use and cached.
    """

    def __init__(self, datadir: str, extension: str = ".yaml"):
        self.datadir = Path(datadir)
        self.extension = extension
        self._cache: Dict[str, Optional[dict]] = {}
        self._lock = threading.Lock()

    def load(self, path: str) -> Optional[dict]:
        with self._lock:
            if path not in self._cache:
                self._cache[path] = self._read(path)
            return self._cache[path]

    def _read(self, path: str) -> Optional[dict]:
        file_path = (self.datadir / f"{path}{self.extension}").resolve()
        if self.datadir.resolve() not in file_path.parents:
            logger.warning("Ignoring level path outside datadir: %s", path)
            return None
        if not file_path.is_file():
            return None

        with file_path.open(encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ValueError(f"{file_path} must contain a mapping at the top level")
        logger.debug("Loaded %d keys from %s", len(data), file_path)
        return data

    def clear_cache(self) -> None:
        """Forget parsed files so the next run re-reads the datadir."""
        with self._lock:
            self._cache.clear()
