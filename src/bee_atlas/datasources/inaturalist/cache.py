"""JSON-file cache shared by the place and taxon lookups."""

from __future__ import annotations

import json
import logging
from pathlib import Path  # noqa: TC003
from typing import Any

logger = logging.getLogger(__name__)


class JsonCache:
    """A dict persisted as one JSON file, read lazily on first use."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self._data: dict[str, Any] | None = None

    @property
    def data(self) -> dict[str, Any]:
        if self._data is None:
            self._data = self.read()
        return self._data

    def read(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        with self.path.open(encoding="utf-8") as f:
            data: dict[str, Any] = json.load(f)
        return data

    def write(self) -> Path:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("w", encoding="utf-8") as f:
            json.dump(self.data, f, indent=2, sort_keys=True)
        logger.debug("Wrote %d cache entries to %s", len(self.data), self.path)
        return self.path

    def __contains__(self, key: object) -> bool:
        return str(key) in self.data

    def __len__(self) -> int:
        return len(self.data)
