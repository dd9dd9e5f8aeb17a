"""
JSON snapshot store for queue buffers.

The snapshot is a single file holding a JSON array of objects, each being the
item payload plus an integer ``_retries`` field. Reads are tolerant: a missing
or corrupt file yields an empty buffer. Writes go to a temp file first and are
moved into place, overwriting the previous snapshot.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Iterable, List

from loguru import logger

from .errors import PersistenceError
from .models import QueueItem


class SnapshotStore:
    """Reads and writes one queue snapshot file. Holds no item references."""

    def __init__(self, path: str | os.PathLike[str], max_size: int = 0):
        self.path = Path(path)
        self.max_size = max_size
        self.ensure_directory()

    def ensure_directory(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def exists(self) -> bool:
        return self.path.is_file()

    def read_records(self) -> List[dict[str, Any]]:
        """Return raw snapshot records.

        Raises:
            PersistenceError: File unreadable, not JSON, or not a list of objects
        """
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise PersistenceError(f"Cannot read snapshot {self.path}: {e}") from e

        if not isinstance(data, list) or not all(isinstance(r, dict) for r in data):
            raise PersistenceError(f"Snapshot {self.path} is not a JSON array of objects")
        return data

    def load(self) -> List[QueueItem]:
        """Load items in FIFO order; never raises."""
        if not self.exists():
            return []
        try:
            items = [QueueItem.from_record(r) for r in self.read_records()]
        except (PersistenceError, TypeError, ValueError) as e:
            # Corrupt snapshot: start fresh
            logger.warning(f"Discarding unreadable snapshot: {e}")
            return []

        if self.max_size > 0 and len(items) > self.max_size:
            logger.warning(
                f"Snapshot {self.path} holds {len(items)} items, truncating to {self.max_size}"
            )
            items = items[: self.max_size]
        return items

    def save(self, items: Iterable[QueueItem]) -> bool:
        """Overwrite the snapshot with ``items``. Returns False on failure."""
        tmp = self.path.with_name(f"{self.path.name}.tmp")
        try:
            records = [item.to_record() for item in items]
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump(records, f, ensure_ascii=False)
            os.replace(tmp, self.path)
            return True
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Error saving snapshot {self.path}: {e}")
            tmp.unlink(missing_ok=True)
            return False
