"""Queue data models."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, TYPE_CHECKING

from .errors import QueueConfigError

if TYPE_CHECKING:
    from .settings import QueueRuntimeSettings

RETRIES_FIELD = "_retries"


@dataclass(eq=False)
class QueueItem:
    """A submitted payload plus the engine-managed retry counter.

    Identity is positional: two items with equal payloads are still distinct,
    hence ``eq=False``.
    """

    payload: dict[str, Any]
    retries: int = 0
    # submission order, used to keep retried items in FIFO order; not persisted
    seq: int = field(default=0, repr=False)

    def to_record(self) -> dict[str, Any]:
        """Snapshot form: payload fields plus ``_retries``."""
        record = dict(self.payload)
        record[RETRIES_FIELD] = self.retries
        return record

    def to_wire(self) -> dict[str, Any]:
        """Copy of the payload without the retry counter."""
        body = dict(self.payload)
        body.pop(RETRIES_FIELD, None)
        return body

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "QueueItem":
        payload = dict(record)
        retries = payload.pop(RETRIES_FIELD, None)
        if retries is None:
            retries = 0
        if not _is_non_negative_int(retries):
            raise ValueError(f"{RETRIES_FIELD} must be a non-negative integer, got {retries!r}")
        return cls(payload=payload, retries=retries)


@dataclass(frozen=True)
class QueueConfig:
    """Construction parameters of a queue.

    Attributes:
        name: Queue name, also the snapshot file stem
        persistence_interval_ms: Periodic snapshot cadence (0 disables)
        persistence_directory: Directory holding ``<name>.json``
        max_size: Buffer capacity (0 = unbounded)
    """

    name: str
    persistence_interval_ms: int = 0
    persistence_directory: str | os.PathLike[str] = "queues"
    max_size: int = 0

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not self.name:
            raise QueueConfigError("Queue name must be a non-empty string.")
        if not _is_non_negative_int(self.persistence_interval_ms):
            raise QueueConfigError("Persistence interval must be a non-negative integer.")
        if not isinstance(self.persistence_directory, (str, os.PathLike)):
            raise QueueConfigError("Persistence directory must be a string path.")
        if not _is_non_negative_int(self.max_size):
            raise QueueConfigError("Max size must be a non-negative integer.")

    @property
    def snapshot_path(self) -> Path:
        return Path(self.persistence_directory) / f"{self.name}.json"

    @classmethod
    def from_settings(cls, settings: "QueueRuntimeSettings") -> "QueueConfig":
        return cls(
            name=settings.queue_name,
            persistence_interval_ms=settings.persistence_interval_ms,
            persistence_directory=settings.persistence_directory,
            max_size=settings.max_size,
        )


def _is_non_negative_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0
