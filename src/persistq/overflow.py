"""Reject-new overflow policy with a discard list."""

from __future__ import annotations

from typing import Any, List


class OverflowPolicy:
    """Gate submissions against a fixed capacity.

    A full buffer rejects the incoming payload; nothing already queued is
    evicted. Rejected payloads accumulate in ``discarded`` without a cap.
    """

    def __init__(self, max_size: int = 0):
        self.max_size = max_size
        self._discarded: List[Any] = []

    def admit(self, payload: Any, current_length: int) -> bool:
        if self.max_size == 0:
            return True
        if current_length >= self.max_size:
            self._discarded.append(payload)
            return False
        return True

    @property
    def discarded(self) -> List[Any]:
        return list(self._discarded)

    def __len__(self) -> int:
        return len(self._discarded)
