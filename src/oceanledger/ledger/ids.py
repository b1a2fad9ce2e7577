"""Identifier allocation.

Measurement ids come from a monotonic counter behind a single lock; request
ids are 256-bit random values. Neither is ever reused.
"""

from __future__ import annotations

import logging
import secrets
import threading

from ..core.exceptions import AllocationError

logger = logging.getLogger(__name__)

# 32 bytes, the same width as a ciphertext handle
REQUEST_ID_BYTES = 32
MAX_REQUEST_ID_ATTEMPTS = 8


class MeasurementIdAllocator:
    """Thread-safe monotonic id counter starting at 1.

    Args:
        max_id: Largest id that may be handed out. Allocation past it raises
            AllocationError without consuming anything.
    """

    def __init__(self, max_id: int) -> None:
        if max_id < 1:
            raise ValueError("max_id must be at least 1")
        self._max_id = max_id
        self._last = 0
        self._lock = threading.Lock()

    @property
    def last_allocated(self) -> int:
        """Most recently issued id (0 before the first allocation)."""
        with self._lock:
            return self._last

    def allocate(self) -> int:
        with self._lock:
            if self._last >= self._max_id:
                logger.error(f"Measurement id space exhausted at {self._last}")
                raise AllocationError(
                    "Measurement id space exhausted",
                    {"last_allocated": self._last, "max_id": self._max_id},
                )
            self._last += 1
            return self._last


class RequestIdAllocator:
    """Issues unguessable request ids and remembers every id issued."""

    def __init__(self) -> None:
        self._issued: set[str] = set()
        self._lock = threading.Lock()

    def allocate(self) -> str:
        with self._lock:
            for _ in range(MAX_REQUEST_ID_ATTEMPTS):
                candidate = secrets.token_hex(REQUEST_ID_BYTES)
                if candidate not in self._issued:
                    self._issued.add(candidate)
                    return candidate
        raise AllocationError("Could not allocate a unique request id")

    def __contains__(self, request_id: str) -> bool:
        with self._lock:
            return request_id in self._issued

    def __len__(self) -> int:
        with self._lock:
            return len(self._issued)
