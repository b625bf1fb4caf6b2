"""Bounded per-channel sample buffers."""

import logging
import threading
from collections import deque
from typing import Iterable, List

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 512  # ~2s at 256 Hz


class ChannelSampleBuffer:
    """Thread-safe bounded sequence of voltage samples for one channel.

    New samples are appended at the tail; once capacity is exceeded the
    oldest samples are dropped from the head.
    """

    def __init__(self, name: str, capacity: int = DEFAULT_CAPACITY):
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self.name = name
        self.capacity = capacity
        self._samples = deque(maxlen=capacity)
        self._lock = threading.Lock()

    def push(self, sample: float) -> None:
        with self._lock:
            self._samples.append(float(sample))

    def extend(self, samples: Iterable[float]) -> None:
        with self._lock:
            self._samples.extend(float(s) for s in samples)

    def latest(self, count: int) -> List[float]:
        """Return up to ``count`` of the newest samples, oldest first."""
        with self._lock:
            if count >= len(self._samples):
                return list(self._samples)
            return list(self._samples)[-count:]

    def snapshot(self) -> List[float]:
        with self._lock:
            return list(self._samples)

    def clear(self) -> None:
        with self._lock:
            self._samples.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._samples)
