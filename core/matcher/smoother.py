# Sliding-window mean over the most recent per-frame best distances.
# Only live recognition sessions smooth; single-shot recognition
# decides on the raw distance.

from __future__ import annotations

from collections import deque
from typing import Deque, List

DEFAULT_WINDOW_SIZE = 10


class TemporalSmoother:
    """
    FIFO window of the last ``window_size`` distances.

    Infinite distances (empty gallery) are accepted and make the mean
    infinite for as long as they stay in the window.
    """

    def __init__(self, window_size: int = DEFAULT_WINDOW_SIZE) -> None:
        if int(window_size) < 1:
            raise ValueError(f"window_size must be >= 1, got {window_size}.")
        self.window_size = int(window_size)
        self._window: Deque[float] = deque(maxlen=self.window_size)

    def push(self, distance: float) -> float:
        """Add *distance*, evicting the oldest when full, and return the window mean."""
        self._window.append(float(distance))
        return sum(self._window) / len(self._window)

    def reset(self) -> None:
        self._window.clear()

    @property
    def values(self) -> List[float]:
        """Window contents, oldest first."""
        return list(self._window)

    @property
    def mean(self) -> float:
        if not self._window:
            raise ValueError("Smoothing window is empty.")
        return sum(self._window) / len(self._window)

    @property
    def is_full(self) -> bool:
        return len(self._window) == self.window_size

    def __len__(self) -> int:
        return len(self._window)

    def __repr__(self) -> str:
        return f"TemporalSmoother(window={len(self)}/{self.window_size})"
