"""
Short-window price stability tracking per pool.

Keeps a fixed-size window of recent prices for each pool and turns the
coefficient of variation into a [0, 1] score used by the execution
probability model.
"""

import threading
from collections import deque
from decimal import Decimal
from typing import Deque, Dict, Optional, Tuple

# Relative price dispersion at which stability credit reaches zero
DEFAULT_CV_CEILING = 0.02


class PriceStabilityMonitor:
    """
    Rolling-window monitor of pool price stability.

    Tracks the last window_size prices per pool address. Score is
    1 - cv / cv_ceiling clamped to [0, 1], or None while fewer than two
    observations exist.
    """

    def __init__(self, window_size: int = 20, cv_ceiling: float = DEFAULT_CV_CEILING):
        self.window_size = window_size
        self.cv_ceiling = cv_ceiling
        self._windows: Dict[str, Deque[float]] = {}
        self._lock = threading.Lock()

    def add_observation(self, pool_address: str, price: Decimal) -> None:
        """Record a price observation for a pool."""
        with self._lock:
            window = self._windows.get(pool_address)
            if window is None:
                window = deque(maxlen=self.window_size)
                self._windows[pool_address] = window
            window.append(float(price))

    def count(self, pool_address: str) -> int:
        with self._lock:
            window = self._windows.get(pool_address)
            return len(window) if window else 0

    def get_sigma(self, pool_address: str) -> Optional[float]:
        """Population standard deviation, or None if fewer than 2 observations."""
        mean_sigma = self._mean_sigma(pool_address)
        return mean_sigma[1] if mean_sigma else None

    def score(self, pool_address: str) -> Optional[float]:
        mean_sigma = self._mean_sigma(pool_address)
        if mean_sigma is None:
            return None
        mean, sigma = mean_sigma
        if mean <= 0:
            return 0.0
        return max(0.0, min(1.0, 1.0 - (sigma / mean) / self.cv_ceiling))

    def _mean_sigma(self, pool_address: str) -> Optional[Tuple[float, float]]:
        with self._lock:
            observations = list(self._windows.get(pool_address, ()))
        n = len(observations)
        if n < 2:
            return None
        mean = sum(observations) / n
        variance = sum((x - mean) ** 2 for x in observations) / n
        return mean, variance ** 0.5

    def forget(self, pool_address: str) -> None:
        with self._lock:
            self._windows.pop(pool_address, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._windows)
