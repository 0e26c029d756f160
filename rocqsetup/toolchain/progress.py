"""
Progress estimation for tools that print free text.

opam gives no machine-readable progress. LineProgressEstimator turns the
number of output lines seen so far into a fraction: ``lines / 200``, capped
at 0.95 until the process has exited. Replace it if a structured progress
source becomes available; the pipeline only sees fractions.
"""

import threading
from typing import Callable, Optional

DEFAULT_LINES_PER_UNIT = 200
DEFAULT_CAP = 0.95


def estimate_fraction(
    lines: int, lines_per_unit: int = DEFAULT_LINES_PER_UNIT, cap: float = DEFAULT_CAP
) -> float:
    """
    Map an output line count to a progress fraction.

    Example:
        >>> estimate_fraction(100)
        0.5
        >>> estimate_fraction(1000)
        0.95
    """
    if lines <= 0:
        return 0.0
    return min(lines / lines_per_unit, cap)


class LineProgressEstimator:
    """
    Feed output lines in, get monotonic progress fractions out.

    Example:
        >>> estimator = LineProgressEstimator(on_fraction=print)
        >>> runner.stream(args, on_line=estimator.feed)
        >>> estimator.finish()
    """

    def __init__(
        self,
        on_fraction: Optional[Callable[[float], None]] = None,
        lines_per_unit: int = DEFAULT_LINES_PER_UNIT,
        cap: float = DEFAULT_CAP,
    ):
        self.on_fraction = on_fraction
        self.lines_per_unit = lines_per_unit
        self.cap = cap
        self.lines = 0
        self.fraction = 0.0
        self._lock = threading.Lock()

    def feed(self, line: str = "") -> float:
        """Count one output line and report the new fraction."""
        with self._lock:
            self.lines += 1
            self.fraction = max(
                self.fraction,
                estimate_fraction(self.lines, self.lines_per_unit, self.cap),
            )
            fraction = self.fraction
        if self.on_fraction:
            self.on_fraction(fraction)
        return fraction

    def finish(self) -> float:
        """Mark the process as exited; the fraction becomes 1.0."""
        with self._lock:
            self.fraction = 1.0
        if self.on_fraction:
            self.on_fraction(1.0)
        return 1.0


__all__ = ["estimate_fraction", "LineProgressEstimator"]
