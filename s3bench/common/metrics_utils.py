"""
Rate and timing helpers shared by the benchmark and scanner reports.
"""

import time
from typing import Optional

from s3bench.configuration import MS_PER_SECOND


def elapsed_ms(start: float, end: Optional[float] = None) -> int:
    """Whole milliseconds between two ``time.monotonic()`` readings."""
    if end is None:
        end = time.monotonic()
    return int((end - start) * MS_PER_SECOND)


def calculate_rate(count: int, elapsed_milliseconds: float) -> Optional[float]:
    """Operations per second for ``count`` operations over ``elapsed_milliseconds``.

    Returns:
        The rate, or None when the elapsed time is below clock resolution
    """
    if elapsed_milliseconds <= 0:
        return None
    return MS_PER_SECOND * count / elapsed_milliseconds


def calculate_mean(total: float, count: int) -> Optional[float]:
    """Mean of ``total`` over ``count`` items, or None for an empty set."""
    if count <= 0:
        return None
    return total / count


def format_rate(rate: Optional[float], unit: str) -> str:
    """Format a rate for progress output; undefined rates print as ``n/a``."""
    if rate is None:
        return f"n/a {unit}"
    return f"{rate:.0f} {unit}"
