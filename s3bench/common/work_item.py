"""
Reference to a single listed object, queued for fetch-and-parse.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class WorkItem:
    """One object to fetch. Produced by listing, consumed exactly once."""

    bucket_name: str
    key: str
    size: Optional[int] = None
