"""
Common utilities for the object store benchmark and scanner.
"""

from .admission_gate import AdmissionGate
from .key_set import KeySet
from .work_item import WorkItem
from .work_queue import EndOfStream, WorkQueue

__all__ = ['AdmissionGate', 'EndOfStream', 'KeySet', 'WorkItem', 'WorkQueue']
