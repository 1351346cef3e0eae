"""
Concurrency-bounded benchmark and scanner for S3-compatible object stores.
"""

__version__ = "0.1.0"
