"""
Exception types shared by the benchmark and scanner drivers.
"""


class BenchmarkError(Exception):
    """Base class for errors raised by s3bench."""


class FatalWriteError(BenchmarkError):
    """A put failed; the round's key set can no longer be trusted."""

    def __init__(self, key: str, cause: BaseException = None):
        self.key = key
        self.cause = cause
        super().__init__(f"Write failed for key {key}: {cause}")


class ObjectReadError(BenchmarkError):
    """An object body could not be read completely."""

    def __init__(self, key: str, message: str):
        self.key = key
        super().__init__(f"Failed to read {key}: {message}")


class QueueClosedError(BenchmarkError):
    """Raised when putting into a work queue that has been closed."""
