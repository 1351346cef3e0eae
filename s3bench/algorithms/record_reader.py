"""
Gzip-compressed newline-delimited JSON reader for scanned objects.

Objects are decompressed incrementally as their chunks arrive, so only
one chunk and one partial line per object are held in memory.
"""

import time
import zlib
import json
import logging
from typing import List

from s3bench.common.errors import ObjectReadError
from s3bench.configuration import SCANNER_TEXT_ENCODING
from s3bench.observability.registry import MetricRegistry

logger = logging.getLogger(__name__)

# zlib window bits accepting a gzip header and trailer
_GZIP_WBITS = 16 + zlib.MAX_WBITS


class RecordStream:
    """Incremental parser for one object.

    ``feed`` and ``close`` are meant to run on executor threads, one call
    at a time per stream; they only touch thread-safe counters.
    """

    def __init__(self, reader: "RecordReader", key: str):
        self.reader = reader
        self.key = key
        self.parsed = 0
        self.skipped = 0
        self._decompressor = zlib.decompressobj(_GZIP_WBITS)
        self._pending = b""
        self._compressed_seen = False
        self._parse_seconds = 0.0
        self._closed = False

    def feed(self, chunk: bytes) -> int:
        """Decompress a chunk of the object and parse every completed line.

        Returns:
            Number of records parsed from this chunk

        Raises:
            ObjectReadError: the content is not valid gzip
        """
        if not chunk:
            return 0
        start = time.perf_counter()
        self._compressed_seen = True

        lines = (self._pending + self._decompress(chunk)).split(b"\n")
        self._pending = lines.pop()
        parsed = self._parse_lines(lines)

        self._parse_seconds += time.perf_counter() - start
        return parsed

    def close(self) -> int:
        """Parse the final unterminated line and record the object's parse time.

        Returns:
            Number of records parsed from the whole object

        Raises:
            ObjectReadError: the gzip stream ended early
        """
        if self._closed:
            return self.parsed
        self._closed = True

        start = time.perf_counter()
        if self._compressed_seen:
            try:
                tail = self._decompressor.flush()
            except zlib.error as e:
                raise ObjectReadError(self.key, f"invalid gzip data ({e})")
            if not self._decompressor.eof:
                raise ObjectReadError(self.key, "gzip stream ended before its trailer")
            self._pending += tail

        if self._pending:
            self._parse_lines([self._pending])
            self._pending = b""

        self._parse_seconds += time.perf_counter() - start
        self.reader.parse_timer.update(self._parse_seconds)

        if self.skipped:
            logger.warning(f"Skipped {self.skipped} malformed lines in {self.key}")
        return self.parsed

    def _decompress(self, data: bytes) -> bytes:
        output = []
        try:
            while data:
                if self._decompressor.eof:
                    # Concatenated gzip members
                    self._decompressor = zlib.decompressobj(_GZIP_WBITS)
                output.append(self._decompressor.decompress(data))
                data = self._decompressor.unused_data if self._decompressor.eof else b""
        except zlib.error as e:
            raise ObjectReadError(self.key, f"invalid gzip data ({e})")
        return b"".join(output)

    def _parse_lines(self, lines: List[bytes]) -> int:
        parsed = 0
        skipped = 0
        line_bytes = 0

        for raw_line in lines:
            line = raw_line.rstrip(b"\r")
            line_bytes += len(line) + 1
            if not line.strip():
                continue

            try:
                json.loads(line.decode(self.reader.encoding))
            except (ValueError, RecursionError) as e:
                skipped += 1
                logger.debug(f"Skipping malformed line in {self.key}: {type(e).__name__}")
                continue
            parsed += 1

        self.reader.uncompressed_bytes.inc(line_bytes)
        if parsed:
            self.reader.records.inc(parsed)
        if skipped:
            self.reader.parse_errors.inc(skipped)

        self.parsed += parsed
        self.skipped += skipped
        return parsed


class RecordReader:
    """Counts JSON records in gzip-compressed objects.

    Blank lines are counted towards the byte total but are not records.
    Lines that are not valid JSON are skipped and counted.
    """

    def __init__(self, metrics: MetricRegistry, encoding: str = SCANNER_TEXT_ENCODING):
        self.encoding = encoding
        self.uncompressed_bytes = metrics.counter(
            "s3scanner.bytes.uncompressed", "Decompressed bytes, one extra per line terminator"
        )
        self.records = metrics.counter("s3scanner.records", "Parsed JSON records")
        self.parse_errors = metrics.counter("s3scanner.parse.errors", "Lines that failed to parse")
        self.parse_timer = metrics.timer("s3scanner.parsing", "Decompress and parse time per object")

    def open(self, key: str) -> RecordStream:
        """Start an incremental parse of one object."""
        return RecordStream(self, key)

    def read(self, key: str, data: bytes) -> int:
        """Parse an object already held in memory.

        Returns:
            Number of records parsed from this object
        """
        stream = self.open(key)
        stream.feed(data)
        return stream.close()
