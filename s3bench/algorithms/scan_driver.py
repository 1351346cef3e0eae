"""
List/fetch/parse pipeline counting JSON records under a bucket prefix.

A producer task pages through the listing and feeds a WorkQueue while
the dispatcher drains it, so fetching starts before listing finishes.
Object bodies are streamed chunk by chunk into the decompressor on the
executor, so memory per in-flight object is bounded by the chunk size.
"""

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Optional

from s3bench.algorithms.record_reader import RecordReader
from s3bench.common.admission_gate import AdmissionGate
from s3bench.common.work_item import WorkItem
from s3bench.common.work_queue import WorkQueue
from s3bench.observability.registry import MetricRegistry

logger = logging.getLogger(__name__)


class ScanDriver:
    """Counts parsed records across every object under a prefix."""

    def __init__(
        self,
        storage,
        metrics: MetricRegistry,
        prefix: str,
        concurrency: int,
        bucket: str = None,
        executor: Optional[ThreadPoolExecutor] = None,
    ):
        """Initialize the scanner.

        Args:
            storage: Entered storage system providing list_objects/get_object
            metrics: Registry for counters and timers
            prefix: Key prefix to scan
            concurrency: Maximum objects fetched and parsed at once
            bucket: Bucket to scan (default: the storage system's bucket)
            executor: Pool for decompression and parsing
                (default: one thread per permit, owned by the scan)
        """
        if concurrency < 1:
            raise ValueError(f"Concurrency must be positive, got {concurrency}")

        self.storage = storage
        self.metrics = metrics
        self.prefix = prefix
        self.concurrency = concurrency
        self.bucket = bucket or storage.bucket_name
        self.executor = executor
        self.reader = RecordReader(metrics)

        self.objects_seen = metrics.counter("s3scanner.objects", "Objects returned by listing")
        self.compressed_bytes = metrics.counter("s3scanner.bytes.compressed", "Compressed bytes fetched")
        self.errors = metrics.counter("s3scanner.errors", "Objects skipped after a read failure")
        self.list_timer = metrics.timer("s3scanner.list", "Listing page latency")
        self.get_timer = metrics.timer("s3scanner.get", "Fetch and parse latency per object")

        self.scanned_objects = 0
        self.failed_objects = 0

        logger.info(
            f"Initialized scanner for s3://{self.bucket}/{prefix} with concurrency {concurrency}"
        )

    async def run(self) -> int:
        """Scan every object under the prefix.

        Returns:
            Number of records parsed during this scan

        Raises:
            Exception: the listing failed; objects already queued are still processed
        """
        records_before = self.metrics.count("s3scanner.records")
        queue: WorkQueue = WorkQueue()
        gate = AdmissionGate(self.concurrency)

        executor = self.executor
        owns_executor = executor is None
        if owns_executor:
            executor = ThreadPoolExecutor(
                max_workers=self.concurrency, thread_name_prefix="s3scanner-parse"
            )

        producer = asyncio.create_task(self._produce(queue))
        try:
            async for item in queue:
                await gate.submit(self._scan_object, item, executor)
            await gate.drain()
            await producer
        except BaseException:
            producer.cancel()
            gate.cancel_outstanding()
            raise
        finally:
            if owns_executor:
                executor.shutdown(wait=False)

        total = self.metrics.count("s3scanner.records") - records_before
        logger.info(
            f"Scanned {self.scanned_objects} objects ({self.failed_objects} failed), "
            f"{total} records"
        )
        return total

    async def _produce(self, queue: WorkQueue) -> None:
        token = None
        try:
            while True:
                with self.list_timer.time():
                    items, token = await self.storage.list_objects(
                        self.prefix, token, bucket=self.bucket
                    )
                queue.put_all(items)
                self.objects_seen.inc(len(items))
                if not token:
                    break
        except Exception as e:
            logger.error(f"Listing s3://{self.bucket}/{self.prefix} failed: {e}")
            raise
        finally:
            queue.close()

        logger.info(f"Found {queue.produced} objects.")

    async def _scan_object(self, item: WorkItem, executor: Any) -> None:
        span = self.get_timer.time()
        loop = asyncio.get_running_loop()
        records = self.reader.open(item.key)
        try:
            async with self.storage.open_object(item.key, bucket=item.bucket_name) as stream:
                async for chunk in stream.chunks():
                    self.compressed_bytes.inc(len(chunk))
                    await loop.run_in_executor(executor, records.feed, chunk)
            await loop.run_in_executor(executor, records.close)
        except Exception as e:
            self.failed_objects += 1
            self.errors.inc()
            logger.error(f"Error reading: {item.key}: {e!r}")
            return
        finally:
            span.stop()

        self.scanned_objects += 1
