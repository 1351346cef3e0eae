"""
Tests for the list/fetch/parse scan pipeline and the NDJSON record reader.
"""

import gzip
import os
import sys
import unittest

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from fakes import FakeStorageSystem, gzip_lines
from s3bench.algorithms.record_reader import RecordReader
from s3bench.algorithms.scan_driver import ScanDriver
from s3bench.common.errors import ObjectReadError
from s3bench.observability.registry import MetricRegistry


def populate(storage, count, prefix="logs/", records_per_object=1):
    for n in range(count):
        records = [{"object": n, "line": i} for i in range(records_per_object)]
        storage.objects[f"{prefix}{n:04d}.json.gz"] = gzip_lines(records)


class TestRecordReader(unittest.TestCase):
    """Test decompression, byte accounting and malformed-line handling."""

    def test_counts_records_and_uncompressed_bytes(self):
        metrics = MetricRegistry()
        reader = RecordReader(metrics)
        lines = ['{"a": 1}', '{"b": [1, 2]}', '"plain string"']
        data = gzip.compress(("\n".join(lines) + "\n").encode("utf-8"))

        self.assertEqual(reader.read("k", data), 3)
        self.assertEqual(metrics.count("s3scanner.records"), 3)
        self.assertEqual(
            metrics.count("s3scanner.bytes.uncompressed"), sum(len(line) + 1 for line in lines)
        )
        self.assertEqual(metrics.timer("s3scanner.parsing").count, 1)

    def test_malformed_and_blank_lines_are_skipped(self):
        metrics = MetricRegistry()
        reader = RecordReader(metrics)
        data = gzip_lines([{"ok": 1}, {"ok": 2}], extra_lines=["{not json", "", '{"ok": 3}'])

        with self.assertLogs("s3bench.algorithms.record_reader", level="WARNING"):
            self.assertEqual(reader.read("k", data), 3)
        self.assertEqual(metrics.count("s3scanner.parse.errors"), 1)
        self.assertEqual(metrics.count("s3scanner.records"), 3)

    def test_last_line_without_newline(self):
        metrics = MetricRegistry()
        reader = RecordReader(metrics)
        data = gzip.compress(b'{"a": 1}\n{"b": 2}')

        self.assertEqual(reader.read("k", data), 2)
        self.assertEqual(metrics.count("s3scanner.bytes.uncompressed"), 18)

    def test_crlf_line_endings(self):
        metrics = MetricRegistry()
        reader = RecordReader(metrics)
        data = gzip.compress(b'{"a": 1}\r\n{"b": 2}\r\n')

        self.assertEqual(reader.read("k", data), 2)
        self.assertEqual(metrics.count("s3scanner.bytes.uncompressed"), 18)

    def test_invalid_gzip_raises(self):
        reader = RecordReader(MetricRegistry())
        with self.assertRaises(ObjectReadError) as ctx:
            reader.read("k", b"this is not gzip")
        self.assertEqual(ctx.exception.key, "k")

    def test_deeply_nested_line_is_skipped(self):
        metrics = MetricRegistry()
        reader = RecordReader(metrics)
        nested = "[" * 100000 + "]" * 100000
        data = gzip_lines([{"ok": 1}], extra_lines=[nested, '{"ok": 2}'])

        with self.assertLogs("s3bench.algorithms.record_reader", level="WARNING"):
            self.assertEqual(reader.read("k", data), 2)
        self.assertEqual(metrics.count("s3scanner.parse.errors"), 1)

    def test_empty_object_has_no_records(self):
        metrics = MetricRegistry()
        self.assertEqual(RecordReader(metrics).read("k", b""), 0)
        self.assertEqual(metrics.count("s3scanner.bytes.uncompressed"), 0)


class TestRecordStream(unittest.TestCase):
    """Test incremental decompression across chunk boundaries."""

    def feed_in_chunks(self, stream, data, size):
        for offset in range(0, len(data), size):
            stream.feed(data[offset:offset + size])
        return stream.close()

    def test_lines_split_across_chunks(self):
        metrics = MetricRegistry()
        records = [{"object": 1, "line": i, "pad": "x" * (i % 7)} for i in range(200)]
        data = gzip_lines(records)

        for size in (1, 7, 64):
            stream = RecordReader(metrics).open("k")
            self.assertEqual(self.feed_in_chunks(stream, data, size), 200)

        self.assertEqual(metrics.count("s3scanner.records"), 600)
        self.assertEqual(metrics.count("s3scanner.bytes.uncompressed"), 3 * len(gzip.decompress(data)))
        self.assertEqual(metrics.timer("s3scanner.parsing").count, 3)

    def test_concatenated_gzip_members(self):
        reader = RecordReader(MetricRegistry())
        data = gzip_lines([{"a": 1}, {"a": 2}]) + gzip_lines([{"b": 1}])
        self.assertEqual(self.feed_in_chunks(reader.open("k"), data, 5), 3)

    def test_truncated_stream_raises_on_close(self):
        reader = RecordReader(MetricRegistry())
        data = gzip_lines([{"n": i} for i in range(50)])
        stream = reader.open("k")
        stream.feed(data[:len(data) // 2])
        with self.assertRaises(ObjectReadError):
            stream.close()


class TestScanDriver(unittest.IsolatedAsyncioTestCase):
    """Test the producer/consumer scan pipeline."""

    async def test_three_pages_processed_exactly_once(self):
        storage = FakeStorageSystem(page_size=10)
        populate(storage, 30)
        metrics = MetricRegistry()

        total = await ScanDriver(storage, metrics, "logs/", concurrency=4).run()

        self.assertEqual(total, 30)
        self.assertEqual(storage.list_calls, 3)
        self.assertEqual(len(storage.get_calls), 30)
        self.assertEqual(sorted(storage.get_calls), sorted(storage.objects))
        self.assertEqual(metrics.count("s3scanner.objects"), 30)
        self.assertEqual(metrics.timer("s3scanner.list").count, 3)
        self.assertEqual(metrics.timer("s3scanner.get").count, 30)

    async def test_byte_counters(self):
        storage = FakeStorageSystem()
        populate(storage, 5, records_per_object=3)
        metrics = MetricRegistry()

        total = await ScanDriver(storage, metrics, "logs/", concurrency=2).run()

        self.assertEqual(total, 15)
        compressed = sum(len(data) for data in storage.objects.values())
        uncompressed = sum(len(gzip.decompress(data)) for data in storage.objects.values())
        self.assertEqual(metrics.count("s3scanner.bytes.compressed"), compressed)
        self.assertEqual(metrics.count("s3scanner.bytes.uncompressed"), uncompressed)

    async def test_objects_are_streamed_in_chunks(self):
        storage = FakeStorageSystem(chunk_size=16)
        populate(storage, 4, records_per_object=25)
        metrics = MetricRegistry()

        total = await ScanDriver(storage, metrics, "logs/", concurrency=2).run()

        self.assertEqual(total, 100)
        compressed = sum(len(data) for data in storage.objects.values())
        self.assertEqual(metrics.count("s3scanner.bytes.compressed"), compressed)
        self.assertGreater(storage.chunks_served, len(storage.objects))

    async def test_fetching_overlaps_listing(self):
        storage = FakeStorageSystem(page_size=5, latency=0.01)
        populate(storage, 20)

        await ScanDriver(storage, MetricRegistry(), "logs/", concurrency=4).run()

        first_get = min(i for i, e in enumerate(storage.events) if e[0] == "get_start")
        last_list = max(i for i, e in enumerate(storage.events) if e == ("list_start", 3))
        self.assertLess(first_get, last_list)

    async def test_in_flight_bounded_by_concurrency(self):
        storage = FakeStorageSystem(page_size=50, latency=0.005)
        populate(storage, 40)

        await ScanDriver(storage, MetricRegistry(), "logs/", concurrency=3).run()

        self.assertLessEqual(storage.peak_in_flight, 3)

    async def test_failed_objects_are_skipped(self):
        storage = FakeStorageSystem()
        populate(storage, 10)
        storage.fail_get_keys.add("logs/0003.json.gz")
        storage.objects["logs/0007.json.gz"] = b"not gzip at all"
        metrics = MetricRegistry()
        driver = ScanDriver(storage, metrics, "logs/", concurrency=4)

        with self.assertLogs("s3bench.algorithms.scan_driver", level="ERROR") as logs:
            total = await driver.run()

        self.assertEqual(total, 8)
        self.assertEqual(driver.failed_objects, 2)
        self.assertEqual(driver.scanned_objects, 8)
        self.assertEqual(metrics.count("s3scanner.errors"), 2)
        self.assertTrue(any("logs/0003.json.gz" in line for line in logs.output))

    async def test_empty_listing(self):
        storage = FakeStorageSystem()
        total = await ScanDriver(storage, MetricRegistry(), "logs/", concurrency=2).run()
        self.assertEqual(total, 0)
        self.assertEqual(storage.list_calls, 1)

    async def test_only_prefix_is_scanned(self):
        storage = FakeStorageSystem()
        populate(storage, 4, prefix="logs/")
        populate(storage, 6, prefix="other/")

        total = await ScanDriver(storage, MetricRegistry(), "logs/", concurrency=2).run()

        self.assertEqual(total, 4)
        self.assertTrue(all(key.startswith("logs/") for key in storage.get_calls))

    async def test_listing_failure_propagates_after_queued_work(self):
        storage = FakeStorageSystem(page_size=10, fail_list_on_page=1)
        populate(storage, 25)
        metrics = MetricRegistry()

        with self.assertLogs("s3bench.algorithms.scan_driver", level="ERROR"):
            with self.assertRaises(RuntimeError):
                await ScanDriver(storage, metrics, "logs/", concurrency=4).run()

        # The first page was still fetched and parsed
        self.assertEqual(len(storage.get_calls), 10)
        self.assertEqual(metrics.count("s3scanner.records"), 10)

    async def test_result_counts_only_this_scan(self):
        storage = FakeStorageSystem()
        populate(storage, 6)
        metrics = MetricRegistry()

        first = await ScanDriver(storage, metrics, "logs/", concurrency=2).run()
        second = await ScanDriver(storage, metrics, "logs/", concurrency=2).run()

        self.assertEqual(first, 6)
        self.assertEqual(second, 6)
        self.assertEqual(metrics.count("s3scanner.records"), 12)

    def test_rejects_non_positive_concurrency(self):
        with self.assertRaises(ValueError):
            ScanDriver(FakeStorageSystem(), MetricRegistry(), "logs/", concurrency=0)


if __name__ == '__main__':
    unittest.main()
