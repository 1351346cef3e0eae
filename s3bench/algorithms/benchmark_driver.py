"""
Write-then-read benchmark over increasing payload sizes and concurrency levels.

Each round runs at a fixed concurrency: every payload tier is written
and drained before the next tier starts, then every key written in the
round is read back and drained before the round is reported.
"""

import os
import sys
import time
import uuid
import logging
from typing import Any, Callable, Dict, List, Optional

from s3bench.common.admission_gate import AdmissionGate
from s3bench.common.errors import FatalWriteError
from s3bench.common.key_set import KeySet
from s3bench.common.metrics_utils import (
    calculate_mean,
    calculate_rate,
    elapsed_ms,
    format_rate,
)
from s3bench.configuration import (
    BYTES_PER_KIB,
    CONCURRENCY_STEP,
    DEFAULT_BENCHMARK_MULTIPLIER,
    DEFAULT_ROUNDS,
    DEFAULT_WRITES,
    PAYLOAD_TIER_COUNT,
    PAYLOAD_TIER_STEP_KIB,
)
from s3bench.observability.registry import MetricRegistry

logger = logging.getLogger(__name__)


def payload_tiers() -> List[int]:
    """Payload sizes in bytes for one round: 0, 10 KiB, 20 KiB ... 90 KiB."""
    step = PAYLOAD_TIER_STEP_KIB * BYTES_PER_KIB
    return [tier * step for tier in range(PAYLOAD_TIER_COUNT)]


def generate_key() -> str:
    """Random object key with the UUID reversed.

    Reversing puts the random digits first so consecutive writes land in
    different key-prefix partitions of the store.
    """
    return str(uuid.uuid4())[::-1]


class BenchmarkDriver:
    """Runs write/read rounds against a storage system built per concurrency level."""

    def __init__(
        self,
        storage_factory: Callable[[int], Any],
        metrics: MetricRegistry,
        multiplier: int = DEFAULT_BENCHMARK_MULTIPLIER,
        rounds: int = DEFAULT_ROUNDS,
        writes: int = DEFAULT_WRITES,
        cpu_count: int = None,
        concurrency_step: int = CONCURRENCY_STEP,
        tier_sizes: List[int] = None,
        out=None,
    ):
        """Initialize the driver.

        Args:
            storage_factory: Callable taking a concurrency level and returning an
                async context manager that yields a storage system
            metrics: Registry for latency timers, byte counters and gauges
            multiplier: Base concurrency per available CPU
            rounds: Number of rounds, each at a higher concurrency
            writes: Writes per payload tier
            cpu_count: Available parallelism (default: os.cpu_count())
            concurrency_step: Concurrency added per round
            tier_sizes: Payload sizes in bytes (default: payload_tiers())
            out: Stream for progress lines (default: sys.stdout)
        """
        if writes < 0 or rounds < 0:
            raise ValueError("writes and rounds must not be negative")

        self.storage_factory = storage_factory
        self.metrics = metrics
        self.multiplier = multiplier
        self.rounds = rounds
        self.writes = writes
        self.cpu_count = cpu_count or os.cpu_count() or 1
        self.concurrency_step = concurrency_step
        self.tier_sizes = list(tier_sizes) if tier_sizes is not None else payload_tiers()
        self.out = out

        self.put_latency = metrics.timer("s3benchmark.put.latency", "Put latency in seconds")
        self.get_latency = metrics.timer("s3benchmark.get.latency", "Get latency in seconds")
        self.put_bytes = metrics.counter("s3benchmark.put.bytes", "Bytes written")
        self.get_bytes = metrics.counter("s3benchmark.get.bytes", "Bytes read")
        self.get_errors = metrics.counter("s3benchmark.get.errors", "Failed reads")
        self.concurrency_gauge = metrics.gauge("s3benchmark.concurrency", "Concurrency of the current round")
        self.size_gauge = metrics.gauge("s3benchmark.put.size", "Payload size of the current tier")

        # Per-round state
        self._gate: Optional[AdmissionGate] = None
        self._fatal: Optional[FatalWriteError] = None

        logger.info(
            f"Initialized benchmark: {self.rounds} rounds, {self.writes} writes per tier, "
            f"{len(self.tier_sizes)} tiers, base concurrency "
            f"{self.concurrency_for_round(0)} (+{self.concurrency_step}/round)"
        )

    def concurrency_for_round(self, round_index: int) -> int:
        return self.cpu_count * self.multiplier + round_index * self.concurrency_step

    def _report(self, line: str) -> None:
        print(line, file=self.out or sys.stdout, flush=True)

    async def run(self) -> List[Dict[str, Any]]:
        """Execute every round.

        Raises:
            FatalWriteError: a put failed; remaining rounds are not run
        """
        results = []
        for round_index in range(self.rounds):
            results.append(await self.run_round(round_index))
        return results

    async def run_round(self, round_index: int) -> Dict[str, Any]:
        """Write every tier and read every written key back at one concurrency level."""
        concurrency = self.concurrency_for_round(round_index)
        self.concurrency_gauge.set(concurrency)

        self._gate = AdmissionGate(concurrency)
        self._fatal = None
        keys = KeySet()

        logger.info(f"=== Round {round_index + 1}/{self.rounds}: concurrency {concurrency} ===")

        async with self.storage_factory(concurrency) as storage:
            tiers = []
            for size in self.tier_sizes:
                tiers.append(await self.write_tier(storage, keys, size))
            read = await self.read_all(storage, keys)

        return {
            "round": round_index,
            "concurrency": concurrency,
            "tiers": tiers,
            "read": read,
        }

    async def write_tier(self, storage, keys: KeySet, size: int) -> Dict[str, Any]:
        """Write ``self.writes`` random payloads of ``size`` bytes, then drain."""
        gate = self._gate
        self.size_gauge.set(size)

        start = time.monotonic()
        for _ in range(self.writes):
            await gate.acquire()
            # A put may have failed while this submission waited for its permit
            if self._fatal is not None:
                gate.release()
                break
            gate.schedule(self._put, storage, keys, generate_key(), os.urandom(size))
        await gate.drain()

        if self._fatal is not None:
            raise self._fatal

        elapsed = elapsed_ms(start, time.monotonic())
        rate = calculate_rate(self.writes, elapsed)
        self._report(
            f"concurrency: {gate.max_permits()} doing {self.writes} writes of {size} bytes "
            f"in {elapsed} ms: {format_rate(rate, 'w/s')}"
        )
        return {
            "concurrency": gate.max_permits(),
            "size": size,
            "writes": self.writes,
            "elapsed_ms": elapsed,
            "rate": rate,
        }

    async def _put(self, storage, keys: KeySet, key: str, payload: bytes) -> None:
        span = self.put_latency.time()
        try:
            await storage.put_object(key, payload)
        except Exception as e:
            logger.error(f"Write failed for {key}: {e}")
            self._abort(FatalWriteError(key, e))
            return
        finally:
            span.stop()

        keys.add(key)
        self.put_bytes.inc(len(payload))

    def _abort(self, error: FatalWriteError) -> None:
        if self._fatal is not None:
            return
        self._fatal = error
        self._gate.cancel_outstanding()

    async def read_all(self, storage, keys: KeySet) -> Dict[str, Any]:
        """Read back every key of the round, then drain."""
        gate = self._gate
        key_list = keys.snapshot()
        tally = {"objects": 0, "bytes": 0, "errors": 0}

        start = time.monotonic()
        for key in key_list:
            await gate.submit(self._get, storage, key, tally)
        await gate.drain()

        elapsed = elapsed_ms(start, time.monotonic())
        rate = calculate_rate(len(key_list), elapsed)
        mean_bytes = calculate_mean(tally["bytes"], len(key_list))
        mean_text = "n/a" if mean_bytes is None else f"{mean_bytes:.0f}"
        self._report(
            f"concurrency: {gate.max_permits()} doing {len(key_list)} reads of {mean_text} bytes "
            f"in {elapsed} ms: {format_rate(rate, 'r/s')}"
        )
        if tally["errors"]:
            logger.warning(f"{tally['errors']} of {len(key_list)} reads failed")

        return {
            "concurrency": gate.max_permits(),
            "keys": len(key_list),
            "objects": tally["objects"],
            "bytes": tally["bytes"],
            "errors": tally["errors"],
            "elapsed_ms": elapsed,
            "rate": rate,
            "mean_bytes": mean_bytes,
        }

    async def _get(self, storage, key: str, tally: Dict[str, int]) -> None:
        span = self.get_latency.time()
        try:
            data = await storage.get_object(key)
        except Exception as e:
            logger.error(f"Read failed for {key}: {e}")
            tally["errors"] += 1
            self.get_errors.inc()
            return
        finally:
            span.stop()

        tally["objects"] += 1
        tally["bytes"] += len(data)
        self.get_bytes.inc(len(data))
