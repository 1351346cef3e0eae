"""
Object store write/read benchmark across increasing concurrency levels.

Usage:
  s3benchmark --bucket my-bucket --multiplier 10 --range 10 --writes 100
  python -m s3bench.cli.benchmark -b my-bucket -a ACCESS_KEY -s SECRET_KEY
"""

import sys
import logging
import argparse

import uvloop

from s3bench.algorithms.benchmark_driver import BenchmarkDriver
from s3bench.common.errors import FatalWriteError
from s3bench.common.storage_factory import storage_factory_for
from s3bench.configuration import (
    AWS_REGION,
    BENCHMARK_REPORT_INTERVAL_SECONDS,
    BENCHMARK_SERVICE_NAME,
    DEFAULT_BENCHMARK_MULTIPLIER,
    DEFAULT_ROUNDS,
    DEFAULT_WRITES,
    METRICS_HOST,
    METRICS_PORT,
    S3_ENDPOINT,
)
from s3bench.observability.registry import MetricRegistry
from s3bench.observability.reporter import create_reporter

# Set up logging (only if not already configured)
if not logging.root.handlers:
    logging.basicConfig(
        level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s"
    )
logger = logging.getLogger(__name__)


def create_parser() -> argparse.ArgumentParser:
    """Create the benchmark argument parser."""
    parser = argparse.ArgumentParser(
        prog="s3benchmark",
        description="Write objects of increasing size at increasing concurrency, then read them back",
    )
    parser.add_argument(
        "-m", "--multiplier", type=int, default=DEFAULT_BENCHMARK_MULTIPLIER,
        help=f"Base concurrency per available processor (default: {DEFAULT_BENCHMARK_MULTIPLIER})",
    )
    parser.add_argument(
        "-r", "--range", type=int, default=DEFAULT_ROUNDS,
        help=f"Number of rounds, each adding 5 to the base concurrency (default: {DEFAULT_ROUNDS})",
    )
    parser.add_argument(
        "-w", "--writes", type=int, default=DEFAULT_WRITES,
        help=f"Number of writes per payload size per round (default: {DEFAULT_WRITES})",
    )
    parser.add_argument("-b", "--bucket", required=True, help="Bucket name")
    parser.add_argument("-a", "--access-key", help="Access key (default: AWS_ACCESS_KEY_ID)")
    parser.add_argument("-s", "--secret-key", help="Secret key (default: AWS_SECRET_ACCESS_KEY)")
    parser.add_argument(
        "--region", default=AWS_REGION, help=f"Bucket region (default: {AWS_REGION})"
    )
    parser.add_argument(
        "--endpoint", default=S3_ENDPOINT or None,
        help="Endpoint URL for S3-compatible stores (default: S3_ENDPOINT)",
    )
    parser.add_argument(
        "--metrics-host", default=METRICS_HOST,
        help="Pushgateway host for metrics reporting (default: METRICS_HOST, disabled if empty)",
    )
    parser.add_argument(
        "--metrics-port", type=int, default=METRICS_PORT,
        help=f"Pushgateway port (default: {METRICS_PORT})",
    )
    return parser


async def main_async(args, metrics: MetricRegistry) -> int:
    """Run every benchmark round; returns the process exit status."""
    logger.info("=== Object Store Benchmark ===")

    driver = BenchmarkDriver(
        storage_factory_for(
            args.bucket,
            region=args.region,
            access_key=args.access_key,
            secret_key=args.secret_key,
            endpoint=args.endpoint,
        ),
        metrics,
        multiplier=args.multiplier,
        rounds=args.range,
        writes=args.writes,
    )

    try:
        results = await driver.run()
    except FatalWriteError as e:
        logger.error(f"Aborting benchmark: {e}")
        return 1

    logger.info(f"Benchmark completed: {len(results)} rounds")
    return 0


def main(argv=None):
    """Main entry point for the benchmark."""
    args = create_parser().parse_args(argv)

    metrics = MetricRegistry(process_metrics=True)
    reporter = create_reporter(
        metrics,
        args.metrics_host,
        args.metrics_port,
        BENCHMARK_SERVICE_NAME,
        BENCHMARK_REPORT_INTERVAL_SECONDS,
    )
    if reporter:
        reporter.start()

    try:
        exit_code = uvloop.run(main_async(args, metrics))
    except KeyboardInterrupt:
        logger.info("Benchmark interrupted by user")
        exit_code = 1
    except Exception as e:
        logger.error(f"Benchmark failed: {e}")
        exit_code = 1
    finally:
        if reporter:
            reporter.stop()

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
