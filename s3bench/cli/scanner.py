"""
Count JSON records in gzip-compressed newline-delimited objects under a prefix.

Usage:
  s3scanner --bucket my-bucket --path logs/2024/ --region us-west-2
  python -m s3bench.cli.scanner -b my-bucket -p logs/ -m 60
"""

import os
import sys
import logging
import argparse

import uvloop

from s3bench.algorithms.scan_driver import ScanDriver
from s3bench.common.storage_factory import create_storage_system
from s3bench.configuration import (
    DEFAULT_SCANNER_MULTIPLIER,
    DEFAULT_SCANNER_REGION,
    METRICS_HOST,
    METRICS_PORT,
    S3_ENDPOINT,
    SCANNER_REPORT_INTERVAL_SECONDS,
    SCANNER_SERVICE_NAME,
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
    """Create the scanner argument parser."""
    parser = argparse.ArgumentParser(
        prog="s3scanner",
        description="Count records in gzip-compressed NDJSON objects under a bucket path",
    )
    parser.add_argument(
        "-m", "--multiplier", type=int, default=DEFAULT_SCANNER_MULTIPLIER,
        help=f"Concurrency per available processor (default: {DEFAULT_SCANNER_MULTIPLIER})",
    )
    parser.add_argument("-b", "--bucket", required=True, help="Bucket name")
    parser.add_argument("-p", "--path", required=True, help="Key prefix to scan")
    parser.add_argument(
        "-r", "--region", default=DEFAULT_SCANNER_REGION,
        help=f"Bucket region (default: {DEFAULT_SCANNER_REGION})",
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


def scanner_concurrency(multiplier: int) -> int:
    return max(1, (os.cpu_count() or 1) * multiplier)


async def main_async(args, metrics: MetricRegistry) -> int:
    """Scan the prefix and print the record count; returns the process exit status."""
    concurrency = scanner_concurrency(args.multiplier)
    storage = create_storage_system(
        args.bucket, concurrency, region=args.region, endpoint=args.endpoint
    )

    async with storage:
        if not await storage.verify_connection():
            return 1

        print("Reading S3 objects...", flush=True)
        driver = ScanDriver(storage, metrics, args.path, concurrency)
        total = await driver.run()

    print(total, flush=True)
    return 0


def main(argv=None):
    """Main entry point for the scanner."""
    args = create_parser().parse_args(argv)

    metrics = MetricRegistry(process_metrics=True)
    reporter = create_reporter(
        metrics,
        args.metrics_host,
        args.metrics_port,
        SCANNER_SERVICE_NAME,
        SCANNER_REPORT_INTERVAL_SECONDS,
    )
    if reporter:
        reporter.start()

    try:
        exit_code = uvloop.run(main_async(args, metrics))
    except KeyboardInterrupt:
        logger.info("Scan interrupted by user")
        exit_code = 1
    except Exception as e:
        logger.error(f"Scan failed: {e}")
        exit_code = 1
    finally:
        if reporter:
            reporter.stop()

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
