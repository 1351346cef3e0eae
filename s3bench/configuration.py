"""
Configuration constants for the object store benchmark and scanner.

This module contains all configuration parameters including:
- Cloud credentials and endpoints
- Object store client tuning (timeouts, retries)
- Benchmark round and tier layout
- Metrics reporting targets and intervals
- File size constants and conversion factors
"""

import os

# =============================================================================
# CLOUD STORAGE CONFIGURATION
# =============================================================================

# Optional endpoint for S3-compatible stores (R2, MinIO); empty means AWS
S3_ENDPOINT: str = os.getenv("S3_ENDPOINT", "")
AWS_ACCESS_KEY_ID: str = os.getenv("AWS_ACCESS_KEY_ID", "")
AWS_SECRET_ACCESS_KEY: str = os.getenv("AWS_SECRET_ACCESS_KEY", "")
AWS_REGION: str = os.getenv("AWS_REGION", "us-west-2")

# =============================================================================
# OBJECT STORE CLIENT
# =============================================================================

CONNECT_TIMEOUT_SECONDS: int = 1
READ_TIMEOUT_SECONDS: int = 10
MAX_ERROR_RETRIES: int = 5
CONNECTION_CHECK_INTERVAL: int = 1000  # Log established connections every N requests
STREAM_CHUNK_SIZE: int = 64 * 1024  # Bytes per chunk when streaming object bodies

# =============================================================================
# BENCHMARK CONFIGURATION
# =============================================================================

DEFAULT_BENCHMARK_MULTIPLIER: int = 10
DEFAULT_ROUNDS: int = 10
DEFAULT_WRITES: int = 100
CONCURRENCY_STEP: int = 5  # Added to the base concurrency on every round

# Payload tiers: 0, 10 KiB, 20 KiB ... 90 KiB
PAYLOAD_TIER_COUNT: int = 10
PAYLOAD_TIER_STEP_KIB: int = 10

# =============================================================================
# SCANNER CONFIGURATION
# =============================================================================

DEFAULT_SCANNER_MULTIPLIER: int = 60
SCANNER_TEXT_ENCODING: str = "utf-8"
DEFAULT_SCANNER_REGION: str = "us-west-2"

# =============================================================================
# METRICS REPORTING
# =============================================================================

# Pushgateway target; reporting is disabled when METRICS_HOST is empty
METRICS_HOST: str = os.getenv("METRICS_HOST", "")
METRICS_PORT: int = int(os.getenv("METRICS_PORT", "9091"))

BENCHMARK_SERVICE_NAME: str = "s3benchmark"
SCANNER_SERVICE_NAME: str = "s3scanner"
BENCHMARK_REPORT_INTERVAL_SECONDS: float = 60.0
SCANNER_REPORT_INTERVAL_SECONDS: float = 5.0
PUSH_TIMEOUT_SECONDS: float = 10.0

# =============================================================================
# FILE SIZE CONSTANTS
# =============================================================================

BYTES_PER_KIB: int = 1024
MS_PER_SECOND: int = 1000
