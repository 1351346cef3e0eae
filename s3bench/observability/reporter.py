"""
Periodic push of the metric registry to a Prometheus Pushgateway.
"""

import socket
import logging
import threading
from typing import Optional

from prometheus_client import push_to_gateway

from s3bench.configuration import PUSH_TIMEOUT_SECONDS
from s3bench.observability.registry import MetricRegistry

logger = logging.getLogger(__name__)


class PushReporter:
    """Pushes all registered metrics on a fixed interval from a daemon thread."""

    def __init__(
        self,
        metrics: MetricRegistry,
        host: str,
        port: int,
        service: str,
        interval_seconds: float,
        source: str = None,
    ):
        """Initialize the reporter.

        Args:
            metrics: Registry whose metrics are pushed
            host: Pushgateway hostname
            port: Pushgateway port
            service: Service tag, used as the Pushgateway job name
            interval_seconds: Seconds between pushes
            source: Source tag (default: local hostname)
        """
        self.metrics = metrics
        self.gateway = f"{host}:{port}"
        self.service = service
        self.interval_seconds = interval_seconds
        self.source = source or socket.gethostname()

        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.push_count = 0
        self.failure_count = 0

        logger.info(
            f"Initialized metrics reporter: {self.gateway} service={service} "
            f"source={self.source} every {interval_seconds}s"
        )

    def start(self) -> None:
        """Start pushing in the background."""
        if self._thread is not None and self._thread.is_alive():
            logger.warning("Metrics reporter already running")
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run, name=f"{self.service}-metrics", daemon=True
        )
        self._thread.start()

    def _run(self) -> None:
        while not self._stop_event.wait(self.interval_seconds):
            self.flush()

    def flush(self) -> bool:
        """Push the current state of the registry once.

        Returns:
            True if the push succeeded
        """
        try:
            push_to_gateway(
                self.gateway,
                job=self.service,
                registry=self.metrics.registry,
                grouping_key={"source": self.source, "service": self.service},
                timeout=PUSH_TIMEOUT_SECONDS,
            )
            self.push_count += 1
            return True
        except Exception as e:
            self.failure_count += 1
            logger.warning(f"Failed to push metrics to {self.gateway}: {e}")
            return False

    def stop(self) -> None:
        """Stop the background thread and push one final time."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=self.interval_seconds + PUSH_TIMEOUT_SECONDS)
            self._thread = None
        self.flush()

    def __enter__(self) -> "PushReporter":
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.stop()


def create_reporter(
    metrics: MetricRegistry,
    host: str,
    port: int,
    service: str,
    interval_seconds: float,
) -> Optional[PushReporter]:
    """Build a reporter, or None when no metrics host is configured."""
    if not host:
        logger.info("No metrics host configured, metrics reporting disabled")
        return None
    return PushReporter(metrics, host, port, service, interval_seconds)
