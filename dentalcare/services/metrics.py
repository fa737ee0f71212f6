"""CloudWatch custom metrics for external calls, batched in the background.

Every model send and every Cal.com request is recorded as a request count,
a latency sample and (on failure) an error count keyed by exception type.

* Data points collect in a lock-protected buffer.
* With ``METRICS_ENABLED=true`` a daemon thread pushes the buffer to
  CloudWatch every ``FLUSH_INTERVAL_SECONDS``; otherwise points are only
  logged at DEBUG and dropped on flush.

Usage
-----
>>> from dentalcare.services.metrics import metrics
>>> with metrics.track("cal", "GET /bookings"):
...     response = http.get(...)
"""

from __future__ import annotations

import atexit
import logging
import os
import threading
import time
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import Any

logger = logging.getLogger(__name__)

NAMESPACE = "DentalCare"
FLUSH_INTERVAL_SECONDS = 60
MAX_BATCH_SIZE = 1_000  # PutMetricData limit

REQUEST_COUNT = "ExternalCall/RequestCount"
LATENCY = "ExternalCall/Latency"
ERROR_COUNT = "ExternalCall/ErrorCount"


def _datum(name: str, value: float, unit: str, **dimensions: str) -> dict[str, Any]:
    return {
        "MetricName": name,
        "Dimensions": [{"Name": k, "Value": v} for k, v in dimensions.items()],
        "Timestamp": datetime.now(UTC),
        "Value": value,
        "Unit": unit,
    }


class MetricsClient:
    """Buffered CloudWatch publisher."""

    def __init__(self) -> None:
        self._enabled = os.getenv("METRICS_ENABLED", "false").lower() == "true"
        self._buffer: list[dict[str, Any]] = []
        self._lock = threading.Lock()
        self._cw_client = None

        if self._enabled:
            self._start_flush_thread()

    def _get_cw_client(self):
        if self._cw_client is None:
            import boto3

            self._cw_client = boto3.client("cloudwatch")
        return self._cw_client

    # ── Recording ─────────────────────────────────────────────────────

    def record_success(self, service: str, operation: str, latency_ms: float) -> None:
        self._extend(
            _datum(REQUEST_COUNT, 1, "Count", Service=service, Status="success"),
            _datum(LATENCY, latency_ms, "Milliseconds", Service=service, Operation=operation),
        )
        logger.debug("Metric: %s %s ok %.1fms", service, operation, latency_ms)

    def record_failure(
        self,
        service: str,
        operation: str,
        error_type: str,
        latency_ms: float = 0,
    ) -> None:
        points = [
            _datum(REQUEST_COUNT, 1, "Count", Service=service, Status="failure"),
            _datum(ERROR_COUNT, 1, "Count", Service=service, ErrorType=error_type),
        ]
        if latency_ms > 0:
            points.append(
                _datum(LATENCY, latency_ms, "Milliseconds", Service=service, Operation=operation)
            )
        self._extend(*points)
        logger.debug(
            "Metric: %s %s failed (%s) %.1fms", service, operation, error_type, latency_ms,
        )

    @contextmanager
    def track(self, service: str, operation: str) -> Iterator[None]:
        """Time the wrapped block and record success, or failure on exception."""
        t0 = time.perf_counter()
        try:
            yield
        except Exception as exc:
            self.record_failure(
                service, operation,
                error_type=type(exc).__name__,
                latency_ms=(time.perf_counter() - t0) * 1000,
            )
            raise
        self.record_success(service, operation, latency_ms=(time.perf_counter() - t0) * 1000)

    # ── Publishing ────────────────────────────────────────────────────

    def flush(self) -> int:
        """Push buffered points to CloudWatch.  Returns the number sent."""
        with self._lock:
            batch, self._buffer = self._buffer, []

        if not batch:
            return 0
        if not self._enabled:
            logger.debug("Dropping %d metric points (metrics disabled)", len(batch))
            return 0

        sent = 0
        try:
            cw = self._get_cw_client()
            for i in range(0, len(batch), MAX_BATCH_SIZE):
                chunk = batch[i : i + MAX_BATCH_SIZE]
                cw.put_metric_data(Namespace=NAMESPACE, MetricData=chunk)
                sent += len(chunk)
            logger.info("Flushed %d metric points to CloudWatch", sent)
        except Exception:
            logger.exception("CloudWatch flush failed")
        return sent

    def _extend(self, *points: dict[str, Any]) -> None:
        with self._lock:
            self._buffer.extend(points)

    def _start_flush_thread(self) -> None:
        def _loop():
            while True:
                time.sleep(FLUSH_INTERVAL_SECONDS)
                try:
                    self.flush()
                except Exception:
                    logger.exception("Metrics flush thread error")

        threading.Thread(target=_loop, daemon=True, name="metrics-flush").start()
        atexit.register(self.flush)
        logger.info("Metrics flush thread started (interval=%ds)", FLUSH_INTERVAL_SECONDS)


metrics = MetricsClient()
