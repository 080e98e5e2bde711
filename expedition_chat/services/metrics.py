"""CloudWatch custom metrics for the chat agent.

Three families of data points are published under the ``CuratedAscents``
namespace:

* ``Dependency/*`` - one call to DeepSeek or one tool execution
  (count by status, latency by operation, errors by exception type)
* ``Chat/TurnCount`` and ``Chat/TurnLatency`` - one finished chat turn
  per channel, split by outcome
* ``Chat/ToolRounds`` - how many tool rounds a turn needed

Points are buffered in memory and pushed by a daemon thread every
``METRICS_FLUSH_INTERVAL`` seconds.  Unless ``METRICS_ENABLED=true`` the
buffer is only logged at DEBUG level and then dropped.

Usage
-----
>>> from expedition_chat.services.metrics import metrics
>>> metrics.record_success("deepseek", "chat_completion", latency_ms=812.0)
>>> metrics.record_failure("tools", "search_rates", error_type="KeyError")
>>> metrics.record_turn("whatsapp", success=True, tool_rounds=2, latency_ms=2400.0)
"""

from __future__ import annotations

import atexit
import logging
import os
import threading
import time
from datetime import UTC, datetime
from typing import Any

logger = logging.getLogger(__name__)

NAMESPACE = "CuratedAscents"
DEFAULT_FLUSH_INTERVAL_SECONDS = 60
MAX_BATCH_SIZE = 1_000  # PutMetricData limit


def _dims(**pairs: str) -> list[dict[str, str]]:
    return [{"Name": name, "Value": value} for name, value in pairs.items()]


class MetricsClient:
    """Batched CloudWatch metrics publisher."""

    def __init__(self) -> None:
        self._enabled = os.getenv("METRICS_ENABLED", "false").lower() == "true"
        self._interval = int(
            os.getenv("METRICS_FLUSH_INTERVAL", str(DEFAULT_FLUSH_INTERVAL_SECONDS))
        )
        self._buffer: list[dict[str, Any]] = []
        self._lock = threading.Lock()
        self._cw_client = None

        if self._enabled:
            self._start_flush_thread()

    @property
    def enabled(self) -> bool:
        return self._enabled

    def _get_cw_client(self):
        """Create the boto3 CloudWatch client on first use."""
        if self._cw_client is None:
            import boto3

            self._cw_client = boto3.client("cloudwatch")
        return self._cw_client

    # ── Dependency calls ─────────────────────────────────────────────

    def record_success(self, service: str, operation: str, latency_ms: float) -> None:
        """Record a successful model call or tool execution."""
        now = datetime.now(UTC)
        self._point("Dependency/RequestCount", _dims(Service=service, Status="success"), 1, "Count", now)
        self._point(
            "Dependency/Latency", _dims(Service=service, Operation=operation),
            latency_ms, "Milliseconds", now,
        )
        logger.debug("Metric: %s %s success latency=%.1fms", service, operation, latency_ms)

    def record_failure(
        self,
        service: str,
        operation: str,
        error_type: str,
        latency_ms: float = 0,
    ) -> None:
        """Record a failed model call or tool execution."""
        now = datetime.now(UTC)
        self._point("Dependency/RequestCount", _dims(Service=service, Status="failure"), 1, "Count", now)
        self._point("Dependency/ErrorCount", _dims(Service=service, ErrorType=error_type), 1, "Count", now)
        if latency_ms > 0:
            self._point(
                "Dependency/Latency", _dims(Service=service, Operation=operation),
                latency_ms, "Milliseconds", now,
            )
        logger.debug(
            "Metric: %s %s failure error=%s latency=%.1fms",
            service, operation, error_type, latency_ms,
        )

    # ── Chat turns ───────────────────────────────────────────────────

    def record_turn(
        self,
        source: str,
        success: bool,
        tool_rounds: int = 0,
        latency_ms: float = 0,
    ) -> None:
        """Record one finished chat turn for *source* (web or whatsapp)."""
        now = datetime.now(UTC)
        outcome = "success" if success else "failure"
        self._point("Chat/TurnCount", _dims(Channel=source, Status=outcome), 1, "Count", now)
        self._point("Chat/ToolRounds", _dims(Channel=source), tool_rounds, "Count", now)
        if latency_ms > 0:
            self._point("Chat/TurnLatency", _dims(Channel=source), latency_ms, "Milliseconds", now)
        logger.debug(
            "Metric: turn %s %s rounds=%d latency=%.1fms", source, outcome, tool_rounds, latency_ms,
        )

    # ── Flushing ─────────────────────────────────────────────────────

    def pending(self) -> int:
        with self._lock:
            return len(self._buffer)

    def flush(self) -> int:
        """Send buffered points to CloudWatch.  Returns count sent."""
        with self._lock:
            if not self._buffer:
                return 0
            batch = self._buffer[:]
            self._buffer.clear()

        if not self._enabled:
            logger.debug("Metrics flush skipped (not enabled): %d points", len(batch))
            return 0

        sent = 0
        try:
            cw = self._get_cw_client()
            for i in range(0, len(batch), MAX_BATCH_SIZE):
                chunk = batch[i : i + MAX_BATCH_SIZE]
                cw.put_metric_data(Namespace=NAMESPACE, MetricData=chunk)
                sent += len(chunk)
            logger.info("Flushed %d metrics to CloudWatch", sent)
        except Exception:
            logger.exception("Failed to flush metrics to CloudWatch")
        return sent

    def _point(
        self,
        name: str,
        dimensions: list[dict[str, str]],
        value: float,
        unit: str,
        timestamp: datetime,
    ) -> None:
        datum = {
            "MetricName": name,
            "Dimensions": dimensions,
            "Timestamp": timestamp,
            "Value": value,
            "Unit": unit,
        }
        with self._lock:
            self._buffer.append(datum)

    def _start_flush_thread(self) -> None:
        def _loop():
            while True:
                time.sleep(self._interval)
                try:
                    self.flush()
                except Exception:
                    logger.exception("Metrics flush thread error")

        threading.Thread(target=_loop, daemon=True, name="metrics-flush").start()
        atexit.register(self.flush)
        logger.info("Metrics flush thread started (interval=%ds)", self._interval)


metrics = MetricsClient()
