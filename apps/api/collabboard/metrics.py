from __future__ import annotations

from collections import Counter, deque
from threading import Lock
from time import monotonic
from typing import NamedTuple


class _Sample(NamedTuple):
  at: float
  status_code: int
  latency_ms: float


class RuntimeMetrics:
  """
  In-process counters behind ``/health`` and ``/metrics/runtime``.

  HTTP requests are kept in a rolling window; realtime fan-out counters are
  totals since start.
  """

  def __init__(self, window_seconds: float = 15 * 60) -> None:
    self._started = monotonic()
    self._window = window_seconds
    self._lock = Lock()
    self._requests: deque[_Sample] = deque()
    self._published: Counter[str] = Counter()
    self._deliveries = 0
    self._send_failures = 0

  def uptime_seconds(self) -> int:
    return max(0, int(monotonic() - self._started))

  def observe_request(self, status_code: int, latency_ms: float) -> None:
    now = monotonic()
    with self._lock:
      self._requests.append(_Sample(now, status_code, latency_ms))
      self._prune(now)

  def observe_publish(self, kind: str, *, delivered: int, failed: int = 0) -> None:
    with self._lock:
      self._published[kind] += 1
      self._deliveries += delivered
      self._send_failures += failed

  def _prune(self, now: float) -> None:
    while self._requests and now - self._requests[0].at > self._window:
      self._requests.popleft()

  def snapshot(self) -> dict:
    with self._lock:
      self._prune(monotonic())
      samples = list(self._requests)
      published = dict(self._published)
      deliveries, failures = self._deliveries, self._send_failures

    errors = sum(1 for s in samples if s.status_code >= 500)
    latencies = sorted(s.latency_ms for s in samples)
    p95 = latencies[max(0, int(len(latencies) * 0.95) - 1)] if latencies else 0.0
    return {
      "uptimeSeconds": self.uptime_seconds(),
      "requestCount": len(samples),
      "errorCount": errors,
      "errorRate": round(errors * 100 / len(samples), 2) if samples else 0.0,
      "p95LatencyMs": round(p95, 2),
      "realtime": {
        "published": published,
        "deliveries": deliveries,
        "sendFailures": failures,
      },
    }


runtime_metrics = RuntimeMetrics()
