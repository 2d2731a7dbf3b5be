# =============================================
# File: shopassist/utils/metrics.py
# Purpose: In-process counters, turn histograms and endpoint latency for /metrics
# =============================================
from __future__ import annotations
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Callable
import threading
import time

TURN_BUCKETS_MS: List[int] = [50, 100, 200, 500, 1000, 2000, 5000, 10000]
MAX_SAMPLES = 1000


class _Histogram:
    """Fixed upper-bound buckets plus one overflow slot."""

    def __init__(self, bounds: List[int]):
        self.bounds = list(bounds)
        self.counts = [0] * (len(self.bounds) + 1)

    def observe(self, value: float) -> None:
        for i, bound in enumerate(self.bounds):
            if value <= bound:
                self.counts[i] += 1
                return
        self.counts[-1] += 1

    def clear(self) -> None:
        self.counts = [0] * (len(self.bounds) + 1)

    def as_dict(self) -> Dict[str, Any]:
        return {"buckets": self.bounds + ["+Inf"], "counts": list(self.counts)}


_lock = threading.Lock()
_counters: Dict[str, int] = {"requests_total": 0, "turns_total": 0, "server_errors_total": 0}
_intents: Dict[str, int] = {}
_outcomes: Dict[str, int] = {}
_status_classes: Dict[str, int] = {}     # "2xx" / "4xx" / "5xx"
_turn_latency = _Histogram(TURN_BUCKETS_MS)
_endpoint_samples: Dict[str, List[float]] = {}   # "METHOD /path" -> bounded ms samples
_endpoint_counts: Dict[str, int] = {}


def _bump(table: Dict[str, int], key: str) -> None:
    table[key] = table.get(key, 0) + 1


def _p95(values: List[float]) -> float:
    if not values:
        return 0.0
    xs = sorted(values)
    return xs[int(0.95 * (len(xs) - 1))]


@contextmanager
def timer() -> Iterator[Callable[[], int]]:
    """Yields a callable returning elapsed milliseconds since entry."""
    t0 = time.perf_counter()
    yield lambda: int((time.perf_counter() - t0) * 1000)


def record_turn(latency_ms: int, intent: str, outcome: str) -> None:
    with _lock:
        _counters["turns_total"] += 1
        _bump(_intents, intent)
        _bump(_outcomes, outcome)
        _turn_latency.observe(int(latency_ms))


def record_endpoint(method: str, path: str, latency_ms: float, status: int = 200) -> None:
    key = f"{method.upper()} {path}"
    with _lock:
        _counters["requests_total"] += 1
        if status >= 500:
            _counters["server_errors_total"] += 1
        _bump(_status_classes, f"{status // 100}xx")
        _bump(_endpoint_counts, key)
        samples = _endpoint_samples.setdefault(key, [])
        samples.append(float(latency_ms))
        if len(samples) > MAX_SAMPLES:
            del samples[: len(samples) - MAX_SAMPLES]


def snapshot() -> Dict[str, Any]:
    with _lock:
        endpoints = {
            key: {
                "count": float(_endpoint_counts.get(key, 0)),
                "avg_latency_ms": sum(buf) / len(buf) if buf else 0.0,
                "p95_latency_ms": _p95(buf),
            }
            for key, buf in _endpoint_samples.items()
        }
        return {
            "counters": dict(_counters),
            "intents": dict(_intents),
            "outcomes": dict(_outcomes),
            "status_classes": dict(_status_classes),
            "turn_latency_ms": _turn_latency.as_dict(),
            "performance": {"endpoints": endpoints, "generated_at": time.time()},
        }


def reset() -> None:
    with _lock:
        for k in _counters:
            _counters[k] = 0
        for table in (_intents, _outcomes, _status_classes, _endpoint_counts):
            table.clear()
        _endpoint_samples.clear()
        _turn_latency.clear()
