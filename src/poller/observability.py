from __future__ import annotations

import json
import threading
import time
from collections import Counter
from typing import Any, Dict, Optional


class Observability:
    def __init__(self, log_interval_sec: int = 60) -> None:
        self._lock = threading.Lock()
        self._counters: Counter[str] = Counter()
        self._gauges: Dict[str, float] = {}
        self._last_log = time.time()
        self._log_interval_sec = max(10, int(log_interval_sec))
        self._last_cycle_ts: Optional[float] = None

    def inc(self, name: str, count: int = 1) -> None:
        if not name:
            return
        with self._lock:
            self._counters[name] += count

    def set_gauge(self, name: str, value: float) -> None:
        if not name:
            return
        with self._lock:
            self._gauges[name] = value

    def counter(self, name: str) -> int:
        with self._lock:
            return self._counters[name]

    def record_fetch_ok(self) -> None:
        self.inc("fetch.ok_total")

    def record_fetch_failed(self) -> None:
        self.inc("fetch.failed_total")

    def record_cycle_ok(self, endpoints: int, duration_sec: float) -> None:
        self.inc("cycles.ok_total")
        self.set_gauge("cycle.endpoints", endpoints)
        self.set_gauge("cycle.duration_ms", round(duration_sec * 1000, 1))
        with self._lock:
            self._last_cycle_ts = time.time()

    def record_cycle_failed(self) -> None:
        self.inc("cycles.failed_total")

    def record_sink_ok(self) -> None:
        self.inc("sink.ok_total")

    def record_sink_failed(self) -> None:
        self.inc("sink.failed_total")

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "counters": dict(self._counters),
                "gauges": dict(self._gauges),
                "last_cycle_ts": self._last_cycle_ts,
            }

    def maybe_log(self, logger) -> None:
        now = time.time()
        if now - self._last_log < self._log_interval_sec:
            return
        self._last_log = now
        payload = self.snapshot()
        payload["event"] = "poller_stats"
        logger.info(json.dumps(payload, separators=(",", ":")))
