from __future__ import annotations

import logging
import threading
import time
from typing import List, Optional

from .config import PollConfig
from .endpoints import resolve_endpoints
from .errors import ConfigurationError, PollerError, SinkError
from .fetcher import MetricsClient
from .models import MetricsMessage
from .observability import Observability
from .sinks import Sink

logger = logging.getLogger(__name__)


class PollScheduler:
    """Runs resolve, fetch and sink cycles on a fixed interval.

    Every failure is fatal: the cycle is abandoned, its partial batch is
    dropped and the error is raised out of ``run``. The only exception is an
    explicitly configured retry policy (``config.retry.attempts > 0``), which
    re-runs a failed cycle after an exponential backoff. Configuration
    errors are never retried.

    The interval wait is a ``threading.Event`` wait, so ``stop`` ends the loop
    during the wait or between two fetches. A cycle cut short by ``stop`` is
    discarded, never delivered.
    """

    def __init__(
        self,
        config: PollConfig,
        sink: Sink,
        *,
        client: Optional[MetricsClient] = None,
        metrics: Optional[Observability] = None,
        stop_event: Optional[threading.Event] = None,
    ) -> None:
        self._config = config
        self._sink = sink
        self._client = client or MetricsClient.from_config(config)
        self._metrics = metrics or Observability(config.observability.log_interval_sec)
        self._stop_event = stop_event or threading.Event()

    @property
    def metrics(self) -> Observability:
        return self._metrics

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    def stop(self) -> None:
        self._stop_event.set()

    def collect(self) -> Optional[List[MetricsMessage]]:
        if not self._config.auth_token:
            raise ConfigurationError("auth token must be set, use --auth-token <token>")

        logger.info("getting metrics from metrics service")
        endpoints = resolve_endpoints(self._config, self._client.get_text)
        batch: List[MetricsMessage] = []
        for path in endpoints:
            if self._stop_event.is_set():
                logger.info("stop requested, discarding partial cycle")
                return None
            try:
                message = self._client.fetch(path)
            except PollerError:
                self._metrics.record_fetch_failed()
                raise
            self._metrics.record_fetch_ok()
            batch.append(message)
        return batch

    def run_cycle(self) -> Optional[List[MetricsMessage]]:
        started = time.monotonic()
        batch = self.collect()
        if batch is None:
            return None

        try:
            self._sink(batch)
        except SinkError:
            self._metrics.record_sink_failed()
            raise
        except Exception as exc:
            self._metrics.record_sink_failed()
            raise SinkError(f"sink failed: {exc}", cause=exc) from exc
        self._metrics.record_sink_ok()
        self._metrics.record_cycle_ok(len(batch), time.monotonic() - started)
        return batch

    def run(self, max_cycles: Optional[int] = None) -> int:
        """Poll until stopped or ``max_cycles`` is reached; returns completed cycles."""
        interval = self._config.interval
        logger.info(
            "starting poller %s role=%s interval=%ds",
            self._config.name,
            self._config.role,
            interval,
        )
        completed = 0
        while not self._stop_event.is_set():
            batch = self._run_with_retry()
            if batch is None:
                break
            completed += 1
            self._metrics.maybe_log(logger)
            if max_cycles is not None and completed >= max_cycles:
                break
            logger.info("polling complete, sleeping for %d seconds", interval)
            if self._stop_event.wait(interval):
                break
        logger.info("poller stopped after %d cycles", completed)
        return completed

    def _run_with_retry(self) -> Optional[List[MetricsMessage]]:
        retry = self._config.retry
        attempt = 0
        while True:
            try:
                return self.run_cycle()
            except ConfigurationError:
                self._metrics.record_cycle_failed()
                raise
            except PollerError as exc:
                self._metrics.record_cycle_failed()
                if attempt >= retry.attempts:
                    raise
                delay = retry.backoff_sec * (2**attempt)
                attempt += 1
                logger.warning(
                    "cycle failed: %s; retrying in %.1fs (attempt %d/%d)",
                    exc,
                    delay,
                    attempt,
                    retry.attempts,
                )
                if self._stop_event.wait(delay):
                    return None
