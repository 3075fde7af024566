from __future__ import annotations

import json
import logging
import urllib.error
import urllib.request
from pathlib import Path
from typing import Callable, List

from .config import SinkConfig
from .errors import SinkError
from .models import MetricsMessage

logger = logging.getLogger(__name__)

Batch = List[MetricsMessage]
Sink = Callable[[Batch], None]


class LogSink:
    def __call__(self, batch: Batch) -> None:
        for message in batch:
            logger.info(
                json.dumps(
                    {
                        "event": "metrics_message",
                        "hostname": message.dimensions.hostname,
                        "container_id": message.container_id,
                        "datapoints": len(message.datapoints),
                    },
                    separators=(",", ":"),
                )
            )


class JsonlSink:
    def __init__(self, path: Path) -> None:
        self._path = Path(path)

    def __call__(self, batch: Batch) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        lines = [json.dumps(message.to_dict(), ensure_ascii=False) for message in batch]
        with self._path.open("a", encoding="utf-8") as handle:
            for line in lines:
                handle.write(line + "\n")


class HttpSink:
    def __init__(self, url: str, timeout_sec: float = 5.0) -> None:
        self._url = url
        self._timeout_sec = timeout_sec
        self._opener = urllib.request.build_opener(urllib.request.ProxyHandler({}))

    def __call__(self, batch: Batch) -> None:
        data = json.dumps([message.to_dict() for message in batch]).encode("utf-8")
        request = urllib.request.Request(
            self._url,
            data=data,
            headers={"Content-Type": "application/json"},
            method="POST",
        )
        try:
            with self._opener.open(request, timeout=self._timeout_sec) as response:
                status = response.status
        except (urllib.error.URLError, TimeoutError) as exc:
            raise SinkError(f"forwarding batch to {self._url} failed: {exc}", cause=exc) from exc
        if not 200 <= status < 300:
            raise SinkError(f"{self._url} responded with {status}")
        logger.info("forwarded %d messages to %s", len(batch), self._url)


def build_sink(config: SinkConfig) -> Sink:
    if config.type == "jsonl":
        return JsonlSink(config.path)
    if config.type == "http":
        return HttpSink(config.url, timeout_sec=config.timeout_sec)
    return LogSink()
