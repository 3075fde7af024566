from __future__ import annotations

import json
import sys
import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from poller.config import PollConfig


class FakeMetricsServer(ThreadingHTTPServer):
    allow_reuse_address = True
    daemon_threads = True

    def __init__(self, server_address, handler) -> None:
        super().__init__(server_address, handler)
        self.routes: Dict[str, Tuple[int, bytes, float]] = {}
        self.redirects: Dict[str, str] = {}
        self.requests: List[Dict[str, Any]] = []
        self.posts: List[Any] = []
        self.post_status = 200
        self._lock = threading.Lock()

    def route(
        self,
        path: str,
        payload: Any = None,
        *,
        status: int = 200,
        raw: Optional[str] = None,
        delay: float = 0.0,
    ) -> None:
        body = raw if raw is not None else json.dumps(payload)
        self.routes[path] = (status, body.encode("utf-8"), delay)

    def redirect(self, path: str, location: str) -> None:
        self.redirects[path] = location

    def record(self, entry: Dict[str, Any]) -> None:
        with self._lock:
            self.requests.append(entry)

    @property
    def paths(self) -> List[str]:
        with self._lock:
            return [entry["path"] for entry in self.requests]

    @property
    def port(self) -> int:
        return self.server_address[1]

    @property
    def base_url(self) -> str:
        return f"http://127.0.0.1:{self.port}"


class FakeMetricsHandler(BaseHTTPRequestHandler):
    def do_GET(self) -> None:
        self.server.record(
            {"path": self.path, "authorization": self.headers.get("Authorization")}
        )
        location = self.server.redirects.get(self.path)
        if location is not None:
            self.send_response(302)
            self.send_header("Location", location)
            self.send_header("Content-Length", "0")
            self.end_headers()
            return
        status, body, delay = self.server.routes.get(self.path, (404, b'{"error":"not found"}', 0.0))
        if delay:
            time.sleep(delay)
        self._send(status, body)

    def do_POST(self) -> None:
        length = int(self.headers.get("Content-Length") or 0)
        self.server.posts.append(json.loads(self.rfile.read(length)))
        self._send(self.server.post_status, b"{}")

    def log_message(self, format: str, *args: Any) -> None:
        pass

    def _send(self, status: int, body: bytes) -> None:
        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)


@pytest.fixture
def start_server():
    started = []

    def _start() -> FakeMetricsServer:
        server = FakeMetricsServer(("127.0.0.1", 0), FakeMetricsHandler)
        thread = threading.Thread(target=server.serve_forever, daemon=True)
        thread.start()
        started.append((server, thread))
        return server

    yield _start
    for server, thread in started:
        server.shutdown()
        server.server_close()
        thread.join(timeout=5)


@pytest.fixture
def metrics_server(start_server):
    return start_server()


@pytest.fixture
def make_config(metrics_server):
    def _make(role: str = "agent", **kwargs: Any) -> PollConfig:
        kwargs.setdefault("auth_token", "secret")
        kwargs.setdefault("timeout_sec", 2.0)
        return PollConfig(role=role, host="127.0.0.1", port=metrics_server.port, **kwargs)

    return _make


def node_payload(hostname: str = "node-1", container_id: str = "") -> Dict[str, Any]:
    return {
        "datapoints": [
            {
                "name": "cpu.total",
                "value": 4,
                "unit": "count",
                "timestamp": "2026-10-17T00:00:00Z",
                "tags": {"role": "agent"},
            }
        ],
        "dimensions": {"hostname": hostname, "container_id": container_id},
    }
