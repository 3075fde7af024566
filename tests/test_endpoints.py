from __future__ import annotations

import json
import sys
from pathlib import Path
from types import SimpleNamespace

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from poller.config import PollConfig
from poller.endpoints import container_path, resolve_endpoints
from poller.errors import ConfigurationError, DecodeError, TransportError
from poller.models import CONTAINERS_PATH, NODE_PATH


class RecordingDiscovery:
    def __init__(self, payload=None, error=None, raw=None) -> None:
        self.text = raw if raw is not None else json.dumps(payload)
        self.error = error
        self.calls = []

    def __call__(self, path):
        self.calls.append(path)
        if self.error is not None:
            raise self.error
        return self.text


def test_master_resolves_node_path_without_discovery() -> None:
    discovery = RecordingDiscovery(error=AssertionError("discovery must not run"))
    config = PollConfig(role="master", auth_token="t")

    assert resolve_endpoints(config, discovery) == [NODE_PATH]
    assert discovery.calls == []


@pytest.mark.parametrize("role", ["agent", "agent-public"])
def test_agent_roles_expand_discovered_containers_in_order(role) -> None:
    discovery = RecordingDiscovery(payload=["c1", "c2"])
    config = PollConfig(role=role, auth_token="t")

    endpoints = resolve_endpoints(config, discovery)

    assert endpoints == [
        NODE_PATH,
        "/system/v1/metrics/v0/containers/c1",
        "/system/v1/metrics/v0/containers/c2",
    ]
    assert discovery.calls == [CONTAINERS_PATH]


def test_discovery_failure_returns_no_partial_list() -> None:
    discovery = RecordingDiscovery(error=TransportError("connection refused", path=CONTAINERS_PATH))
    config = PollConfig(role="agent", auth_token="t")

    with pytest.raises(TransportError):
        resolve_endpoints(config, discovery)


def test_unknown_role_fails_without_network_calls() -> None:
    discovery = RecordingDiscovery(payload=["c1"])

    with pytest.raises(ConfigurationError):
        resolve_endpoints(SimpleNamespace(role="worker"), discovery)
    assert discovery.calls == []


def test_null_container_list_means_no_containers() -> None:
    config = PollConfig(role="agent", auth_token="t")
    assert resolve_endpoints(config, RecordingDiscovery(payload=None)) == [NODE_PATH]
    assert resolve_endpoints(config, RecordingDiscovery(payload=[])) == [NODE_PATH]


@pytest.mark.parametrize("raw", ['{"containers":["c1"]}', '["c1",2]', '"c1"', "[c1]"])
def test_unexpected_container_list_is_a_decode_error(raw) -> None:
    config = PollConfig(role="agent", auth_token="t")
    with pytest.raises(DecodeError) as excinfo:
        resolve_endpoints(config, RecordingDiscovery(raw=raw))
    assert excinfo.value.body == raw
    assert excinfo.value.path == CONTAINERS_PATH


def test_discovery_against_metrics_service(metrics_server, make_config) -> None:
    metrics_server.route(CONTAINERS_PATH, ["abc-123"])
    config = make_config(role="agent")

    endpoints = resolve_endpoints(config)

    assert endpoints == [NODE_PATH, container_path("abc-123")]
    assert metrics_server.requests == [{"path": CONTAINERS_PATH, "authorization": "token=secret"}]


def test_unexpected_discovery_body_is_reported_verbatim(metrics_server, make_config) -> None:
    metrics_server.route(CONTAINERS_PATH, raw='{"containers":["c1"]}')
    config = make_config(role="agent")

    with pytest.raises(DecodeError) as excinfo:
        resolve_endpoints(config)
    assert excinfo.value.body == '{"containers":["c1"]}'


def test_endpoints_are_rebuilt_on_every_call(metrics_server, make_config) -> None:
    config = make_config(role="agent")
    metrics_server.route(CONTAINERS_PATH, ["c1", "c2"])
    first = resolve_endpoints(config)
    metrics_server.route(CONTAINERS_PATH, ["c3"])
    second = resolve_endpoints(config)

    assert first == [NODE_PATH, container_path("c1"), container_path("c2")]
    assert second == [NODE_PATH, container_path("c3")]
