from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

ROLE_MASTER = "master"
ROLE_AGENT = "agent"
ROLE_AGENT_PUBLIC = "agent-public"
VALID_ROLES = {ROLE_MASTER, ROLE_AGENT, ROLE_AGENT_PUBLIC}

NODE_PATH = "/system/v1/metrics/v0/node"
CONTAINERS_PATH = "/system/v1/metrics/v0/containers"


@dataclass
class Datapoint:
    name: str = ""
    value: Any = None
    unit: str = ""
    timestamp: str = ""
    tags: Dict[str, str] = field(default_factory=dict)


@dataclass
class Dimensions:
    mesos_id: str = ""
    cluster_id: str = ""
    container_id: str = ""
    executor_id: str = ""
    framework_name: str = ""
    framework_id: str = ""
    framework_role: str = ""
    framework_principal: str = ""
    task_name: str = ""
    task_id: str = ""
    hostname: str = ""
    labels: Dict[str, str] = field(default_factory=dict)


@dataclass
class MetricsMessage:
    """One decoded payload from a metrics endpoint.

    The typed views are convenience accessors for sinks; ``raw`` keeps the
    decoded object untouched so fields this code does not know about are
    forwarded as-is.
    """

    datapoints: List[Datapoint] = field(default_factory=list)
    dimensions: Dimensions = field(default_factory=Dimensions)
    raw: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "MetricsMessage":
        return cls(
            datapoints=[_datapoint(item) for item in _as_list(raw.get("datapoints"))],
            dimensions=_dimensions(raw.get("dimensions")),
            raw=raw,
        )

    def to_dict(self) -> Dict[str, Any]:
        return self.raw

    @property
    def container_id(self) -> Optional[str]:
        return self.dimensions.container_id or None


def _datapoint(value: Any) -> Datapoint:
    item = _as_dict(value)
    return Datapoint(
        name=str(item.get("name") or ""),
        value=item.get("value"),
        unit=str(item.get("unit") or ""),
        timestamp=str(item.get("timestamp") or ""),
        tags=_str_map(item.get("tags")),
    )


def _dimensions(value: Any) -> Dimensions:
    item = _as_dict(value)
    return Dimensions(
        mesos_id=str(item.get("mesos_id") or ""),
        cluster_id=str(item.get("cluster_id") or ""),
        container_id=str(item.get("container_id") or ""),
        executor_id=str(item.get("executor_id") or ""),
        framework_name=str(item.get("framework_name") or ""),
        framework_id=str(item.get("framework_id") or ""),
        framework_role=str(item.get("framework_role") or ""),
        framework_principal=str(item.get("framework_principal") or ""),
        task_name=str(item.get("task_name") or ""),
        task_id=str(item.get("task_id") or ""),
        hostname=str(item.get("hostname") or ""),
        labels=_str_map(item.get("labels")),
    )


def _str_map(value: Any) -> Dict[str, str]:
    return {str(key): str(val) for key, val in _as_dict(value).items()}


def _as_dict(value: Any) -> Dict[str, Any]:
    if isinstance(value, dict):
        return value
    return {}


def _as_list(value: Any) -> List[Any]:
    if isinstance(value, list):
        return value
    return []
