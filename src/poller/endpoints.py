from __future__ import annotations

import logging
from typing import Callable, List, Optional

from .config import PollConfig
from .errors import ConfigurationError, DecodeError
from .fetcher import MetricsClient, decode_json
from .models import CONTAINERS_PATH, NODE_PATH, ROLE_AGENT, ROLE_AGENT_PUBLIC, ROLE_MASTER

logger = logging.getLogger(__name__)

GetText = Callable[[str], str]


def resolve_endpoints(config: PollConfig, get_text: Optional[GetText] = None) -> List[str]:
    """Return the ordered paths to poll this cycle for the configured role.

    Agent roles ask the metrics service which containers are running and
    add one path per container id, in the order the service lists them.
    Any discovery failure propagates; no partial list is returned.
    """
    role = config.role
    logger.info("resolving endpoints for role %s", role, extra={"role": role})
    if role == ROLE_MASTER:
        return [NODE_PATH]

    if role in (ROLE_AGENT, ROLE_AGENT_PUBLIC):
        if get_text is None:
            get_text = MetricsClient.from_config(config).get_text
        endpoints = [NODE_PATH]
        for container_id in discover_containers(get_text):
            path = container_path(container_id)
            logger.info("discovered container endpoint %s", path, extra={"path": path})
            endpoints.append(path)
        return endpoints

    raise ConfigurationError(f"role must be 'master', 'agent' or 'agent-public', got {role!r}")


def discover_containers(get_text: GetText) -> List[str]:
    text = get_text(CONTAINERS_PATH)
    payload = decode_json(CONTAINERS_PATH, text)
    # the service answers null while no containers are running
    if payload is None:
        return []
    if not isinstance(payload, list) or not all(isinstance(item, str) for item in payload):
        raise DecodeError(
            "container list must be a JSON array of strings",
            path=CONTAINERS_PATH,
            body=text,
        )
    return list(payload)


def container_path(container_id: str) -> str:
    return f"{CONTAINERS_PATH}/{container_id}"
