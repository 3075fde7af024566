from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from .errors import ConfigurationError
from .models import VALID_ROLES

TOKEN_ENV_VAR = "METRICS_POLLER_AUTH_TOKEN"
VALID_SCHEMES = {"http", "https"}
VALID_SINK_TYPES = {"log", "jsonl", "http"}


@dataclass(frozen=True)
class RetryConfig:
    attempts: int = 0
    backoff_sec: float = 1.0

    def __post_init__(self) -> None:
        if self.attempts < 0:
            raise ConfigurationError("retry.attempts must be >= 0")
        if self.backoff_sec < 0:
            raise ConfigurationError("retry.backoff_sec must be >= 0")


@dataclass(frozen=True)
class SinkConfig:
    type: str = "log"
    path: Optional[Path] = None
    url: str = ""
    timeout_sec: float = 5.0

    def __post_init__(self) -> None:
        if self.type not in VALID_SINK_TYPES:
            raise ConfigurationError(
                f"sink.type must be one of {sorted(VALID_SINK_TYPES)}, got {self.type!r}"
            )
        if self.type == "jsonl" and self.path is None:
            raise ConfigurationError("sink.path is required for the jsonl sink")
        if self.type == "http" and not self.url:
            raise ConfigurationError("sink.url is required for the http sink")
        if self.timeout_sec <= 0:
            raise ConfigurationError("sink.timeout_sec must be positive")


@dataclass(frozen=True)
class LoggingConfig:
    dir: Optional[Path] = None
    file_name: str = "metrics-poller.log"
    max_mb: int = 20
    backup_count: int = 10
    json: bool = True
    to_console: bool = True


@dataclass(frozen=True)
class ObservabilityConfig:
    log_interval_sec: int = 60


@dataclass(frozen=True)
class PollConfig:
    role: str
    auth_token: str
    host: str = "localhost"
    scheme: str = "http"
    port: int = 61001
    interval: int = 10
    name: str = "default"
    timeout_sec: float = 10.0
    log_level: str = "INFO"
    retry: RetryConfig = field(default_factory=RetryConfig)
    sink: SinkConfig = field(default_factory=SinkConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    def __post_init__(self) -> None:
        if self.role not in VALID_ROLES:
            raise ConfigurationError(
                f"role must be one of {sorted(VALID_ROLES)}, got {self.role!r}"
            )
        if not self.auth_token:
            raise ConfigurationError("auth token must be set, use --auth-token <token>")
        if not self.host:
            raise ConfigurationError("host must not be empty")
        if self.scheme not in VALID_SCHEMES:
            raise ConfigurationError(
                f"scheme must be one of {sorted(VALID_SCHEMES)}, got {self.scheme!r}"
            )
        if not 0 < self.port < 65536:
            raise ConfigurationError(f"port out of range: {self.port}")
        if isinstance(self.interval, bool) or not isinstance(self.interval, int):
            raise ConfigurationError("polling interval must be an integer")
        if self.interval <= 0:
            raise ConfigurationError("polling interval must be a positive number of seconds")
        if self.timeout_sec <= 0:
            raise ConfigurationError("request timeout must be positive")

    @property
    def base_url(self) -> str:
        host = self.host
        if ":" in host and not host.startswith("["):
            host = f"[{host}]"
        return f"{self.scheme}://{host}:{self.port}"


def load_config(
    path: Optional[str | Path] = None,
    overrides: Optional[Mapping[str, Any]] = None,
) -> PollConfig:
    """Build a validated config from an optional YAML file plus overrides.

    Overrides (usually parsed CLI flags) win over the file; ``None`` values
    in overrides are ignored. Nested sections in overrides are merged key by
    key. The auth token falls back to ``METRICS_POLLER_AUTH_TOKEN``.
    """
    raw: Dict[str, Any] = {}
    if path:
        config_path = Path(path)
        if not config_path.exists():
            raise ConfigurationError(f"config file not found: {config_path}")
        try:
            loaded = yaml.safe_load(config_path.read_text()) or {}
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"invalid YAML in {config_path}: {exc}") from exc
        if not isinstance(loaded, dict):
            raise ConfigurationError("config root must be a mapping")
        raw.update(loaded)

    for key, value in (overrides or {}).items():
        if value is None:
            continue
        if isinstance(value, dict):
            merged = dict(_as_dict(raw.get(key)))
            merged.update({k: v for k, v in value.items() if v is not None})
            raw[key] = merged
        else:
            raw[key] = value

    if not raw.get("auth_token"):
        raw["auth_token"] = os.environ.get(TOKEN_ENV_VAR, "")

    return config_from_dict(raw)


def config_from_dict(raw: Mapping[str, Any]) -> PollConfig:
    retry_raw = _as_dict(raw.get("retry"))
    retry = RetryConfig(
        attempts=_as_int(retry_raw.get("attempts", 0), "retry.attempts"),
        backoff_sec=_as_float(retry_raw.get("backoff_sec", 1.0), "retry.backoff_sec"),
    )

    sink_raw = _as_dict(raw.get("sink"))
    sink_path = sink_raw.get("path")
    sink = SinkConfig(
        type=str(sink_raw.get("type") or "log").strip().lower(),
        path=Path(sink_path) if sink_path else None,
        url=str(sink_raw.get("url") or ""),
        timeout_sec=_as_float(sink_raw.get("timeout_sec", 5.0), "sink.timeout_sec"),
    )

    logging_raw = _as_dict(raw.get("logging"))
    log_dir = logging_raw.get("dir")
    logging_config = LoggingConfig(
        dir=Path(log_dir) if log_dir else None,
        file_name=str(logging_raw.get("file_name") or "metrics-poller.log"),
        max_mb=_as_int(logging_raw.get("max_mb", 20), "logging.max_mb"),
        backup_count=_as_int(logging_raw.get("backup_count", 10), "logging.backup_count"),
        json=bool(logging_raw.get("json", True)),
        to_console=bool(logging_raw.get("to_console", True)),
    )

    observability_raw = _as_dict(raw.get("observability"))
    observability = ObservabilityConfig(
        log_interval_sec=_as_int(
            observability_raw.get("log_interval_sec", 60), "observability.log_interval_sec"
        ),
    )

    token = raw.get("auth_token")
    return PollConfig(
        role=str(raw.get("role") or "").strip(),
        auth_token=str(token) if token is not None else "",
        host=str(raw.get("host") or "localhost"),
        scheme=str(raw.get("scheme") or "http").strip().lower(),
        port=_as_int(raw.get("port", 61001), "port"),
        interval=_as_int(raw.get("interval", 10), "interval"),
        name=str(raw.get("name") or "default"),
        timeout_sec=_as_float(raw.get("timeout_sec", 10.0), "timeout_sec"),
        log_level=str(raw.get("log_level") or "INFO"),
        retry=retry,
        sink=sink,
        logging=logging_config,
        observability=observability,
    )


def _as_dict(value: Any) -> Dict[str, Any]:
    if isinstance(value, dict):
        return value
    return {}


def _as_int(value: Any, key: str) -> int:
    if isinstance(value, bool):
        raise ConfigurationError(f"{key} must be an integer, got {value!r}")
    if isinstance(value, float) and not value.is_integer():
        raise ConfigurationError(f"{key} must be an integer, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"{key} must be an integer, got {value!r}") from exc


def _as_float(value: Any, key: str) -> float:
    if isinstance(value, bool):
        raise ConfigurationError(f"{key} must be a number, got {value!r}")
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"{key} must be a number, got {value!r}") from exc
