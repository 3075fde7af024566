import json
import logging
import uuid
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Optional

# attributes callers attach through ``extra=`` that are lifted into the line
CONTEXT_FIELDS = ("path", "role")


class JsonFormatter(logging.Formatter):
    """One JSON object per record, tagged with the plugin name and run id.

    Messages that are JSON objects themselves (stats snapshots, sink
    summaries) are embedded under ``meta`` with their ``event`` lifted out.
    """

    def __init__(self, run_id: str, plugin: str = "default") -> None:
        super().__init__()
        self._run_id = run_id
        self._plugin = plugin

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "ts": _format_ts(record.created),
            "level": record.levelname,
            "component": record.name,
            "plugin": self._plugin,
            "run_id": self._run_id,
        }
        for key in CONTEXT_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                payload[key] = value
        payload.update(_event_fields(record.getMessage()))
        if record.exc_info:
            payload["error"] = self.formatException(record.exc_info)
        return json.dumps(payload, separators=(",", ":"), ensure_ascii=False)


def _event_fields(message: str) -> Dict[str, Any]:
    parsed = _parse_json(message)
    if parsed is None:
        return {"event": message}
    fields: Dict[str, Any] = {"meta": parsed}
    if parsed.get("event"):
        fields["event"] = parsed["event"]
    return fields


def setup_logging(
    level: str = "INFO",
    *,
    plugin: str = "default",
    log_dir: Optional[Path] = None,
    log_file: str = "metrics-poller.log",
    max_mb: int = 20,
    backup_count: int = 10,
    use_json: bool = True,
    to_console: bool = True,
    run_id: Optional[str] = None,
) -> str:
    run_id = run_id or uuid.uuid4().hex
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    for handler in list(root.handlers):
        root.removeHandler(handler)

    if use_json:
        formatter = JsonFormatter(run_id, plugin=plugin)
    else:
        formatter = logging.Formatter(
            f"%(asctime)s %(levelname)s [{plugin}] %(name)s %(message)s"
        )

    if log_dir:
        log_dir.mkdir(parents=True, exist_ok=True)
        max_bytes = max(1, int(max_mb)) * 1024 * 1024
        file_handler = RotatingFileHandler(
            log_dir / log_file, maxBytes=max_bytes, backupCount=max(1, int(backup_count))
        )
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    if to_console or not log_dir:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        root.addHandler(console_handler)

    return run_id


def _parse_json(message: str) -> Optional[Dict[str, Any]]:
    if not message:
        return None
    try:
        parsed = json.loads(message)
    except (TypeError, ValueError):
        return None
    if isinstance(parsed, dict):
        return parsed
    return None


def _format_ts(epoch_seconds: float) -> str:
    return datetime.fromtimestamp(epoch_seconds).astimezone().strftime("%Y-%m-%d %H:%M:%S")
