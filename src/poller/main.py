from __future__ import annotations

import argparse
import logging
import signal
import sys
from typing import Any, Dict, List, Optional

from .config import load_config
from .errors import ConfigurationError, PollerError
from .logging_ import setup_logging
from .scheduler import PollScheduler
from .sinks import build_sink

VERSION = "0.1.0"

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CONFIG = 2

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="metrics-poller",
        description="Poll the node metrics service and forward each batch to a sink",
    )
    parser.add_argument("--config", default=None, help="path to YAML config file")
    parser.add_argument(
        "--metrics-host",
        dest="host",
        default=None,
        help="IP or hostname where the metrics service is running (default: localhost)",
    )
    parser.add_argument(
        "--metrics-proto",
        dest="scheme",
        default=None,
        help="HTTP protocol for the metrics service (default: http)",
    )
    parser.add_argument(
        "--metrics-port",
        dest="port",
        type=int,
        default=None,
        help="port the metrics service is running on (default: 61001)",
    )
    parser.add_argument(
        "--polling-interval",
        dest="interval",
        type=int,
        default=None,
        help="polling interval for metrics in seconds (default: 10)",
    )
    parser.add_argument(
        "--auth-token",
        dest="auth_token",
        default=None,
        help="valid authentication token for the metrics service",
    )
    parser.add_argument(
        "--dcos-role",
        dest="role",
        default=None,
        help="node role: master, agent or agent-public",
    )
    parser.add_argument("--name", default=None, help="plugin name used in logs")
    parser.add_argument(
        "--timeout", dest="timeout_sec", type=float, default=None, help="request timeout in seconds"
    )
    parser.add_argument("--sink", dest="sink_type", choices=["log", "jsonl", "http"], default=None)
    parser.add_argument("--sink-path", default=None, help="output file for the jsonl sink")
    parser.add_argument("--sink-url", default=None, help="target URL for the http sink")
    parser.add_argument("--log-level", default=None)
    parser.add_argument("--once", action="store_true", help="run a single cycle and exit")
    parser.add_argument("--version", action="version", version=f"%(prog)s {VERSION}")
    return parser.parse_args(argv)


def _overrides(args: argparse.Namespace) -> Dict[str, Any]:
    return {
        "host": args.host,
        "scheme": args.scheme,
        "port": args.port,
        "interval": args.interval,
        "auth_token": args.auth_token,
        "role": args.role,
        "name": args.name,
        "timeout_sec": args.timeout_sec,
        "log_level": args.log_level,
        "sink": {"type": args.sink_type, "path": args.sink_path, "url": args.sink_url},
    }


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    try:
        config = load_config(args.config, _overrides(args))
    except ConfigurationError as exc:
        setup_logging(args.log_level or "INFO", use_json=False)
        logger.error("invalid configuration: %s", exc)
        return EXIT_CONFIG

    setup_logging(
        config.log_level,
        plugin=config.name,
        log_dir=config.logging.dir,
        log_file=config.logging.file_name,
        max_mb=config.logging.max_mb,
        backup_count=config.logging.backup_count,
        use_json=config.logging.json,
        to_console=config.logging.to_console,
    )

    scheduler = PollScheduler(config, build_sink(config.sink))

    def _handle_signal(signum, frame):
        logger.info("shutdown requested")
        scheduler.stop()

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)

    try:
        scheduler.run(max_cycles=1 if args.once else None)
    except ConfigurationError as exc:
        logger.error("invalid configuration: %s", exc)
        return EXIT_CONFIG
    except PollerError as exc:
        logger.error("polling halted: %s", exc)
        return EXIT_FAILURE
    return EXIT_OK


def run() -> None:
    sys.exit(main())


if __name__ == "__main__":
    run()
