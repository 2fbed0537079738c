"""Logging and telemetry for the chat proxy.

Emits log records to stdout and, when configured, appends them to an
append-only log file. Access lines use the combined log format; relay
outcomes are structured JSON records.
"""

import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger("chat_proxy")
access_logger = logging.getLogger("chat_proxy.access")

MAX_LOGGED_BODY = 500


def setup_logging(log_file: Optional[str] = None) -> None:
    """Configure the proxy logger with stdout and optional file handlers.

    Args:
        log_file: Path to the append-only log file, or None for stdout only.
    """
    logger.setLevel(logging.INFO)

    if not logger.handlers:
        fmt = logging.Formatter(
            "%(asctime)s [%(levelname)s] %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S",
        )

        stdout_handler = logging.StreamHandler()
        stdout_handler.setLevel(logging.INFO)
        stdout_handler.setFormatter(fmt)
        logger.addHandler(stdout_handler)

        if log_file:
            log_path = Path(log_file)
            os.makedirs(log_path.parent, exist_ok=True)
            file_handler = logging.FileHandler(log_path, mode="a")
            file_handler.setLevel(logging.INFO)
            file_handler.setFormatter(fmt)
            logger.addHandler(file_handler)


def truncate(text: str, limit: int = MAX_LOGGED_BODY) -> str:
    if len(text) <= limit:
        return text
    return "{}... [{} more chars]".format(text[:limit], len(text) - limit)


def format_access_line(
    *,
    remote_addr: str,
    method: str,
    path: str,
    http_version: str,
    status: int,
    content_length: Optional[str],
    referer: Optional[str],
    user_agent: Optional[str],
    duration_ms: float,
    when: Optional[datetime] = None,
) -> str:
    """Render one request in combined log format plus the response time."""
    when = when or datetime.now(timezone.utc)
    return '{} - - [{}] "{} {} HTTP/{}" {} {} "{}" "{}" {:.3f} ms'.format(
        remote_addr or "-",
        when.strftime("%d/%b/%Y:%H:%M:%S %z"),
        method,
        path,
        http_version,
        status,
        content_length or "-",
        referer or "-",
        user_agent or "-",
        duration_ms,
    )


def log_relay(
    *,
    outcome: str,
    model: Optional[str] = None,
    status: Optional[int] = None,
    error: Optional[str] = None,
    client: Optional[str] = None,
) -> None:
    """Log a single relay event as a structured JSON line.

    Args:
        outcome: Short outcome label (e.g. "success", "upstream_error").
        model: The upstream model requested.
        status: HTTP status returned to the client.
        error: Error description if the relay failed.
        client: The caller's source address.
    """
    record: Dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "outcome": outcome,
        "client": client,
        "model": model,
        "status": status,
    }

    if error:
        record["error"] = error

    if status is not None and status >= 500:
        logger.error(json.dumps(record, ensure_ascii=False))
    else:
        logger.info(json.dumps(record, ensure_ascii=False))
