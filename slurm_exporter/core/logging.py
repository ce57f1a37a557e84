"""Logging configuration for the exporter.

Two output shapes, selected by logging.output in the config file:

  stdout — _ContainerFormatter, one human-readable line per record.
    For a terminal or `docker logs`.  Carries the request id and the
    scraped endpoint when a record has them.

  json   — _JsonFormatter, one JSON object per line.
    For log pipelines that index fields.  Context attached through
    `extra=` (the scraped endpoint, the failure kind, the request id
    stamped by RequestContextMiddleware) becomes top-level keys, so a
    query like  endpoint == "jobs" AND error_kind == "status"  needs no
    regex.

Everything goes to stdout; the container runtime owns the rest.
"""

from __future__ import annotations

import json
import logging
import sys


class _ContainerFormatter(logging.Formatter):
    """Single-line formatter tuned for container stdout.

    - Always: ISO-8601 timestamp, level, logger name, message
    - Inside a request: [request_id] after the logger name
    - Endpoint context: appends endpoint=<name>
    - WARNING+: appends [filename:lineno]
    - ERROR/CRITICAL: stack trace included when exc_info is present

      ... ERROR    slurm_exporter.services.fetcher [3f2a...]  Failed to collect
      metrics from endpoint jobs (status): unexpected status code: 503
      endpoint=jobs  [fetcher.py:84]
    """

    _BASE_FMT = "%(asctime)s %(levelname)-8s %(name)s%(context)s  %(message)s"
    _ENDPOINT_SUFFIX = "  endpoint=%(endpoint)s"
    _LOC_SUFFIX = "  [%(filename)s:%(lineno)d]"

    def __init__(self) -> None:
        super().__init__(datefmt="%Y-%m-%dT%H:%M:%S%z")

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:
        base = super().formatTime(record, datefmt)
        ms = int(record.msecs)
        # Insert .NNN before the timezone offset (last 5 chars: +0000)
        return f"{base[:-5]}.{ms:03d}{base[-5:]}"

    def format(self, record: logging.LogRecord) -> str:
        request_id = getattr(record, "request_id", None)
        record.context = (  # type: ignore[attr-defined]
            f" [{request_id}]" if request_id not in (None, "-") else ""
        )

        fmt = self._BASE_FMT
        if getattr(record, "endpoint", None):
            fmt += self._ENDPOINT_SUFFIX
        if record.levelno >= logging.WARNING:
            fmt += self._LOC_SUFFIX
        self._style._fmt = fmt
        return super().format(record)


class _JsonFormatter(logging.Formatter):
    """JSON-lines formatter.

    Context fields are lifted out of the LogRecord when a caller (or the
    request-context filter) attached them.
    """

    _CONTEXT_FIELDS = (
        "request_id",
        "method",
        "path",
        "status_code",
        "duration_ms",
        "endpoint",
        "url",
        "error_kind",
    )

    def __init__(self) -> None:
        super().__init__(datefmt="%Y-%m-%dT%H:%M:%S%z")

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, object] = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key in self._CONTEXT_FIELDS:
            value = getattr(record, key, None)
            # "-" is the request-id placeholder outside of a request
            if value is not None and value != "-":
                log_entry[key] = value

        if record.exc_info and record.exc_info[0] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


def setup_logging(level_name: str, *, json_format: bool = False) -> None:
    """Configure the root logger.

    Args:
        level_name: debug/info/warning/error (unknown names fall back to info)
        json_format: emit JSON lines instead of the human-readable format
    """
    level = getattr(logging, level_name.upper(), logging.INFO)
    if not isinstance(level, int):
        level = logging.INFO

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(_JsonFormatter() if json_format else _ContainerFormatter())

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    root.addHandler(handler)

    # httpx logs every upstream request at INFO; one scrape is several requests.
    for name in ("uvicorn", "uvicorn.access", "uvicorn.error", "httpcore", "httpx"):
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
