"""Structured logging configuration.

JSON-formatted log lines carrying job context (job id, slot, provider) so a
single generation can be followed across submission, polling, streaming and
materialization.
"""

import json
import logging
from datetime import datetime, timezone

# Context fields copied from logger.info(..., extra={...}) when present
CONTEXT_FIELDS = (
    "trace_id",
    "job_id",
    "slot",
    "provider",
    "model",
    "mode",
    "error_code",
    "http_status",
    "attempt",
    "duration_ms",
    "asset_id",
)

PLAIN_FORMAT = "%(asctime)s %(levelname)-7s [%(name)s] %(message)s"

# Libraries whose INFO output drowns job logs (one line per HTTP request)
QUIET_LOGGERS = ("httpx", "httpcore", "asyncio", "uvicorn.access")


class StructuredFormatter(logging.Formatter):
    """One JSON object per record, job context fields on the top level.

    Example:
        >>> logger.info("Job succeeded", extra={"job_id": "abc", "slot": "main"})
        # {"ts": "2026-10-19T17:52:00.120Z", "level": "INFO", "logger": "imagio.orchestrator",
        #  "msg": "Job succeeded", "job_id": "abc", "slot": "main"}
    """

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        entry = {
            "ts": created.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        entry.update(
            (key, getattr(record, key)) for key in CONTEXT_FIELDS if hasattr(record, key)
        )

        if record.exc_info and record.exc_info[0] is not None:
            entry["exc_type"] = record.exc_info[0].__name__
            entry["exc"] = self.formatException(record.exc_info)
        elif record.levelno >= logging.WARNING:
            entry["at"] = f"{record.module}:{record.lineno}"

        return json.dumps(entry, ensure_ascii=False, default=str)


def configure_structured_logging(level: str = "INFO", json_format: bool = True) -> None:
    """Install a single stderr handler on the root logger.

    Args:
        level: Root level name (DEBUG, INFO, WARNING, ...)
        json_format: JSON lines when True, human-readable lines otherwise
    """
    handler = logging.StreamHandler()
    handler.setFormatter(StructuredFormatter() if json_format else logging.Formatter(PLAIN_FORMAT))

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(logging.getLevelName(level.upper()))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
