"""Logging setup for the node process."""

import json
import logging
from datetime import UTC, datetime

TEXT_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

# Load balancers probe /health every few seconds.
QUIET_LOGGERS = ("uvicorn.access",)


class JSONFormatter(logging.Formatter):
    """One JSON object per record, with ``redis_key`` when the record carries one."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, object] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        redis_key = getattr(record, "redis_key", None)
        if redis_key is not None:
            entry["redis_key"] = redis_key
        if record.exc_info and record.exc_info[1] is not None:
            entry["error"] = {
                "type": type(record.exc_info[1]).__name__,
                "message": str(record.exc_info[1]),
                "stacktrace": self.formatException(record.exc_info),
            }
        return json.dumps(entry, default=str)


def configure_logging(*, log_format: str = "text", debug: bool = False) -> None:
    """Install a single stderr handler on the root logger."""
    handler = logging.StreamHandler()
    if log_format == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT))

    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        handlers=[handler],
        force=True,
    )
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
