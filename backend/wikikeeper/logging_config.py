"""Logging setup for the API process and background schedulers."""

import json
import logging
import sys
from datetime import datetime, timezone

TEXT_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


class JsonFormatter(logging.Formatter):
    """One JSON object per line.

    Scheduler tasks are named (e.g. "CollectionScheduler-loop"), so the
    task field tells the two loops and manual cycles apart.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "time": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }

        # taskName exists on 3.12+ records
        task = getattr(record, "taskName", None)
        if task:
            entry["task"] = task

        if record.exc_info:
            entry["error"] = self.formatException(record.exc_info)
            entry["where"] = f"{record.module}:{record.lineno}"

        return json.dumps(entry, default=str)


def configure_logging(level: str = "INFO", fmt: str = "json") -> None:
    """Send wikikeeper and root logs to stdout in the chosen format."""
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter() if fmt == "json" else logging.Formatter(TEXT_FORMAT))
    level = level.upper()

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    # Own handler so uvicorn's logging config cannot silence it
    service = logging.getLogger("wikikeeper")
    service.handlers.clear()
    service.addHandler(handler)
    service.setLevel(level)
    service.propagate = False

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
