"""
Logging setup for the echoserver CLI.

Library modules only ever do ``logger = logging.getLogger(__name__)``; the
process entry point decides where records go and how they look. Two
formats are supported:

    text:  2026-10-18 12:00:00 [INFO] echoserver.server: Echo server listening on 0.0.0.0:7007
    json:  {"timestamp": "2026-10-18T12:00:00+00:00", "level": "INFO", "logger": "echoserver.server", "message": "..."}

JSON lines are easier to ship to log aggregators (ELK, Datadog); text is
easier to read in a terminal.
"""

import json
import logging
from datetime import datetime, timezone


TEXT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
TEXT_DATEFMT = "%Y-%m-%d %H:%M:%S"


class JsonFormatter(logging.Formatter):
    """Render each record as one JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry)


def setup_logging(level: str = "WARNING", fmt: str = "text") -> None:
    """
    Configure the root handler and the ``echoserver`` logger level.

    Args:
        level: DEBUG, INFO, WARNING, ERROR or CRITICAL.
        fmt: "text" or "json".
    """
    numeric_level = getattr(logging, level.upper(), logging.WARNING)

    handler = logging.StreamHandler()
    if fmt == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT, datefmt=TEXT_DATEFMT))

    logging.basicConfig(level=numeric_level, handlers=[handler])
    logging.getLogger("echoserver").setLevel(numeric_level)
