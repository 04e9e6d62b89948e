"""
Logging setup for the conversion pipeline.

Every module logs through ``logging.getLogger(__name__)`` under the
``dataconvert`` hierarchy. The resolver and dispatcher attach the request
context with ``extra=`` (input type, template reference, registry server,
entry point template, error kind); the JSON format lifts those attributes
into top-level keys so failed conversions can be filtered by kind.
"""
import json
import logging
from datetime import datetime, timezone

LOGGER_NAME = "dataconvert"
CONTEXT_FIELDS = ("input_type", "reference", "server", "template", "error_kind")
TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s - %(message)s"


class JSONFormatter(logging.Formatter):
    """One JSON object per record, with the conversion context flattened in."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "time": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update({
            key: getattr(record, key)
            for key in CONTEXT_FIELDS
            if getattr(record, key, None) is not None
        })
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


def setup_logging(level: str = "INFO", fmt: str = "text") -> logging.Handler:
    """
    Install a stream handler on the ``dataconvert`` logger.

    Calling it again replaces the handler installed by the previous call,
    so a host that builds several services does not duplicate output.

    Args:
        level: Level name, case-insensitive ('INFO' when unknown)
        fmt: 'json' for JSONFormatter, anything else for plain text
    """
    logger = logging.getLogger(LOGGER_NAME)
    for existing in list(logger.handlers):
        if getattr(existing, "dataconvert_handler", False):
            logger.removeHandler(existing)

    handler = logging.StreamHandler()
    handler.dataconvert_handler = True
    handler.setFormatter(JSONFormatter() if fmt == "json" else logging.Formatter(TEXT_FORMAT))
    logger.addHandler(handler)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    return handler
