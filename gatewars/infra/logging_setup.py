"""Console logging for the command-line entry points (plain text or one JSON object per line)."""

import json
import logging

logger = logging.getLogger(__name__)

PLAIN_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


class JSONFormatter(logging.Formatter):
    """Format log records as single-line JSON for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False)


def configure_logging(level: str = "INFO", json_output: bool = False) -> logging.Handler:
    """Install one console handler on the root logger, replacing any earlier one."""
    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        if getattr(handler, "_gatewars", False):
            root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler._gatewars = True  # type: ignore[attr-defined]
    handler.setFormatter(JSONFormatter() if json_output else logging.Formatter(PLAIN_FORMAT, datefmt="%H:%M:%S"))
    root_logger.addHandler(handler)
    root_logger.setLevel(level.upper())
    logger.debug("logging configured level=%s json=%s", level, json_output)
    return handler
