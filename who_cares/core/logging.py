import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict

# Fields copied from ``extra=`` into every JSON line when present.
STRUCTURED_FIELDS = ("batch_id", "ticker", "strategy", "phase", "step")

# Client libraries that log each HTTP request at INFO.
_CHATTY_LOGGERS = ("httpx", "httpcore", "openai")

_LOGGING_CONFIGURED = False


class JsonFormatter(logging.Formatter):
    """One JSON object per record; batch context comes from ``extra=``."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": getattr(record, "service", "who_cares_engine"),
        }
        payload.update(
            {name: getattr(record, name) for name in STRUCTURED_FIELDS if hasattr(record, name)}
        )
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def configure_logging(level: int | str = logging.INFO) -> None:
    """
    Route the root logger to stdout as JSON lines.

    Only the first call has any effect.
    """
    global _LOGGING_CONFIGURED
    if _LOGGING_CONFIGURED:
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    root.addHandler(handler)

    for name in _CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    _LOGGING_CONFIGURED = True
