"""JSON log formatter for structured logging output."""

import json
import logging
from datetime import UTC, datetime

# Record attributes that may carry request context, copied into the JSON entry when present.
_CONTEXT_FIELDS = ("request_id", "user_id", "session_id", "action")


class JSONLogFormatter(logging.Formatter):
    """Emit log records as single-line JSON objects.

    Output format::

        {"timestamp": "...", "level": "WARNING", "service": "rbac",
         "logger": "chouse_rbac.auth.service", "message": "...", "request_id": "..."}
    """

    def __init__(self, service: str = "rbac") -> None:
        super().__init__()
        self._service = service

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, object] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "service": self._service,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for field in _CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value:
                entry[field] = value

        if record.exc_info and record.exc_info[1] is not None:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)
