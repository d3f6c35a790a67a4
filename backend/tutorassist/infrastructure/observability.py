"""Logging setup: one root handler, JSON lines in production, plain text locally.

Context passed through ``extra=`` (workspace_id, job_id, error_code, token
counts) becomes top-level JSON keys, so log search can filter on them.
"""

import json
import logging
from datetime import datetime, timezone

HANDLER_NAME = "tutorassist"

_CONTEXT_FIELDS = frozenset({
    "workspace_id", "user_id", "job_id", "job_type", "error_code",
    "attempt", "input_tokens", "output_tokens", "path",
})


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(
            (name, value if isinstance(value, (bool, int, float)) else str(value))
            for name, value in vars(record).items()
            if name in _CONTEXT_FIELDS and value is not None
        )
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False)


def setup_logging(level: str = "INFO", fmt: str = "json") -> None:
    """Install the app handler on the root logger, replacing a previous one."""
    root = logging.getLogger()
    for handler in [h for h in root.handlers if h.get_name() == HANDLER_NAME]:
        root.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.set_name(HANDLER_NAME)
    handler.setFormatter(
        JSONFormatter() if fmt == "json"
        else logging.Formatter("%(asctime)s %(levelname)-7s %(name)s: %(message)s")
    )
    root.addHandler(handler)
    # getLevelName maps a known name to its number and returns a str otherwise
    resolved = logging.getLevelName(level.upper())
    root.setLevel(resolved if isinstance(resolved, int) else logging.INFO)
