from __future__ import annotations

import json
import logging
import re
from logging.handlers import RotatingFileHandler
from pathlib import Path

# logger name -> dedicated audit file, on top of app.log
AUDIT_LOGS = {
    "nubifica.documents": "documents.log",
    "nubifica.auth": "auth.log",
}

_EVENT = re.compile(r"^([a-z][a-z0-9_]*)(?:\s|$)")
_FIELD = re.compile(r"(\w+)=(\S*)")


def split_event(message: str) -> tuple[str | None, dict[str, str]]:
    """``invoice_created id=FVC-2 total=119000`` -> ``("invoice_created", {"id": "FVC-2", ...})``."""
    m = _EVENT.match(message)
    if not m:
        return None, {}
    return m.group(1), dict(_FIELD.findall(message[m.end():]))


class JsonFormatter(logging.Formatter):
    """One JSON object per line; ``event key=value`` messages also carry ``event`` and ``fields``."""

    def format(self, record: logging.LogRecord) -> str:
        message = record.getMessage()
        payload = {
            "time": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": message,
        }
        event, fields = split_event(message)
        if event:
            payload["event"] = event
            if fields:
                payload["fields"] = fields
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def _handler(path: Path, level: int) -> RotatingFileHandler:
    fh = RotatingFileHandler(path, maxBytes=2_000_000, backupCount=5, encoding="utf-8")
    fh.setFormatter(JsonFormatter(datefmt="%Y-%m-%d %H:%M:%S"))
    fh.setLevel(level)
    return fh


def setup_logging(logs_dir: Path, level: int = logging.INFO) -> None:
    logs_dir.mkdir(parents=True, exist_ok=True)

    root = logging.getLogger()
    root.setLevel(level)
    if root.handlers:
        return

    root.addHandler(_handler(logs_dir / "app.log", level))
    root.addHandler(_handler(logs_dir / "errors.log", logging.ERROR))

    for name, filename in AUDIT_LOGS.items():
        audit = logging.getLogger(name)
        audit.addHandler(_handler(logs_dir / filename, level))
        audit.setLevel(level)
