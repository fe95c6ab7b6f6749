from __future__ import annotations

import json
import logging
import re
from logging.handlers import RotatingFileHandler
from pathlib import Path

# loggers that also write to a file of their own
CHANNELS = {
    "petdash.stats": "stats.log",
    "petdash.campaigns": "campaigns.log",
}

_FIELD_RE = re.compile(r"(\w+)=('[^']*'|\"[^\"]*\"|\S+)")


class JsonFormatter(logging.Formatter):
    """One JSON object per line.

    Messages are written as ``event key=value ...``; the leading word becomes
    ``event`` and the pairs are lifted into ``fields``.
    """

    def format(self, record: logging.LogRecord) -> str:
        message = record.getMessage()
        event, _, rest = message.partition(" ")
        payload = {
            "time": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "event": event if "=" not in event else "",
            "fields": {k: v.strip("'\"") for k, v in _FIELD_RE.findall(message)},
            "message": message,
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def _handler(path: Path, level: int, max_bytes: int, backups: int) -> RotatingFileHandler:
    fh = RotatingFileHandler(path, maxBytes=max_bytes, backupCount=backups, encoding="utf-8")
    fh.setFormatter(JsonFormatter(datefmt="%Y-%m-%d %H:%M:%S"))
    fh.setLevel(level)
    fh.petdash_owned = True
    return fh


def _has_petdash_handler(logger: logging.Logger) -> bool:
    return any(getattr(h, "petdash_owned", False) for h in logger.handlers)


def setup_logging(
    logs_dir: Path,
    level: int = logging.INFO,
    max_bytes: int = 2_000_000,
    backups: int = 5,
) -> list[logging.Handler]:
    """Install the app, error and per-channel rotating files under ``logs_dir``.

    Safe to call twice; handlers already installed here are not duplicated.
    Returns the handlers added by this call.
    """
    logs_dir.mkdir(parents=True, exist_ok=True)
    added: list[logging.Handler] = []

    root = logging.getLogger()
    root.setLevel(level)
    if not _has_petdash_handler(root):
        for filename, handler_level in (("app.log", level), ("errors.log", logging.ERROR)):
            handler = _handler(logs_dir / filename, handler_level, max_bytes, backups)
            root.addHandler(handler)
            added.append(handler)

    for channel, filename in CHANNELS.items():
        logger = logging.getLogger(channel)
        logger.setLevel(level)
        if not _has_petdash_handler(logger):
            handler = _handler(logs_dir / filename, level, max_bytes, backups)
            logger.addHandler(handler)
            added.append(handler)
    return added
