"""Logging setup.

One handler on the `stackorder` logger, human-readable or JSON. Contextual
fields (operation, stage, project, stack) travel on LoggerAdapters handed to
each unit of work rather than on shared logger state.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Mapping, MutableMapping

ROOT_LOGGER = "stackorder"


class FieldAdapter(logging.LoggerAdapter):
    """LoggerAdapter whose `extra` dict is exposed to formatters as `fields`."""

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> tuple[Any, MutableMapping[str, Any]]:
        extra = dict(kwargs.pop("extra", None) or {})
        fields = dict(self.extra or {})
        fields.update(extra.pop("fields", {}))
        extra["fields"] = fields
        kwargs["extra"] = extra
        return msg, kwargs

    def bind(self, **fields: Any) -> "FieldAdapter":
        merged = dict(self.extra or {})
        merged.update(fields)
        return FieldAdapter(self.logger, merged)


def bind_fields(logger: logging.Logger | FieldAdapter, **fields: Any) -> FieldAdapter:
    if isinstance(logger, FieldAdapter):
        return logger.bind(**fields)
    return FieldAdapter(logger, fields)


def _record_fields(record: logging.LogRecord) -> Mapping[str, Any]:
    fields = getattr(record, "fields", None)
    return fields if isinstance(fields, Mapping) else {}


class JSONFormatter(logging.Formatter):
    """Structured JSON log formatter."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in _record_fields(record).items():
            log_entry.setdefault(key, value)
        if record.exc_info and record.exc_info[1]:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry, default=str)


class FieldFormatter(logging.Formatter):
    """Human-readable formatter that appends bound fields as key=value."""

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        fields = _record_fields(record)
        if not fields:
            return base
        rendered = " ".join(f"{k}={v}" for k, v in fields.items())
        return f"{base} {rendered}"


def configure_logging(level: int | str = logging.INFO, json_format: bool = False) -> None:
    """Configure the `stackorder` logger.

    Args:
        level: Logging level name or number.
        json_format: Emit one JSON object per record instead of text lines.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    root = logging.getLogger(ROOT_LOGGER)
    root.setLevel(level)
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    if json_format:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(FieldFormatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s"))
    root.addHandler(handler)
