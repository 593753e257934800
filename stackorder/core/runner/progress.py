from __future__ import annotations

import json
import sys
import threading
from typing import Any, Optional, Protocol, TextIO

from stackorder.core.logging import FieldAdapter

_write_lock = threading.Lock()


class ProgressSink(Protocol):
    def emit(self, line: str) -> None: ...


class TextProgressSink:
    """Plain progress lines, prefixed with the vertex so concurrent output stays readable."""

    def __init__(self, prefix: str, stream: Optional[TextIO] = None) -> None:
        self.prefix = prefix
        self.stream = stream

    def emit(self, line: str) -> None:
        stream = self.stream or sys.stdout
        with _write_lock:
            stream.write(f"[{self.prefix}] {line.rstrip()}\n")
            stream.flush()


class JsonProgressSink:
    """One structured log record per engine event."""

    def __init__(self, logger: FieldAdapter) -> None:
        self.logger = logger

    def emit(self, line: str) -> None:
        line = line.strip()
        if not line:
            return
        try:
            event: Any = json.loads(line)
        except json.JSONDecodeError:
            event = {"text": line}
        self.logger.info("engine event", extra={"fields": {"event": event}})


def make_sink(json_events: bool, prefix: str, logger: FieldAdapter) -> ProgressSink:
    if json_events:
        return JsonProgressSink(logger)
    return TextProgressSink(prefix)
