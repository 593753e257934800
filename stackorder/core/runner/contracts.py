from __future__ import annotations

import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional, Protocol

from stackorder.core.runner.progress import ProgressSink


@dataclass(frozen=True)
class StackHandle:
    """A resolved stack: fully qualified name plus the project directory it runs in."""

    qualified_name: str
    working_directory: Path


@dataclass(frozen=True)
class RunResult:
    summary: str = ""


class StackRunner(Protocol):
    """The backend that actually provisions or tears down a stack.

    Implementations raise RunnerError on failure and must be safe to call
    concurrently for distinct stacks.
    """

    def resolve_or_create(self, org: str, stack_name: str, working_directory: Path) -> StackHandle: ...

    def apply(
        self,
        handle: StackHandle,
        environment: Mapping[str, str],
        sink: ProgressSink,
        cancel: Optional[threading.Event] = None,
    ) -> RunResult: ...

    def teardown(
        self,
        handle: StackHandle,
        environment: Mapping[str, str],
        sink: ProgressSink,
        cancel: Optional[threading.Event] = None,
    ) -> RunResult: ...


def qualify_stack_name(org: str, stack_name: str) -> str:
    return f"{org}/{stack_name}" if org else stack_name
