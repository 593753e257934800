from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional


@dataclass(frozen=True)
class StackOrderError(Exception):
    """Base error envelope. Structural errors are raised; runner errors are collected."""

    code: str
    message: str
    file: Optional[str] = None
    path: Optional[str] = None

    def __str__(self) -> str:
        parts: list[str] = []
        if self.file:
            parts.append(self.file)
        if self.path:
            parts.append(self.path)
        loc = ":".join(parts) if parts else "<projects>"
        return f"{loc}: {self.code}: {self.message}"


class ConfigError(StackOrderError):
    pass


class MissingDependencyError(StackOrderError):
    pass


class DuplicateVertexError(StackOrderError):
    pass


class CycleError(StackOrderError):
    pass


class SourceError(StackOrderError):
    pass


class RunnerError(StackOrderError):
    """A single vertex's runner call failed.

    `resources` carries resource identifiers when the runner can report them
    directly; otherwise the teardown report scans `message` instead.

    Plain subclass on purpose: a re-decorated frozen dataclass rejects the
    `__traceback__` assignment contextlib makes on the way out of a `with`.
    """

    def __init__(
        self,
        code: str,
        message: str,
        file: Optional[str] = None,
        path: Optional[str] = None,
        resources: Iterable[str] = (),
        exit_code: Optional[int] = None,
    ) -> None:
        super().__init__(code=code, message=message, file=file, path=path)
        object.__setattr__(self, "resources", tuple(resources))
        object.__setattr__(self, "exit_code", exit_code)
