from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal, Optional


Direction = Literal["apply", "teardown"]


@dataclass(frozen=True)
class StackDefinition:
    name: str
    env: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class Project:
    name: str
    stacks: list[StackDefinition]
    depends_on: list[str] = field(default_factory=list)
    dir: Optional[str] = None

    def stack_names(self) -> list[str]:
        return [s.name for s in self.stacks]

    def stack(self, name: str) -> Optional[StackDefinition]:
        for s in self.stacks:
            if s.name == name:
                return s
        return None


@dataclass(frozen=True, order=True)
class Vertex:
    project: str
    stack: str

    def __str__(self) -> str:
        return f"{self.project}:{self.stack}"


@dataclass(frozen=True)
class StackGraph:
    vertices: frozenset[Vertex]
    edges: frozenset[tuple[Vertex, Vertex]]  # (must_finish_first, dependent)


ExecutionGroup = tuple[Vertex, ...]


@dataclass(frozen=True)
class Schedule:
    groups: tuple[ExecutionGroup, ...]

    def ordered(self, direction: Direction) -> list[ExecutionGroup]:
        """Groups in execution order: forward for apply, reversed for teardown."""
        if direction == "teardown":
            return list(reversed(self.groups))
        return list(self.groups)

    def as_ids(self) -> list[list[str]]:
        return [[str(v) for v in group] for group in self.groups]

    def vertex_count(self) -> int:
        return sum(len(g) for g in self.groups)


@dataclass(frozen=True)
class ProjectSource:
    local_path: str = ""
    git_url: str = ""
    git_branch: str = "main"

    @property
    def is_git(self) -> bool:
        return bool(self.git_url)
