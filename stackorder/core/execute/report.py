from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable

from stackorder.core.errors import RunnerError
from stackorder.core.model import Direction, Vertex

logger = logging.getLogger(__name__)

# Pulumi URNs: urn:pulumi:<stack>::<project>::<type>::<name>
RESOURCE_ID_PATTERN = re.compile(r"urn:pulumi:[^\s'\"\],)]+")


@dataclass(frozen=True)
class VertexFailure:
    vertex: Vertex
    stage: int
    error: RunnerError


@dataclass
class ExecutionReport:
    direction: Direction
    stages: int = 0
    completed: list[Vertex] = field(default_factory=list)
    failures: list[VertexFailure] = field(default_factory=list)
    skipped: list[Vertex] = field(default_factory=list)
    cancelled: bool = False

    @property
    def ok(self) -> bool:
        return not self.failures and not self.skipped and not self.cancelled

    def failed_vertices(self) -> list[Vertex]:
        return sorted(f.vertex for f in self.failures)


def extract_resource_ids(error: RunnerError) -> list[str]:
    """Resource identifiers for a failure.

    Structured identifiers from the runner win; the message text is scanned
    only when there are none.
    """
    if error.resources:
        return list(dict.fromkeys(error.resources))
    return list(dict.fromkeys(RESOURCE_ID_PATTERN.findall(error.message or "")))


def remediation_resources(report: ExecutionReport) -> dict[str, list[str]]:
    """vertex id -> resource identifiers left behind by failed teardowns."""
    out: dict[str, list[str]] = {}
    if report.direction != "teardown":
        return out
    for failure in sorted(report.failures, key=lambda f: f.vertex):
        ids = extract_resource_ids(failure.error)
        if ids:
            out[str(failure.vertex)] = ids
    return out


def format_summary(report: ExecutionReport) -> str:
    verb = "Deployment" if report.direction == "apply" else "Destruction"
    lines: list[str] = []
    if report.ok:
        lines.append(f"OK: {verb.lower()} completed ({len(report.completed)} stacks, {report.stages} stages)")
        return "\n".join(lines)

    lines.append(
        f"FAILED: {verb.lower()} finished with {len(report.failures)} failed, "
        f"{len(report.skipped)} skipped, {len(report.completed)} succeeded"
    )
    for failure in sorted(report.failures, key=lambda f: f.vertex):
        lines.append(f"- {failure.vertex} (stage {failure.stage}): {failure.error.message}")
    if report.skipped:
        lines.append("Skipped: " + ", ".join(str(v) for v in sorted(report.skipped)))
    if report.cancelled:
        lines.append("Run was cancelled before completion.")

    resources = remediation_resources(report)
    if resources:
        lines.append("Resources that may need manual cleanup:")
        for vertex_id, ids in resources.items():
            for rid in ids:
                lines.append(f"  {vertex_id}: {rid}")
    return "\n".join(lines)


def summary_payload(report: ExecutionReport) -> dict[str, Any]:
    return {
        "tool": "stackorder",
        "direction": report.direction,
        "ok": report.ok,
        "stages": report.stages,
        "completed": [str(v) for v in sorted(report.completed)],
        "skipped": [str(v) for v in sorted(report.skipped)],
        "cancelled": report.cancelled,
        "failures": [
            {
                "vertex": str(f.vertex),
                "stage": f.stage,
                "code": f.error.code,
                "message": f.error.message,
            }
            for f in sorted(report.failures, key=lambda f: f.vertex)
        ],
        "remediation": remediation_resources(report),
    }


def append_error_file(path: str | Path, failures: Iterable[VertexFailure]) -> bool:
    """Append one line per failure. Write errors are logged, never raised."""
    failures = list(failures)
    if not failures:
        return True
    stamp = datetime.now(timezone.utc).isoformat()
    lines = [f"{stamp} {f.vertex}: {' '.join(f.error.message.split())}\n" for f in failures]
    try:
        p = Path(path)
        if str(p.parent) not in (".", ""):
            p.parent.mkdir(parents=True, exist_ok=True)
        with p.open("a", encoding="utf-8") as handle:
            handle.writelines(lines)
    except OSError as e:
        logger.warning("could not write error file %s: %s", path, e)
        return False
    return True
