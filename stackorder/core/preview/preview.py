from __future__ import annotations

from typing import Any, Iterable

from stackorder.core.graph.build_graph import build_graph
from stackorder.core.model import Direction, Project, Schedule
from stackorder.core.schedule.schedule import schedule_groups


def plan_schedule(projects: Iterable[Project]) -> Schedule:
    """Graph build + scheduling, nothing executed."""
    return schedule_groups(build_graph(projects))


def render_preview(schedule: Schedule, direction: Direction) -> str:
    mode = "Deploy" if direction == "apply" else "Destroy"
    lines = [f"{mode} Plan:"]
    for stage, group in enumerate(schedule.ordered(direction), 1):
        lines.append(f"Stage {stage}:")
        for vertex in group:
            lines.append(f"  {vertex}")
    if not schedule.groups:
        lines.append("(no stacks)")
    return "\n".join(lines)


def schedule_payload(schedule: Schedule, direction: Direction) -> dict[str, Any]:
    return {
        "tool": "stackorder",
        "command": "preview",
        "direction": direction,
        "stage_count": len(schedule.groups),
        "stacks": schedule.vertex_count(),
        "stages": [
            {"stage": i, "stacks": [str(v) for v in group]}
            for i, group in enumerate(schedule.ordered(direction), 1)
        ],
    }
