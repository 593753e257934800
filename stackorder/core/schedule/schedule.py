from __future__ import annotations

from collections import defaultdict

from stackorder.core.errors import CycleError
from stackorder.core.model import Schedule, StackGraph, Vertex


def schedule_groups(graph: StackGraph) -> Schedule:
    """Partition vertices into stages ("waves").

    Each stage holds every remaining vertex whose dependencies were all
    processed in earlier stages, sorted by (project, stack). Raises CycleError
    when vertices remain but none is ready.
    """
    incoming: dict[Vertex, set[Vertex]] = defaultdict(set)
    for src, dst in graph.edges:
        incoming[dst].add(src)

    processed: set[Vertex] = set()
    remaining = set(graph.vertices)
    groups: list[tuple[Vertex, ...]] = []

    while remaining:
        ready = [v for v in remaining if incoming[v] <= processed]
        if not ready:
            stuck = ", ".join(str(v) for v in sorted(remaining))
            raise CycleError(
                code="E_CYCLE",
                message=f"dependency graph has a cycle; stuck vertices: {stuck}",
            )
        group = tuple(sorted(ready))
        processed.update(group)
        remaining.difference_update(group)
        groups.append(group)

    return Schedule(groups=tuple(groups))
