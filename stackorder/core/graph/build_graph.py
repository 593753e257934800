from __future__ import annotations

from typing import Iterable

from stackorder.core.errors import DuplicateVertexError
from stackorder.core.model import Project, StackDefinition, StackGraph, Vertex


def merge_projects(projects: Iterable[Project]) -> list[Project]:
    """Union entries that share a project name.

    Stacks are unioned by name (env maps merged, later entries win per key) and
    dependencies by name. Output order carries no meaning; the scheduler sorts.
    """
    stacks_by_project: dict[str, dict[str, dict[str, str]]] = {}
    deps_by_project: dict[str, dict[str, None]] = {}
    dir_by_project: dict[str, str | None] = {}

    for project in projects:
        stacks = stacks_by_project.setdefault(project.name, {})
        for stack in project.stacks:
            stacks.setdefault(stack.name, {}).update(stack.env)
        deps = deps_by_project.setdefault(project.name, {})
        for dep in project.depends_on:
            deps[dep] = None
        if project.dir and not dir_by_project.get(project.name):
            dir_by_project[project.name] = project.dir
        dir_by_project.setdefault(project.name, None)

    return [
        Project(
            name=name,
            stacks=[StackDefinition(name=s, env=dict(env)) for s, env in stacks.items()],
            depends_on=list(deps_by_project[name]),
            dir=dir_by_project.get(name),
        )
        for name, stacks in stacks_by_project.items()
    ]


def build_graph(projects: Iterable[Project]) -> StackGraph:
    """Project the project dependency graph onto (project, stack) vertices.

    An edge D:S -> P:S exists only when P depends on D and both declare stack S.
    Dependencies that share no stack name contribute no edges, and dependency
    names with no matching project are ignored here (validation reports them).
    """
    merged = merge_projects(projects)

    vertices: set[Vertex] = set()
    for project in merged:
        for stack_name in project.stack_names():
            vertex = Vertex(project.name, stack_name)
            if vertex in vertices:
                raise DuplicateVertexError(
                    code="E_DUPLICATE_VERTEX",
                    message=f"vertex produced twice: {vertex}",
                )
            vertices.add(vertex)

    stacks_of = {p.name: set(p.stack_names()) for p in merged}

    edges: set[tuple[Vertex, Vertex]] = set()
    for project in merged:
        for dep in project.depends_on:
            dep_stacks = stacks_of.get(dep, set())
            for stack_name in project.stack_names():
                if stack_name in dep_stacks:
                    edges.add((Vertex(dep, stack_name), Vertex(project.name, stack_name)))

    return StackGraph(vertices=frozenset(vertices), edges=frozenset(edges))
