from __future__ import annotations

from typing import Iterable

from stackorder.core.errors import MissingDependencyError
from stackorder.core.model import Project


def collect_dependency_errors(projects: Iterable[Project]) -> list[MissingDependencyError]:
    """Return one error per declared dependency that names no known project.

    Checks project names only; stacks play no part here.
    """
    projects = list(projects)
    names = {p.name for p in projects}

    errors: list[MissingDependencyError] = []
    for pi, project in enumerate(projects):
        for di, dep in enumerate(project.depends_on):
            if dep not in names:
                errors.append(
                    MissingDependencyError(
                        code="E_MISSING_DEPENDENCY",
                        message=f"project {project.name!r} depends on missing project {dep!r}",
                        path=f"projects[{pi}].dependsOn[{di}]",
                    )
                )
    return errors


def validate_dependencies(projects: Iterable[Project]) -> None:
    errors = collect_dependency_errors(projects)
    if errors:
        raise errors[0]
