from __future__ import annotations

import json
import logging
from importlib.metadata import PackageNotFoundError, version as package_version
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from stackorder.core.errors import (
    ConfigError,
    CycleError,
    DuplicateVertexError,
    MissingDependencyError,
    SourceError,
    StackOrderError,
)
from stackorder.core.execute.executor import StageExecutor
from stackorder.core.execute.report import (
    ExecutionReport,
    append_error_file,
    format_summary,
    summary_payload,
)
from stackorder.core.io.load_config import load_config
from stackorder.core.logging import configure_logging
from stackorder.core.model import Direction, Project, Schedule
from stackorder.core.preview.preview import plan_schedule, render_preview, schedule_payload
from stackorder.core.runner.contracts import StackRunner
from stackorder.core.runner.pulumi_cli import PulumiCliRunner
from stackorder.core.settings import DEFAULT_CONFIG, RunSettings, envvar
from stackorder.core.source.git_source import resolve_source
from stackorder.core.validate.validate_projects import collect_dependency_errors, validate_dependencies

EXIT_CONFIG = 1
EXIT_GRAPH = 2
EXIT_STAGE_FAILURE = 3
EXIT_INTERRUPTED = 130

app = typer.Typer(add_completion=False, no_args_is_help=True)
logger = logging.getLogger("stackorder.cli")


@app.callback()
def _callback() -> None:
    """Deploy and destroy infrastructure stacks in dependency order."""
    return


def make_runner(settings: RunSettings) -> StackRunner:
    return PulumiCliRunner(pulumi=settings.pulumi, json_events=settings.json)


# Options shared by deploy/destroy; each command gets its own OptionInfo.
def _config_opt():
    return typer.Option(DEFAULT_CONFIG, "--config", envvar=envvar("config"), help="Path to the projects file")


def _org_opt():
    return typer.Option("", "--org", envvar=envvar("org"), help="Org that stacks live in")


def _path_opt():
    return typer.Option("", "--path", envvar=envvar("path"), help="Directory holding the project folders")


def _git_url_opt():
    return typer.Option("", "--git-url", envvar=envvar("git_url"), help="Git repository holding the projects")


def _git_branch_opt():
    return typer.Option("main", "--git-branch", envvar=envvar("git_branch"), help="Git branch to check out")


def _preview_opt():
    return typer.Option(False, "--preview", envvar=envvar("preview"), help="Print the stage plan and exit")


def _json_opt():
    return typer.Option(False, "--json", envvar=envvar("json"), help="Structured JSON logs and engine events")


def _stop_opt():
    return typer.Option(
        False,
        "--stop-on-failure/--continue-on-failure",
        envvar=envvar("stop_on_failure"),
        help="Stop before the next stage once any stack has failed",
    )


def _log_level_opt():
    return typer.Option("INFO", "--log-level", envvar=envvar("log_level"), help="Log level")


def _pulumi_opt():
    return typer.Option("pulumi", "--pulumi", envvar=envvar("pulumi"), help="Pulumi executable")


@app.command("deploy")
def deploy(
    config: str = _config_opt(),
    org: str = _org_opt(),
    path: str = _path_opt(),
    git_url: str = _git_url_opt(),
    git_branch: str = _git_branch_opt(),
    preview: bool = _preview_opt(),
    json_output: bool = _json_opt(),
    stop_on_failure: bool = _stop_opt(),
    error_file: Optional[str] = typer.Option(
        None, "--error-file", envvar=envvar("error_file"), help="Append failures to this file"
    ),
    log_level: str = _log_level_opt(),
    pulumi: str = _pulumi_opt(),
) -> None:
    """Deploy every stack, dependencies first."""
    settings = RunSettings(
        config=config,
        org=org,
        path=path,
        git_url=git_url,
        git_branch=git_branch,
        preview=preview,
        json=json_output,
        stop_on_failure=stop_on_failure,
        error_file=error_file,
        log_level=log_level,
        pulumi=pulumi,
    )
    _run(settings, "apply")


@app.command("destroy")
def destroy(
    config: str = _config_opt(),
    org: str = _org_opt(),
    path: str = _path_opt(),
    git_url: str = _git_url_opt(),
    git_branch: str = _git_branch_opt(),
    preview: bool = _preview_opt(),
    json_output: bool = _json_opt(),
    stop_on_failure: bool = _stop_opt(),
    log_level: str = _log_level_opt(),
    pulumi: str = _pulumi_opt(),
) -> None:
    """Destroy every stack in reverse dependency order."""
    settings = RunSettings(
        config=config,
        org=org,
        path=path,
        git_url=git_url,
        git_branch=git_branch,
        preview=preview,
        json=json_output,
        stop_on_failure=stop_on_failure,
        log_level=log_level,
        pulumi=pulumi,
    )
    _run(settings, "teardown")


@app.command("validate")
def validate(
    config: str = _config_opt(),
    format: str = typer.Option("text", "--format", help="Output format: text|json"),
) -> None:
    """Check the projects file, its dependencies, and that a schedule exists."""
    if format not in ("text", "json"):
        _print_errors(
            [
                ConfigError(
                    code="E_VALIDATE_UNKNOWN_FORMAT",
                    message=f"unknown format: {format} (choose one of: text, json)",
                    path="format",
                )
            ]
        )
        raise typer.Exit(code=2)

    def _emit_json(ok: bool, *, exit_code: int, errors: list[StackOrderError], summary: dict | None) -> None:
        payload = {
            "tool": "stackorder",
            "command": "validate",
            "ok": ok,
            "error_count": len(errors),
            "errors": [
                {"code": e.code, "message": e.message, "file": e.file, "path": e.path} for e in errors
            ],
            "summary": summary,
        }
        typer.echo(json.dumps(payload, indent=2, sort_keys=True))
        raise typer.Exit(code=exit_code)

    try:
        projects = load_config(config)
    except ConfigError as e:
        if format == "json":
            _emit_json(False, exit_code=EXIT_CONFIG, errors=[e], summary=None)
        _print_errors([e])
        raise typer.Exit(code=EXIT_CONFIG)

    errors: list[StackOrderError] = list(collect_dependency_errors(projects))
    schedule: Schedule | None = None
    if not errors:
        try:
            schedule = plan_schedule(projects)
        except (CycleError, DuplicateVertexError) as e:
            errors.append(e)

    if errors or schedule is None:
        if format == "json":
            _emit_json(False, exit_code=EXIT_GRAPH, errors=errors, summary=None)
        _print_errors(errors)
        raise typer.Exit(code=EXIT_GRAPH)

    project_count = len({p.name for p in projects})
    if format == "json":
        _emit_json(
            True,
            exit_code=0,
            errors=[],
            summary={
                "project_count": project_count,
                "stack_count": schedule.vertex_count(),
                "stage_count": len(schedule.groups),
                "stages": schedule.as_ids(),
            },
        )
    typer.echo(
        f"OK: {project_count} projects, {schedule.vertex_count()} stacks, {len(schedule.groups)} stages"
    )


@app.command("version")
def version_cmd() -> None:
    """Print the installed version."""
    try:
        typer.echo(package_version("stackorder"))
    except PackageNotFoundError:
        typer.echo("unknown")


def _run(settings: RunSettings, direction: Direction) -> None:
    configure_logging(settings.log_level, json_format=settings.json)

    try:
        projects = load_config(settings.config)
    except ConfigError as e:
        _print_errors([e])
        raise typer.Exit(code=EXIT_CONFIG)

    try:
        validate_dependencies(projects)
        schedule = plan_schedule(projects)
    except (MissingDependencyError, CycleError, DuplicateVertexError) as e:
        _print_errors([e])
        raise typer.Exit(code=EXIT_GRAPH)

    if settings.preview:
        if settings.json:
            typer.echo(json.dumps(schedule_payload(schedule, direction), indent=2, sort_keys=True))
        else:
            typer.echo(render_preview(schedule, direction))
        return

    try:
        report = _execute(settings, projects, schedule, direction)
    except SourceError as e:
        _print_errors([e])
        raise typer.Exit(code=EXIT_CONFIG)
    except KeyboardInterrupt:
        typer.echo("Interrupted; in-flight stacks were asked to stop.", err=True)
        raise typer.Exit(code=EXIT_INTERRUPTED)

    if direction == "apply" and settings.error_file and report.failures:
        append_error_file(settings.error_file, report.failures)

    _print_report(report, settings)
    if not report.ok:
        raise typer.Exit(code=EXIT_STAGE_FAILURE)


def _execute(
    settings: RunSettings, projects: list[Project], schedule: Schedule, direction: Direction
) -> ExecutionReport:
    with resolve_source(settings.source) as root:
        executor = StageExecutor(
            make_runner(settings),
            projects,
            org=settings.org,
            source_root=root,
            json_events=settings.json,
            stop_on_failure=settings.stop_on_failure,
        )
        return executor.run(schedule, direction)


def _print_report(report: ExecutionReport, settings: RunSettings) -> None:
    if settings.json:
        typer.echo(json.dumps(summary_payload(report), indent=2, sort_keys=True))
        return

    console = Console()
    if console.is_terminal and (report.completed or report.failures or report.skipped):
        table = Table(title=f"stackorder {'deploy' if report.direction == 'apply' else 'destroy'}")
        table.add_column("Stack")
        table.add_column("Stage")
        table.add_column("Status")
        stage_of = {f.vertex: f.stage for f in report.failures}
        for vertex in sorted(report.completed):
            table.add_row(str(vertex), "", "ok")
        for vertex in report.failed_vertices():
            table.add_row(str(vertex), str(stage_of[vertex]), "failed")
        for vertex in sorted(report.skipped):
            table.add_row(str(vertex), "", "skipped")
        console.print(table)

    summary = format_summary(report)
    typer.echo(summary, err=not report.ok)


def _print_errors(errors: list[StackOrderError]) -> None:
    errors_sorted = sorted(errors, key=lambda e: (e.file or "", e.path or "", e.code))
    for e in errors_sorted:
        typer.echo(str(e), err=True)


def main() -> None:
    app(prog_name="stackorder")


cli = typer.main.get_command(app)

if __name__ == "__main__":
    main()
