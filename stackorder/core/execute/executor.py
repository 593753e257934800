from __future__ import annotations

import logging
import os
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, Mapping, Optional

from stackorder.core.errors import RunnerError
from stackorder.core.execute.env_scope import scoped_environment
from stackorder.core.execute.report import ExecutionReport, VertexFailure
from stackorder.core.graph.build_graph import merge_projects
from stackorder.core.logging import FieldAdapter, bind_fields
from stackorder.core.model import Direction, ExecutionGroup, Project, Schedule, Vertex
from stackorder.core.runner.contracts import StackRunner
from stackorder.core.runner.progress import ProgressSink, make_sink

logger = logging.getLogger(__name__)

SinkFactory = Callable[["UnitContext"], ProgressSink]

_VERBS = {
    "apply": ("Deploying", "deployed", "deploy"),
    "teardown": ("Destroying", "destroyed", "destroy"),
}

# Runner failures no other stack can get past either; they cancel the run.
FATAL_RUNNER_CODES = frozenset({"E_RUNNER_NOT_FOUND"})


@dataclass(frozen=True)
class UnitContext:
    """Everything one unit of work needs, including its own logger fields."""

    vertex: Vertex
    stage: int
    direction: Direction
    logger: FieldAdapter
    cancel: threading.Event


class _RunState:
    def __init__(self, direction: Direction) -> None:
        self._lock = threading.Lock()
        self.report = ExecutionReport(direction=direction)

    def complete(self, vertex: Vertex) -> None:
        with self._lock:
            self.report.completed.append(vertex)

    def fail(self, vertex: Vertex, stage: int, error: RunnerError) -> None:
        with self._lock:
            self.report.failures.append(VertexFailure(vertex=vertex, stage=stage, error=error))

    def skip(self, vertices: Iterable[Vertex]) -> None:
        with self._lock:
            self.report.skipped.extend(vertices)

    def failures_since(self, count: int) -> list[VertexFailure]:
        with self._lock:
            return list(self.report.failures[count:])

    def failure_count(self) -> int:
        with self._lock:
            return len(self.report.failures)


class StageExecutor:
    """Runs a schedule group by group, each group fully concurrent.

    Failed units are recorded and never abort their siblings. With
    `stop_on_failure`, no group starts after one that had failures; otherwise
    every group runs and all failures are reported at the end.
    """

    def __init__(
        self,
        runner: StackRunner,
        projects: Iterable[Project],
        *,
        org: str = "",
        source_root: str | Path = ".",
        json_events: bool = False,
        stop_on_failure: bool = False,
        base_environment: Optional[Mapping[str, str]] = None,
        sink_factory: Optional[SinkFactory] = None,
        cancel: Optional[threading.Event] = None,
    ) -> None:
        self.runner = runner
        self.projects = {p.name: p for p in merge_projects(projects)}
        self.org = org
        self.source_root = Path(source_root)
        self.json_events = json_events
        self.stop_on_failure = stop_on_failure
        self.base_environment = dict(os.environ if base_environment is None else base_environment)
        self.sink_factory = sink_factory or self._default_sink
        self.cancel = cancel or threading.Event()

    def run(self, schedule: Schedule, direction: Direction) -> ExecutionReport:
        groups = schedule.ordered(direction)
        _, _, op = _VERBS[direction]
        run_log = bind_fields(logger, operation=op)
        state = _RunState(direction)

        run_log.info("%s schedule: %d stacks in %d stages", op, schedule.vertex_count(), len(groups))
        for stage, group in enumerate(groups, 1):
            run_log.info("stage %d: %s", stage, ", ".join(str(v) for v in group))

        for stage, group in enumerate(groups, 1):
            if self.cancel.is_set():
                state.report.cancelled = True
                state.skip(v for g in groups[stage - 1 :] for v in g)
                run_log.warning("run cancelled; skipping %d remaining stages", len(groups) - stage + 1)
                break
            if self.stop_on_failure and state.failure_count():
                state.skip(v for g in groups[stage - 1 :] for v in g)
                run_log.error("stopping after failed stage; skipping %d remaining stages", len(groups) - stage + 1)
                break

            stage_log = run_log.bind(stage=stage)
            stage_log.info("executing %s stage", op)
            before = state.failure_count()
            self._run_group(group, stage, direction, stage_log, state)
            state.report.stages = stage

            group_failures = state.failures_since(before)
            if group_failures:
                for failure in group_failures:
                    stage_log.error("%s failed: %s", failure.vertex, failure.error.message)
                stage_log.error("%s stage finished with %d failures", op, len(group_failures))
            else:
                stage_log.info("completed %s stage", op)

        if self.cancel.is_set():
            state.report.cancelled = True

        report = state.report
        if report.ok:
            run_log.info("%s completed successfully", op)
        else:
            run_log.error(
                "%s finished with failures: %s",
                op,
                ", ".join(str(v) for v in report.failed_vertices()) or "none",
            )
        return report

    def _run_group(
        self,
        group: ExecutionGroup,
        stage: int,
        direction: Direction,
        stage_log: FieldAdapter,
        state: _RunState,
    ) -> None:
        if not group:
            return
        # One worker per vertex: group width is the only concurrency limit.
        with ThreadPoolExecutor(max_workers=len(group)) as pool:
            try:
                futures = {}
                for vertex in group:
                    ctx = UnitContext(
                        vertex=vertex,
                        stage=stage,
                        direction=direction,
                        logger=stage_log.bind(project=vertex.project, stack=vertex.stack),
                        cancel=self.cancel,
                    )
                    futures[pool.submit(self._run_unit, ctx, state)] = vertex

                for future in as_completed(futures):
                    vertex = futures[future]
                    try:
                        future.result()
                    except Exception as e:
                        state.fail(
                            vertex,
                            stage,
                            RunnerError(code="E_RUNNER", message=f"unexpected error: {e}"),
                        )
            except BaseException:
                # Interrupts reach the coordinating thread only; tell the units.
                self.cancel.set()
                raise

    def _run_unit(self, ctx: UnitContext, state: _RunState) -> None:
        vertex = ctx.vertex
        if ctx.cancel.is_set():
            state.skip([vertex])
            return

        doing, done, op = _VERBS[ctx.direction]
        project = self.projects.get(vertex.project)
        stack = project.stack(vertex.stack) if project else None
        if project is None or stack is None:
            state.fail(
                vertex,
                ctx.stage,
                RunnerError(code="E_RUNNER_UNKNOWN_STACK", message=f"no definition for {vertex}"),
            )
            return

        working_directory = self.source_root / (project.dir or project.name)
        ctx.logger.info("%s stack", doing)
        try:
            handle = self.runner.resolve_or_create(self.org, vertex.stack, working_directory)
            environment = dict(self.base_environment)
            with scoped_environment(environment, stack.env) as scoped:
                sink = self.sink_factory(ctx)
                if ctx.direction == "apply":
                    self.runner.apply(handle, scoped, sink, ctx.cancel)
                else:
                    self.runner.teardown(handle, scoped, sink, ctx.cancel)
        except RunnerError as e:
            ctx.logger.error("failed to %s stack: %s", op, e.message)
            state.fail(vertex, ctx.stage, e)
            if e.code in FATAL_RUNNER_CODES:
                ctx.logger.error("cancelling remaining stacks after %s", e.code)
                self.cancel.set()
            return
        except Exception as e:
            ctx.logger.exception("failed to %s stack", op)
            state.fail(vertex, ctx.stage, RunnerError(code="E_RUNNER", message=f"{type(e).__name__}: {e}"))
            return

        state.complete(vertex)
        ctx.logger.info("successfully %s stack", done)

    def _default_sink(self, ctx: UnitContext) -> ProgressSink:
        return make_sink(self.json_events, str(ctx.vertex), ctx.logger)
