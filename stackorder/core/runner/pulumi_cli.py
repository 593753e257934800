from __future__ import annotations

import json
import shutil
import subprocess
import threading
from collections import deque
from pathlib import Path
from typing import Mapping, Optional

from stackorder.core.errors import RunnerError
from stackorder.core.runner.contracts import RunResult, StackHandle, qualify_stack_name
from stackorder.core.runner.progress import ProgressSink

TAIL_LINES = 20


class PulumiCliRunner:
    """StackRunner backed by the `pulumi` executable.

    Each call runs in the stack's project directory with the unit's
    environment as the child process environment.
    """

    def __init__(self, pulumi: str = "pulumi", json_events: bool = False) -> None:
        self.pulumi = pulumi
        self.json_events = json_events

    def resolve_or_create(self, org: str, stack_name: str, working_directory: Path) -> StackHandle:
        qualified = qualify_stack_name(org, stack_name)
        if not Path(working_directory).is_dir():
            raise RunnerError(
                code="E_RUNNER_WORKDIR",
                message=f"project directory does not exist: {working_directory}",
            )
        handle = StackHandle(qualified_name=qualified, working_directory=Path(working_directory))
        proc = self._run_quiet(
            [self._binary(), "stack", "select", qualified, "--create", "--non-interactive"],
            handle.working_directory,
        )
        if proc.returncode != 0:
            output = ((proc.stdout or "") + (proc.stderr or "")).strip()
            raise RunnerError(
                code="E_RUNNER_SELECT",
                message=f"failed to select stack {qualified}: {output}",
                exit_code=proc.returncode,
            )
        return handle

    def apply(
        self,
        handle: StackHandle,
        environment: Mapping[str, str],
        sink: ProgressSink,
        cancel: Optional[threading.Event] = None,
    ) -> RunResult:
        return self._engine("up", handle, environment, sink, cancel)

    def teardown(
        self,
        handle: StackHandle,
        environment: Mapping[str, str],
        sink: ProgressSink,
        cancel: Optional[threading.Event] = None,
    ) -> RunResult:
        return self._engine("destroy", handle, environment, sink, cancel)

    def build_command(self, verb: str, handle: StackHandle) -> list[str]:
        args = [
            self._binary(),
            verb,
            "--stack",
            handle.qualified_name,
            "--yes",
            "--skip-preview",
            "--non-interactive",
        ]
        if self.json_events:
            args.append("--json")
        return args

    def _engine(
        self,
        verb: str,
        handle: StackHandle,
        environment: Mapping[str, str],
        sink: ProgressSink,
        cancel: Optional[threading.Event],
    ) -> RunResult:
        args = self.build_command(verb, handle)
        try:
            proc = subprocess.Popen(
                args,
                cwd=str(handle.working_directory),
                env=dict(environment),
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
            )
        except OSError as e:
            raise RunnerError(code="E_RUNNER_EXEC", message=f"could not start {args[0]}: {e}") from e

        finished = threading.Event()
        if cancel is not None:
            threading.Thread(
                target=_terminate_on_cancel, args=(proc, cancel, finished), daemon=True
            ).start()

        tail: deque[str] = deque(maxlen=TAIL_LINES)
        resources: list[str] = []
        try:
            assert proc.stdout is not None
            for line in proc.stdout:
                tail.append(line.rstrip())
                resources.extend(_error_urns(line))
                sink.emit(line)
            returncode = proc.wait()
        finally:
            finished.set()

        if cancel is not None and cancel.is_set() and returncode != 0:
            raise RunnerError(
                code="E_RUNNER_CANCELLED",
                message=f"pulumi {verb} for {handle.qualified_name} was cancelled",
                exit_code=returncode,
            )
        if returncode != 0:
            output = "\n".join(tail)
            raise RunnerError(
                code="E_RUNNER",
                message=f"pulumi {verb} failed for {handle.qualified_name} (exit={returncode}): {output}",
                resources=tuple(dict.fromkeys(resources)),
                exit_code=returncode,
            )
        return RunResult(summary=f"pulumi {verb} succeeded for {handle.qualified_name}")

    def _binary(self) -> str:
        found = shutil.which(self.pulumi)
        if found is None:
            raise RunnerError(
                code="E_RUNNER_NOT_FOUND",
                message=f"'{self.pulumi}' was not found on PATH; install the Pulumi CLI",
            )
        return found

    def _run_quiet(self, args: list[str], cwd: Path) -> subprocess.CompletedProcess[str]:
        try:
            return subprocess.run(args, cwd=str(cwd), capture_output=True, text=True)
        except OSError as e:
            raise RunnerError(code="E_RUNNER_EXEC", message=f"could not start {args[0]}: {e}") from e


def _terminate_on_cancel(proc: subprocess.Popen, cancel: threading.Event, finished: threading.Event) -> None:
    while not finished.is_set():
        if cancel.wait(timeout=0.5):
            if proc.poll() is None:
                proc.terminate()
            return


def _error_urns(line: str) -> list[str]:
    """URNs attached to error diagnostics in a JSON engine event line."""
    line = line.strip()
    if not line.startswith("{"):
        return []
    try:
        event = json.loads(line)
    except json.JSONDecodeError:
        return []
    if not isinstance(event, dict):
        return []
    diag = event.get("diagnosticEvent")
    if isinstance(diag, dict) and diag.get("severity") == "error" and isinstance(diag.get("urn"), str):
        return [diag["urn"]]
    return []
