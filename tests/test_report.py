from stackorder.core.errors import RunnerError
from stackorder.core.execute.report import (
    ExecutionReport,
    VertexFailure,
    append_error_file,
    extract_resource_ids,
    format_summary,
    remediation_resources,
    summary_payload,
)
from stackorder.core.model import Vertex


URN = "urn:pulumi:prod::app::aws:s3/bucket:Bucket::logs"


def _failure(vertex, message, resources=()):
    return VertexFailure(
        vertex=Vertex(*vertex.split(":")),
        stage=1,
        error=RunnerError(code="E_RUNNER", message=message, resources=tuple(resources)),
    )


def test_structured_resources_win_over_text_scan():
    err = RunnerError(code="E_RUNNER", message=f"failed {URN}", resources=("arn:aws:s3:::logs",))
    assert extract_resource_ids(err) == ["arn:aws:s3:::logs"]


def test_text_scan_finds_urns_once():
    err = RunnerError(code="E_RUNNER", message=f"deleting ({URN}): busy\nretry {URN}")
    assert extract_resource_ids(err) == [URN]


def test_no_marker_means_empty_list():
    err = RunnerError(code="E_RUNNER", message="permission denied")
    assert extract_resource_ids(err) == []


def test_remediation_only_for_teardown():
    failures = [_failure("app:prod", f"error: {URN}"), _failure("net:prod", "timeout")]
    teardown = ExecutionReport(direction="teardown", failures=failures)
    apply = ExecutionReport(direction="apply", failures=failures)
    assert remediation_resources(teardown) == {"app:prod": [URN]}
    assert remediation_resources(apply) == {}


def test_summary_lists_failures_and_cleanup():
    report = ExecutionReport(
        direction="teardown",
        stages=2,
        completed=[Vertex("db", "prod")],
        failures=[_failure("app:prod", f"error: {URN}")],
    )
    text = format_summary(report)
    assert text.startswith("FAILED: destruction")
    assert "- app:prod (stage 1)" in text
    assert "manual cleanup" in text
    assert URN in text


def test_summary_ok():
    report = ExecutionReport(direction="apply", stages=1, completed=[Vertex("a", "s")])
    assert format_summary(report) == "OK: deployment completed (1 stacks, 1 stages)"


def test_summary_payload_shape():
    report = ExecutionReport(direction="apply", stages=1, failures=[_failure("a:s", "nope")])
    payload = summary_payload(report)
    assert payload["ok"] is False
    assert payload["failures"] == [{"vertex": "a:s", "stage": 1, "code": "E_RUNNER", "message": "nope"}]


def test_error_file_appends_one_line_per_failure(tmp_path):
    path = tmp_path / "logs" / "errors.log"
    assert append_error_file(path, [_failure("a:s", "first\nline")])
    assert append_error_file(path, [_failure("b:s", "second")])
    lines = path.read_text(encoding="utf-8").splitlines()
    assert len(lines) == 2
    assert lines[0].endswith("a:s: first line")
    assert lines[1].endswith("b:s: second")


def test_error_file_write_failure_is_not_fatal(tmp_path):
    target = tmp_path / "is-a-dir"
    target.mkdir()
    assert append_error_file(target, [_failure("a:s", "x")]) is False
