import json

from typer.testing import CliRunner

from stackorder.cli import app


runner = CliRunner()


def test_cli_validate_ok():
    r = runner.invoke(app, ["validate", "--config", "examples/projects.yml"])
    assert r.exit_code == 0
    assert "OK: 4 projects, 7 stacks, 4 stages" in r.output


def test_cli_validate_missing_dependency():
    r = runner.invoke(app, ["validate", "--config", "examples/invalid-missing-dep.yml"])
    assert r.exit_code == 2
    assert "E_MISSING_DEPENDENCY" in r.output
    assert "'ghost'" in r.output


def test_cli_validate_cycle():
    r = runner.invoke(app, ["validate", "--config", "examples/invalid-cycle.yml"])
    assert r.exit_code == 2
    assert "E_CYCLE" in r.output


def test_cli_validate_config_error():
    r = runner.invoke(app, ["validate", "--config", "examples/invalid-stacks.yml"])
    assert r.exit_code == 1
    assert "E_REQUIRED_FIELD" in r.output


def test_cli_validate_json():
    r = runner.invoke(app, ["validate", "--config", "examples/projects.yml", "--format", "json"])
    assert r.exit_code == 0
    payload = json.loads(r.stdout)
    assert payload["ok"] is True
    assert payload["summary"]["stage_count"] == 4
    assert payload["summary"]["stages"][0] == ["network:dev", "network:prod"]


def test_cli_validate_json_errors():
    r = runner.invoke(app, ["validate", "--config", "examples/invalid-missing-dep.yml", "--format", "json"])
    assert r.exit_code == 2
    payload = json.loads(r.stdout)
    assert payload["ok"] is False
    assert payload["errors"][0]["code"] == "E_MISSING_DEPENDENCY"


def test_cli_validate_unknown_format():
    r = runner.invoke(app, ["validate", "--config", "examples/projects.yml", "--format", "xml"])
    assert r.exit_code == 2
    assert "E_VALIDATE_UNKNOWN_FORMAT" in r.output
