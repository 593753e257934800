import io
import json
import logging

from stackorder.core.logging import FieldFormatter, JSONFormatter, bind_fields, configure_logging


def _capture(formatter):
    stream = io.StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(formatter)
    log = logging.getLogger("stackorder.test.capture")
    log.handlers[:] = [handler]
    log.setLevel(logging.DEBUG)
    log.propagate = False
    return log, stream


def test_bound_fields_in_json_output():
    log, stream = _capture(JSONFormatter())
    stage_log = bind_fields(log, operation="deploy", stage=2)
    stage_log.bind(project="app", stack="prod").info("Deploying stack")
    entry = json.loads(stream.getvalue())
    assert entry["message"] == "Deploying stack"
    assert entry["operation"] == "deploy"
    assert entry["stage"] == 2
    assert entry["project"] == "app"
    assert entry["stack"] == "prod"


def test_bind_does_not_leak_into_parent_adapter():
    log, stream = _capture(JSONFormatter())
    parent = bind_fields(log, stage=1)
    parent.bind(project="a")
    parent.info("stage line")
    entry = json.loads(stream.getvalue())
    assert "project" not in entry


def test_text_formatter_appends_fields():
    log, stream = _capture(FieldFormatter("%(levelname)s %(message)s"))
    bind_fields(log, stage=3).warning("slow")
    assert stream.getvalue().strip() == "WARNING slow stage=3"


def test_configure_logging_sets_level_and_single_handler():
    configure_logging("debug", json_format=True)
    configure_logging("warning", json_format=False)
    root = logging.getLogger("stackorder")
    assert root.level == logging.WARNING
    assert len(root.handlers) == 1
    assert isinstance(root.handlers[0].formatter, FieldFormatter)
