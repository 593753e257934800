from stackorder.core.io.load_config import load_config
from stackorder.core.preview.preview import plan_schedule, render_preview, schedule_payload


def test_render_deploy_preview():
    schedule = plan_schedule(load_config("examples/projects.yml"))
    text = render_preview(schedule, "apply")
    assert text.splitlines() == [
        "Deploy Plan:",
        "Stage 1:",
        "  network:dev",
        "  network:prod",
        "Stage 2:",
        "  database:dev",
        "  database:prod",
        "Stage 3:",
        "  app:dev",
        "  app:prod",
        "Stage 4:",
        "  monitoring:prod",
    ]


def test_render_destroy_preview_is_reversed():
    schedule = plan_schedule(load_config("examples/projects.yml"))
    lines = render_preview(schedule, "teardown").splitlines()
    assert lines[0] == "Destroy Plan:"
    assert lines[1:3] == ["Stage 1:", "  monitoring:prod"]
    assert lines[-2:] == ["  network:dev", "  network:prod"]


def test_schedule_payload():
    schedule = plan_schedule(load_config("examples/projects.yml"))
    payload = schedule_payload(schedule, "apply")
    assert payload["stage_count"] == 4
    assert payload["stacks"] == 7
    assert payload["stages"][0] == {"stage": 1, "stacks": ["network:dev", "network:prod"]}
