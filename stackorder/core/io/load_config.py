from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Optional

import yaml

from stackorder.core.errors import ConfigError
from stackorder.core.model import Project, StackDefinition


def load_config(path: str) -> list[Project]:
    """Load a projects file (YAML/JSON) and decode it into Project records.

    Duplicate project names are kept as separate entries; merging is the
    graph builder's job.
    """
    data = load_document(path)
    return parse_projects(data, file=path)


def load_document(path: str) -> dict[str, Any]:
    p = Path(path)
    if not p.exists():
        raise ConfigError(
            code="E_FILE_NOT_FOUND",
            message="file does not exist",
            file=str(p),
        )

    suffix = p.suffix.lower()
    try:
        raw_text = p.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(code="E_FILE_READ", message=str(e), file=str(p)) from e

    try:
        if suffix in {".yaml", ".yml"}:
            data = yaml.safe_load(raw_text)
        elif suffix == ".json":
            data = json.loads(raw_text)
        else:
            raise ConfigError(
                code="E_UNSUPPORTED_FORMAT",
                message="supported formats are .yaml/.yml and .json",
                file=str(p),
            )
    except ConfigError:
        raise
    except Exception as e:
        code = "E_YAML_PARSE" if suffix in {".yaml", ".yml"} else "E_JSON_PARSE"
        raise ConfigError(code=code, message=str(e), file=str(p)) from e

    if not isinstance(data, dict):
        raise ConfigError(
            code="E_INVALID_TOP_LEVEL",
            message="top-level document must be a mapping/object",
            file=str(p),
        )
    return data


def parse_projects(data: dict[str, Any], file: Optional[str] = None) -> list[Project]:
    projects = data.get("projects")
    if not isinstance(projects, list):
        raise ConfigError(
            code="E_REQUIRED_FIELD",
            message="projects is required and must be an array",
            file=file,
            path="projects",
        )
    return [_parse_project(raw, f"projects[{i}]", file) for i, raw in enumerate(projects)]


def _parse_project(raw: Any, path: str, file: Optional[str]) -> Project:
    if not isinstance(raw, dict):
        raise ConfigError(code="E_INVALID_TYPE", message="project must be an object", file=file, path=path)

    name = raw.get("name")
    if not isinstance(name, str) or not name.strip():
        raise ConfigError(
            code="E_REQUIRED_FIELD",
            message="name is required and must be a non-empty string",
            file=file,
            path=f"{path}.name",
        )
    if ":" in name:
        raise ConfigError(
            code="E_INVALID_NAME",
            message=f"project name must not contain ':': {name}",
            file=file,
            path=f"{path}.name",
        )

    deps = raw.get("dependsOn")
    if deps is None:
        deps = []
    if not isinstance(deps, list) or not all(isinstance(d, str) for d in deps):
        raise ConfigError(
            code="E_INVALID_TYPE",
            message="dependsOn must be an array of strings",
            file=file,
            path=f"{path}.dependsOn",
        )

    project_dir = raw.get("dir")
    if project_dir is not None and not isinstance(project_dir, str):
        raise ConfigError(code="E_INVALID_TYPE", message="dir must be a string", file=file, path=f"{path}.dir")

    project_profile = _optional_str(raw, "aws_profile", path, file)

    stacks_raw = raw.get("stacks")
    if not isinstance(stacks_raw, list):
        raise ConfigError(
            code="E_REQUIRED_FIELD",
            message="stacks is required and must be an array",
            file=file,
            path=f"{path}.stacks",
        )

    stacks: list[StackDefinition] = []
    seen: set[str] = set()
    for si, item in enumerate(stacks_raw):
        stack = _parse_stack(item, f"{path}.stacks[{si}]", file, project_profile)
        if stack.name in seen:
            raise ConfigError(
                code="E_DUPLICATE_STACK",
                message=f"duplicate stack name in project {name}: {stack.name}",
                file=file,
                path=f"{path}.stacks[{si}].name",
            )
        seen.add(stack.name)
        stacks.append(stack)

    return Project(name=name, stacks=stacks, depends_on=list(deps), dir=project_dir or None)


def _parse_stack(item: Any, path: str, file: Optional[str], project_profile: Optional[str]) -> StackDefinition:
    # Both `- prod` and `- {name: prod, env: {...}}` decode to the same record.
    if isinstance(item, str):
        name: Any = item
        env_raw: Any = {}
        profile = None
    elif isinstance(item, dict):
        name = item.get("name")
        env_raw = item.get("env") or {}
        profile = _optional_str(item, "aws_profile", path, file)
    else:
        raise ConfigError(
            code="E_INVALID_TYPE",
            message="stacks must be a list of strings or a list of stack config objects",
            file=file,
            path=path,
        )

    if not isinstance(name, str) or not name.strip():
        raise ConfigError(
            code="E_REQUIRED_FIELD",
            message="stack name is required and must be a non-empty string",
            file=file,
            path=f"{path}.name" if isinstance(item, dict) else path,
        )
    if ":" in name:
        raise ConfigError(
            code="E_INVALID_NAME",
            message=f"stack name must not contain ':': {name}",
            file=file,
            path=f"{path}.name" if isinstance(item, dict) else path,
        )

    if not isinstance(env_raw, dict):
        raise ConfigError(code="E_INVALID_TYPE", message="env must be a mapping", file=file, path=f"{path}.env")

    env: dict[str, str] = {}
    profile = profile or project_profile
    if profile:
        env["AWS_PROFILE"] = profile
    for k, v in env_raw.items():
        if not isinstance(k, str) or not k:
            raise ConfigError(
                code="E_INVALID_TYPE",
                message="env keys must be non-empty strings",
                file=file,
                path=f"{path}.env",
            )
        if isinstance(v, bool) or not isinstance(v, (str, int, float)):
            raise ConfigError(
                code="E_INVALID_TYPE",
                message=f"env value for {k} must be a string",
                file=file,
                path=f"{path}.env.{k}",
            )
        env[k] = str(v)

    return StackDefinition(name=name, env=env)


def _optional_str(raw: dict[str, Any], key: str, path: str, file: Optional[str]) -> Optional[str]:
    value = raw.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ConfigError(code="E_INVALID_TYPE", message=f"{key} must be a string", file=file, path=f"{path}.{key}")
    return value or None
