from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from stackorder.core.model import ProjectSource

ENV_PREFIX = "STACKORDER"
DEFAULT_CONFIG = "projects.yml"


@dataclass(frozen=True)
class RunSettings:
    """Resolved options for one deploy/destroy invocation."""

    config: str = DEFAULT_CONFIG
    org: str = ""
    path: str = ""
    git_url: str = ""
    git_branch: str = "main"
    preview: bool = False
    json: bool = False
    stop_on_failure: bool = False
    error_file: Optional[str] = None
    log_level: str = "INFO"
    pulumi: str = "pulumi"

    @property
    def source(self) -> ProjectSource:
        return ProjectSource(local_path=self.path, git_url=self.git_url, git_branch=self.git_branch)


def envvar(name: str) -> str:
    """Environment variable consulted for an option, e.g. STACKORDER_ORG."""
    return f"{ENV_PREFIX}_{name.upper().replace('-', '_')}"
