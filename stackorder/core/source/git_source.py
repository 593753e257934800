from __future__ import annotations

import logging
import shutil
import subprocess
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from stackorder.core.errors import SourceError
from stackorder.core.model import ProjectSource

logger = logging.getLogger(__name__)


@contextmanager
def resolve_source(source: ProjectSource, prefix: str = "stackorder-src-") -> Iterator[Path]:
    """Yield the directory that holds the project folders.

    Local sources are yielded as-is. Git sources are shallow-cloned into a
    temporary directory that is removed afterwards.
    """
    if not source.is_git:
        yield Path(source.local_path or ".").resolve()
        return

    base_dir = Path(tempfile.mkdtemp(prefix=prefix))
    try:
        args = ["git", "clone", "--depth", "1", "--branch", source.git_branch, source.git_url, str(base_dir)]
        logger.info("cloning %s (branch %s)", source.git_url, source.git_branch)
        try:
            proc = subprocess.run(args, capture_output=True, text=True)
        except OSError as e:
            raise SourceError(code="E_SOURCE_GIT", message=f"could not run git: {e}") from e
        if proc.returncode != 0:
            raise SourceError(
                code="E_SOURCE_CLONE",
                message="git clone failed: " + ((proc.stdout or "") + (proc.stderr or "")).strip(),
            )

        root = base_dir / source.local_path if source.local_path else base_dir
        if not root.is_dir():
            raise SourceError(
                code="E_SOURCE_PATH",
                message=f"path {source.local_path!r} not found in {source.git_url}",
            )
        yield root
    finally:
        shutil.rmtree(base_dir, ignore_errors=True)
