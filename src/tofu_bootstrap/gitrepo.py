"""
tofu_bootstrap.gitrepo: Local git working tree queries.

The bootstrap must run inside a clone of the infrastructure repository: the
repository root locates the environment scaffold and the origin remote names
the GitHub owner/repository the OIDC roles trust.
"""

from __future__ import annotations

import subprocess
from pathlib import Path

from tofu_bootstrap.exceptions import NotAGitRepository


def run(cmd: list[str], *, cwd: Path | None = None) -> subprocess.CompletedProcess[str]:
    return subprocess.run(
        cmd,
        cwd=str(cwd) if cwd else None,
        check=True,
        capture_output=True,
        text=True,
    )


def is_inside_work_tree(path: Path | None = None) -> bool:
    try:
        result = run(["git", "rev-parse", "--is-inside-work-tree"], cwd=path)
    except (subprocess.CalledProcessError, FileNotFoundError):
        return False
    return result.stdout.strip() == "true"


def repo_root(path: Path | None = None) -> Path:
    if not is_inside_work_tree(path):
        raise NotAGitRepository("Not a git repo: run the bootstrap from inside a git working tree")
    return Path(run(["git", "rev-parse", "--show-toplevel"], cwd=path).stdout.strip())


def origin_url(root: Path) -> str:
    try:
        url = run(["git", "config", "--get", "remote.origin.url"], cwd=root).stdout.strip()
    except subprocess.CalledProcessError as exc:
        raise NotAGitRepository(f"Could not read git remote 'origin' in {root}") from exc
    if not url:
        raise NotAGitRepository(f"Git remote 'origin' has no URL in {root}")
    return url
