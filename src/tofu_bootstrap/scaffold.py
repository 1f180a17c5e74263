"""
tofu_bootstrap.scaffold: Environment directory scaffolding.

Creates infra/environments/<env>/ from the *.sample files in
infra/environments/sample/ and sets the `tenant` key in global.yaml.

Idempotent: an existing environment directory is left untouched. The scaffold
is assembled in a temporary sibling directory and renamed into place, so a
failure (e.g. global.yaml without a `tenant` key) never leaves a half-built
directory that a re-run would then skip.
"""

from __future__ import annotations

import logging
import re
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path

from tofu_bootstrap.exceptions import ScaffoldError

logger = logging.getLogger(__name__)

ENVIRONMENTS_DIR = Path("infra") / "environments"
SAMPLE_DIR_NAME = "sample"
SAMPLE_SUFFIX = ".sample"
GLOBAL_CONFIG_FILE = "global.yaml"

_TENANT_LINE_RE = re.compile(r"^tenant:.*$", re.MULTILINE)


@dataclass(frozen=True)
class ScaffoldResult:
    path: Path
    created: bool
    files: tuple[str, ...] = ()


def set_tenant(config_path: Path, tenant: str) -> None:
    """Rewrite the top-level `tenant:` line of a YAML file, keeping everything else."""
    text = config_path.read_text(encoding="utf-8")
    if not _TENANT_LINE_RE.search(text):
        raise ScaffoldError(f"Missing 'tenant' in {config_path}")
    escaped = tenant.replace("\\", "\\\\").replace('"', '\\"')
    updated = _TENANT_LINE_RE.sub(lambda _: f'tenant: "{escaped}"', text)
    config_path.write_text(updated, encoding="utf-8")


def scaffold_environment(repo_root: Path, environment: str, tenant: str) -> ScaffoldResult:
    """Create the environment directory unless it already exists."""
    environments_dir = repo_root / ENVIRONMENTS_DIR
    env_dir = environments_dir / environment
    if env_dir.exists():
        logger.info("Environment '%s' already exists at %s; skipping", environment, env_dir)
        return ScaffoldResult(path=env_dir, created=False)

    sample_dir = environments_dir / SAMPLE_DIR_NAME
    samples = sorted(sample_dir.glob(f"*{SAMPLE_SUFFIX}")) if sample_dir.is_dir() else []
    if not samples:
        raise ScaffoldError(f"No {SAMPLE_SUFFIX} files found in {sample_dir}")

    staging = Path(tempfile.mkdtemp(prefix=f".{environment}-", dir=environments_dir))
    try:
        staging.chmod(0o755)
        copied: list[str] = []
        for sample in samples:
            target = staging / sample.name.removesuffix(SAMPLE_SUFFIX)
            shutil.copyfile(sample, target)
            copied.append(target.name)

        config_path = staging / GLOBAL_CONFIG_FILE
        if not config_path.exists():
            raise ScaffoldError(f"Missing {GLOBAL_CONFIG_FILE}{SAMPLE_SUFFIX} in {sample_dir}")
        try:
            set_tenant(config_path, tenant)
        except ScaffoldError as exc:
            sample_config = sample_dir / f"{GLOBAL_CONFIG_FILE}{SAMPLE_SUFFIX}"
            raise ScaffoldError(f"Missing 'tenant' in {sample_config}") from exc

        staging.rename(env_dir)
    except BaseException:
        shutil.rmtree(staging, ignore_errors=True)
        raise

    logger.info("Environment directory %s created (%d files)", env_dir, len(copied))
    return ScaffoldResult(path=env_dir, created=True, files=tuple(copied))
