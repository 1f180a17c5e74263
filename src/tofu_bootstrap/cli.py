"""
tofu-bootstrap: Bootstrap OpenTofu state and GitHub Actions access for one environment.

Usage:
    tofu-bootstrap TENANT ENVIRONMENT [--report-file PATH] [--skip-scaffold] [--verbose]

Run from inside a clone of the infrastructure repository. The origin remote
decides which GitHub repository the OIDC roles trust. Re-running with the same
arguments converges to the same state.
"""

from __future__ import annotations

import argparse
import logging
from pathlib import Path

from tofu_bootstrap import gitrepo
from tofu_bootstrap.config import load_settings
from tofu_bootstrap.exceptions import BootstrapError
from tofu_bootstrap.github import resolve_github_token
from tofu_bootstrap.models import VALID_ENVIRONMENTS
from tofu_bootstrap.names import build_request
from tofu_bootstrap.orchestrator import BootstrapOrchestrator, build_services

logger = logging.getLogger("tofu_bootstrap")

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments."""
    parser = argparse.ArgumentParser(
        prog="tofu-bootstrap",
        description="Bootstrap the OpenTofu state backend and GitHub OIDC roles",
    )
    parser.add_argument("tenant", help="Tenant name used in every derived resource name")
    parser.add_argument(
        "environment",
        help=f"Target environment ({', '.join(VALID_ENVIRONMENTS)})",
    )
    parser.add_argument(
        "--report-file",
        type=Path,
        default=None,
        help="Write a JSON run report to this path",
    )
    parser.add_argument(
        "--skip-scaffold",
        action="store_true",
        help="Do not create infra/environments/<environment>/",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    """CLI entrypoint."""
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format=LOG_FORMAT,
    )

    try:
        settings = load_settings()
        root = gitrepo.repo_root()
        request = build_request(
            organization=settings.organization,
            tenant=args.tenant,
            environment=args.environment,
            remote_url=gitrepo.origin_url(root),
            aws_region=settings.aws_region,
        )
        token = resolve_github_token()
    except (BootstrapError, ValueError) as exc:
        logger.error("%s", exc)
        return 1

    orchestrator = BootstrapOrchestrator(
        build_services(settings, token),
        report_path=args.report_file,
    )
    try:
        orchestrator.run(request, repo_root=None if args.skip_scaffold else root)
    except Exception as exc:
        step = orchestrator.failure[0] if orchestrator.failure else "unknown"
        logger.error("Bootstrap failed at step %s: %s", step, exc)
        return 1

    logger.info(
        "Bootstrap of %s/%s completed for %s",
        request.tenant,
        request.environment,
        request.repository_slug,
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
