"""
tofu_bootstrap.config: Runtime settings read from the process environment.

Every setting has a default matching the organisation's standard layout, so a
bare `tofu-bootstrap <tenant> <env>` works without any exports.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass

DEFAULT_ORGANIZATION = "contoso"
DEFAULT_AWS_REGION = "us-west-2"
DEFAULT_GITHUB_TEAM_SLUG = "cloud-and-platform-services"
DEFAULT_OIDC_HOST = "token.actions.githubusercontent.com"
DEFAULT_GITHUB_API_URL = "https://api.github.com"
DEFAULT_STACK_POLL_SECONDS = 10.0


@dataclass(frozen=True)
class BootstrapSettings:
    organization: str = DEFAULT_ORGANIZATION
    aws_region: str = DEFAULT_AWS_REGION
    github_team_slug: str = DEFAULT_GITHUB_TEAM_SLUG
    oidc_host: str = DEFAULT_OIDC_HOST
    github_api_url: str = DEFAULT_GITHUB_API_URL
    stack_poll_seconds: float = DEFAULT_STACK_POLL_SECONDS


def _setting(environ: Mapping[str, str], name: str, default: str) -> str:
    value = environ.get(name, "").strip()
    return value or default


def load_settings(environ: Mapping[str, str] | None = None) -> BootstrapSettings:
    """Build settings from environment variables, falling back to defaults."""
    env = os.environ if environ is None else environ

    raw_poll = _setting(env, "BOOTSTRAP_STACK_POLL_SECONDS", str(DEFAULT_STACK_POLL_SECONDS))
    try:
        poll_seconds = float(raw_poll)
    except ValueError as exc:
        raise ValueError(
            f"BOOTSTRAP_STACK_POLL_SECONDS must be a number, got {raw_poll!r}"
        ) from exc
    if poll_seconds <= 0:
        raise ValueError("BOOTSTRAP_STACK_POLL_SECONDS must be positive")

    return BootstrapSettings(
        organization=_setting(env, "BOOTSTRAP_ORG", DEFAULT_ORGANIZATION),
        aws_region=_setting(env, "AWS_REGION", DEFAULT_AWS_REGION),
        github_team_slug=_setting(env, "BOOTSTRAP_GITHUB_TEAM_SLUG", DEFAULT_GITHUB_TEAM_SLUG),
        oidc_host=_setting(env, "BOOTSTRAP_OIDC_HOST", DEFAULT_OIDC_HOST),
        github_api_url=_setting(env, "GITHUB_API_URL", DEFAULT_GITHUB_API_URL).rstrip("/"),
        stack_poll_seconds=poll_seconds,
    )
