"""
tofu_bootstrap.ci: Make GitHub Actions aware of the environment and its roles.

Seven ordered steps, each idempotent on its own. A failure stops the sequence
and is reported with the failing step's name; earlier steps stay applied and a
re-run converges to the same end state.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TypeVar

import requests

from tofu_bootstrap.exceptions import CIConfigurationFailed, GitHubApiError
from tofu_bootstrap.github import GitHubClient
from tofu_bootstrap.models import (
    BootstrapRequest,
    CIEnvironmentSpec,
    ProtectionRules,
    StackOutputs,
    UpsertResult,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

APPROVAL_SUFFIX = "-approval"
TEAM_PERMISSION = "pull"

VAR_ENVIRONMENT = "ENVIRONMENT"
VAR_PLAN_ROLE = "AWS_ROLE_TFPLAN"
VAR_APPLY_ROLE = "AWS_ROLE_TFAPPLY"
VAR_DEFAULT_REGION = "AWS_DEFAULT_REGION"

CI_STEPS: tuple[str, ...] = (
    "create-environment",
    "set-environment-variables",
    "grant-team-permission",
    "resolve-team-id",
    "create-approval-environment",
    "set-approval-environment-variables",
    "set-repository-variables",
)


@dataclass(frozen=True)
class CIConfigurationResult:
    environments: tuple[CIEnvironmentSpec, ...]
    team_id: int
    variables: dict[str, dict[str, UpsertResult]] = field(default_factory=dict)


def environment_variables(request: BootstrapRequest, outputs: StackOutputs) -> dict[str, str]:
    """Variables set identically on the direct and the approval environment."""
    return {
        VAR_ENVIRONMENT: str(request.environment),
        VAR_PLAN_ROLE: outputs.plan_role_arn,
        VAR_APPLY_ROLE: outputs.apply_role_arn,
    }


def _run_step(step: str, action: Callable[[], T]) -> T:
    logger.info("GitHub step: %s", step)
    try:
        return action()
    except (GitHubApiError, requests.RequestException) as exc:
        raise CIConfigurationFailed(step=step, cause=exc) from exc


def _set_variables(
    client: GitHubClient, request: BootstrapRequest, spec: CIEnvironmentSpec
) -> dict[str, UpsertResult]:
    return {
        name: client.set_environment_variable(
            request.github_owner, request.github_repo, spec.name, name, value
        )
        for name, value in spec.variables.items()
    }


def configure_ci(
    client: GitHubClient,
    request: BootstrapRequest,
    outputs: StackOutputs,
    *,
    team_slug: str,
) -> CIConfigurationResult:
    """Create both GitHub environments and their variables for one bootstrap run."""
    if not outputs.plan_role_arn or not outputs.apply_role_arn:
        raise CIConfigurationFailed(
            step=CI_STEPS[0], cause=ValueError("role ARNs must not be empty")
        )

    owner, repo = request.github_owner, request.github_repo
    variables = environment_variables(request, outputs)
    results: dict[str, dict[str, UpsertResult]] = {}

    direct = CIEnvironmentSpec(name=str(request.environment), variables=dict(variables))
    _run_step("create-environment", lambda: client.put_environment(owner, repo, direct.name))
    results[direct.name] = _run_step(
        "set-environment-variables", lambda: _set_variables(client, request, direct)
    )

    logger.info(
        "Granting %s permission to team %s on %s/%s", TEAM_PERMISSION, team_slug, owner, repo
    )
    _run_step(
        "grant-team-permission",
        lambda: client.grant_team_repository_permission(
            owner, team_slug, owner, repo, permission=TEAM_PERMISSION
        ),
    )
    team_id = _run_step("resolve-team-id", lambda: client.get_team_id(owner, team_slug))

    approval = CIEnvironmentSpec(
        name=f"{request.environment}{APPROVAL_SUFFIX}",
        variables=dict(variables),
        protection_rules=ProtectionRules(required_reviewer_team_id=team_id),
    )
    _run_step(
        "create-approval-environment",
        lambda: client.put_environment(
            owner, repo, approval.name, protection=approval.protection_rules
        ),
    )
    results[approval.name] = _run_step(
        "set-approval-environment-variables",
        lambda: _set_variables(client, request, approval),
    )

    results["repository"] = {
        VAR_DEFAULT_REGION: _run_step(
            "set-repository-variables",
            lambda: client.set_repository_variable(
                owner, repo, VAR_DEFAULT_REGION, request.aws_region
            ),
        )
    }

    return CIConfigurationResult(
        environments=(direct, approval),
        team_id=team_id,
        variables=results,
    )
