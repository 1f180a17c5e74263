"""
tofu_bootstrap.models: Value types shared by every bootstrap step.

All types are frozen: a BootstrapRequest is immutable once validated, and the
DerivedNames computed from it are threaded unchanged through the deploy and
output-extraction steps.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Literal

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class Environment(StrEnum):
    SBX = "sbx"
    DEV = "dev"
    TST = "tst"
    STG = "stg"
    PRD = "prd"


VALID_ENVIRONMENTS: tuple[str, ...] = tuple(env.value for env in Environment)

DeployAction = Literal["created", "updated", "unchanged"]
UpsertResult = Literal["created", "updated", "unchanged"]


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BootstrapRequest:
    """One tenant/environment pair against one account/region."""

    organization: str
    tenant: str
    environment: Environment
    github_owner: str
    github_repo: str
    aws_region: str

    @property
    def repository_slug(self) -> str:
        return f"{self.github_owner}/{self.github_repo}"


@dataclass(frozen=True)
class DerivedNames:
    state_bucket: str
    state_table: str
    stack_name: str
    plan_role_name: str
    apply_role_name: str

    @property
    def log_bucket(self) -> str:
        # Mirrors the Fn::Sub in the template's S3LogBucket resource.
        return f"{self.state_bucket}-logs"


# ---------------------------------------------------------------------------
# Stack state projections
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class StackDeployment:
    stack_name: str
    action: DeployAction
    stack_status: str


@dataclass(frozen=True)
class StackOutputs:
    plan_role_arn: str
    apply_role_arn: str
    oidc_provider_arn: str
    bucket_name: str
    table_name: str


# ---------------------------------------------------------------------------
# GitHub environment configuration
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ProtectionRules:
    required_reviewer_team_id: int
    wait_timer_seconds: int = 0
    allow_self_review: bool = True

    def to_payload(self) -> dict[str, Any]:
        """Body for PUT /repos/{owner}/{repo}/environments/{name}."""
        return {
            "wait_timer": self.wait_timer_seconds,
            "prevent_self_review": not self.allow_self_review,
            "reviewers": [{"type": "Team", "id": self.required_reviewer_team_id}],
        }


@dataclass(frozen=True)
class CIEnvironmentSpec:
    name: str
    variables: dict[str, str] = field(default_factory=dict)
    protection_rules: ProtectionRules | None = None
