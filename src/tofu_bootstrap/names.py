"""
tofu_bootstrap.names: Deterministic resource naming.

Pure functions, no I/O. The same (organization, tenant, environment) always
yields the same names, so a re-run targets the existing stack instead of
creating a duplicate.
"""

from __future__ import annotations

import re

from tofu_bootstrap.exceptions import (
    InvalidEnvironment,
    InvalidResourceName,
    UnparsableRepositoryURL,
)
from tofu_bootstrap.models import VALID_ENVIRONMENTS, BootstrapRequest, DerivedNames, Environment

_GITHUB_REMOTE_RE = re.compile(
    r"^(?:[a-z][a-z0-9+.-]*://)?"  # optional scheme (https://, ssh://, git://)
    r"(?:[^@/\s]+@)?"  # optional user (git@)
    r"github\.com[:/]"
    r"(?P<owner>[A-Za-z0-9](?:[A-Za-z0-9-]*[A-Za-z0-9])?)/"
    r"(?P<repo>[A-Za-z0-9._-]+?)"
    r"(?:\.git)?/?$"
)

_BUCKET_RE = re.compile(r"^[a-z0-9][a-z0-9.-]*[a-z0-9]$")
_IP_ADDRESS_RE = re.compile(r"^\d{1,3}(?:\.\d{1,3}){3}$")
_TABLE_RE = re.compile(r"^[A-Za-z0-9_.-]+$")
_ROLE_RE = re.compile(r"^[\w+=,.@-]+$")
_STACK_RE = re.compile(r"^[A-Za-z][A-Za-z0-9-]*$")


def parse_repository_url(url: str) -> tuple[str, str]:
    """Return (owner, repo) from a GitHub remote URL in https, ssh or scp form."""
    match = _GITHUB_REMOTE_RE.match(url.strip())
    if not match:
        raise UnparsableRepositoryURL(url)
    repo = match.group("repo")
    if repo in {".", ".."}:
        raise UnparsableRepositoryURL(url)
    return match.group("owner"), repo


def validate_environment(environment: str) -> Environment:
    try:
        return Environment(environment)
    except ValueError as exc:
        raise InvalidEnvironment(environment, VALID_ENVIRONMENTS) from exc


def build_request(
    *,
    organization: str,
    tenant: str,
    environment: str,
    remote_url: str,
    aws_region: str,
) -> BootstrapRequest:
    """Validate raw inputs and return an immutable request."""
    env = validate_environment(environment)
    if not tenant.strip():
        raise InvalidResourceName("Tenant must not be empty")
    owner, repo = parse_repository_url(remote_url)
    return BootstrapRequest(
        organization=organization,
        tenant=tenant,
        environment=env,
        github_owner=owner,
        github_repo=repo,
        aws_region=aws_region,
    )


def _validate_bucket_name(name: str) -> None:
    if not 3 <= len(name) <= 63:
        raise InvalidResourceName(f"S3 bucket name {name!r} must be 3-63 characters long")
    if not _BUCKET_RE.match(name) or ".." in name:
        raise InvalidResourceName(
            f"S3 bucket name {name!r} may only contain lowercase letters, digits, "
            "hyphens and single dots, and must start and end with a letter or digit"
        )
    if _IP_ADDRESS_RE.match(name):
        raise InvalidResourceName(f"S3 bucket name {name!r} must not look like an IP address")


def validate_names(names: DerivedNames) -> None:
    """Raise InvalidResourceName if any derived name breaks AWS naming rules."""
    _validate_bucket_name(names.state_bucket)
    _validate_bucket_name(names.log_bucket)

    if not 3 <= len(names.state_table) <= 255 or not _TABLE_RE.match(names.state_table):
        raise InvalidResourceName(f"DynamoDB table name {names.state_table!r} is invalid")

    for role_name in (names.plan_role_name, names.apply_role_name):
        if len(role_name) > 64 or not _ROLE_RE.match(role_name):
            raise InvalidResourceName(
                f"IAM role name {role_name!r} must be at most 64 characters of [\\w+=,.@-]"
            )

    if len(names.stack_name) > 128 or not _STACK_RE.match(names.stack_name):
        raise InvalidResourceName(f"Stack name {names.stack_name!r} is invalid")


def derive_names(request: BootstrapRequest) -> DerivedNames:
    """Compute every resource name for the request. Call once per run."""
    env = validate_environment(request.environment)
    org = request.organization
    tenant = request.tenant
    names = DerivedNames(
        state_bucket=f"{org}-s3-{tenant}-{env}-tfstate",
        state_table=f"{org}-ddbtable-{tenant}-{env}-tfstate",
        stack_name=f"{org}-cf-{tenant}-{env}-tfstate",
        plan_role_name=f"{org}-role-tfplan-{tenant}-{env}",
        apply_role_name=f"{org}-role-tfapply-{tenant}-{env}",
    )
    validate_names(names)
    return names
