"""
tofu_bootstrap.orchestrator: Ordered, idempotent bootstrap of one tenant/environment.

State machine:
    start -> names-derived -> scaffolded -> trust-resolved -> stack-deployed
          -> outputs-extracted -> ci-configured -> done
Any step failure moves to failed(step, cause) and re-raises. There is no retry
and no rollback: every step is idempotent, so the recovery path is to fix the
cause and run the whole bootstrap again from start.

Steps run strictly in sequence; each consumes what earlier steps put in the
BootstrapContext (role ARNs only exist once the stack is complete).
"""

from __future__ import annotations

import dataclasses
import functools
import json
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum
from pathlib import Path
from typing import Any, TypeVar

import boto3

from tofu_bootstrap.ci import CIConfigurationResult, configure_ci
from tofu_bootstrap.config import BootstrapSettings
from tofu_bootstrap.exceptions import BootstrapError
from tofu_bootstrap.github import GitHubClient
from tofu_bootstrap.models import BootstrapRequest, DerivedNames, StackDeployment, StackOutputs
from tofu_bootstrap.names import derive_names
from tofu_bootstrap.outputs import extract_stack_outputs
from tofu_bootstrap.scaffold import ScaffoldResult, scaffold_environment
from tofu_bootstrap.stack import StackDeployer
from tofu_bootstrap.template import TEMPLATE_VERSION, render_template, template_parameters
from tofu_bootstrap.thumbprint import resolve_oidc_thumbprint

logger = logging.getLogger(__name__)

T = TypeVar("T")


class BootstrapState(StrEnum):
    START = "start"
    NAMES_DERIVED = "names-derived"
    SCAFFOLDED = "scaffolded"
    TRUST_RESOLVED = "trust-resolved"
    STACK_DEPLOYED = "stack-deployed"
    OUTPUTS_EXTRACTED = "outputs-extracted"
    CI_CONFIGURED = "ci-configured"
    DONE = "done"
    FAILED = "failed"


STEP_ORDER: tuple[str, ...] = (
    "derive-names",
    "scaffold",
    "resolve-trust",
    "deploy-stack",
    "extract-outputs",
    "configure-ci",
)

STEP_TRANSITIONS: dict[str, BootstrapState] = {
    "derive-names": BootstrapState.NAMES_DERIVED,
    "scaffold": BootstrapState.SCAFFOLDED,
    "resolve-trust": BootstrapState.TRUST_RESOLVED,
    "deploy-stack": BootstrapState.STACK_DEPLOYED,
    "extract-outputs": BootstrapState.OUTPUTS_EXTRACTED,
    "configure-ci": BootstrapState.CI_CONFIGURED,
}


@dataclass(frozen=True)
class BootstrapContext:
    """Everything a run has learned so far. Replaced, never mutated, by each step."""

    request: BootstrapRequest
    repo_root: Path | None = None
    names: DerivedNames | None = None
    scaffold: ScaffoldResult | None = None
    thumbprint: str | None = None
    deployment: StackDeployment | None = None
    outputs: StackOutputs | None = None
    ci: CIConfigurationResult | None = None


@dataclass(frozen=True)
class BootstrapServices:
    """External collaborators; swapped for fakes in tests."""

    cloudformation: Any
    github: GitHubClient
    resolve_thumbprint: Callable[[], str]
    team_slug: str
    stack_poll_seconds: float = 10.0


StepHandler = Callable[[BootstrapContext], tuple[BootstrapContext, dict[str, Any]]]


def utc_now_iso() -> str:
    """Return current UTC timestamp in ISO-8601 format."""
    return datetime.now(tz=UTC).isoformat()


def _require(value: T | None, what: str) -> T:
    if value is None:
        raise RuntimeError(f"{what} not available; step ordering violated")
    return value


def build_services(settings: BootstrapSettings, github_token: str) -> BootstrapServices:
    """Real AWS and GitHub collaborators for the configured account/region."""
    return BootstrapServices(
        cloudformation=boto3.client("cloudformation", region_name=settings.aws_region),
        github=GitHubClient(github_token, api_url=settings.github_api_url),
        resolve_thumbprint=functools.partial(resolve_oidc_thumbprint, settings.oidc_host),
        team_slug=settings.github_team_slug,
        stack_poll_seconds=settings.stack_poll_seconds,
    )


def initial_report(request: BootstrapRequest) -> dict[str, Any]:
    """Build an empty run report."""
    return {
        "tenant": request.tenant,
        "environment": str(request.environment),
        "organization": request.organization,
        "repository": request.repository_slug,
        "awsRegion": request.aws_region,
        "templateVersion": TEMPLATE_VERSION,
        "state": str(BootstrapState.START),
        "updatedAt": utc_now_iso(),
        "steps": [],
    }


def persist_report(report: dict[str, Any], path: Path) -> None:
    """Write the run report as JSON."""
    report["updatedAt"] = utc_now_iso()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(report, indent=2, sort_keys=True) + "\n", encoding="utf-8")
    logger.info("Wrote bootstrap report: %s", path)


class BootstrapOrchestrator:
    def __init__(
        self,
        services: BootstrapServices,
        *,
        report_path: Path | None = None,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        self._services = services
        self._report_path = report_path
        deployer_kwargs: dict[str, Any] = {"poll_seconds": services.stack_poll_seconds}
        if sleep is not None:
            deployer_kwargs["sleep"] = sleep
        self._deployer = StackDeployer(services.cloudformation, **deployer_kwargs)
        self.state = BootstrapState.START
        self.failure: tuple[str, BaseException] | None = None
        self.report: dict[str, Any] = {}
        self._handlers: dict[str, StepHandler] = {
            "derive-names": self._derive_names,
            "scaffold": self._scaffold,
            "resolve-trust": self._resolve_trust,
            "deploy-stack": self._deploy_stack,
            "extract-outputs": self._extract_outputs,
            "configure-ci": self._configure_ci,
        }

    # -- steps --------------------------------------------------------------

    def _derive_names(self, ctx: BootstrapContext) -> tuple[BootstrapContext, dict[str, Any]]:
        names = derive_names(ctx.request)
        logger.info("State Bucket: %s", names.state_bucket)
        logger.info("State Table: %s", names.state_table)
        logger.info("GitHub Repository: %s", ctx.request.repository_slug)
        logger.info("Plan Role Name: %s", names.plan_role_name)
        logger.info("Apply Role Name: %s", names.apply_role_name)
        return dataclasses.replace(ctx, names=names), dataclasses.asdict(names)

    def _scaffold(self, ctx: BootstrapContext) -> tuple[BootstrapContext, dict[str, Any]]:
        if ctx.repo_root is None:
            return ctx, {"skipped": True}
        result = scaffold_environment(
            ctx.repo_root, str(ctx.request.environment), ctx.request.tenant
        )
        details = {"path": str(result.path), "created": result.created, "files": list(result.files)}
        return dataclasses.replace(ctx, scaffold=result), details

    def _resolve_trust(self, ctx: BootstrapContext) -> tuple[BootstrapContext, dict[str, Any]]:
        thumbprint = self._services.resolve_thumbprint()
        return dataclasses.replace(ctx, thumbprint=thumbprint), {"thumbprint": thumbprint}

    def _deploy_stack(self, ctx: BootstrapContext) -> tuple[BootstrapContext, dict[str, Any]]:
        names = _require(ctx.names, "Derived names")
        thumbprint = _require(ctx.thumbprint, "OIDC thumbprint")
        request = ctx.request
        deployment = self._deployer.deploy(
            names.stack_name,
            template_parameters(request, names, thumbprint),
            template_body=render_template(),
            tags={
                "tofu-bootstrap:tenant": request.tenant,
                "tofu-bootstrap:environment": str(request.environment),
                "tofu-bootstrap:template-version": TEMPLATE_VERSION,
            },
        )
        return dataclasses.replace(ctx, deployment=deployment), dataclasses.asdict(deployment)

    def _extract_outputs(self, ctx: BootstrapContext) -> tuple[BootstrapContext, dict[str, Any]]:
        names = _require(ctx.names, "Derived names")
        outputs = extract_stack_outputs(self._services.cloudformation, names.stack_name)
        return dataclasses.replace(ctx, outputs=outputs), dataclasses.asdict(outputs)

    def _configure_ci(self, ctx: BootstrapContext) -> tuple[BootstrapContext, dict[str, Any]]:
        outputs = _require(ctx.outputs, "Stack outputs")
        result = configure_ci(
            self._services.github,
            ctx.request,
            outputs,
            team_slug=self._services.team_slug,
        )
        details = {
            "environments": [spec.name for spec in result.environments],
            "teamId": result.team_id,
            "variables": result.variables,
        }
        return dataclasses.replace(ctx, ci=result), details

    # -- runner -------------------------------------------------------------

    def execute_step(self, step_name: str, ctx: BootstrapContext) -> BootstrapContext:
        """Execute one step and record it in the run report."""
        handler = self._handlers[step_name]
        started_at = utc_now_iso()
        status = "passed"
        details: dict[str, Any] = {}

        try:
            ctx, details = handler(ctx)
        except Exception as exc:
            status = "failed"
            details = {
                "errorType": exc.__class__.__name__,
                "errorMessage": str(exc),
            }
            if isinstance(exc, BootstrapError) and exc.step is None:
                exc.step = step_name
            self.state = BootstrapState.FAILED
            self.failure = (step_name, exc)
            raise
        else:
            self.state = STEP_TRANSITIONS[step_name]
        finally:
            self.report.setdefault("steps", []).append(
                {
                    "step": step_name,
                    "status": status,
                    "startedAt": started_at,
                    "completedAt": utc_now_iso(),
                    "details": details,
                }
            )
            self.report["state"] = str(self.state)
            if self._report_path is not None:
                persist_report(self.report, self._report_path)
        return ctx

    def run(self, request: BootstrapRequest, *, repo_root: Path | None = None) -> BootstrapContext:
        """Run every step from start. repo_root=None skips local scaffolding."""
        self.state = BootstrapState.START
        self.failure = None
        self.report = initial_report(request)

        ctx = BootstrapContext(request=request, repo_root=repo_root)
        for step_name in STEP_ORDER:
            logger.info("==> Step: %s", step_name)
            ctx = self.execute_step(step_name, ctx)

        self.state = BootstrapState.DONE
        self.report["state"] = str(self.state)
        if self._report_path is not None:
            persist_report(self.report, self._report_path)
        return ctx
