"""
tofu_bootstrap.stack: Idempotent CloudFormation stack deployment.

create_stack when the stack is absent, update_stack when it exists, and a
"No updates are to be performed" response is a successful no-op. The deployer
blocks until CloudFormation reports a terminal status for the whole stack; it
polls the stack's own status instead of guessing a timeout.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any

from botocore.exceptions import ClientError

from tofu_bootstrap.exceptions import ResourceGraphDeployFailed, ResourceGraphRejected
from tofu_bootstrap.models import DeployAction, StackDeployment
from tofu_bootstrap.template import render_template

logger = logging.getLogger(__name__)

CAPABILITIES: tuple[str, ...] = ("CAPABILITY_NAMED_IAM",)

NO_UPDATES_MESSAGE = "No updates are to be performed"

# Stacks in these states cannot be created or updated; the operator must delete them.
UNRECOVERABLE_STATUSES = frozenset(
    {
        "CREATE_FAILED",
        "ROLLBACK_COMPLETE",
        "ROLLBACK_FAILED",
        "DELETE_FAILED",
        "UPDATE_ROLLBACK_FAILED",
        "REVIEW_IN_PROGRESS",
    }
)

_REJECTION_CODES = frozenset(
    {"ValidationError", "InsufficientCapabilitiesException", "AlreadyExistsException"}
)

_OPERATION_START_STATUSES = frozenset({"CREATE_IN_PROGRESS", "UPDATE_IN_PROGRESS"})

_EXPECTED_STATUS: dict[str, str] = {
    "created": "CREATE_COMPLETE",
    "updated": "UPDATE_COMPLETE",
}


def _error_code(exc: ClientError) -> str:
    return str(exc.response.get("Error", {}).get("Code", ""))


def _error_message(exc: ClientError) -> str:
    return str(exc.response.get("Error", {}).get("Message", ""))


def _is_in_progress(status: str) -> bool:
    return status.endswith("_IN_PROGRESS") and status != "REVIEW_IN_PROGRESS"


class StackDeployer:
    """Deploys one named stack to terminal state.

    Args:
        cloudformation_client: boto3 CloudFormation client.
        poll_seconds:          Delay between describe_stacks polls while a stack
                               operation is in progress.
        sleep:                 Injected for tests.
    """

    def __init__(
        self,
        cloudformation_client: Any,
        *,
        poll_seconds: float = 10.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._cfn = cloudformation_client
        self._poll_seconds = poll_seconds
        self._sleep = sleep

    def stack_status(self, stack_name: str) -> str | None:
        """Current stack status, or None if the stack does not exist."""
        try:
            response = self._cfn.describe_stacks(StackName=stack_name)
        except ClientError as exc:
            if _error_code(exc) == "ValidationError" and "does not exist" in _error_message(exc):
                return None
            raise ResourceGraphDeployFailed(
                f"Could not read status of stack {stack_name}: {exc}"
            ) from exc
        stacks = response.get("Stacks", [])
        if not stacks:
            return None
        return str(stacks[0].get("StackStatus", ""))

    def wait_until_settled(self, stack_name: str) -> str | None:
        """Poll until the stack is no longer *_IN_PROGRESS; return the final status."""
        last_status: str | None = None
        while True:
            status = self.stack_status(stack_name)
            if status != last_status:
                logger.info("Stack %s: %s", stack_name, status or "absent")
                last_status = status
            if status is None or not _is_in_progress(status):
                return status
            self._sleep(self._poll_seconds)

    def failure_reasons(self, stack_name: str) -> list[str]:
        """Collect *_FAILED resource reasons from the latest stack operation's events."""
        reasons: list[str] = []
        paginator = self._cfn.get_paginator("describe_stack_events")
        try:
            # Events are newest first; stop at the stack-level event that started the operation.
            for page in paginator.paginate(StackName=stack_name):
                for event in page.get("StackEvents", []):
                    status = str(event.get("ResourceStatus", ""))
                    logical_id = str(event.get("LogicalResourceId", "?"))
                    reason = event.get("ResourceStatusReason")
                    if logical_id == stack_name and status in _OPERATION_START_STATUSES:
                        return reasons
                    if status.endswith("_FAILED") and reason:
                        reasons.append(f"{logical_id}: {reason}")
        except ClientError:
            logger.warning("Could not read stack events for %s", stack_name, exc_info=True)
        return reasons

    def validate(self, template_body: str) -> None:
        try:
            self._cfn.validate_template(TemplateBody=template_body)
        except ClientError as exc:
            raise ResourceGraphRejected(f"Template validation failed: {exc}") from exc

    def _submit(
        self,
        action: DeployAction,
        stack_name: str,
        template_body: str,
        parameters: dict[str, str],
        tags: dict[str, str],
    ) -> DeployAction:
        args: dict[str, Any] = {
            "StackName": stack_name,
            "TemplateBody": template_body,
            "Parameters": [
                {"ParameterKey": key, "ParameterValue": value}
                for key, value in sorted(parameters.items())
            ],
            "Capabilities": list(CAPABILITIES),
            "Tags": [{"Key": key, "Value": value} for key, value in sorted(tags.items())],
        }
        try:
            if action == "created":
                self._cfn.create_stack(**args)
            else:
                self._cfn.update_stack(**args)
        except ClientError as exc:
            code = _error_code(exc)
            if action == "updated" and NO_UPDATES_MESSAGE in _error_message(exc):
                return "unchanged"
            if code in _REJECTION_CODES:
                raise ResourceGraphRejected(
                    f"CloudFormation rejected stack {stack_name}: {exc}"
                ) from exc
            raise ResourceGraphDeployFailed(
                f"CloudFormation could not deploy stack {stack_name}: {exc}"
            ) from exc
        return action

    def deploy(
        self,
        stack_name: str,
        parameters: dict[str, str],
        *,
        template_body: str | None = None,
        tags: dict[str, str] | None = None,
    ) -> StackDeployment:
        """Create or update the stack and block until it settles."""
        body = template_body if template_body is not None else render_template()
        self.validate(body)

        status = self.stack_status(stack_name)
        if status is not None and _is_in_progress(status):
            logger.info("Stack %s has an operation in progress; waiting for it", stack_name)
            status = self.wait_until_settled(stack_name)

        if status in UNRECOVERABLE_STATUSES:
            raise ResourceGraphDeployFailed(
                f"Stack {stack_name} is in state {status} and cannot be updated; "
                "delete it and re-run the bootstrap"
            )

        requested: DeployAction = "created" if status is None else "updated"
        logger.info(
            "%s stack %s", "Creating" if requested == "created" else "Updating", stack_name
        )
        action = self._submit(requested, stack_name, body, parameters, tags or {})
        if action == "unchanged":
            logger.info("Stack %s is up to date (no changes)", stack_name)
            return StackDeployment(
                stack_name=stack_name, action="unchanged", stack_status=status or ""
            )

        final_status = self.wait_until_settled(stack_name)
        expected = _EXPECTED_STATUS[action]
        if final_status != expected:
            reasons = self.failure_reasons(stack_name)
            detail = "; ".join(reasons) if reasons else "no failure reason reported"
            message = (
                f"Stack {stack_name} finished in {final_status or 'absent'} "
                f"(expected {expected}): {detail}"
            )
            if any("already exists" in reason for reason in reasons):
                raise ResourceGraphRejected(message)
            raise ResourceGraphDeployFailed(message)

        logger.info("Stack %s %s (%s)", stack_name, action, final_status)
        return StackDeployment(stack_name=stack_name, action=action, stack_status=final_status)
