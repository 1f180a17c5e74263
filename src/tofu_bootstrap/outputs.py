"""
tofu_bootstrap.outputs: Read the bootstrap stack's outputs.

Downstream GitHub configuration needs real role ARNs; a stack that is not
complete, or lacks any expected output, fails the run instead of producing
placeholders.
"""

from __future__ import annotations

import logging
from typing import Any

from botocore.exceptions import ClientError

from tofu_bootstrap.exceptions import OutputsUnavailable
from tofu_bootstrap.models import StackOutputs
from tofu_bootstrap.template import (
    OUTPUT_APPLY_ROLE_ARN,
    OUTPUT_BUCKET_NAME,
    OUTPUT_OIDC_PROVIDER_ARN,
    OUTPUT_PLAN_ROLE_ARN,
    OUTPUT_TABLE_NAME,
)

logger = logging.getLogger(__name__)

USABLE_STATUSES = frozenset(
    {"CREATE_COMPLETE", "UPDATE_COMPLETE", "UPDATE_ROLLBACK_COMPLETE", "IMPORT_COMPLETE"}
)

REQUIRED_OUTPUTS: tuple[str, ...] = (
    OUTPUT_PLAN_ROLE_ARN,
    OUTPUT_APPLY_ROLE_ARN,
    OUTPUT_OIDC_PROVIDER_ARN,
    OUTPUT_BUCKET_NAME,
    OUTPUT_TABLE_NAME,
)


def extract_stack_outputs(cloudformation_client: Any, stack_name: str) -> StackOutputs:
    """Return the named outputs of a complete stack."""
    try:
        response = cloudformation_client.describe_stacks(StackName=stack_name)
    except ClientError as exc:
        raise OutputsUnavailable(f"Could not describe stack {stack_name}: {exc}") from exc

    stacks = response.get("Stacks", [])
    if not stacks:
        raise OutputsUnavailable(f"Stack missing: {stack_name}")
    stack = stacks[0]

    status = str(stack.get("StackStatus", ""))
    if status not in USABLE_STATUSES:
        raise OutputsUnavailable(f"Stack {stack_name} is not complete (status={status})")

    values = {
        str(item.get("OutputKey")): str(item.get("OutputValue") or "")
        for item in stack.get("Outputs", [])
    }
    missing = [key for key in REQUIRED_OUTPUTS if not values.get(key, "").strip()]
    if missing:
        raise OutputsUnavailable(
            f"Stack {stack_name} is missing outputs: {', '.join(missing)}"
        )

    outputs = StackOutputs(
        plan_role_arn=values[OUTPUT_PLAN_ROLE_ARN],
        apply_role_arn=values[OUTPUT_APPLY_ROLE_ARN],
        oidc_provider_arn=values[OUTPUT_OIDC_PROVIDER_ARN],
        bucket_name=values[OUTPUT_BUCKET_NAME],
        table_name=values[OUTPUT_TABLE_NAME],
    )
    logger.info("Plan Role ARN: %s", outputs.plan_role_arn)
    logger.info("Apply Role ARN: %s", outputs.apply_role_arn)
    return outputs
