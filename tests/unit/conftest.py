from __future__ import annotations

import json
from typing import Any
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from tofu_bootstrap.github import GitHubClient
from tofu_bootstrap.models import BootstrapRequest, Environment, StackOutputs
from tofu_bootstrap.orchestrator import BootstrapServices

ACCOUNT_ID = "111122223333"
REGION = "us-west-2"


@pytest.fixture
def request_dev() -> BootstrapRequest:
    return BootstrapRequest(
        organization="contoso",
        tenant="dataops",
        environment=Environment.DEV,
        github_owner="contoso",
        github_repo="infra",
        aws_region=REGION,
    )


@pytest.fixture
def stack_outputs() -> StackOutputs:
    return StackOutputs(
        plan_role_arn=f"arn:aws:iam::{ACCOUNT_ID}:role/contoso-role-tfplan-dataops-dev",
        apply_role_arn=f"arn:aws:iam::{ACCOUNT_ID}:role/contoso-role-tfapply-dataops-dev",
        oidc_provider_arn=(
            f"arn:aws:iam::{ACCOUNT_ID}:oidc-provider/token.actions.githubusercontent.com"
        ),
        bucket_name="contoso-s3-dataops-dev-tfstate",
        table_name="contoso-ddbtable-dataops-dev-tfstate",
    )


class FakeCloudFormation:
    """Single-stack CloudFormation stand-in: create completes at once, update is a no-op."""

    def __init__(self, outputs: StackOutputs) -> None:
        self._outputs = outputs
        self.stack: dict[str, Any] | None = None
        self.calls: list[str] = []

    def validate_template(self, TemplateBody: str) -> dict[str, Any]:
        json.loads(TemplateBody)
        return {"Parameters": []}

    def describe_stacks(self, StackName: str) -> dict[str, Any]:
        if self.stack is None:
            raise ClientError(
                {
                    "Error": {
                        "Code": "ValidationError",
                        "Message": f"Stack with id {StackName} does not exist",
                    }
                },
                "DescribeStacks",
            )
        return {"Stacks": [self.stack]}

    def create_stack(self, **kwargs: Any) -> dict[str, Any]:
        self.calls.append("create_stack")
        self.stack = {
            "StackName": kwargs["StackName"],
            "StackStatus": "CREATE_COMPLETE",
            "Parameters": kwargs["Parameters"],
            "Tags": kwargs["Tags"],
            "Outputs": [
                {
                    "OutputKey": "GitHubActionsPlanRoleArn",
                    "OutputValue": self._outputs.plan_role_arn,
                },
                {
                    "OutputKey": "GitHubActionsApplyRoleArn",
                    "OutputValue": self._outputs.apply_role_arn,
                },
                {
                    "OutputKey": "GitHubOIDCProviderArn",
                    "OutputValue": self._outputs.oidc_provider_arn,
                },
                {"OutputKey": "S3BucketName", "OutputValue": self._outputs.bucket_name},
                {"OutputKey": "DynamoDBTableName", "OutputValue": self._outputs.table_name},
            ],
        }
        return {"StackId": f"arn:aws:cloudformation:{REGION}:{ACCOUNT_ID}:stack/x/1"}

    def update_stack(self, **kwargs: Any) -> dict[str, Any]:
        self.calls.append("update_stack")
        raise ClientError(
            {"Error": {"Code": "ValidationError", "Message": "No updates are to be performed."}},
            "UpdateStack",
        )


@pytest.fixture
def fake_cloudformation(stack_outputs) -> FakeCloudFormation:
    return FakeCloudFormation(stack_outputs)


@pytest.fixture
def fake_github() -> MagicMock:
    github = MagicMock(spec=GitHubClient)
    github.put_environment.return_value = {}
    github.set_environment_variable.return_value = "created"
    github.set_repository_variable.return_value = "created"
    github.get_team_id.return_value = 42
    return github


@pytest.fixture
def services(fake_cloudformation, fake_github) -> BootstrapServices:
    return BootstrapServices(
        cloudformation=fake_cloudformation,
        github=fake_github,
        resolve_thumbprint=lambda: "a" * 40,
        team_slug="cloud-and-platform-services",
        stack_poll_seconds=1.0,
    )
