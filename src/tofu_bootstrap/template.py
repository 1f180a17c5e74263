"""
tofu_bootstrap.template: The bootstrap resource graph as a CloudFormation template.

The graph is data: dependency ordering, idempotency and rollback are left to
CloudFormation. Logical IDs, parameter names, output keys and export names are
stable; stacks deployed by earlier releases update in place.

Resources:
    S3Bucket                OpenTofu state (versioned, AES256, public access blocked)
    S3BucketPolicy          deny every request without TLS
    S3LogBucket             access logs for S3Bucket, 30-day expiry
    S3LogBucketPolicy       deny every request without TLS
    DynamoDBTable           state locks (LockID hash key, on-demand, SSE)
    GitHubOIDCProvider      token.actions.githubusercontent.com, audience sts.amazonaws.com
    GitHubActionsPlanRole   ReadOnlyAccess + state access
    GitHubActionsApplyRole  state access + broad provisioning
"""

from __future__ import annotations

import json
from typing import Any

from tofu_bootstrap.models import BootstrapRequest, DerivedNames

TEMPLATE_VERSION = "2024.1"

OIDC_ISSUER_URL = "https://token.actions.githubusercontent.com"
OIDC_CLAIM_PREFIX = "token.actions.githubusercontent.com"
STS_AUDIENCE = "sts.amazonaws.com"

# ---------------------------------------------------------------------------
# Parameter names
# ---------------------------------------------------------------------------
PARAM_STATE_BUCKET = "StateBucket"
PARAM_STATE_TABLE = "StateTable"
PARAM_GITHUB_ORGANIZATION = "GitHubOrganization"
PARAM_GITHUB_REPOSITORY = "GitHubRepository"
PARAM_PLAN_ROLE_NAME = "PlanRoleName"
PARAM_APPLY_ROLE_NAME = "ApplyRoleName"
PARAM_OIDC_THUMBPRINT = "GitHubOIDCThumbprint"

DEFAULT_PLAN_ROLE_NAME = "github-actions-tofu-plan"
DEFAULT_APPLY_ROLE_NAME = "github-actions-tofu-apply"

# ---------------------------------------------------------------------------
# Output keys
# ---------------------------------------------------------------------------
OUTPUT_BUCKET_NAME = "S3BucketName"
OUTPUT_TABLE_NAME = "DynamoDBTableName"
OUTPUT_OIDC_PROVIDER_ARN = "GitHubOIDCProviderArn"
OUTPUT_PLAN_ROLE_ARN = "GitHubActionsPlanRoleArn"
OUTPUT_APPLY_ROLE_ARN = "GitHubActionsApplyRoleArn"

# Services the apply role may provision; one Allow statement each, Resource "*".
APPLY_SERVICE_GROUPS: tuple[tuple[str, ...], ...] = (
    ("ec2",),
    ("ecr",),
    ("ecs",),
    ("s3",),
    ("iam",),
    ("secretsmanager",),
    ("logs", "cloudwatch", "cloudtrail", "ssm", "ram"),
    ("elasticloadbalancing",),
    ("acm",),
    ("kms",),
    ("organizations",),
)

_POLICY_VERSION = "2012-10-17"

_PUBLIC_ACCESS_BLOCK = {
    "BlockPublicAcls": True,
    "BlockPublicPolicy": True,
    "IgnorePublicAcls": True,
    "RestrictPublicBuckets": True,
}


def _ref(name: str) -> dict[str, str]:
    return {"Ref": name}


def _sub(text: str) -> dict[str, str]:
    return {"Fn::Sub": text}


def _deny_insecure_transport(bucket_logical_id: str) -> dict[str, Any]:
    return {
        "Type": "AWS::S3::BucketPolicy",
        "Properties": {
            "Bucket": _ref(bucket_logical_id),
            "PolicyDocument": {
                "Version": _POLICY_VERSION,
                "Statement": [
                    {
                        "Effect": "Deny",
                        "Principal": {"AWS": "*"},
                        "Action": "*",
                        "Resource": [
                            _sub(f"arn:aws:s3:::${{{bucket_logical_id}}}"),
                            _sub(f"arn:aws:s3:::${{{bucket_logical_id}}}/*"),
                        ],
                        "Condition": {"Bool": {"aws:SecureTransport": False}},
                    }
                ],
            },
        },
    }


def _github_trust_policy() -> dict[str, Any]:
    """AssumeRoleWithWebIdentity restricted to one repository and the STS audience."""
    return {
        "Version": _POLICY_VERSION,
        "Statement": [
            {
                "Effect": "Allow",
                "Principal": {"Federated": _ref("GitHubOIDCProvider")},
                "Action": "sts:AssumeRoleWithWebIdentity",
                "Condition": {
                    "StringEquals": {f"{OIDC_CLAIM_PREFIX}:aud": STS_AUDIENCE},
                    "StringLike": {
                        f"{OIDC_CLAIM_PREFIX}:sub": [
                            _sub(
                                f"repo:${{{PARAM_GITHUB_ORGANIZATION}}}/"
                                f"${{{PARAM_GITHUB_REPOSITORY}}}:*"
                            )
                        ]
                    },
                },
            }
        ],
    }


def _state_access_statements() -> list[dict[str, Any]]:
    # Shared by both roles; plan keeps write/delete on state objects.
    return [
        {
            "Effect": "Allow",
            "Action": ["s3:GetObject", "s3:PutObject", "s3:DeleteObject"],
            "Resource": _sub("arn:aws:s3:::${S3Bucket}/*"),
        },
        {
            "Effect": "Allow",
            "Action": ["s3:ListBucket"],
            "Resource": _sub("arn:aws:s3:::${S3Bucket}"),
        },
        {
            "Effect": "Allow",
            "Action": ["dynamodb:GetItem", "dynamodb:PutItem", "dynamodb:DeleteItem"],
            "Resource": {"Fn::GetAtt": ["DynamoDBTable", "Arn"]},
        },
    ]


def _provisioning_statements() -> list[dict[str, Any]]:
    return [
        {
            "Effect": "Allow",
            "Action": [f"{service}:*" for service in group],
            "Resource": "*",
        }
        for group in APPLY_SERVICE_GROUPS
    ]


def _parameters() -> dict[str, Any]:
    return {
        PARAM_STATE_BUCKET: {
            "Type": "String",
            "Description": "Name for the S3 bucket that will store OpenTofu state files",
        },
        PARAM_STATE_TABLE: {
            "Type": "String",
            "Description": "Name for the DynamoDB table used for state locking and consistency",
        },
        PARAM_GITHUB_ORGANIZATION: {
            "Type": "String",
            "Description": "GitHub Organization or Username that owns the repositories",
        },
        PARAM_GITHUB_REPOSITORY: {
            "Type": "String",
            "Description": "GitHub Repository Name",
        },
        PARAM_PLAN_ROLE_NAME: {
            "Type": "String",
            "Description": "Name for the read-only IAM role used by 'tofu plan' operations",
            "Default": DEFAULT_PLAN_ROLE_NAME,
        },
        PARAM_APPLY_ROLE_NAME: {
            "Type": "String",
            "Description": "Name for the IAM role used by 'tofu apply' operations",
            "Default": DEFAULT_APPLY_ROLE_NAME,
        },
        PARAM_OIDC_THUMBPRINT: {
            "Type": "String",
            "Description": "Current certificate thumbprint for token.actions.githubusercontent.com",
            "NoEcho": False,
        },
    }


def _resources() -> dict[str, Any]:
    return {
        "S3Bucket": {
            "Type": "AWS::S3::Bucket",
            "Properties": {
                "BucketName": _ref(PARAM_STATE_BUCKET),
                "VersioningConfiguration": {"Status": "Enabled"},
                "BucketEncryption": {
                    "ServerSideEncryptionConfiguration": [
                        {"ServerSideEncryptionByDefault": {"SSEAlgorithm": "AES256"}}
                    ]
                },
                "PublicAccessBlockConfiguration": dict(_PUBLIC_ACCESS_BLOCK),
                "LifecycleConfiguration": {
                    "Rules": [
                        {
                            "Id": "ExpireVeryOldVersions",
                            "Status": "Enabled",
                            "NoncurrentVersionExpirationInDays": 1095,
                        },
                        {
                            "Id": "CleanupIncompleteMultipartUploads",
                            "Status": "Enabled",
                            "AbortIncompleteMultipartUpload": {"DaysAfterInitiation": 7},
                        },
                    ]
                },
                "LoggingConfiguration": {
                    "DestinationBucketName": _ref("S3LogBucket"),
                    "LogFilePrefix": "tfstate-access-logs/",
                },
            },
        },
        "S3BucketPolicy": _deny_insecure_transport("S3Bucket"),
        "S3LogBucket": {
            "Type": "AWS::S3::Bucket",
            "Properties": {
                "BucketName": _sub(f"${{{PARAM_STATE_BUCKET}}}-logs"),
                "LifecycleConfiguration": {
                    "Rules": [{"Id": "ExpireOldLogs", "Status": "Enabled", "ExpirationInDays": 30}]
                },
                "PublicAccessBlockConfiguration": dict(_PUBLIC_ACCESS_BLOCK),
            },
        },
        "S3LogBucketPolicy": _deny_insecure_transport("S3LogBucket"),
        "DynamoDBTable": {
            "Type": "AWS::DynamoDB::Table",
            "Properties": {
                "TableName": _ref(PARAM_STATE_TABLE),
                "BillingMode": "PAY_PER_REQUEST",
                "AttributeDefinitions": [{"AttributeName": "LockID", "AttributeType": "S"}],
                "KeySchema": [{"AttributeName": "LockID", "KeyType": "HASH"}],
                "SSESpecification": {"SSEEnabled": True},
            },
        },
        "GitHubOIDCProvider": {
            "Type": "AWS::IAM::OIDCProvider",
            "Properties": {
                "Url": OIDC_ISSUER_URL,
                "ClientIdList": [STS_AUDIENCE],
                "ThumbprintList": [_ref(PARAM_OIDC_THUMBPRINT)],
            },
        },
        "GitHubActionsPlanRole": {
            "Type": "AWS::IAM::Role",
            "Properties": {
                "RoleName": _ref(PARAM_PLAN_ROLE_NAME),
                "AssumeRolePolicyDocument": _github_trust_policy(),
                "ManagedPolicyArns": ["arn:aws:iam::aws:policy/ReadOnlyAccess"],
                "Policies": [
                    {
                        "PolicyName": "OpenTofuStateAccess",
                        "PolicyDocument": {
                            "Version": _POLICY_VERSION,
                            "Statement": _state_access_statements(),
                        },
                    }
                ],
            },
        },
        "GitHubActionsApplyRole": {
            "Type": "AWS::IAM::Role",
            "Properties": {
                "RoleName": _ref(PARAM_APPLY_ROLE_NAME),
                "AssumeRolePolicyDocument": _github_trust_policy(),
                "Policies": [
                    {
                        "PolicyName": "OpenTofuApplyPermissions",
                        "PolicyDocument": {
                            "Version": _POLICY_VERSION,
                            "Statement": _state_access_statements()
                            + _provisioning_statements(),
                        },
                    }
                ],
            },
        },
    }


def _outputs() -> dict[str, Any]:
    def output(description: str, value: Any, export_suffix: str) -> dict[str, Any]:
        return {
            "Description": description,
            "Value": value,
            "Export": {"Name": _sub(f"${{AWS::StackName}}-{export_suffix}")},
        }

    return {
        OUTPUT_BUCKET_NAME: output(
            "Name of the created S3 bucket for OpenTofu state",
            _ref("S3Bucket"),
            "state-bucket",
        ),
        OUTPUT_TABLE_NAME: output(
            "Name of the created DynamoDB table for state locking",
            _ref("DynamoDBTable"),
            "state-table",
        ),
        OUTPUT_OIDC_PROVIDER_ARN: output(
            "ARN of the GitHub OIDC Identity Provider",
            _ref("GitHubOIDCProvider"),
            "github-oidc-provider",
        ),
        OUTPUT_PLAN_ROLE_ARN: output(
            "ARN of the GitHub Actions OpenTofu Plan role (read-only)",
            {"Fn::GetAtt": ["GitHubActionsPlanRole", "Arn"]},
            "github-plan-role",
        ),
        OUTPUT_APPLY_ROLE_ARN: output(
            "ARN of the GitHub Actions OpenTofu Apply role",
            {"Fn::GetAtt": ["GitHubActionsApplyRole", "Arn"]},
            "github-apply-role",
        ),
    }


def build_template() -> dict[str, Any]:
    """Return a fresh copy of the bootstrap template."""
    return {
        "AWSTemplateFormatVersion": "2010-09-09",
        "Description": (
            "Bootstrap template for OpenTofu infrastructure: S3 bucket and DynamoDB "
            "table for remote state, plus GitHub OIDC provider and IAM roles for CI/CD."
        ),
        "Metadata": {"TofuBootstrap": {"TemplateVersion": TEMPLATE_VERSION}},
        "Parameters": _parameters(),
        "Resources": _resources(),
        "Outputs": _outputs(),
    }


def render_template() -> str:
    """Template body for the CloudFormation API."""
    return json.dumps(build_template(), indent=2, sort_keys=True)


def template_parameters(
    request: BootstrapRequest,
    names: DerivedNames,
    thumbprint: str,
) -> dict[str, str]:
    return {
        PARAM_STATE_BUCKET: names.state_bucket,
        PARAM_STATE_TABLE: names.state_table,
        PARAM_GITHUB_ORGANIZATION: request.github_owner,
        PARAM_GITHUB_REPOSITORY: request.github_repo,
        PARAM_PLAN_ROLE_NAME: names.plan_role_name,
        PARAM_APPLY_ROLE_NAME: names.apply_role_name,
        PARAM_OIDC_THUMBPRINT: thumbprint,
    }
