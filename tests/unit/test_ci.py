from __future__ import annotations

import dataclasses
from unittest.mock import MagicMock, call

import pytest

from tofu_bootstrap.ci import CI_STEPS, configure_ci, environment_variables
from tofu_bootstrap.exceptions import CIConfigurationFailed, GitHubApiError
from tofu_bootstrap.github import GitHubClient
from tofu_bootstrap.models import ProtectionRules

_TEAM = "cloud-and-platform-services"


def _github(team_id: int = 42) -> MagicMock:
    github = MagicMock(spec=GitHubClient)
    github.put_environment.return_value = {}
    github.set_environment_variable.return_value = "created"
    github.set_repository_variable.return_value = "created"
    github.get_team_id.return_value = team_id
    return github


def test_environment_variables(request_dev, stack_outputs) -> None:
    assert environment_variables(request_dev, stack_outputs) == {
        "ENVIRONMENT": "dev",
        "AWS_ROLE_TFPLAN": stack_outputs.plan_role_arn,
        "AWS_ROLE_TFAPPLY": stack_outputs.apply_role_arn,
    }


def test_configure_ci_runs_steps_in_order(request_dev, stack_outputs) -> None:
    github = _github()

    result = configure_ci(github, request_dev, stack_outputs, team_slug=_TEAM)

    method_order = [name for name, _args, _kwargs in github.mock_calls]
    assert method_order == [
        "put_environment",
        "set_environment_variable",
        "set_environment_variable",
        "set_environment_variable",
        "grant_team_repository_permission",
        "get_team_id",
        "put_environment",
        "set_environment_variable",
        "set_environment_variable",
        "set_environment_variable",
        "set_repository_variable",
    ]
    assert [spec.name for spec in result.environments] == ["dev", "dev-approval"]
    assert result.team_id == 42


def test_configure_ci_targets_expected_resources(request_dev, stack_outputs) -> None:
    github = _github(team_id=7)

    configure_ci(github, request_dev, stack_outputs, team_slug=_TEAM)

    assert github.put_environment.call_args_list == [
        call("contoso", "infra", "dev"),
        call(
            "contoso",
            "infra",
            "dev-approval",
            protection=ProtectionRules(required_reviewer_team_id=7),
        ),
    ]
    github.grant_team_repository_permission.assert_called_once_with(
        "contoso", _TEAM, "contoso", "infra", permission="pull"
    )
    github.get_team_id.assert_called_once_with("contoso", _TEAM)
    github.set_repository_variable.assert_called_once_with(
        "contoso", "infra", "AWS_DEFAULT_REGION", "us-west-2"
    )
    approval_vars = {
        c.args[3]: c.args[4]
        for c in github.set_environment_variable.call_args_list
        if c.args[2] == "dev-approval"
    }
    assert approval_vars == environment_variables(request_dev, stack_outputs)


def test_configure_ci_reports_per_variable_results(request_dev, stack_outputs) -> None:
    github = _github()
    github.set_environment_variable.return_value = "unchanged"
    github.set_repository_variable.return_value = "unchanged"

    result = configure_ci(github, request_dev, stack_outputs, team_slug=_TEAM)

    assert result.variables["dev"] == {
        "ENVIRONMENT": "unchanged",
        "AWS_ROLE_TFPLAN": "unchanged",
        "AWS_ROLE_TFAPPLY": "unchanged",
    }
    assert result.variables["repository"] == {"AWS_DEFAULT_REGION": "unchanged"}


def test_configure_ci_names_the_failing_step(request_dev, stack_outputs) -> None:
    github = _github()
    cause = GitHubApiError(message="Not Found", status_code=404)
    github.grant_team_repository_permission.side_effect = cause

    with pytest.raises(CIConfigurationFailed) as exc_info:
        configure_ci(github, request_dev, stack_outputs, team_slug=_TEAM)

    assert exc_info.value.step == "grant-team-permission"
    assert exc_info.value.cause is cause
    # Earlier steps stay applied; later steps never run.
    github.put_environment.assert_called_once_with("contoso", "infra", "dev")
    github.get_team_id.assert_not_called()
    github.set_repository_variable.assert_not_called()


def test_configure_ci_refuses_empty_role_arns(request_dev, stack_outputs) -> None:
    github = _github()
    outputs = dataclasses.replace(stack_outputs, apply_role_arn="")

    with pytest.raises(CIConfigurationFailed) as exc_info:
        configure_ci(github, request_dev, outputs, team_slug=_TEAM)

    assert exc_info.value.step == CI_STEPS[0]
    github.put_environment.assert_not_called()
