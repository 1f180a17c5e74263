from __future__ import annotations

from unittest.mock import MagicMock

import pytest
import requests

from tofu_bootstrap.exceptions import GitHubApiError, InputValidationError
from tofu_bootstrap.github import GitHubClient, resolve_github_token
from tofu_bootstrap.models import ProtectionRules

_API = "https://api.github.com"


def _response(status: int, payload: object = None) -> MagicMock:
    response = MagicMock()
    response.status_code = status
    response.content = b"" if payload is None else b"{}"
    response.json.return_value = payload
    response.text = ""
    return response


def _client(*responses: MagicMock) -> tuple[GitHubClient, MagicMock]:
    session = MagicMock()
    session.headers = {}
    session.request.side_effect = list(responses)
    return GitHubClient("token-123", api_url=_API, session=session), session


def _calls(session: MagicMock) -> list[tuple[str, str, object]]:
    return [
        (call.args[0], call.args[1], call.kwargs.get("json"))
        for call in session.request.call_args_list
    ]


def test_client_sets_auth_and_api_version_headers() -> None:
    _, session = _client()
    assert session.headers["Authorization"] == "Bearer token-123"
    assert session.headers["Accept"] == "application/vnd.github+json"
    assert session.headers["X-GitHub-Api-Version"] == "2022-11-28"


def test_put_environment_without_protection() -> None:
    client, session = _client(_response(200, {"name": "dev"}))

    assert client.put_environment("contoso", "infra", "dev") == {"name": "dev"}
    assert _calls(session) == [("PUT", f"{_API}/repos/contoso/infra/environments/dev", None)]


def test_put_environment_with_team_reviewer() -> None:
    client, session = _client(_response(200, {"name": "dev-approval"}))

    client.put_environment(
        "contoso", "infra", "dev-approval", protection=ProtectionRules(required_reviewer_team_id=42)
    )

    ((method, url, body),) = _calls(session)
    assert (method, url) == ("PUT", f"{_API}/repos/contoso/infra/environments/dev-approval")
    assert body == {
        "wait_timer": 0,
        "prevent_self_review": False,
        "reviewers": [{"type": "Team", "id": 42}],
    }


def test_set_environment_variable_creates_when_missing() -> None:
    client, session = _client(_response(404, {"message": "Not Found"}), _response(201))

    assert client.set_environment_variable("contoso", "infra", "dev", "ENVIRONMENT", "dev") == (
        "created"
    )
    collection = f"{_API}/repos/contoso/infra/environments/dev/variables"
    assert _calls(session) == [
        ("GET", f"{collection}/ENVIRONMENT", None),
        ("POST", collection, {"name": "ENVIRONMENT", "value": "dev"}),
    ]


def test_set_environment_variable_patches_changed_value() -> None:
    client, session = _client(
        _response(200, {"name": "AWS_ROLE_TFPLAN", "value": "old"}), _response(204)
    )

    result = client.set_environment_variable("contoso", "infra", "dev", "AWS_ROLE_TFPLAN", "new")

    assert result == "updated"
    assert _calls(session)[1] == (
        "PATCH",
        f"{_API}/repos/contoso/infra/environments/dev/variables/AWS_ROLE_TFPLAN",
        {"name": "AWS_ROLE_TFPLAN", "value": "new"},
    )


def test_set_repository_variable_skips_equal_value() -> None:
    client, session = _client(_response(200, {"name": "AWS_DEFAULT_REGION", "value": "us-west-2"}))

    result = client.set_repository_variable("contoso", "infra", "AWS_DEFAULT_REGION", "us-west-2")

    assert result == "unchanged"
    assert _calls(session) == [
        ("GET", f"{_API}/repos/contoso/infra/actions/variables/AWS_DEFAULT_REGION", None)
    ]


def test_grant_team_repository_permission() -> None:
    client, session = _client(_response(204))

    client.grant_team_repository_permission(
        "contoso", "cloud-and-platform-services", "contoso", "infra"
    )

    assert _calls(session) == [
        (
            "PUT",
            f"{_API}/orgs/contoso/teams/cloud-and-platform-services/repos/contoso/infra",
            {"permission": "pull"},
        )
    ]


def test_get_team_id() -> None:
    client, _ = _client(_response(200, {"id": 4242, "slug": "cloud-and-platform-services"}))
    assert client.get_team_id("contoso", "cloud-and-platform-services") == 4242


def test_get_team_id_without_numeric_id() -> None:
    client, _ = _client(_response(200, {"slug": "x"}))
    with pytest.raises(GitHubApiError, match="no numeric id"):
        client.get_team_id("contoso", "x")


def test_non_success_status_raises_with_payload() -> None:
    client, _ = _client(_response(403, {"message": "Resource not accessible"}))

    with pytest.raises(GitHubApiError) as exc_info:
        client.put_environment("contoso", "infra", "dev")

    assert exc_info.value.status_code == 403
    assert exc_info.value.payload == {"message": "Resource not accessible"}


def test_not_found_outside_variable_lookup_raises() -> None:
    client, _ = _client(_response(404, {"message": "Not Found"}))

    with pytest.raises(GitHubApiError) as exc_info:
        client.get_team_id("contoso", "missing-team")

    assert exc_info.value.status_code == 404


def test_transport_error_is_wrapped() -> None:
    session = MagicMock()
    session.headers = {}
    session.request.side_effect = requests.ConnectionError("connection reset")
    client = GitHubClient("t", api_url=_API, session=session)

    with pytest.raises(GitHubApiError, match="connection reset"):
        client.put_environment("contoso", "infra", "dev")


def test_path_segments_are_escaped() -> None:
    client, session = _client(_response(200, {}))

    client.put_environment("contoso", "infra", "dev/approval")

    assert _calls(session)[0][1] == f"{_API}/repos/contoso/infra/environments/dev%2Fapproval"


def test_resolve_github_token_prefers_gh_token() -> None:
    assert resolve_github_token({"GH_TOKEN": "a", "GITHUB_TOKEN": "b"}) == "a"
    assert resolve_github_token({"GH_TOKEN": " ", "GITHUB_TOKEN": "b"}) == "b"


def test_resolve_github_token_without_any_source(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("tofu_bootstrap.github.shutil.which", lambda _name: None)

    with pytest.raises(InputValidationError, match="No GitHub token"):
        resolve_github_token({})
