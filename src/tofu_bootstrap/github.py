"""
tofu_bootstrap.github: Minimal GitHub REST client for environment bootstrap.

Covers exactly what the bootstrap needs: deployment environments (with
optional required-reviewer protection), Actions variables at environment and
repository scope, team repository permissions and team lookup. Every write is
idempotent: environments are PUT, variables are read before they are created or
patched.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
from collections.abc import Mapping
from typing import Any
from urllib.parse import quote

import requests

from tofu_bootstrap.config import DEFAULT_GITHUB_API_URL
from tofu_bootstrap.exceptions import GitHubApiError, InputValidationError
from tofu_bootstrap.models import ProtectionRules, UpsertResult

logger = logging.getLogger(__name__)

GITHUB_API_VERSION = "2022-11-28"
DEFAULT_TIMEOUT_SECONDS = 30
_TOKEN_ENV_NAMES = ("GH_TOKEN", "GITHUB_TOKEN")


def _segment(value: str) -> str:
    return quote(value, safe="")


def _decode_json(response: requests.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


def resolve_github_token(environ: Mapping[str, str] | None = None) -> str:
    """Token from GH_TOKEN / GITHUB_TOKEN, falling back to the gh CLI login."""
    env = os.environ if environ is None else environ
    for name in _TOKEN_ENV_NAMES:
        value = env.get(name, "").strip()
        if value:
            return value

    if shutil.which("gh") is not None:
        try:
            result = subprocess.run(
                ["gh", "auth", "token"],
                check=True,
                capture_output=True,
                text=True,
            )
        except subprocess.CalledProcessError:
            logger.debug("gh auth token failed", exc_info=True)
        else:
            token = result.stdout.strip()
            if token:
                return token

    raise InputValidationError(
        "No GitHub token: set GH_TOKEN or GITHUB_TOKEN, or log in with `gh auth login`"
    )


class GitHubClient:
    def __init__(
        self,
        token: str,
        *,
        api_url: str = DEFAULT_GITHUB_API_URL,
        session: requests.Session | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self._api_url = api_url.rstrip("/")
        self._timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.update(
            {
                "Accept": "application/vnd.github+json",
                "Authorization": f"Bearer {token}",
                "X-GitHub-Api-Version": GITHUB_API_VERSION,
            }
        )

    def _request(
        self,
        method: str,
        path: str,
        *,
        body: dict[str, Any] | None = None,
        allow_not_found: bool = False,
    ) -> requests.Response:
        url = f"{self._api_url}{path}"
        logger.debug("GitHub %s %s", method, path)
        try:
            response = self._session.request(method, url, json=body, timeout=self._timeout)
        except requests.RequestException as exc:
            raise GitHubApiError(message=f"GitHub request failed: {method} {path} ({exc})") from exc

        if response.status_code == 404 and allow_not_found:
            return response
        if not 200 <= response.status_code < 300:
            raise GitHubApiError(
                message=f"GitHub API returned HTTP {response.status_code}: {method} {path}",
                status_code=response.status_code,
                payload=_decode_json(response),
            )
        return response

    # -- environments -------------------------------------------------------

    def put_environment(
        self,
        owner: str,
        repo: str,
        name: str,
        *,
        protection: ProtectionRules | None = None,
    ) -> dict[str, Any]:
        """Create or update a deployment environment."""
        path = f"/repos/{_segment(owner)}/{_segment(repo)}/environments/{_segment(name)}"
        body = protection.to_payload() if protection is not None else None
        response = self._request("PUT", path, body=body)
        payload = _decode_json(response)
        return payload if isinstance(payload, dict) else {}

    # -- variables ----------------------------------------------------------

    def _upsert_variable(self, collection: str, name: str, value: str) -> UpsertResult:
        item_path = f"{collection}/{_segment(name)}"
        current = self._request("GET", item_path, allow_not_found=True)
        if current.status_code == 404:
            self._request("POST", collection, body={"name": name, "value": value})
            return "created"

        payload = _decode_json(current)
        if isinstance(payload, dict) and payload.get("value") == value:
            return "unchanged"

        self._request("PATCH", item_path, body={"name": name, "value": value})
        return "updated"

    def set_environment_variable(
        self, owner: str, repo: str, environment: str, name: str, value: str
    ) -> UpsertResult:
        collection = (
            f"/repos/{_segment(owner)}/{_segment(repo)}"
            f"/environments/{_segment(environment)}/variables"
        )
        result = self._upsert_variable(collection, name, value)
        logger.info("Variable %s on environment %s: %s", name, environment, result)
        return result

    def set_repository_variable(self, owner: str, repo: str, name: str, value: str) -> UpsertResult:
        collection = f"/repos/{_segment(owner)}/{_segment(repo)}/actions/variables"
        result = self._upsert_variable(collection, name, value)
        logger.info("Repository variable %s on %s/%s: %s", name, owner, repo, result)
        return result

    # -- teams --------------------------------------------------------------

    def grant_team_repository_permission(
        self,
        org: str,
        team_slug: str,
        owner: str,
        repo: str,
        *,
        permission: str = "pull",
    ) -> None:
        path = (
            f"/orgs/{_segment(org)}/teams/{_segment(team_slug)}"
            f"/repos/{_segment(owner)}/{_segment(repo)}"
        )
        self._request("PUT", path, body={"permission": permission})

    def get_team_id(self, org: str, team_slug: str) -> int:
        path = f"/orgs/{_segment(org)}/teams/{_segment(team_slug)}"
        payload = _decode_json(self._request("GET", path))
        team_id = payload.get("id") if isinstance(payload, dict) else None
        if not isinstance(team_id, int):
            raise GitHubApiError(
                message=f"GitHub team {org}/{team_slug} has no numeric id",
                payload=payload,
            )
        return team_id
