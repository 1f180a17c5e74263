"""
tofu_bootstrap.exceptions: Bootstrap failure taxonomy.

Every failure carries the name of the step that raised it so the operator can
see where a run stopped. Recovery is always "fix the cause, re-run the whole
command"; no step is rolled back.
"""

from __future__ import annotations

from typing import Any


class BootstrapError(RuntimeError):
    """Base class for all bootstrap failures.

    Attributes:
        step: Name of the orchestrator step that failed, or None when raised
              outside a step (e.g. while parsing CLI input).
    """

    def __init__(self, message: str, *, step: str | None = None) -> None:
        super().__init__(message)
        self.step = step


class InputValidationError(BootstrapError):
    """Bad arguments or local preconditions. Raised before any side effect."""


class InvalidEnvironment(InputValidationError):
    def __init__(self, environment: str, valid: tuple[str, ...]) -> None:
        super().__init__(
            f"Invalid environment {environment!r}. Valid environments are: {' '.join(valid)}"
        )
        self.environment = environment


class UnparsableRepositoryURL(InputValidationError):
    def __init__(self, url: str) -> None:
        super().__init__(f"Cannot parse GitHub owner/repository from remote URL {url!r}")
        self.url = url


class InvalidResourceName(InputValidationError):
    """A derived name violates the AWS naming rules for its resource type."""


class NotAGitRepository(InputValidationError):
    pass


class ScaffoldError(InputValidationError):
    """The environment scaffold could not be created from the sample directory."""


class TrustFactUnavailable(BootstrapError):
    """The OIDC issuer certificate fingerprint could not be resolved."""


class ResourceGraphRejected(BootstrapError):
    """CloudFormation refused the template or its parameters."""


class ResourceGraphDeployFailed(BootstrapError):
    """The stack deployment started but did not reach a complete state."""


class OutputsUnavailable(BootstrapError):
    """The stack is not usable downstream: wrong state or missing outputs."""


class CIConfigurationFailed(BootstrapError):
    """
    A GitHub configuration step failed.

    Steps that ran before the failing one have already taken effect and are not
    rolled back; every step is idempotent, so re-running the bootstrap is safe.

    Attributes:
        step:  Name of the failing configurator step (e.g. "grant-team-permission").
        cause: The underlying GitHub or transport error.
    """

    def __init__(self, *, step: str, cause: BaseException) -> None:
        super().__init__(f"GitHub configuration step {step!r} failed: {cause}", step=step)
        self.cause = cause


class GitHubApiError(RuntimeError):
    """Raised when a GitHub REST API call returns a non-success status."""

    def __init__(
        self,
        *,
        message: str,
        status_code: int | None = None,
        payload: Any = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload
