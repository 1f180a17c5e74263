"""
tofu_bootstrap: Bootstrap the OpenTofu state backend, GitHub OIDC trust and
GitHub Actions environments for one tenant/environment.
"""

from tofu_bootstrap.exceptions import BootstrapError
from tofu_bootstrap.models import (
    BootstrapRequest,
    DerivedNames,
    Environment,
    StackOutputs,
)
from tofu_bootstrap.names import derive_names
from tofu_bootstrap.orchestrator import BootstrapOrchestrator, BootstrapState

__version__ = "0.1.0"

__all__ = [
    "BootstrapError",
    "BootstrapOrchestrator",
    "BootstrapRequest",
    "BootstrapState",
    "DerivedNames",
    "Environment",
    "StackOutputs",
    "derive_names",
]
