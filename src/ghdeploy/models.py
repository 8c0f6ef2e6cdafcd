"""Data models for deployments and self-updates.

All models are frozen dataclasses built once per invocation and thrown
away when the process exits; nothing here is persisted.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any

from ghdeploy.constants import DEFAULT_DESCRIPTION
from ghdeploy.errors import ConfigurationError

REPOSITORY_RE = re.compile(r"^[^/]+/[^/]+$")

# ------------------------------------------------------------------
# Deployments
# ------------------------------------------------------------------


@dataclass(frozen=True)
class DeployRequest:
    """Everything needed to create one deployment."""

    repository: str  # owner/name
    ref: str  # branch, tag or commit SHA
    environment: str
    force_status_override: bool = False
    description: str = DEFAULT_DESCRIPTION

    def __post_init__(self) -> None:
        if not REPOSITORY_RE.match(self.repository):
            raise ConfigurationError(
                f"Repository must look like 'owner/name', got {self.repository!r}"
            )
        if not self.ref:
            raise ConfigurationError("A ref to deploy is required")
        if not self.environment:
            raise ConfigurationError("An environment to deploy to is required")

    @property
    def owner(self) -> str:
        return self.repository.split("/", 1)[0]

    @property
    def name(self) -> str:
        return self.repository.split("/", 1)[1]


class StatusCheckResult(Enum):
    """Combined commit status for a ref."""

    SUCCESS = "success"
    PENDING = "pending"
    FAILURE = "failure"
    ERROR = "error"
    NO_STATUS = "no_status"


@dataclass(frozen=True)
class DeploymentOutcome:
    """Result of a deployment-creation request."""

    accepted: bool
    message: str
    deployment_id: str | None = None
    sha: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "accepted": self.accepted,
            "deployment_id": self.deployment_id,
            "message": self.message,
            "sha": self.sha,
        }


class DeploymentState(Enum):
    """State of a deployment status as reported by GitHub."""

    QUEUED = "queued"
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    SUCCESS = "success"
    FAILURE = "failure"
    ERROR = "error"
    INACTIVE = "inactive"

    @property
    def terminal(self) -> bool:
        return self in _TERMINAL_STATES


_TERMINAL_STATES = frozenset(
    {
        DeploymentState.SUCCESS,
        DeploymentState.FAILURE,
        DeploymentState.ERROR,
        DeploymentState.INACTIVE,
    }
)


@dataclass(frozen=True)
class WatchResult:
    """Final state observed while waiting on a deployment.

    ``state`` is None when the watch timed out before a terminal state.
    """

    state: DeploymentState | None
    description: str = ""

    @property
    def succeeded(self) -> bool:
        return self.state is DeploymentState.SUCCESS


# ------------------------------------------------------------------
# Self-update
# ------------------------------------------------------------------


@dataclass(frozen=True)
class ReleaseAsset:
    """The release artifact chosen for this platform."""

    version: str  # normalised, no 'v' prefix
    platform_tag: str
    download_url: str
    name: str = ""
    checksum: str | None = None  # lowercase sha256 hex


@dataclass(frozen=True)
class UpdateOutcome:
    """Result of an update run."""

    previous_version: str
    new_version: str
    replaced: bool
    verified: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "previous_version": self.previous_version,
            "new_version": self.new_version,
            "replaced": self.replaced,
            "verified": self.verified,
        }
