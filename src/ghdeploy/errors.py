"""Error types raised by ghdeploy.

Every error is terminal for the current invocation. The ``stage`` attribute
names the step that failed (resolution, status check, submission, ...) so the
CLI can print a single line that tells the operator where to look.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager


class DeployToolError(Exception):
    """Base class for all ghdeploy errors."""

    def __init__(self, message: str, *, stage: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.stage = stage

    def describe(self) -> str:
        """One-line, user-facing description including the failed stage."""
        if self.stage:
            return f"{self.stage} failed: {self.message}"
        return self.message


class ConfigurationError(DeployToolError):
    """Repository, ref or credentials could not be determined locally."""


class ApiError(DeployToolError):
    """GitHub rejected or failed a request."""

    def __init__(self, status: int, body: str, *, stage: str | None = None) -> None:
        super().__init__(f"GitHub API returned {status}: {body}", stage=stage)
        self.status = status
        self.body = body


class NotFoundError(ApiError):
    """The requested resource (e.g. a release) does not exist."""


class NetworkError(DeployToolError):
    """Transport-level failure: connection refused, timeout, reset."""


class IntegrityError(DeployToolError):
    """A downloaded artifact does not match its published checksum."""


class UnsupportedPlatformError(DeployToolError):
    """No release asset matches the running platform."""


class SwapError(DeployToolError):
    """The new executable could not be moved into place."""


@contextmanager
def failure_stage(stage: str) -> Iterator[None]:
    """Label any ``DeployToolError`` escaping the block with *stage*.

    The error is re-raised untouched apart from the label; an existing label
    from a more specific inner stage is kept.
    """
    try:
        yield
    except DeployToolError as exc:
        if exc.stage is None:
            exc.stage = stage
        raise
