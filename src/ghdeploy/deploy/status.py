"""Commit status gate.

Looks up the combined status for a ref and decides whether a deployment
may go ahead. A ref with no status checks at all is allowed through; an
API failure is never mistaken for "no checks".
"""

from __future__ import annotations

from typing import Any

from ghdeploy.errors import failure_stage
from ghdeploy.github.client import GitHubClient
from ghdeploy.logging import get_logger
from ghdeploy.models import StatusCheckResult

log = get_logger("ghdeploy.deploy.status")

PERMITTED = frozenset({StatusCheckResult.SUCCESS, StatusCheckResult.NO_STATUS})

_COMBINED_STATES = {
    "success": StatusCheckResult.SUCCESS,
    "pending": StatusCheckResult.PENDING,
    "failure": StatusCheckResult.FAILURE,
    "error": StatusCheckResult.ERROR,
}


def permits(result: StatusCheckResult, override: bool) -> bool:
    """Return True if a deployment may proceed."""
    return override or result in PERMITTED


def interpret_combined_status(data: dict[str, Any]) -> StatusCheckResult:
    """Map a combined-status payload onto a ``StatusCheckResult``.

    GitHub reports ``pending`` when no statuses exist, so ``total_count``
    decides NO_STATUS. The combined state folds ``error`` into ``failure``;
    individual statuses are inspected to keep the two apart.
    """
    statuses = data.get("statuses") or []
    if not data.get("total_count") and not statuses:
        return StatusCheckResult.NO_STATUS

    if any(s.get("state") == "error" for s in statuses):
        return StatusCheckResult.ERROR

    state = str(data.get("state", "")).lower()
    # Unknown states are treated as not-yet-passing.
    return _COMBINED_STATES.get(state, StatusCheckResult.PENDING)


class StatusGate:
    """Queries commit status and applies the deploy decision table."""

    def __init__(self, client: GitHubClient) -> None:
        self._client = client

    def check(self, repository: str, ref: str, override: bool = False) -> StatusCheckResult:
        """Return the combined status of *ref*.

        The lookup always happens; *override* only changes the decision made
        by ``permits`` and is recorded in the log.
        """
        with failure_stage("status check"):
            data = self._client.get_combined_status(repository, ref)
        result = interpret_combined_status(data)
        log.info(
            "status_checked",
            repository=repository,
            ref=ref,
            result=result.value,
            override=override,
        )
        return result

    def permits(self, result: StatusCheckResult, override: bool) -> bool:
        allowed = permits(result, override)
        if override and result not in PERMITTED:
            log.warning("status_check_overridden", result=result.value)
        return allowed
