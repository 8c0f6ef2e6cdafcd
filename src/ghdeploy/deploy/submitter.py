"""Create deployments through the GitHub API.

GitHub resolves a branch name to that branch's HEAD when the deployment is
created. To deploy exactly what was asked for, refs that name the default
branch, and refs that look like commit SHAs, are resolved to a concrete SHA
first and that SHA is what gets submitted.
"""

from __future__ import annotations

import re
from typing import Any

import httpx

from ghdeploy.errors import failure_stage
from ghdeploy.github.client import GitHubClient, error_message
from ghdeploy.logging import get_logger
from ghdeploy.models import DeploymentOutcome, DeployRequest
from ghdeploy.utils import timed_operation

log = get_logger("ghdeploy.deploy.submitter")

_SHA_RE = re.compile(r"^[0-9a-fA-F]{4,40}$")


def looks_like_sha(ref: str) -> bool:
    return bool(_SHA_RE.match(ref))


def build_payload(request: DeployRequest, ref: str) -> dict[str, Any]:
    """Deployment-creation body for *request*, targeting *ref*."""
    payload: dict[str, Any] = {
        "ref": ref,
        "environment": request.environment,
        "auto_merge": False,
        "description": request.description,
    }
    # An empty list tells GitHub to skip its own status-context verification;
    # the status gate already made that call client-side.
    if request.force_status_override:
        payload["required_contexts"] = []
    return payload


class DeploymentSubmitter:
    """Builds, pins and sends deployment-creation requests."""

    def __init__(self, client: GitHubClient) -> None:
        self._client = client

    def resolve_ref(self, repository: str, ref: str) -> str:
        """Return the ref to submit, pinned to a SHA where that matters."""
        if looks_like_sha(ref):
            sha = self._client.get_commit_sha(repository, ref)
            log.debug("ref_pinned", ref=ref, sha=sha, reason="commit")
            return sha

        branch = ref.removeprefix("refs/heads/")
        default_branch = self._client.get_default_branch(repository)
        if branch == default_branch:
            sha = self._client.get_commit_sha(repository, branch)
            log.debug("ref_pinned", ref=ref, sha=sha, reason="default_branch")
            return sha
        return ref

    def submit(self, request: DeployRequest) -> DeploymentOutcome:
        """Create a deployment for *request*.

        Every call creates a new deployment record; GitHub does not
        deduplicate identical requests.

        Raises:
            ApiError: Any response other than 201, 202 or 409.
            NetworkError: The API could not be reached.
        """
        with failure_stage("submission"):
            target = self.resolve_ref(request.repository, request.ref)
            payload = build_payload(request, target)
            with timed_operation(
                "deployment_create",
                log=log,
                repository=request.repository,
                environment=request.environment,
            ):
                response = self._client.create_deployment(request.repository, payload)
        return self._interpret(request, target, response)

    @staticmethod
    def _interpret(
        request: DeployRequest, target: str, response: httpx.Response
    ) -> DeploymentOutcome:
        if response.status_code == 409:
            message = error_message(response)
            log.warning("deployment_conflict", repository=request.repository, message=message)
            return DeploymentOutcome(accepted=False, message=message, sha=target)

        data = response.json() if response.content else {}
        if response.status_code == 202:
            # GitHub merged the default branch into the ref instead of deploying.
            message = str(data.get("message", "Deployment request accepted"))
            log.info("deployment_accepted", repository=request.repository, message=message)
            return DeploymentOutcome(accepted=True, message=message, sha=target)

        deployment_id = str(data["id"]) if data.get("id") is not None else None
        sha = data.get("sha") or target
        log.info(
            "deployment_created",
            repository=request.repository,
            environment=request.environment,
            deployment_id=deployment_id,
            sha=sha,
        )
        return DeploymentOutcome(
            accepted=True,
            deployment_id=deployment_id,
            sha=sha,
            message=f"Created deployment {deployment_id} of {request.ref} to "
            f"{request.environment}",
        )

    def previous_sha(self, repository: str, environment: str) -> str | None:
        """SHA of the most recent deployment to *environment*, if any."""
        with failure_stage("submission"):
            deployments = self._client.list_deployments(
                repository, environment=environment, per_page=1
            )
        if not deployments:
            return None
        sha = deployments[0].get("sha")
        return str(sha) if sha else None
