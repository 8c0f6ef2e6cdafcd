"""Deployment pipeline: resolve the ref, gate on status checks, submit, watch.

Typical flow:
1. ``RefResolver.resolve()``: repository and ref from arguments or the local checkout
2. ``StatusGate.check()`` / ``permits()``: combined commit status decides go/no-go
3. ``DeploymentSubmitter.submit()``: create the deployment
4. ``DeploymentWatcher.wait()``: optionally follow it to a terminal state
"""

from ghdeploy.deploy.resolver import RefResolver, parse_owner_and_name
from ghdeploy.deploy.status import StatusGate, permits
from ghdeploy.deploy.submitter import DeploymentSubmitter
from ghdeploy.deploy.watcher import DeploymentWatcher

__all__ = [
    "DeploymentSubmitter",
    "DeploymentWatcher",
    "RefResolver",
    "StatusGate",
    "parse_owner_and_name",
    "permits",
]
