"""Follow a deployment until GitHub reports a terminal status."""

from __future__ import annotations

import time
from collections.abc import Callable

from ghdeploy.constants import WATCH_POLL_INTERVAL, WATCH_TIMEOUT
from ghdeploy.errors import failure_stage
from ghdeploy.github.client import GitHubClient
from ghdeploy.logging import get_logger
from ghdeploy.models import DeploymentState, WatchResult

log = get_logger("ghdeploy.deploy.watcher")

WAITING_MESSAGE = "Waiting for deployment to begin"
DEPLOYING_MESSAGE = "Deploying"


class DeploymentWatcher:
    """Polls deployment statuses at a fixed interval.

    Failed polls are not retried: the first error ends the watch and is
    raised to the caller.
    """

    def __init__(
        self,
        client: GitHubClient,
        *,
        poll_interval: float = WATCH_POLL_INTERVAL,
        timeout: float = WATCH_TIMEOUT,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._client = client
        self._poll_interval = poll_interval
        self._timeout = timeout
        self._sleep = sleep
        self._clock = clock

    def wait(
        self,
        repository: str,
        deployment_id: str,
        on_progress: Callable[[str], None] | None = None,
    ) -> WatchResult:
        """Block until the deployment finishes or the timeout elapses."""
        deadline = self._clock() + self._timeout
        last_message = None

        with failure_stage("watch"):
            while True:
                statuses = self._client.list_deployment_statuses(
                    repository, deployment_id, per_page=1
                )
                if statuses:
                    latest = statuses[0]
                    state = _parse_state(latest.get("state"))
                    if state is not None and state.terminal:
                        description = latest.get("description") or ""
                        log.info(
                            "deployment_finished",
                            deployment_id=deployment_id,
                            state=state.value,
                        )
                        return WatchResult(state=state, description=description)
                    message = DEPLOYING_MESSAGE
                else:
                    message = WAITING_MESSAGE

                if on_progress is not None and message != last_message:
                    on_progress(message)
                last_message = message

                if self._clock() >= deadline:
                    log.warning("deployment_watch_timeout", deployment_id=deployment_id)
                    return WatchResult(state=None, description="Timed out waiting for deployment")
                self._sleep(self._poll_interval)


def _parse_state(value: object) -> DeploymentState | None:
    try:
        return DeploymentState(str(value).lower())
    except ValueError:
        return None
