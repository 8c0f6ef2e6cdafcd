"""GitHub REST API client.

A thin, blocking wrapper around ``httpx.Client`` covering the handful of
endpoints the tool needs: commit status, repository metadata, commit
lookup, deployments and releases. Transport failures become
``NetworkError`` and unexpected status codes become ``ApiError`` so that
callers never have to deal with httpx exceptions directly.
"""

from __future__ import annotations

from typing import IO, Any
from urllib.parse import quote

import httpx

from ghdeploy import __version__
from ghdeploy.constants import (
    DOWNLOAD_CHUNK_SIZE,
    GITHUB_API_URL,
    GITHUB_API_VERSION,
    GITHUB_MEDIA_TYPE,
    HTTP_TIMEOUT,
)
from ghdeploy.errors import ApiError, NetworkError, NotFoundError
from ghdeploy.logging import get_logger

log = get_logger("ghdeploy.github.client")

USER_AGENT = f"ghdeploy/{__version__}"


class GitHubClient:
    """Blocking GitHub API client bound to a single token.

    The underlying ``httpx.Client`` is created lazily and reused for the
    lifetime of the instance; call ``close()`` (or use the instance as a
    context manager) when done.
    """

    def __init__(
        self,
        token: str,
        *,
        base_url: str = GITHUB_API_URL,
        timeout: float = HTTP_TIMEOUT,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            token: GitHub token with repo status and deployment scopes.
            base_url: REST API root (override for GitHub Enterprise).
            timeout: Timeout applied to connect, read, write and pool waits.
            transport: Optional httpx transport, mainly for tests.
        """
        if not token:
            raise ValueError("token is required")
        if timeout <= 0:
            raise ValueError("timeout must be greater than zero")
        self._token = token
        self._base_url = base_url.rstrip("/")
        self._timeout = httpx.Timeout(timeout)
        self._transport = transport
        self._client: httpx.Client | None = None

    def __enter__(self) -> GitHubClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _headers(self) -> dict[str, str]:
        return {
            "Accept": GITHUB_MEDIA_TYPE,
            "Authorization": f"Bearer {self._token}",
            "User-Agent": USER_AGENT,
            "X-GitHub-Api-Version": GITHUB_API_VERSION,
        }

    def _get_client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(
                base_url=self._base_url,
                headers=self._headers(),
                timeout=self._timeout,
                transport=self._transport,
                follow_redirects=True,
            )
        return self._client

    def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None:
            self._client.close()
            self._client = None

    # ------------------------------------------------------------------
    # Request plumbing
    # ------------------------------------------------------------------

    def _request(
        self,
        method: str,
        path: str,
        *,
        expected: tuple[int, ...] = (200,),
        **kwargs: Any,
    ) -> httpx.Response:
        """Send a request and check the status code.

        Raises:
            NetworkError: The request never produced a response.
            ApiError: The response status is not in *expected*.
        """
        try:
            response = self._get_client().request(method, path, **kwargs)
        except httpx.TimeoutException as exc:
            raise NetworkError(f"Request to {path} timed out: {exc}") from exc
        except httpx.RequestError as exc:
            raise NetworkError(f"Request to {path} failed: {exc}") from exc

        log.debug("github_request", method=method, path=path, status=response.status_code)

        if response.status_code not in expected:
            raise ApiError(response.status_code, error_message(response))
        return response

    @staticmethod
    def _repo_path(repository: str) -> str:
        owner, name = repository.split("/", 1)
        return f"/repos/{quote(owner, safe='')}/{quote(name, safe='')}"

    # ------------------------------------------------------------------
    # Repositories and commits
    # ------------------------------------------------------------------

    def get_repository(self, repository: str) -> dict[str, Any]:
        """Fetch repository metadata."""
        data: dict[str, Any] = self._request("GET", self._repo_path(repository)).json()
        return data

    def get_default_branch(self, repository: str) -> str:
        """Return the name of the repository's default branch."""
        return str(self.get_repository(repository).get("default_branch", ""))

    def get_commit_sha(self, repository: str, ref: str) -> str:
        """Resolve a branch, tag or (short) SHA to a full commit SHA."""
        path = f"{self._repo_path(repository)}/commits/{quote(ref, safe='')}"
        data = self._request("GET", path).json()
        sha = data.get("sha")
        if not sha:
            raise ApiError(200, f"Commit lookup for {ref!r} returned no sha")
        return str(sha)

    def get_combined_status(self, repository: str, ref: str) -> dict[str, Any]:
        """Fetch the combined commit status for *ref*."""
        path = f"{self._repo_path(repository)}/commits/{quote(ref, safe='')}/status"
        data: dict[str, Any] = self._request("GET", path).json()
        return data

    # ------------------------------------------------------------------
    # Deployments
    # ------------------------------------------------------------------

    def create_deployment(self, repository: str, payload: dict[str, Any]) -> httpx.Response:
        """POST a new deployment.

        409 is passed back to the caller rather than raised; GitHub uses it
        for conflicts the caller reports as a rejected deployment.
        """
        return self._request(
            "POST",
            f"{self._repo_path(repository)}/deployments",
            json=payload,
            expected=(201, 202, 409),
        )

    def list_deployments(
        self, repository: str, *, environment: str | None = None, per_page: int = 30
    ) -> list[dict[str, Any]]:
        """List deployments, newest first."""
        params: dict[str, Any] = {"per_page": per_page}
        if environment:
            params["environment"] = environment
        data: list[dict[str, Any]] = self._request(
            "GET", f"{self._repo_path(repository)}/deployments", params=params
        ).json()
        return data

    def list_deployment_statuses(
        self, repository: str, deployment_id: str, *, per_page: int = 30
    ) -> list[dict[str, Any]]:
        """List statuses for a deployment, newest first."""
        path = f"{self._repo_path(repository)}/deployments/{deployment_id}/statuses"
        data: list[dict[str, Any]] = self._request(
            "GET", path, params={"per_page": per_page}
        ).json()
        return data

    # ------------------------------------------------------------------
    # Releases
    # ------------------------------------------------------------------

    def get_latest_release(self, repository: str) -> dict[str, Any]:
        """Fetch the latest published release.

        Raises:
            NotFoundError: The repository has no published releases.
        """
        response = self._request(
            "GET", f"{self._repo_path(repository)}/releases/latest", expected=(200, 404)
        )
        if response.status_code == 404:
            raise NotFoundError(404, f"No published releases for {repository}")
        data: dict[str, Any] = response.json()
        return data

    def fetch_text(self, url: str) -> str:
        """Download a small text asset, such as a checksum sidecar."""
        return self._request("GET", url, headers={"Accept": "application/octet-stream"}).text

    def download(self, url: str, dest: IO[bytes]) -> int:
        """Stream *url* into *dest* and return the number of bytes written.

        Nothing is buffered in memory beyond a single chunk; an interrupted
        transfer leaves whatever was written so far in *dest*.
        """
        written = 0
        try:
            with self._get_client().stream(
                "GET", url, headers={"Accept": "application/octet-stream"}
            ) as response:
                if response.status_code != 200:
                    response.read()
                    raise ApiError(response.status_code, error_message(response))
                for chunk in response.iter_bytes(DOWNLOAD_CHUNK_SIZE):
                    dest.write(chunk)
                    written += len(chunk)
        except httpx.TimeoutException as exc:
            raise NetworkError(f"Download of {url} timed out: {exc}") from exc
        except httpx.RequestError as exc:
            raise NetworkError(f"Download of {url} failed: {exc}") from exc
        return written


def error_message(response: httpx.Response) -> str:
    """Prefer GitHub's ``message`` field, fall back to the raw text."""
    try:
        data = response.json()
    except ValueError:
        return response.text
    if isinstance(data, dict) and data.get("message"):
        return str(data["message"])
    return response.text
