"""Work out which repository and ref to deploy.

Explicit arguments win; otherwise the local checkout is inspected with
GitPython. Nothing here touches the network.

GitPython is imported on first use: it refuses to import without a git
binary, and explicit arguments never need one.
"""

from __future__ import annotations

import configparser
import os
import re
from types import ModuleType
from typing import TYPE_CHECKING
from urllib.parse import urlsplit

from ghdeploy.constants import GITHUB_HOST
from ghdeploy.errors import ConfigurationError
from ghdeploy.logging import get_logger

if TYPE_CHECKING:
    import git

log = get_logger("ghdeploy.deploy.resolver")

# scp-like syntax: git@github.com:owner/name.git
_SCP_RE = re.compile(r"^(?:[^@/]+@)?(?P<host>[^:/]+):(?!//)(?P<path>.+)$")

DEFAULT_REMOTE = "origin"


def _load_git() -> ModuleType:
    try:
        import git
    except ImportError as exc:
        raise ConfigurationError("git is required to inspect the local repository") from exc
    return git


def parse_owner_and_name(url: str, host: str = GITHUB_HOST) -> str:
    """Return ``owner/name`` for a GitHub remote URL.

    Accepts ssh (``git@host:owner/name.git``, ``ssh://git@host/owner/name``)
    and https (``https://host/owner/name.git``) forms.

    Raises:
        ConfigurationError: The URL is not a repository on *host*.
    """
    url = url.strip()
    if "://" in url:
        parts = urlsplit(url)
        remote_host, path = parts.hostname, parts.path
    else:
        m = _SCP_RE.match(url)
        if m is None:
            raise ConfigurationError(f"Cannot parse remote URL {url!r}")
        remote_host, path = m.group("host"), m.group("path")

    if not remote_host or remote_host.lower() != host.lower():
        raise ConfigurationError(
            f"Host could not be determined or is not a GitHub remote: {url!r}"
        )

    path = path.strip("/").removesuffix(".git")
    segments = path.split("/")
    if len(segments) != 2 or not all(segments):
        raise ConfigurationError(f"Remote URL {url!r} does not name an owner/repository")
    return "/".join(segments)


class RefResolver:
    """Resolves the repository and ref for a deployment."""

    def __init__(self, path: str | os.PathLike[str] | None = None, *, host: str = GITHUB_HOST):
        self._path = os.fspath(path) if path is not None else os.getcwd()
        self._host = host
        self._repo: git.Repo | None = None

    def resolve(self, explicit_repo: str | None, explicit_ref: str | None) -> tuple[str, str]:
        """Return ``(repository, ref)``.

        Raises:
            ConfigurationError: A value had to be read locally and could not be.
        """
        if explicit_repo:
            repository = self._normalize_repository(explicit_repo)
        else:
            repository = self.repository_from_remote()

        ref = explicit_ref or self.current_branch()
        log.debug("ref_resolved", repository=repository, ref=ref)
        return repository, ref

    def _normalize_repository(self, value: str) -> str:
        if "://" in value or "@" in value:
            return parse_owner_and_name(value, self._host)
        return parse_owner_and_name(f"https://{self._host}/{value}", self._host)

    def _open(self) -> git.Repo:
        if self._repo is None:
            gitlib = _load_git()
            try:
                self._repo = gitlib.Repo(self._path, search_parent_directories=True)
            except (gitlib.InvalidGitRepositoryError, gitlib.NoSuchPathError) as exc:
                raise ConfigurationError(
                    f"Cannot access local repository at {self._path}"
                ) from exc
        return self._repo

    def repository_from_remote(self) -> str:
        """Derive ``owner/name`` from the local repository's remote.

        ``origin`` is used when present; otherwise there must be exactly
        one remote.
        """
        remotes = {remote.name: remote for remote in self._open().remotes}
        if not remotes:
            raise ConfigurationError("Local repository has no remotes configured")

        if DEFAULT_REMOTE in remotes:
            remote = remotes[DEFAULT_REMOTE]
        elif len(remotes) == 1:
            remote = next(iter(remotes.values()))
        else:
            raise ConfigurationError(
                f"Cannot choose between remotes {sorted(remotes)}; "
                f"add an '{DEFAULT_REMOTE}' remote or pass the repository explicitly"
            )

        try:
            url = remote.url
        except configparser.Error as exc:
            raise ConfigurationError(f"No URL set for remote '{remote.name}'") from exc
        return parse_owner_and_name(url, self._host)

    def current_branch(self) -> str:
        """Name of the checked-out branch (``feature-x``, not ``refs/heads/feature-x``)."""
        repo = self._open()
        if repo.head.is_detached:
            raise ConfigurationError(
                "HEAD is detached; pass --ref to choose what to deploy"
            )
        try:
            return repo.active_branch.name
        except TypeError as exc:
            raise ConfigurationError("Unable to determine current branch") from exc
