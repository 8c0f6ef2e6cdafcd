"""Self-update from the tool's own GitHub releases.

Lifecycle:
1. FETCHING   : read the latest release; stop early if it is not newer
2. SELECTING  : pick the asset built for this platform and its checksum
3. DOWNLOADING: stream it to a temp file next to the executable
4. VERIFYING  : compare SHA-256 against the published checksum
5. SWAPPING   : move the new file over the executable
6. DONE

Any step may end in FAILED. Nothing touches the live executable before
SWAPPING, so an interrupted or rejected update leaves it as it was.
"""

from __future__ import annotations

import hashlib
import os
import re
import sys
import tempfile
from enum import Enum
from pathlib import Path
from typing import Any

from ghdeploy.errors import (
    ConfigurationError,
    DeployToolError,
    IntegrityError,
    UnsupportedPlatformError,
    failure_stage,
)
from ghdeploy.github.client import GitHubClient
from ghdeploy.logging import get_logger
from ghdeploy.models import ReleaseAsset, UpdateOutcome
from ghdeploy.updater.swap import ExecutableSwapper, remove_if_possible, swapper_for
from ghdeploy.utils import normalize_version, timed_operation

log = get_logger("ghdeploy.updater.manager")

# Semver regex: v1.2.3 or 1.2.3 (optional leading 'v')
_SEMVER_RE = re.compile(
    r"^v?(?P<major>\d+)\.(?P<minor>\d+)\.(?P<patch>\d+)" r"(?:-(?P<pre>[a-zA-Z0-9.]+))?$"
)
_SHA256_RE = re.compile(r"\b([0-9a-fA-F]{64})\b")

CHECKSUM_SUFFIXES = (".sha256", ".sha256sum")
_HASH_CHUNK = 1024 * 1024

# Never swapped over: running from these means there is no binary to replace.
_SOURCE_SUFFIXES = (".py", ".pyc", ".pyw")
_PACKAGE_DIR = Path(__file__).resolve().parents[1]


class UpdateState(Enum):
    """Where an update run currently is."""

    FETCHING = "fetching"
    SELECTING = "selecting"
    DOWNLOADING = "downloading"
    VERIFYING = "verifying"
    SWAPPING = "swapping"
    DONE = "done"
    FAILED = "failed"


def parse_semver(version_str: str) -> tuple[int, int, int, str] | None:
    """Parse a semver string into (major, minor, patch, pre).

    Returns None if the string is not valid semver.
    """
    m = _SEMVER_RE.match(version_str.strip())
    if m is None:
        return None
    return (
        int(m.group("major")),
        int(m.group("minor")),
        int(m.group("patch")),
        m.group("pre") or "",
    )


def is_newer(candidate: str, current: str) -> bool:
    """Return True if *candidate* is a newer semver than *current*."""
    c = parse_semver(candidate)
    cur = parse_semver(current)
    if c is None or cur is None:
        return False

    # Compare (major, minor, patch); pre-release sorts lower
    c_tuple = (c[0], c[1], c[2], c[3] == "")
    cur_tuple = (cur[0], cur[1], cur[2], cur[3] == "")
    return c_tuple > cur_tuple


def sha256_file(path: Path) -> str:
    digest = hashlib.sha256()
    with open(path, "rb") as fh:
        for chunk in iter(lambda: fh.read(_HASH_CHUNK), b""):
            digest.update(chunk)
    return digest.hexdigest()


def current_executable() -> Path:
    """Path of the executable this process was started from.

    Raises:
        ConfigurationError: The process runs from Python source (``python -m
            ghdeploy`` or a script), so there is no binary to replace.
    """
    if getattr(sys, "frozen", False):
        return Path(sys.executable).resolve()

    argv0 = sys.argv[0] if sys.argv else ""
    path = Path(argv0).resolve() if argv0 and argv0 != "-c" else None
    if path is None or path.suffix in _SOURCE_SUFFIXES or _PACKAGE_DIR in path.parents:
        raise ConfigurationError(
            "Cannot determine the executable to replace; set EXECUTABLE_PATH"
        )
    return path


class ReleaseUpdater:
    """Replaces the tool's executable with the latest published release."""

    def __init__(
        self,
        client: GitHubClient,
        *,
        release_repo: str,
        bin_name: str,
        executable_path: Path,
        swapper: ExecutableSwapper | None = None,
    ) -> None:
        self._client = client
        self._repo = release_repo
        self._bin_name = bin_name
        self._executable = Path(executable_path)
        self._swapper = swapper or swapper_for(self._executable)
        self._state = UpdateState.FETCHING
        self._failure_reason: str | None = None

    @property
    def state(self) -> UpdateState:
        return self._state

    @property
    def failure_reason(self) -> str | None:
        return self._failure_reason

    @property
    def temp_prefix(self) -> str:
        return f".{self._bin_name}-update-"

    def _transition(self, state: UpdateState) -> None:
        log.debug("updater_state", previous=self._state.value, state=state.value)
        self._state = state

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def update(self, current_version: str, platform_tag: str) -> UpdateOutcome:
        """Run the update state machine.

        Raises:
            NetworkError, ApiError, NotFoundError, UnsupportedPlatformError,
            IntegrityError, SwapError: the step that failed; the state is
            left at FAILED.
        """
        current = normalize_version(current_version)
        self._transition(UpdateState.FETCHING)
        try:
            release = self._fetch()
            latest = normalize_version(str(release.get("tag_name", "")))
            if not is_newer(latest, current):
                log.info("updater_up_to_date", current=current, latest=latest)
                self._transition(UpdateState.DONE)
                return UpdateOutcome(previous_version=current, new_version=latest, replaced=False)

            log.info("updater_new_release_found", current=current, new=latest)
            self._transition(UpdateState.SELECTING)
            asset = self.select_asset(release, latest, platform_tag)

            self._transition(UpdateState.DOWNLOADING)
            temp_path = self._download(asset)

            self._transition(UpdateState.VERIFYING)
            verified = self._verify(temp_path, asset)

            self._transition(UpdateState.SWAPPING)
            self._swap(temp_path)
        except DeployToolError as exc:
            self._failure_reason = exc.describe()
            self._transition(UpdateState.FAILED)
            log.warning("updater_failed", reason=self._failure_reason)
            raise

        self._transition(UpdateState.DONE)
        log.info("updater_success", version=latest, verified=verified)
        return UpdateOutcome(
            previous_version=current, new_version=latest, replaced=True, verified=verified
        )

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _fetch(self) -> dict[str, Any]:
        with failure_stage("fetch"):
            return self._client.get_latest_release(self._repo)

    def select_asset(
        self, release: dict[str, Any], version: str, platform_tag: str
    ) -> ReleaseAsset:
        """Pick the asset built for *platform_tag* and find its checksum."""
        with failure_stage("select"):
            assets = release.get("assets") or []
            binaries = [
                a for a in assets if not str(a.get("name", "")).endswith(CHECKSUM_SUFFIXES)
            ]
            preferred = {f"{self._bin_name}-{platform_tag}", f"{self._bin_name}-{platform_tag}.exe"}

            chosen = next((a for a in binaries if a.get("name") in preferred), None)
            if chosen is None:
                chosen = next((a for a in binaries if platform_tag in str(a.get("name", ""))), None)
            if chosen is None:
                names = sorted(str(a.get("name", "")) for a in assets)
                raise UnsupportedPlatformError(
                    f"Release {version} has no asset for {platform_tag} (assets: {names})"
                )

            name = str(chosen["name"])
            return ReleaseAsset(
                version=version,
                platform_tag=platform_tag,
                download_url=str(chosen["browser_download_url"]),
                name=name,
                checksum=self._published_checksum(chosen, assets),
            )

    def _published_checksum(
        self, asset: dict[str, Any], assets: list[dict[str, Any]]
    ) -> str | None:
        digest = str(asset.get("digest") or "")
        if digest.startswith("sha256:"):
            return digest.removeprefix("sha256:").lower()

        sidecar_names = {f"{asset['name']}{suffix}" for suffix in CHECKSUM_SUFFIXES}
        sidecar = next((a for a in assets if a.get("name") in sidecar_names), None)
        if sidecar is None:
            return None
        text = self._client.fetch_text(str(sidecar["browser_download_url"]))
        m = _SHA256_RE.search(text)
        if m is None:
            raise IntegrityError(f"Checksum file {sidecar['name']} has no SHA-256 digest")
        return m.group(1).lower()

    def _remove_stale_downloads(self) -> None:
        for stale in self._executable.parent.glob(f"{self.temp_prefix}*.tmp"):
            # A locked leftover is retried on the next run.
            if remove_if_possible(stale):
                log.debug("updater_stale_download_removed", path=str(stale))
        self._swapper.cleanup()

    def _download(self, asset: ReleaseAsset) -> Path:
        with failure_stage("download"):
            self._remove_stale_downloads()
            try:
                fd, name = tempfile.mkstemp(
                    prefix=self.temp_prefix, suffix=".tmp", dir=self._executable.parent
                )
            except OSError as exc:
                raise ConfigurationError(
                    f"Cannot write next to {self._executable}: {exc}"
                ) from exc

            temp_path = Path(name)
            with os.fdopen(fd, "wb") as fh, timed_operation(
                "updater_download", log=log, asset=asset.name
            ) as timing:
                try:
                    timing["bytes"] = self._client.download(asset.download_url, fh)
                except DeployToolError:
                    # Left for the next run's stale-download sweep.
                    log.warning("updater_download_interrupted", temp_path=str(temp_path))
                    raise
        return temp_path

    def _verify(self, temp_path: Path, asset: ReleaseAsset) -> bool:
        """Return True if verified, False if there was nothing to verify against."""
        with failure_stage("verification"):
            if asset.checksum is None:
                log.warning("updater_checksum_missing", asset=asset.name, version=asset.version)
                return False

            actual = sha256_file(temp_path)
            if actual != asset.checksum.lower():
                temp_path.unlink(missing_ok=True)
                raise IntegrityError(
                    f"Checksum mismatch for {asset.name}: expected {asset.checksum}, "
                    f"got {actual}"
                )
            log.info("updater_checksum_verified", asset=asset.name)
            return True

    def _swap(self, temp_path: Path) -> None:
        with failure_stage("swap"):
            self._swapper.stage(temp_path)
            self._swapper.commit()
