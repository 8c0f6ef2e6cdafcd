"""Replace the running executable with a freshly downloaded one.

Two strategies share the ``stage(new_file)`` / ``commit()`` interface:

* ``RenameSwapper`` (POSIX): a single ``os.replace`` over the live path.
  The rename is atomic within a filesystem, so the path always holds either
  the complete old file or the complete new one.
* ``StagedSwapper`` (Windows): a running executable cannot be overwritten
  but can be renamed. The new file is placed next to it as ``{exe}.new``,
  the live file moves aside to ``{exe}.old``, the new file moves in, and the
  old one is deleted once that is possible (on the next run at the latest).

The strategy is fixed per target platform by ``DEFAULT_SWAPPER``.
"""

from __future__ import annotations

import os
import stat
import sys
from pathlib import Path
from typing import Protocol

from ghdeploy.errors import SwapError
from ghdeploy.logging import get_logger

log = get_logger("ghdeploy.updater.swap")


class ExecutableSwapper(Protocol):
    target: Path

    def stage(self, new_file: Path) -> None: ...

    def commit(self) -> None: ...

    def cleanup(self) -> None: ...


def _make_executable(new_file: Path, like: Path) -> None:
    try:
        mode = stat.S_IMODE(like.stat().st_mode)
    except FileNotFoundError:
        mode = 0o755
    os.chmod(new_file, mode | stat.S_IXUSR)


def remove_if_possible(path: Path) -> bool:
    try:
        path.unlink(missing_ok=True)
    except OSError as exc:
        log.debug("updater_leftover_kept", path=str(path), error=str(exc))
        return False
    return True


class RenameSwapper:
    """Atomic rename over the live executable."""

    def __init__(self, target: Path) -> None:
        self.target = Path(target)
        self._staged: Path | None = None

    def stage(self, new_file: Path) -> None:
        new_file = Path(new_file)
        if new_file.parent.resolve() != self.target.parent.resolve():
            raise SwapError(
                f"{new_file} must live next to {self.target} for an atomic rename",
                stage="swap",
            )
        try:
            _make_executable(new_file, self.target)
        except OSError as exc:
            raise SwapError(f"Cannot mark {new_file} executable: {exc}", stage="swap") from exc
        self._staged = new_file

    def commit(self) -> None:
        if self._staged is None:
            raise SwapError("No new executable staged", stage="swap")
        try:
            os.replace(self._staged, self.target)
        except OSError as exc:
            raise SwapError(f"Cannot replace {self.target}: {exc}", stage="swap") from exc
        log.info("updater_executable_replaced", path=str(self.target))
        self._staged = None

    def cleanup(self) -> None:
        """Nothing is left behind by a rename."""


class StagedSwapper:
    """Stage-adjacent swap for platforms that lock running executables."""

    def __init__(self, target: Path) -> None:
        self.target = Path(target)
        self.pending = self.target.with_name(self.target.name + ".new")
        self.previous = self.target.with_name(self.target.name + ".old")
        self._staged = False

    def stage(self, new_file: Path) -> None:
        try:
            _make_executable(Path(new_file), self.target)
            os.replace(new_file, self.pending)
        except OSError as exc:
            raise SwapError(f"Cannot stage {self.pending}: {exc}", stage="swap") from exc
        self._staged = True

    def commit(self) -> None:
        if not self._staged:
            raise SwapError("No new executable staged", stage="swap")

        if self.previous.exists() and not remove_if_possible(self.previous):
            raise SwapError(f"{self.previous} is still in use", stage="swap")

        try:
            os.replace(self.target, self.previous)
        except OSError as exc:
            raise SwapError(f"Cannot move {self.target} aside: {exc}", stage="swap") from exc

        try:
            os.replace(self.pending, self.target)
        except OSError as exc:
            self._restore()
            raise SwapError(f"Cannot move new executable into place: {exc}", stage="swap") from exc

        if not self.target.is_file():
            self._restore()
            raise SwapError(f"{self.target} missing after swap", stage="swap")

        self._staged = False
        log.info("updater_executable_replaced", path=str(self.target))
        # Fails while the old binary is still running; cleanup() retries next run.
        remove_if_possible(self.previous)

    def _restore(self) -> None:
        try:
            os.replace(self.previous, self.target)
        except OSError as exc:
            raise SwapError(
                f"Cannot restore {self.target} from {self.previous}: {exc}", stage="swap"
            ) from exc

    def cleanup(self) -> None:
        """Remove leftovers of an earlier swap."""
        remove_if_possible(self.previous)
        if not self._staged:
            remove_if_possible(self.pending)


DEFAULT_SWAPPER: type[RenameSwapper] | type[StagedSwapper] = (
    StagedSwapper if sys.platform == "win32" else RenameSwapper
)


def swapper_for(target: Path, platform: str | None = None) -> ExecutableSwapper:
    """Build the swapper for *platform* (defaults to this build's platform)."""
    if platform is None:
        return DEFAULT_SWAPPER(target)
    if platform == "win32":
        return StagedSwapper(target)
    return RenameSwapper(target)
