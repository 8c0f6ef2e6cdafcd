"""Self-update from published GitHub releases.

Finds the latest release, downloads the asset for this platform, verifies
it and atomically swaps it in for the running executable.
"""

from ghdeploy.updater.manager import ReleaseUpdater, UpdateState
from ghdeploy.updater.platform import detect_platform_tag
from ghdeploy.updater.swap import RenameSwapper, StagedSwapper, swapper_for

__all__ = [
    "ReleaseUpdater",
    "RenameSwapper",
    "StagedSwapper",
    "UpdateState",
    "detect_platform_tag",
    "swapper_for",
]
