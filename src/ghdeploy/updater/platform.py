"""Platform tags used to name release assets.

Release assets are published as ``{bin}-{target}`` where ``target`` is a
target triple such as ``x86_64-unknown-linux-gnu`` or ``x86_64-apple-darwin``.
"""

from __future__ import annotations

import platform
import sys

from ghdeploy.errors import UnsupportedPlatformError

_ARCH_ALIASES = {
    "x86_64": "x86_64",
    "amd64": "x86_64",
    "arm64": "aarch64",
    "aarch64": "aarch64",
    "i386": "i686",
    "i686": "i686",
}


def detect_platform_tag(
    system: str | None = None,
    machine: str | None = None,
    libc: str | None = None,
) -> str:
    """Return the target triple for the running (or given) platform.

    Raises:
        UnsupportedPlatformError: The OS or architecture is not one releases
            are built for.
    """
    system = (system or sys.platform).lower()
    machine = (machine or platform.machine()).lower()

    arch = _ARCH_ALIASES.get(machine)
    if arch is None:
        raise UnsupportedPlatformError(f"Unsupported architecture: {machine}", stage="select")

    if system.startswith("linux"):
        if libc is None:
            libc = platform.libc_ver()[0]
        flavour = "gnu" if libc == "glibc" else "musl"
        return f"{arch}-unknown-linux-{flavour}"
    if system == "darwin":
        return f"{arch}-apple-darwin"
    if system in ("win32", "cygwin", "windows"):
        return f"{arch}-pc-windows-msvc"

    raise UnsupportedPlatformError(f"Unsupported operating system: {system}", stage="select")
