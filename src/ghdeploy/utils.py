"""Shared utilities for ghdeploy."""

import time
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import structlog


@contextmanager
def timed_operation(
    name: str,
    log: structlog.stdlib.BoundLogger | None = None,
    **extra: Any,
) -> Iterator[dict[str, Any]]:
    """Context manager that measures elapsed time for a blocking operation.

    Usage::

        with timed_operation("asset_download", log=log) as timing:
            download()
        print(timing["elapsed_ms"])

    Args:
        name: A label for the operation (used in log messages).
        log: Optional structlog logger; if provided, an info-level message
             is emitted on exit.
        **extra: Additional key-value pairs forwarded to the log call.

    Yields:
        A mutable dict that will contain ``elapsed_ms`` after the block exits.
    """
    start = time.perf_counter()
    result: dict[str, Any] = {}
    try:
        yield result
    finally:
        result["elapsed_ms"] = round((time.perf_counter() - start) * 1000, 2)
        if log:
            log.info(name, duration_ms=result["elapsed_ms"], **extra)


def normalize_version(version: str) -> str:
    """Strip whitespace and a leading ``v`` from a release tag."""
    return version.strip().removeprefix("v")
