"""Loguru configuration with timing helpers.

This module provides centralized loguru configuration with:
- Colored console output
- Structured JSONL files split by component
- A context manager for timing pipeline steps
"""

from __future__ import annotations

import sys
import time
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Any

from loguru import logger

if TYPE_CHECKING:
    from collections.abc import Generator

__all__ = [
    "COMPONENTS",
    "configure_loguru",
    "get_logger",
    "timing_context",
]

COMPONENTS = ("pipeline", "storage", "api", "sync")


def configure_loguru(
    *,
    log_dir: Path | None = None,
    level: str = "INFO",
    rotation: str = "10 MB",
    retention: str = "30 days",
    enable_console: bool = True,
) -> None:
    """Configure loguru sinks for a run.

    Parameters
    ----------
    log_dir
        Directory for JSONL log files (no file sinks when None)
    level
        Minimum log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    rotation
        Log rotation policy (e.g., "10 MB", "1 week")
    retention
        Log retention policy
    enable_console
        Enable console output on stderr

    Example
    -------
    >>> configure_loguru(log_dir=Path("logs"), level="DEBUG")
    """
    # Remove default handler
    logger.remove()

    if enable_console:
        logger.add(
            sys.stderr,
            format="<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{extra[component]}</cyan> | "
            "<level>{message}</level>",
            level=level,
            colorize=True,
            backtrace=False,
            diagnose=False,
            filter=_ensure_component,
        )

    if log_dir is None:
        return

    log_dir.mkdir(parents=True, exist_ok=True)

    logger.add(
        log_dir / "poolsnap.jsonl",
        format="{message}",
        level=level,
        rotation=rotation,
        retention=retention,
        serialize=True,
        backtrace=True,
        diagnose=False,
    )

    for component in COMPONENTS:
        logger.add(
            log_dir / f"{component}.jsonl",
            format="{message}",
            level=level,
            rotation=rotation,
            retention=retention,
            serialize=True,
            filter=lambda record, comp=component: record["extra"].get("component") == comp,
        )

    logger.bind(component="poolsnap").debug("Loguru configured", log_dir=str(log_dir), level=level)


def _ensure_component(record: Any) -> bool:
    record["extra"].setdefault("component", "poolsnap")
    return True


def get_logger(component: str = "poolsnap") -> Any:
    """Get logger instance bound to specific component.

    Parameters
    ----------
    component
        Component name (pipeline, storage, api, sync)

    Returns
    -------
    Logger
        Loguru logger bound to component
    """
    return logger.bind(component=component)


@contextmanager
def timing_context(
    operation: str,
    *,
    component: str = "poolsnap",
    trace_id: str | None = None,
    **metadata: Any,
) -> Generator[dict[str, Any], None, None]:
    """Context manager logging the duration of an operation.

    Parameters
    ----------
    operation
        Name of the operation being timed
    component
        Component name for filtering logs
    trace_id
        Trace ID for correlation within a run
    **metadata
        Additional metadata to log

    Yields
    ------
    dict
        Context dictionary that can be updated with additional data

    Example
    -------
    >>> with timing_context("fetch_pools", component="api") as ctx:
    ...     pools = client.fetch_pools()
    ...     ctx["pools"] = len(pools)
    """
    start_time = time.perf_counter()
    context: dict[str, Any] = dict(metadata)
    bound = logger.bind(component=component, operation=operation, trace_id=trace_id)

    bound.debug(f"START: {operation}", phase="start", **metadata)

    try:
        yield context
    finally:
        duration_ms = (time.perf_counter() - start_time) * 1000
        bound.debug(f"END: {operation}", phase="end", duration_ms=duration_ms, **context)
