"""Observability module for poolsnap.

Provides loguru configuration and timing instrumentation.
"""

from .loguru_config import COMPONENTS, configure_loguru, get_logger, timing_context

__all__ = [
    "COMPONENTS",
    "configure_loguru",
    "get_logger",
    "timing_context",
]
