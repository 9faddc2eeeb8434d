"""Common CLI utilities: stable exit codes and error classification."""

from enum import IntEnum

import click

from ..adapters.pool_api import InvalidPoolResponseError, PoolAPIError
from ..config.settings import ConfigError
from ..storage.record_store import RecordStoreError


class ExitCode(IntEnum):
    """Stable exit codes for the poolsnap command."""

    SUCCESS = 0  # Files written (publish failures included)
    USAGE_ERROR = 2  # Unknown mode or bad option
    FETCH_ERROR = 3  # Pool API unreachable or returned garbage
    VALIDATION_ERROR = 4  # Pool API response has no pools array
    IO_ERROR = 5  # Tier file could not be read or written
    CONFIG_ERROR = 6  # Invalid configuration
    UNKNOWN_ERROR = 7  # Unknown/unexpected error


def exit_code_for(exc: BaseException) -> ExitCode:
    """Map an exception that aborted a run to its exit code."""
    if isinstance(exc, click.UsageError):
        return ExitCode.USAGE_ERROR
    if isinstance(exc, InvalidPoolResponseError):
        return ExitCode.VALIDATION_ERROR
    if isinstance(exc, PoolAPIError):
        return ExitCode.FETCH_ERROR
    if isinstance(exc, ConfigError):
        return ExitCode.CONFIG_ERROR
    if isinstance(exc, (RecordStoreError, OSError)):
        return ExitCode.IO_ERROR
    return ExitCode.UNKNOWN_ERROR
