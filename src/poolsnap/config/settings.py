"""Centralized configuration for poolsnap runs.

Loads configuration from an optional .env file and the process environment
and provides typed access to settings. A ``Settings`` instance is built once
at process start and passed explicitly to every component.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

import pytz

__all__ = [
    "ConfigError",
    "DEFAULT_API_URL",
    "Settings",
    "load_env_file",
]

DEFAULT_API_URL = "https://dex.warlock.backbonelabs.io/api/pools/phoenix-1"


class ConfigError(Exception):
    """Raised when configuration is missing or invalid."""

    pass


@dataclass
class Settings:
    """Settings for a single poolsnap run.

    Attributes
    ----------
    api_url : str
        Pool data endpoint returning ``{"pools": [...]}``
    data_dir : Path
        Storage root holding the daily/weekly/monthly/yearly tiers
    repo_path : Path
        Working tree synced with the remote repository
    timezone : str
        Timezone used to label periods (default: UTC)
    http_timeout : float
        Timeout in seconds for the pool API request
    github_token : str | None
        Token for pushing to GitHub; without it the run stays local
    github_repo : str
        ``owner/name`` of the remote repository
    git_branch : str
        Branch to push to
    git_user_name : str
        Commit author name
    git_user_email : str
        Commit author email
    log_level : str
        Logging level
    log_dir : Path | None
        Directory for JSONL log files (console only when unset)
    """

    data_dir: Path = Path("data")
    api_url: str = DEFAULT_API_URL
    repo_path: Path = Path(".")
    timezone: str = "UTC"
    http_timeout: float = 30.0

    # Remote sync
    github_token: str | None = None
    github_repo: str = "alliancedao/pool-data"
    git_branch: str = "main"
    git_user_name: str = "Alliance DAO Bot"
    git_user_email: str = "bot@alliancedao.com"

    # Logging
    log_level: str = "INFO"
    log_dir: Path | None = None

    def __post_init__(self):
        """Validate settings after initialization."""
        if isinstance(self.data_dir, str):
            self.data_dir = Path(self.data_dir)
        if isinstance(self.repo_path, str):
            self.repo_path = Path(self.repo_path)
        if self.log_dir and isinstance(self.log_dir, str):
            self.log_dir = Path(self.log_dir)

        if not self.api_url:
            raise ConfigError("POOLSNAP_API_URL must not be empty")

        if self.http_timeout <= 0:
            raise ConfigError(f"POOLSNAP_HTTP_TIMEOUT must be positive, got {self.http_timeout}")

        try:
            pytz.timezone(self.timezone)
        except pytz.UnknownTimeZoneError as exc:
            raise ConfigError(f"Unknown timezone in POOLSNAP_TZ: {self.timezone}") from exc

        if self.github_token and "/" not in self.github_repo:
            raise ConfigError(f"GITHUB_REPO must look like owner/name, got {self.github_repo!r}")

    @property
    def publish_enabled(self) -> bool:
        """True when a token is configured and results should be pushed."""
        return bool(self.github_token)

    @property
    def remote_url(self) -> str:
        """Authenticated HTTPS remote for the configured repository."""
        return f"https://{self.github_token}@github.com/{self.github_repo}.git"

    @classmethod
    def from_env(cls, env_file: Path | str | None = None) -> Settings:
        """Load settings from environment.

        Loads from .env file if present, then reads os.environ.

        Parameters
        ----------
        env_file
            Path to .env file (default: .env in current directory)

        Returns
        -------
        Settings
            Loaded settings

        Raises
        ------
        ConfigError
            If settings are invalid
        """
        if env_file is None:
            env_file = Path(".env")

        if isinstance(env_file, str):
            env_file = Path(env_file)

        if env_file.exists():
            load_env_file(env_file)

        try:
            return cls(
                api_url=os.environ.get("POOLSNAP_API_URL", DEFAULT_API_URL),
                data_dir=Path(os.environ.get("POOLSNAP_DATA_DIR", "data")),
                repo_path=Path(os.environ.get("POOLSNAP_REPO_PATH", ".")),
                timezone=os.environ.get("POOLSNAP_TZ", "UTC"),
                http_timeout=float(os.environ.get("POOLSNAP_HTTP_TIMEOUT", "30.0")),
                # Remote sync
                github_token=os.environ.get("GITHUB_TOKEN") or None,
                github_repo=os.environ.get("GITHUB_REPO", "alliancedao/pool-data"),
                git_branch=os.environ.get("POOLSNAP_GIT_BRANCH", "main"),
                git_user_name=os.environ.get("POOLSNAP_GIT_USER_NAME", "Alliance DAO Bot"),
                git_user_email=os.environ.get("POOLSNAP_GIT_USER_EMAIL", "bot@alliancedao.com"),
                # Logging
                log_level=os.environ.get("POOLSNAP_LOG_LEVEL", "INFO").upper(),
                log_dir=Path(os.environ["POOLSNAP_LOG_DIR"]) if os.environ.get("POOLSNAP_LOG_DIR") else None,
            )

        except (ValueError, KeyError) as exc:
            raise ConfigError(f"Invalid configuration: {exc}") from exc


def load_env_file(env_file: Path) -> None:
    """Load environment variables from .env file.

    Variables already present in the environment are left untouched.

    Parameters
    ----------
    env_file
        Path to .env file
    """
    with open(env_file, encoding="utf-8") as f:
        for line in f:
            line = line.strip()

            # Skip comments and empty lines
            if not line or line.startswith("#"):
                continue

            if "=" in line:
                key, value = line.split("=", 1)
                key = key.strip()
                value = value.strip()

                # Remove quotes
                if (value.startswith('"') and value.endswith('"')) or (value.startswith("'") and value.endswith("'")):
                    value = value[1:-1]

                os.environ.setdefault(key, value)
