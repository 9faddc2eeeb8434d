"""Publishing tier files to a remote git repository.

The pipeline only sees the ``Publisher`` protocol. ``GitPublisher`` drives
the git command line; ``NullPublisher`` is used when no token is configured.
"""

from __future__ import annotations

import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from ..observability.loguru_config import get_logger

if TYPE_CHECKING:
    from ..config.settings import Settings

__all__ = [
    "GitPublisher",
    "NullPublisher",
    "PublishError",
    "Publisher",
    "create_publisher",
]

logger = get_logger("sync")


class PublishError(Exception):
    """Raised when committing or pushing fails."""

    pass


class Publisher(Protocol):
    """Persist-and-publish capability handed to the pipeline."""

    def prepare(self) -> None:
        """Bring the working tree in line with the remote before a run."""
        ...

    def publish(self, message: str) -> bool:
        """Commit all changes with ``message`` and push.

        Returns True when something was pushed.
        """
        ...


class NullPublisher:
    """Publisher for local runs: nothing leaves the machine."""

    def prepare(self) -> None:
        logger.info("No GITHUB_TOKEN - running in local mode")

    def publish(self, message: str) -> bool:
        logger.info(f"No GITHUB_TOKEN - skipping push ({message})")
        return False


class GitPublisher:
    """Publish by committing to a local clone and pushing to ``origin``.

    Example:
        >>> publisher = GitPublisher(Path("."), "https://TOKEN@github.com/org/repo.git")
        >>> publisher.prepare()
        >>> publisher.publish("daily snapshot: day-3.csv")
    """

    def __init__(
        self,
        repo_path: Path,
        remote_url: str,
        *,
        branch: str = "main",
        user_name: str = "Alliance DAO Bot",
        user_email: str = "bot@alliancedao.com",
        secret: str | None = None,
    ) -> None:
        """Initialize publisher.

        Parameters
        ----------
        repo_path
            Working tree holding the data directory
        remote_url
            Remote URL, possibly carrying a token
        branch
            Branch to push
        user_name
            Commit author name
        user_email
            Commit author email
        secret
            Value to redact from log output (the token)
        """
        self.repo_path = Path(repo_path)
        self.remote_url = remote_url
        self.branch = branch
        self.user_name = user_name
        self.user_email = user_email
        self.secret = secret

    def _redact(self, text: str) -> str:
        if self.secret:
            return text.replace(self.secret, "***")
        return text

    def _git(self, *args: str, cwd: Path | None = None) -> str:
        """Run a git command and return its stdout.

        Raises
        ------
        subprocess.CalledProcessError
            If git exits non-zero
        PublishError
            If git is not installed
        """
        command = ["git", *args]
        logger.debug(self._redact("> " + " ".join(command)))
        try:
            result = subprocess.run(
                command,
                cwd=cwd or self.repo_path,
                check=True,
                capture_output=True,
                text=True,
            )
        except FileNotFoundError as exc:
            raise PublishError("git executable not found") from exc
        output = result.stdout.strip()
        if output:
            logger.debug(self._redact(output))
        return output

    def prepare(self) -> None:
        """Sync the working tree with the remote.

        Clones the remote into a temporary directory and copies it, history
        included, over ``repo_path``. When the clone fails a fresh
        repository pointing at the remote is initialised instead.

        Raises
        ------
        PublishError
            If the working tree cannot be set up
        """
        try:
            self._prepare()
        except (subprocess.CalledProcessError, OSError) as exc:
            stderr = getattr(exc, "stderr", None) or str(exc)
            raise PublishError(f"git setup failed: {self._redact(stderr)}") from exc

    def _prepare(self) -> None:
        self.repo_path.mkdir(parents=True, exist_ok=True)

        existing_git = self.repo_path / ".git"
        if existing_git.exists():
            logger.info("Removing existing .git directory")
            shutil.rmtree(existing_git)

        logger.info("Cloning repository")
        with tempfile.TemporaryDirectory() as tmp_dir:
            clone_path = Path(tmp_dir) / "repo"
            try:
                self._git("clone", self.remote_url, str(clone_path), cwd=Path(tmp_dir))
            except subprocess.CalledProcessError as exc:
                logger.warning(f"Clone failed, initializing new repo: {self._redact(exc.stderr or '')}")
                self._git("init")
                self._git("remote", "add", "origin", self.remote_url)
                self._checkout_branch()
            else:
                shutil.copytree(clone_path, self.repo_path, dirs_exist_ok=True)
                logger.info("Repository cloned and files synced")

        self._git("config", "user.email", self.user_email)
        self._git("config", "user.name", self.user_name)
        logger.info("Git setup complete")

    def _checkout_branch(self) -> None:
        try:
            self._git("checkout", "-b", self.branch)
        except subprocess.CalledProcessError as exc:
            logger.debug(f"Branch checkout ignored: {self._redact(exc.stderr or '')}")

    def publish(self, message: str) -> bool:
        """Commit every change under the working tree and push it.

        Parameters
        ----------
        message
            Commit message

        Returns
        -------
        bool
            False when there was nothing to commit

        Raises
        ------
        PublishError
            If staging or pushing fails
        """
        try:
            self._git("add", "-A")
        except subprocess.CalledProcessError as exc:
            raise PublishError(f"git add failed: {self._redact(exc.stderr or str(exc))}") from exc

        try:
            self._git("commit", "-m", message)
        except subprocess.CalledProcessError:
            logger.info("Nothing new to commit")
            return False

        logger.info("Pushing to remote")
        try:
            self._git("push", "origin", self.branch)
        except subprocess.CalledProcessError:
            logger.warning("Normal push failed, trying force push")
            try:
                self._git("push", "origin", self.branch, "--force")
            except subprocess.CalledProcessError as exc:
                raise PublishError(f"git push failed: {self._redact(exc.stderr or str(exc))}") from exc
            logger.info("Force pushed to remote")
            return True

        logger.info("Successfully pushed to remote")
        return True


def create_publisher(settings: Settings, *, enabled: bool = True) -> Publisher:
    """Pick the publisher for a run.

    Parameters
    ----------
    settings
        Run settings
    enabled
        False forces local mode even when a token is configured

    Returns
    -------
    Publisher
        ``GitPublisher`` when a token is configured, else ``NullPublisher``
    """
    if not enabled or not settings.publish_enabled:
        return NullPublisher()

    return GitPublisher(
        settings.repo_path,
        settings.remote_url,
        branch=settings.git_branch,
        user_name=settings.git_user_name,
        user_email=settings.git_user_email,
        secret=settings.github_token,
    )
