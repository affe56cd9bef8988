"""Git transport for the advisory database mirror.

The database only needs three things from git: make the mirror match the
remote, report the HEAD commit timestamp, and keep other writers out while
that happens. ``GitTransport`` shells out to the ``git`` executable; tests
substitute their own object with the same methods.
"""

import datetime
import os
import subprocess
from pathlib import Path
from typing import List, Optional, Union

from ..core.errors import LockedError
from ..utils.logging import get_logger


class GitError(RuntimeError):
    """Raised when a git command fails."""


class GitTransport:
    """Mirror operations backed by the ``git`` command line tool."""

    def __init__(self, executable: str = "git", timeout: float = 300.0) -> None:
        self.executable = executable
        self.timeout = timeout
        self.logger = get_logger("GitTransport")

    def _run(self, args: List[str], cwd: Optional[Path] = None) -> str:
        command = [self.executable, *args]
        self.logger.debug(f"Running {' '.join(command)}")
        try:
            result = subprocess.run(
                command,
                cwd=str(cwd) if cwd else None,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                check=False,
            )
        except (OSError, subprocess.SubprocessError) as e:
            raise GitError(f"{' '.join(command)}: {e}") from e

        if result.returncode != 0:
            message = result.stderr.strip() or result.stdout.strip() or f"exit code {result.returncode}"
            raise GitError(f"{' '.join(command)}: {message}")
        return result.stdout

    def sync(self, path: Path, url: str) -> None:
        """Clone ``url`` into ``path``, or fast-forward an existing mirror.

        Raises:
            GitError: On any transport or repository failure
        """
        if not (path / ".git").exists():
            path.parent.mkdir(parents=True, exist_ok=True)
            self._run(["clone", "--quiet", url, str(path)])
            return

        self._run(["fetch", "--quiet", url, "HEAD"], cwd=path)
        self._run(["reset", "--quiet", "--hard", "FETCH_HEAD"], cwd=path)

    def head_timestamp(self, path: Path) -> Optional[datetime.datetime]:
        """Return the committer timestamp of HEAD, or None if unavailable."""
        try:
            output = self._run(["log", "-1", "--format=%ct", "HEAD"], cwd=path).strip()
        except GitError as e:
            self.logger.debug(f"Cannot read HEAD timestamp of {path}: {e}")
            return None
        if not output:
            return None
        return datetime.datetime.fromtimestamp(int(output), tz=datetime.timezone.utc)


class MirrorLock:
    """Exclusive lock file next to the mirror directory.

    Acquisition never blocks: if the lock file already exists, ``LockedError``
    is raised immediately.
    """

    def __init__(self, mirror_path: Union[Path, str]) -> None:
        mirror_path = Path(mirror_path)
        self.path = mirror_path.with_name(mirror_path.name + ".lock")
        self._fd: Optional[int] = None

    def acquire(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        try:
            self._fd = os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
        except FileExistsError as e:
            raise LockedError(self.path) from e
        os.write(self._fd, str(os.getpid()).encode())

    def release(self) -> None:
        if self._fd is None:
            return
        os.close(self._fd)
        self._fd = None
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass

    def __enter__(self) -> "MirrorLock":
        self.acquire()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.release()
