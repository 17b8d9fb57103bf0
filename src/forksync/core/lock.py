"""Exclusive lock on a repository workspace.

One run at a time may mutate a working copy. The lock is a file
created with O_CREAT | O_EXCL, which is atomic on every platform we
run on (git uses the same trick for index.lock). A second run finds
the file present and fails immediately instead of queueing.
"""

from __future__ import annotations

import os
from datetime import UTC, datetime
from pathlib import Path

from forksync.core.errors import ConcurrentRunError
from forksync.core.log import logger


class WorkspaceLock:
    """Scoped exclusive lock, released on every exit path.

    Example:
        >>> with WorkspaceLock(git_dir / "forksync.lock"):
        ...     run_pipeline()
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._fd: int | None = None

    @property
    def held(self) -> bool:
        """True while this instance owns the lock file."""
        return self._fd is not None

    def holder(self) -> str | None:
        """Contents of the lock file (owner pid and time), if any."""
        try:
            return self.path.read_text(encoding="utf-8").strip()
        except OSError:
            return None

    def acquire(self) -> WorkspaceLock:
        """Take the lock or fail fast.

        Raises:
            ConcurrentRunError: Another run owns the workspace
        """
        if self.held:
            return self

        self.path.parent.mkdir(parents=True, exist_ok=True)
        try:
            fd = os.open(
                str(self.path), os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644
            )
        except FileExistsError as e:
            raise ConcurrentRunError(
                "Workspace is locked by another run",
                lock=str(self.path),
                holder=self.holder() or "unknown",
            ) from e

        stamp = datetime.now(UTC).isoformat()
        os.write(fd, f"pid={os.getpid()} since={stamp}\n".encode())
        self._fd = fd
        logger.debug("Workspace lock acquired", lock=str(self.path))
        return self

    def release(self) -> None:
        """Drop the lock. Safe to call repeatedly or when never taken."""
        if self._fd is None:
            return
        fd, self._fd = self._fd, None
        try:
            os.close(fd)
        finally:
            try:
                self.path.unlink()
            except FileNotFoundError:
                pass
        logger.debug("Workspace lock released", lock=str(self.path))

    def break_lock(self) -> bool:
        """Remove a stale lock left by a crashed run.

        Returns:
            True if a lock file was removed
        """
        holder = self.holder()
        try:
            self.path.unlink()
        except FileNotFoundError:
            return False
        logger.warn("Broke stale workspace lock", lock=str(self.path),
                    holder=holder)
        return True

    def close(self) -> None:
        self.release()

    def __enter__(self) -> WorkspaceLock:
        return self.acquire()

    def __exit__(self, exc_type, exc_val, exc_tb):  # noqa: U100
        self.release()
        return False
