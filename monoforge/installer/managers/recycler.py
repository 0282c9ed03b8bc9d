"""Fast bulk deletion by renaming into a recycle folder.

Deleting a large ``node_modules`` tree synchronously can take minutes.
Renaming it is a single metadata operation, so ``move_folder`` returns
almost immediately and ``start_delete_all`` hands the slow recursive delete
to a detached child process that outlives this one.
"""

from __future__ import annotations

import errno
import os
import subprocess
import time
from pathlib import Path

from loguru import logger

from monoforge.installer.errors import InstallError, TransientRetryExceededError

# Raised on Windows (and some network filesystems) while another process holds a handle
_LOCK_ERRNOS = frozenset({errno.EACCES, errno.EPERM, errno.EBUSY})

MAX_RENAME_WAIT_SECONDS = 10.0
RENAME_RETRY_DELAY_SECONDS = 0.1


class RecyclerClosedError(InstallError):
    def __init__(self, operation: str) -> None:
        super().__init__(f"{operation}() cannot be called after start_delete_all() has been called")


class AsyncRecycler:
    """Queue folders for deletion, then delete them all in the background."""

    def __init__(self, recycler_folder: Path, *, max_wait_seconds: float = MAX_RENAME_WAIT_SECONDS) -> None:
        self.recycler_folder = Path(recycler_folder).absolute()
        self._max_wait_seconds = max_wait_seconds
        self._prefix = str(int(time.time() * 1000))
        self._ordinal = 0
        self._moved_count = 0
        self._deleting = False

    @property
    def moved_count(self) -> int:
        """Top-level paths queued so far."""
        return self._moved_count

    @property
    def is_deleting(self) -> bool:
        return self._deleting

    # -- Queue -----------------------------------------------------------------

    def move_folder(self, folder_path: Path) -> None:
        """Rename *folder_path* into the recycle folder.  Missing paths are ignored."""
        if self._deleting:
            raise RecyclerClosedError("move_folder")
        path = Path(folder_path)
        if not path.is_absolute():
            msg = f"move_folder() requires an absolute path: {path}"
            raise ValueError(msg)
        if not path.exists() and not path.is_symlink():
            return

        self.recycler_folder.mkdir(parents=True, exist_ok=True)
        self._move_path(path)
        self._moved_count += 1

    def move_all_items_in_folder(self, folder_path: Path, exclude: set[str] | frozenset[str] = frozenset()) -> None:
        """Recycle every folder and delete every file directly inside *folder_path*.

        Names in *exclude* are matched case-insensitively.
        """
        if self._deleting:
            raise RecyclerClosedError("move_all_items_in_folder")
        folder = Path(folder_path)
        if not folder.is_dir():
            return

        excluded = {name.upper() for name in exclude}
        for entry in os.scandir(folder):
            if entry.name.upper() in excluded:
                continue
            path = folder / entry.name
            if entry.is_dir(follow_symlinks=False):
                self.move_folder(path)
            else:
                path.unlink()

    def _next_destination(self) -> Path:
        destination = self.recycler_folder / f"{self._prefix}_{self._ordinal}"
        self._ordinal += 1
        return destination

    def _move_path(self, path: Path) -> None:
        destination = self._next_destination()
        started = time.monotonic()
        while True:
            try:
                os.rename(path, destination)
            except OSError as exc:
                if exc.errno in _LOCK_ERRNOS:
                    elapsed = time.monotonic() - started
                    if elapsed > self._max_wait_seconds:
                        msg = (
                            f"Failed to move {path} to the recycler after {elapsed:.1f} seconds. "
                            "A file may be locked by a text editor, command prompt or filesystem watcher."
                        )
                        raise TransientRetryExceededError(msg) from exc
                    time.sleep(RENAME_RETRY_DELAY_SECONDS)
                    continue
                # Structural failure (e.g. crossing filesystems): recycle piece by piece
                logger.debug("Renaming {} failed ({}); recycling its children instead", path, exc.strerror)
                self._move_children(path)
                return
            break

        elapsed = time.monotonic() - started
        if elapsed > RENAME_RETRY_DELAY_SECONDS:
            logger.debug("Moving {} to the recycler stalled for {:.2f} seconds", path, elapsed)

    def _move_children(self, path: Path) -> None:
        if path.is_symlink() or not path.is_dir():
            path.unlink()
            return
        for child in list(path.iterdir()):
            self._move_path(child)
        path.rmdir()

    # -- Delete ----------------------------------------------------------------

    def start_delete_all(self) -> subprocess.Popen | None:
        """Launch a detached process that deletes the recycle folder's contents.

        May be called once.  Returns the launched process (never waited on),
        or ``None`` when there was nothing to delete.  Launch failures are
        logged and otherwise ignored: they only cost disk space.
        """
        if self._deleting:
            raise RecyclerClosedError("start_delete_all")
        self._deleting = True

        if self._moved_count == 0 or not self.recycler_folder.is_dir():
            return None
        targets = [str(self.recycler_folder / name) for name in os.listdir(self.recycler_folder)]
        if not targets:
            return None

        if os.name == "nt":
            command = ["cmd.exe", "/c", "rd", "/s", "/q", *targets]
            options = {"creationflags": subprocess.DETACHED_PROCESS | subprocess.CREATE_NEW_PROCESS_GROUP}
        else:
            command = ["rm", "-rf", *targets]
            options = {"start_new_session": True}

        try:
            process = subprocess.Popen(  # noqa: S603
                command,
                cwd=self.recycler_folder,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                close_fds=True,
                **options,
            )
        except OSError as exc:
            logger.debug("Unable to start background deletion of {}: {}", self.recycler_folder, exc)
            return None

        logger.debug("Deleting {} recycled item(s) in the background (pid {})", len(targets), process.pid)
        return process
