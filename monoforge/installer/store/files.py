"""Small synchronous file helpers shared by the flag and config stores.

Async callers run these through ``anyio.to_thread.run_sync``.
"""

from __future__ import annotations

import hashlib
import os
import shutil
import tempfile
from pathlib import Path


def atomic_write(path: Path, data: str) -> None:
    """Replace *path* with *data* in one rename.

    Flags and generated configs are read by other processes, so they must
    never be observed half-written.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
    tmp = Path(tmp_name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(data)
        tmp.replace(path)
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise


def read_text_or_none(path: Path) -> str | None:
    try:
        return path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None


def delete_file(path: Path) -> None:
    """Remove a file.  No-op if it doesn't exist."""
    path.unlink(missing_ok=True)


def sync_file(source: Path, target: Path) -> bool:
    """Make *target* a copy of *source*, deleting it when *source* is missing.

    Returns True when *target* changed.
    """
    if not source.is_file():
        if target.exists():
            target.unlink()
            return True
        return False
    if target.is_file() and target.read_bytes() == source.read_bytes():
        return False
    target.parent.mkdir(parents=True, exist_ok=True)
    shutil.copyfile(source, target)
    return True


def file_sha1(path: Path) -> str | None:
    """SHA-1 of the file's bytes, or ``None`` when it doesn't exist."""
    try:
        data = path.read_bytes()
    except FileNotFoundError:
        return None
    return hashlib.sha1(data).hexdigest()  # noqa: S324


def modified_time_ns(path: Path) -> int | None:
    try:
        return path.stat().st_mtime_ns
    except FileNotFoundError:
        return None
