"""Unit tests for AsyncRecycler and PurgeManager.

``subprocess.Popen`` is replaced with a recorder so nothing is actually
deleted in the background.
"""

from __future__ import annotations

import errno
import os
from pathlib import Path

import pytest

from monoforge.installer.errors import TransientRetryExceededError
from monoforge.installer.managers import AsyncRecycler, PurgeManager, RecyclerClosedError
from monoforge.installer.managers import recycler as recycler_module

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class _RecordingPopen:
    calls: list[tuple[list[str], dict]] = []

    def __init__(self, command: list[str], **kwargs: object) -> None:
        self.pid = 4242
        _RecordingPopen.calls.append((command, kwargs))


@pytest.fixture
def popen_calls(monkeypatch: pytest.MonkeyPatch) -> list[tuple[list[str], dict]]:
    _RecordingPopen.calls = []
    monkeypatch.setattr(recycler_module.subprocess, "Popen", _RecordingPopen)
    return _RecordingPopen.calls


def _make_tree(folder: Path) -> Path:
    (folder / "pkg" / "lib").mkdir(parents=True)
    (folder / "pkg" / "lib" / "index.js").write_text("module.exports = 1;\n")
    return folder


# ---------------------------------------------------------------------------
# AsyncRecycler
# ---------------------------------------------------------------------------


def test_move_folder_renames_into_recycler(tmp_path: Path, popen_calls) -> None:
    recycler = AsyncRecycler(tmp_path / "recycler")
    first = _make_tree(tmp_path / "one")
    second = _make_tree(tmp_path / "two")

    recycler.move_folder(first)
    recycler.move_folder(second)

    assert not first.exists()
    assert not second.exists()
    moved = sorted(os.listdir(recycler.recycler_folder))
    assert len(moved) == 2
    assert all(name.endswith(("_0", "_1")) for name in moved)
    assert recycler.moved_count == 2


def test_move_folder_missing_path_is_noop(tmp_path: Path) -> None:
    recycler = AsyncRecycler(tmp_path / "recycler")
    recycler.move_folder(tmp_path / "missing")
    assert recycler.moved_count == 0
    assert not recycler.recycler_folder.exists()


def test_move_folder_requires_absolute_path(tmp_path: Path) -> None:
    recycler = AsyncRecycler(tmp_path / "recycler")
    with pytest.raises(ValueError, match="absolute"):
        recycler.move_folder(Path("relative/folder"))


def test_start_delete_all_launches_detached_process(tmp_path: Path, popen_calls) -> None:
    recycler = AsyncRecycler(tmp_path / "recycler")
    recycler.move_folder(_make_tree(tmp_path / "node_modules"))

    process = recycler.start_delete_all()

    assert process is not None
    assert recycler.is_deleting
    assert len(popen_calls) == 1
    command, kwargs = popen_calls[0]
    if os.name == "nt":
        assert command[:5] == ["cmd.exe", "/c", "rd", "/s", "/q"]
    else:
        assert command[:2] == ["rm", "-rf"]
        assert kwargs["start_new_session"] is True
        assert all(Path(target).parent == recycler.recycler_folder for target in command[2:])


def test_start_delete_all_without_moves_launches_nothing(tmp_path: Path, popen_calls) -> None:
    recycler = AsyncRecycler(tmp_path / "recycler")
    assert recycler.start_delete_all() is None
    assert popen_calls == []


def test_recycler_is_closed_after_delete_starts(tmp_path: Path, popen_calls) -> None:
    recycler = AsyncRecycler(tmp_path / "recycler")
    recycler.start_delete_all()

    with pytest.raises(RecyclerClosedError):
        recycler.move_folder(_make_tree(tmp_path / "late"))
    with pytest.raises(RecyclerClosedError):
        recycler.move_all_items_in_folder(tmp_path)
    with pytest.raises(RecyclerClosedError):
        recycler.start_delete_all()


def test_launch_failure_is_not_fatal(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    def _fail(*args: object, **kwargs: object) -> None:
        raise OSError(errno.ENOENT, "no such executable")

    monkeypatch.setattr(recycler_module.subprocess, "Popen", _fail)
    recycler = AsyncRecycler(tmp_path / "recycler")
    recycler.move_folder(_make_tree(tmp_path / "node_modules"))
    assert recycler.start_delete_all() is None


def test_move_all_items_in_folder(tmp_path: Path, popen_calls) -> None:
    folder = tmp_path / "temp"
    _make_tree(folder / "node_modules")
    (folder / "Keep-Me").mkdir(parents=True)
    (folder / "last-install.flag").write_text("{}")

    recycler = AsyncRecycler(tmp_path / "recycler")
    recycler.move_all_items_in_folder(folder, {"keep-me"})

    assert sorted(os.listdir(folder)) == ["Keep-Me"]
    assert recycler.moved_count == 1


def test_locked_folder_gives_up_after_budget(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    def _locked(src: object, dst: object) -> None:
        raise PermissionError(errno.EBUSY, "resource busy")

    monkeypatch.setattr(recycler_module.os, "rename", _locked)
    monkeypatch.setattr(recycler_module, "RENAME_RETRY_DELAY_SECONDS", 0.001)
    recycler = AsyncRecycler(tmp_path / "recycler", max_wait_seconds=0.01)

    with pytest.raises(TransientRetryExceededError, match="text editor"):
        recycler.move_folder(_make_tree(tmp_path / "node_modules"))


def test_structural_rename_failure_recycles_children(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    source = _make_tree(tmp_path / "node_modules")
    real_rename = os.rename

    def _cross_device_for_root(src: object, dst: object) -> None:
        if Path(src) == source:
            raise OSError(errno.EXDEV, "Invalid cross-device link")
        real_rename(src, dst)

    monkeypatch.setattr(recycler_module.os, "rename", _cross_device_for_root)
    recycler = AsyncRecycler(tmp_path / "recycler")
    recycler.move_folder(source)

    assert not source.exists()
    assert len(os.listdir(recycler.recycler_folder)) == 1


# ---------------------------------------------------------------------------
# PurgeManager
# ---------------------------------------------------------------------------


def test_purge_normal_keeps_recycler(make_monorepo, popen_calls) -> None:
    monorepo = make_monorepo([{"name": "a"}])
    temp = monorepo.temp_folder
    _make_tree(temp / "node_modules")
    (temp / "pnpm-lock.yaml").write_text("lockfileVersion: '6.0'\n")

    manager = PurgeManager(monorepo)
    manager.purge_normal()

    assert sorted(os.listdir(temp)) == ["monoforge-recycler"]
    manager.start_delete_all()
    assert len(popen_calls) == 1


def test_purge_excludes_active_process_folder(make_monorepo, popen_calls) -> None:
    monorepo = make_monorepo([{"name": "a"}])
    temp = monorepo.temp_folder
    active = temp / "tools" / "monoforge"
    active.mkdir(parents=True)
    _make_tree(temp / "node_modules")

    manager = PurgeManager(monorepo, active_process_folder=active)
    manager.purge_normal()

    assert sorted(os.listdir(temp)) == ["monoforge-recycler", "tools"]


def test_purge_unsafe_clears_global_folder(make_monorepo, popen_calls) -> None:
    monorepo = make_monorepo([{"name": "a"}])
    _make_tree(monorepo.runtime_specific_global_folder / "cache")
    _make_tree(monorepo.global_folder / "downloads")

    manager = PurgeManager(monorepo)
    manager.purge_unsafe()

    assert sorted(os.listdir(monorepo.global_folder)) == ["monoforge-recycler"]
    manager.start_delete_all()
    # Only the global recycler had anything to delete
    assert len(popen_calls) == 1
