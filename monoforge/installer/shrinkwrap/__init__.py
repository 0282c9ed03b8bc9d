"""Committed lockfile readers, one per package manager."""

from __future__ import annotations

from typing import TYPE_CHECKING

from monoforge.installer.models import PackageManagerKind
from monoforge.installer.shrinkwrap.base import ShrinkwrapFile, ShrinkwrapParseError
from monoforge.installer.shrinkwrap.npm import NpmShrinkwrapFile
from monoforge.installer.shrinkwrap.pnpm import PnpmShrinkwrapFile
from monoforge.installer.shrinkwrap.yarn import YarnShrinkwrapFile

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

_LOADERS: dict[PackageManagerKind, Callable[[Path], ShrinkwrapFile]] = {
    PackageManagerKind.NPM: NpmShrinkwrapFile.load,
    PackageManagerKind.PNPM: PnpmShrinkwrapFile.load,
    PackageManagerKind.YARN: YarnShrinkwrapFile.load,
}


def load_shrinkwrap_file(kind: PackageManagerKind, path: Path) -> ShrinkwrapFile | None:
    """Parse the lockfile at *path*, or return ``None`` when there isn't one.

    Raises ``ShrinkwrapParseError`` for a file that exists but can't be read.
    """
    if not path.is_file():
        return None
    return _LOADERS[kind](path)


__all__ = [
    "NpmShrinkwrapFile",
    "PnpmShrinkwrapFile",
    "ShrinkwrapFile",
    "ShrinkwrapParseError",
    "YarnShrinkwrapFile",
    "load_shrinkwrap_file",
]
