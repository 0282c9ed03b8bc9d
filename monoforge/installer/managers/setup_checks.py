"""Toolchain sanity checks run once before the first install.

Besides the version floor, this looks for ``node_modules`` folders in any
ancestor of the monorepo.  Node's module resolution walks upward, so a
stray folder there can satisfy imports that the managed install is missing.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import TYPE_CHECKING

from loguru import logger

from monoforge.installer import constants, semver
from monoforge.installer.errors import ResourceError
from monoforge.installer.models import PackageManagerKind

if TYPE_CHECKING:
    from monoforge.installer.monorepo import Monorepo

MINIMUM_SUPPORTED_VERSIONS: dict[PackageManagerKind, str] = {
    PackageManagerKind.NPM: "4.5.0",
    PackageManagerKind.PNPM: "5.0.0",
    PackageManagerKind.YARN: "1.9.4",
}

# Azure DevOps agents leave this behind in the work folder
_CI_ONLY_ENTRY = "vso-task-lib"


class UnsupportedToolVersionError(ResourceError):
    def __init__(self, kind: PackageManagerKind, version: str, minimum: str) -> None:
        super().__init__(
            f"The {constants.CONFIG_FILENAME} file requests {kind} version {version}, "
            f"which is older than the minimum supported version {minimum}"
        )


def validate(monorepo: Monorepo) -> list[Path]:
    """Check the tool version and return the phantom ``node_modules`` folders found.

    An unsupported version is fatal unless the ``allow_unsupported_tool_version``
    setting is on.  Phantom folders are only warned about.
    """
    _check_tool_version(monorepo)

    phantom_folders: list[Path] = []
    seen: set[Path] = set()
    for start in (monorepo.temp_folder, monorepo.root):
        real_parent = Path(os.path.realpath(start)).parent
        phantom_folders.extend(_collect_phantom_folders_upwards(real_parent, seen))

    if phantom_folders:
        listing = "\n".join(f"  {folder}" for folder in phantom_folders)
        logger.warning(
            "Found {} {} folder(s) in a parent of the monorepo. "
            "They can hide missing dependencies and should be deleted:\n{}",
            len(phantom_folders),
            constants.NODE_MODULES_FOLDER_NAME,
            listing,
        )
    return phantom_folders


def _check_tool_version(monorepo: Monorepo) -> None:
    kind = monorepo.package_manager
    version = monorepo.package_manager_version
    minimum = MINIMUM_SUPPORTED_VERSIONS[kind]
    parsed = semver.parse_version(version)
    if parsed is not None and parsed.key >= semver.parse_version(minimum).key:
        return
    error = UnsupportedToolVersionError(kind, version, minimum)
    if monorepo.settings.allow_unsupported_tool_version:
        logger.warning("{}", error)
        return
    raise error


def _collect_phantom_folders_upwards(folder: Path, seen: set[Path]) -> list[Path]:
    found: list[Path] = []
    for current in (folder, *folder.parents):
        if current in seen:
            # Everything above was already scanned from another starting point
            break
        seen.add(current)
        candidate = current / constants.NODE_MODULES_FOLDER_NAME
        if candidate.is_dir() and not _is_ignorable(candidate):
            found.append(candidate)
    return found


def _is_ignorable(node_modules: Path) -> bool:
    try:
        names = [name for name in os.listdir(node_modules) if not name.startswith(".")]
    except OSError:
        return False
    return not names or names == [_CI_ONLY_ENTRY]
