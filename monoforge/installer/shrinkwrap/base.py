"""Lockfile interface.

A shrinkwrap file is only ever *read* here, to decide whether the committed
lockfile still matches the projects' package.json files.  The package manager
regenerates it.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from monoforge.installer.errors import ResourceError
from monoforge.installer.models import DependencyType

if TYPE_CHECKING:
    from monoforge.installer.monorepo import Project, Subspace

# Peer dependencies are satisfied by the consumer, so lockfiles don't record them
LOCKED_DEPENDENCY_TYPES = (DependencyType.REGULAR, DependencyType.DEV, DependencyType.OPTIONAL)


class ShrinkwrapParseError(ResourceError):
    def __init__(self, path: Path, reason: str) -> None:
        super().__init__(f"Unable to parse {path}: {reason}")


@runtime_checkable
class ShrinkwrapFile(Protocol):
    path: Path

    def is_project_out_of_date(self, project: Project, subspace: Subspace) -> bool:
        """True when *project*'s declared dependencies differ from the lockfile."""
        ...

    def find_orphaned_projects(self, subspace: Subspace) -> list[str]:
        """Lockfile project entries that no longer belong to *subspace*."""
        ...


def declared_dependencies(project: Project) -> dict[str, str]:
    result: dict[str, str] = {}
    for dependency_type in LOCKED_DEPENDENCY_TYPES:
        result.update(project.package_json.dependencies(dependency_type))
    return result


def importer_key(project: Project, subspace: Subspace) -> str:
    """Path of *project* relative to the subspace temp folder, as lockfiles spell it."""
    return Path(os.path.relpath(project.folder, subspace.temp_folder)).as_posix()
