"""npm-shrinkwrap.json reader.

Lockfile v2/v3 records each workspace member under ``packages`` keyed by its
path, with the specifiers it declared.  v1 files only carry resolved
versions, so projects are compared by checking that every declared range is
satisfied by the hoisted version.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import TYPE_CHECKING, Any

from monoforge.installer import semver
from monoforge.installer.shrinkwrap.base import (
    LOCKED_DEPENDENCY_TYPES,
    ShrinkwrapParseError,
    declared_dependencies,
    importer_key,
)

if TYPE_CHECKING:
    from monoforge.installer.monorepo import Project, Subspace


class NpmShrinkwrapFile:
    def __init__(self, path: Path, data: dict[str, Any]) -> None:
        self.path = path
        self.lockfile_version = int(data.get("lockfileVersion", 1))
        self._packages: dict[str, dict[str, Any]] = data.get("packages") or {}
        self._dependencies: dict[str, dict[str, Any]] = data.get("dependencies") or {}

    @classmethod
    def load(cls, path: Path) -> NpmShrinkwrapFile:
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise ShrinkwrapParseError(path, str(exc)) from exc
        if not isinstance(data, dict):
            raise ShrinkwrapParseError(path, "expected a JSON object")
        return cls(path, data)

    def _workspace_keys(self) -> list[str]:
        return [key for key in self._packages if key and "node_modules" not in key.split("/")]

    def is_project_out_of_date(self, project: Project, subspace: Subspace) -> bool:
        declared = declared_dependencies(project)
        if self._packages:
            entry = self._packages.get(importer_key(project, subspace))
            if entry is None:
                return True
            recorded: dict[str, str] = {}
            for dependency_type in LOCKED_DEPENDENCY_TYPES:
                recorded.update(entry.get(dependency_type.value) or {})
            return recorded != declared

        for name, spec in declared.items():
            locked = self._dependencies.get(name)
            if locked is None:
                return True
            if semver.valid_range(spec) and not semver.satisfies(str(locked.get("version", "")), spec):
                return True
        return False

    def find_orphaned_projects(self, subspace: Subspace) -> list[str]:
        expected = {importer_key(p, subspace) for p in subspace.projects}
        return sorted(key for key in self._workspace_keys() if key not in expected)
