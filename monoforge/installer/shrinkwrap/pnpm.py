"""pnpm-lock.yaml reader (lockfile formats 5.x through 9.x)."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Any

import yaml

from monoforge.installer.shrinkwrap.base import (
    LOCKED_DEPENDENCY_TYPES,
    ShrinkwrapParseError,
    declared_dependencies,
    importer_key,
)

if TYPE_CHECKING:
    from monoforge.installer.monorepo import Project, Subspace

ROOT_IMPORTER_KEY = "."


class PnpmShrinkwrapFile:
    def __init__(self, path: Path, lockfile_version: str, importers: dict[str, dict[str, str]]) -> None:
        self.path = path
        self.lockfile_version = lockfile_version
        self.importers = importers

    @classmethod
    def load(cls, path: Path) -> PnpmShrinkwrapFile:
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8"))
        except yaml.YAMLError as exc:
            raise ShrinkwrapParseError(path, str(exc)) from exc
        if not isinstance(data, dict):
            raise ShrinkwrapParseError(path, "expected a mapping at the top level")

        raw_importers = data.get("importers")
        if raw_importers is None:
            # Single-project lockfile: the root document is the only importer
            raw_importers = {ROOT_IMPORTER_KEY: data}
        if not isinstance(raw_importers, dict):
            raise ShrinkwrapParseError(path, "'importers' must be a mapping")

        importers = {str(key): _importer_specifiers(entry or {}) for key, entry in raw_importers.items()}
        return cls(path, str(data.get("lockfileVersion", "")), importers)

    def get_importer_specifiers(self, key: str) -> dict[str, str] | None:
        return self.importers.get(key)

    def is_project_out_of_date(self, project: Project, subspace: Subspace) -> bool:
        recorded = self.importers.get(importer_key(project, subspace))
        if recorded is None:
            return True
        return recorded != declared_dependencies(project)

    def find_orphaned_projects(self, subspace: Subspace) -> list[str]:
        expected = {importer_key(p, subspace) for p in subspace.projects}
        return sorted(key for key in self.importers if key != ROOT_IMPORTER_KEY and key not in expected)


def _importer_specifiers(entry: dict[str, Any]) -> dict[str, str]:
    # lockfile v5 keeps a flat "specifiers" map
    specifiers = entry.get("specifiers")
    if isinstance(specifiers, dict):
        return {str(k): str(v) for k, v in specifiers.items()}

    # v6+ nests {specifier, version} under each dependency section
    result: dict[str, str] = {}
    for dependency_type in LOCKED_DEPENDENCY_TYPES:
        for name, value in (entry.get(dependency_type.value) or {}).items():
            if isinstance(value, dict) and "specifier" in value:
                result[str(name)] = str(value["specifier"])
    return result
