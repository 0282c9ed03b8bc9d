"""Read-modify-write access to a project's package.json.

The raw JSON document is kept as-is so unknown keys and key order survive a
save; only the dependency sections are edited.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from monoforge.installer.models.enums import DependencyType


class PackageJsonEditor:
    def __init__(self, path: Path, data: dict[str, Any]) -> None:
        self.path = path
        self._data = data
        self._modified = False

    @classmethod
    def load(cls, path: Path) -> PackageJsonEditor:
        return cls(path, json.loads(path.read_text(encoding="utf-8")))

    # -- Read ------------------------------------------------------------------

    @property
    def name(self) -> str:
        return self._data.get("name", "")

    @property
    def version(self) -> str:
        return self._data.get("version", "0.0.0")

    @property
    def modified(self) -> bool:
        return self._modified

    def dependencies(self, dependency_type: DependencyType) -> dict[str, str]:
        return dict(self._data.get(dependency_type.value, {}))

    def all_dependencies(self, types: tuple[DependencyType, ...] = tuple(DependencyType)) -> list[tuple[str, str, DependencyType]]:
        """``(name, specifier, type)`` for every entry in the requested sections."""
        return [(name, spec, t) for t in types for name, spec in self.dependencies(t).items()]

    def find_dependency(self, package_name: str) -> tuple[str, DependencyType] | None:
        """First ``(specifier, type)`` declaring *package_name*, regular deps first."""
        for dependency_type in DependencyType:
            spec = self._data.get(dependency_type.value, {}).get(package_name)
            if spec is not None:
                return spec, dependency_type
        return None

    # -- Write -----------------------------------------------------------------

    def add_or_update_dependency(self, package_name: str, specifier: str, dependency_type: DependencyType) -> None:
        section = self._data.setdefault(dependency_type.value, {})
        if section.get(package_name) == specifier:
            return
        section[package_name] = specifier
        self._data[dependency_type.value] = dict(sorted(section.items()))
        self._modified = True

    def remove_dependency(self, package_name: str, dependency_type: DependencyType | None = None) -> bool:
        types = [dependency_type] if dependency_type else list(DependencyType)
        removed = False
        for t in types:
            section = self._data.get(t.value)
            if section and package_name in section:
                del section[package_name]
                removed = True
        self._modified = self._modified or removed
        return removed

    def save_if_modified(self) -> bool:
        if not self._modified:
            return False
        self.path.write_text(json.dumps(self._data, indent=2) + "\n", encoding="utf-8")
        self._modified = False
        return True
