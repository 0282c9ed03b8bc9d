"""yarn.lock reader.

Only the entry headers matter here: each header lists the ``name@spec``
pairs it resolves, e.g. ``"left-pad@^1.0.0", left-pad@~1.3.0:``.  yarn does
not record workspace members, so there are never orphans.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from monoforge.installer.shrinkwrap.base import ShrinkwrapParseError, declared_dependencies

if TYPE_CHECKING:
    from monoforge.installer.monorepo import Project, Subspace

_LOCAL_PROTOCOLS = ("workspace:", "file:", "link:")


class YarnShrinkwrapFile:
    def __init__(self, path: Path, entries: set[tuple[str, str]]) -> None:
        self.path = path
        self.entries = entries

    @classmethod
    def load(cls, path: Path) -> YarnShrinkwrapFile:
        try:
            text = path.read_text(encoding="utf-8")
        except UnicodeDecodeError as exc:
            raise ShrinkwrapParseError(path, str(exc)) from exc
        return cls(path, parse_entry_keys(text))

    def has_entry(self, package_name: str, specifier: str) -> bool:
        return (package_name, specifier) in self.entries or (package_name, f"npm:{specifier}") in self.entries

    def is_project_out_of_date(self, project: Project, subspace: Subspace) -> bool:
        monorepo = subspace.monorepo
        for name, spec in declared_dependencies(project).items():
            if spec.startswith(_LOCAL_PROTOCOLS):
                continue
            if monorepo.try_get_project(name) is not None and name not in project.decoupled_local_dependencies:
                continue
            if not self.has_entry(name, spec):
                return True
        return False

    def find_orphaned_projects(self, subspace: Subspace) -> list[str]:
        return []


def parse_entry_keys(text: str) -> set[tuple[str, str]]:
    entries: set[tuple[str, str]] = set()
    for line in text.splitlines():
        if not line or line.startswith("#") or line[0].isspace() or not line.rstrip().endswith(":"):
            continue
        for part in line.rstrip()[:-1].split(","):
            key = part.strip().strip('"')
            separator = key.find("@", 1)
            if separator == -1:
                continue
            entries.add((key[:separator], key[separator + 1 :]))
    return entries
