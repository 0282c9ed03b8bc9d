"""Runtime view of a monorepo: projects, subspaces and the paths they own.

Layout (subspaces disabled)::

    <root>/monoforge.json
    <root>/common/config/monoforge/      committed lockfile, common-versions.json, .npmrc, approved packages
    <root>/common/temp/                  generated install folder, flags, recycler

With subspaces enabled each subspace gets ``common/config/subspaces/<name>/``
and ``common/temp/<name>/``; approved-package lists stay monorepo-wide.
"""

from __future__ import annotations

import os
import platform
from functools import cached_property
from pathlib import Path
from typing import TYPE_CHECKING

from monoforge.installer import constants
from monoforge.installer.errors import ResourceError
from monoforge.installer.models import (
    CommonVersionsConfig,
    MonorepoConfig,
    PackageJsonEditor,
    PackageManagerKind,
    PnpmStoreMode,
    ProjectSpec,
    SpecifierType,
)
from monoforge.installer.models.specifier import DependencySpecifier
from monoforge.installer.settings import get_settings

if TYPE_CHECKING:
    from collections.abc import Iterable

    from monoforge.installer.settings import MonoforgeSettings


class ProjectNotFoundError(ResourceError, LookupError):
    def __init__(self, package_name: str) -> None:
        super().__init__(f"The project '{package_name}' is not defined in {constants.CONFIG_FILENAME}")


class Project:
    """A package that lives inside the monorepo."""

    def __init__(self, monorepo: Monorepo, spec: ProjectSpec) -> None:
        self.monorepo = monorepo
        self.package_name = spec.package_name
        self.relative_folder = Path(spec.project_folder).as_posix()
        self.folder = monorepo.root / spec.project_folder
        self.review_category = spec.review_category
        self.subspace_name = spec.subspace_name or constants.DEFAULT_SUBSPACE_NAME
        self.decoupled_local_dependencies = frozenset(spec.decoupled_local_dependencies)

    def __repr__(self) -> str:
        return f"Project({self.package_name!r})"

    @property
    def package_json_path(self) -> Path:
        return self.folder / constants.PACKAGE_JSON_FILENAME

    @property
    def node_modules_folder(self) -> Path:
        return self.folder / constants.NODE_MODULES_FOLDER_NAME

    @cached_property
    def package_json(self) -> PackageJsonEditor:
        """Editor shared by every caller so unsaved edits are visible everywhere."""
        return PackageJsonEditor.load(self.package_json_path)

    @property
    def version(self) -> str:
        return self.package_json.version

    @property
    def subspace(self) -> Subspace:
        return self.monorepo.get_subspace(self.subspace_name)

    def local_dependency_projects(self) -> list[Project]:
        """Workspace projects this project links to (decoupled ones excluded)."""
        result: list[Project] = []
        for name, spec, _ in self.package_json.all_dependencies():
            if name in self.decoupled_local_dependencies:
                continue
            project = self.monorepo.try_get_project(name)
            if project is None or project is self:
                continue
            parsed = DependencySpecifier.parse(name, spec)
            if parsed.specifier_type is SpecifierType.ALIAS:
                continue
            result.append(project)
        return result


class Subspace:
    """An independently installed partition with its own lockfile and temp folder."""

    def __init__(self, monorepo: Monorepo, name: str) -> None:
        self.monorepo = monorepo
        self.name = name

    def __repr__(self) -> str:
        return f"Subspace({self.name!r})"

    @property
    def projects(self) -> list[Project]:
        return [p for p in self.monorepo.projects if p.subspace_name == self.name]

    # -- Paths -----------------------------------------------------------------

    @property
    def config_folder(self) -> Path:
        if self.monorepo.config.subspaces_enabled:
            return self.monorepo.common_folder / constants.CONFIG_FOLDER_NAME / constants.SUBSPACES_FOLDER_NAME / self.name
        return self.monorepo.common_config_folder

    @property
    def temp_folder(self) -> Path:
        if self.monorepo.config.subspaces_enabled:
            return self.monorepo.temp_folder / self.name
        return self.monorepo.temp_folder

    @property
    def temp_node_modules_folder(self) -> Path:
        return self.temp_folder / constants.NODE_MODULES_FOLDER_NAME

    @property
    def committed_shrinkwrap_path(self) -> Path:
        return self.config_folder / self.monorepo.shrinkwrap_filename

    @property
    def temp_shrinkwrap_path(self) -> Path:
        return self.temp_folder / self.monorepo.shrinkwrap_filename

    @property
    def common_versions_path(self) -> Path:
        return self.config_folder / constants.COMMON_VERSIONS_FILENAME

    @property
    def repo_state_path(self) -> Path:
        return self.config_folder / constants.REPO_STATE_FILENAME

    @property
    def npmrc_path(self) -> Path:
        return self.config_folder / constants.NPMRC_FILENAME

    @property
    def pnpmfile_path(self) -> Path:
        return self.config_folder / constants.PNPMFILE_FILENAME

    # -- Versions policy -------------------------------------------------------

    def get_common_versions(self) -> CommonVersionsConfig:
        return CommonVersionsConfig.load(self.common_versions_path)

    @property
    def ensure_consistent_versions(self) -> bool:
        override = self.get_common_versions().ensure_consistent_versions
        return self.monorepo.config.ensure_consistent_versions if override is None else override


class Monorepo:
    """Loaded ``monoforge.json`` plus everything derived from it."""

    def __init__(self, root: Path, config: MonorepoConfig, settings: MonoforgeSettings | None = None) -> None:
        self.root = Path(root)
        self.config = config
        self.settings = settings or get_settings()
        self.projects = [Project(self, spec) for spec in config.projects]
        self._projects_by_name = {p.package_name: p for p in self.projects}

        names = config.subspace_names if config.subspaces_enabled else []
        names = names or [constants.DEFAULT_SUBSPACE_NAME]
        self.subspaces = {name: Subspace(self, name) for name in names}

        for project in self.projects:
            if project.subspace_name not in self.subspaces:
                msg = f"Project '{project.package_name}' references unknown subspace '{project.subspace_name}'"
                raise ResourceError(msg)

    @classmethod
    def load(cls, root: Path, settings: MonoforgeSettings | None = None) -> Monorepo:
        path = Path(root) / constants.CONFIG_FILENAME
        if not path.is_file():
            msg = f"Unable to find {constants.CONFIG_FILENAME} in {root}"
            raise ResourceError(msg)
        return cls(Path(root), MonorepoConfig.load(path), settings)

    @classmethod
    def discover(cls, start: Path, settings: MonoforgeSettings | None = None) -> Monorepo:
        """Walk up from *start* to the first folder containing ``monoforge.json``."""
        start = Path(start).resolve()
        for folder in (start, *start.parents):
            if (folder / constants.CONFIG_FILENAME).is_file():
                return cls.load(folder, settings)
        msg = f"Unable to find {constants.CONFIG_FILENAME} in {start} or any parent folder"
        raise ResourceError(msg)

    # -- Projects --------------------------------------------------------------

    def try_get_project(self, package_name: str) -> Project | None:
        return self._projects_by_name.get(package_name)

    def get_project(self, package_name: str) -> Project:
        project = self.try_get_project(package_name)
        if project is None:
            raise ProjectNotFoundError(package_name)
        return project

    def consumers_of(self, project: Project) -> list[Project]:
        """Projects that directly link to *project*."""
        return [p for p in self.projects if project in p.local_dependency_projects()]

    # -- Subspaces -------------------------------------------------------------

    def get_subspace(self, name: str) -> Subspace:
        try:
            return self.subspaces[name]
        except KeyError:
            msg = f"The subspace '{name}' is not defined in {constants.CONFIG_FILENAME}"
            raise ResourceError(msg) from None

    def subspaces_for_projects(self, projects: Iterable[Project]) -> list[Subspace]:
        seen: dict[str, Subspace] = {}
        for project in projects:
            seen.setdefault(project.subspace_name, project.subspace)
        return list(seen.values())

    # -- Tooling ---------------------------------------------------------------

    @property
    def config_path(self) -> Path:
        return self.root / constants.CONFIG_FILENAME

    @property
    def package_manager(self) -> PackageManagerKind:
        return self.config.package_manager

    @property
    def package_manager_version(self) -> str:
        return self.config.package_manager_version

    @property
    def shrinkwrap_filename(self) -> str:
        return constants.SHRINKWRAP_FILENAMES[self.package_manager]

    @property
    def use_workspaces(self) -> bool:
        """Whether local projects are linked through ``workspace:`` references."""
        return self.package_manager is PackageManagerKind.PNPM and self.config.pnpm_options.use_workspaces

    @property
    def pnpm_store_path(self) -> Path | None:
        """Store folder passed to pnpm, or ``None`` to use pnpm's global default."""
        if self.package_manager is not PackageManagerKind.PNPM:
            return None
        if self.config.pnpm_options.pnpm_store is PnpmStoreMode.GLOBAL:
            return None
        return self.settings.pnpm_store_path or self.temp_folder / constants.PNPM_STORE_FOLDER_NAME

    # -- Folders ---------------------------------------------------------------

    @property
    def common_folder(self) -> Path:
        return self.root / constants.COMMON_FOLDER_NAME

    @property
    def common_config_folder(self) -> Path:
        return self.common_folder / constants.CONFIG_FOLDER_NAME / constants.TOOL_CONFIG_FOLDER_NAME

    @property
    def temp_folder(self) -> Path:
        return self.settings.temp_folder_override or self.common_folder / constants.TEMP_FOLDER_NAME

    @property
    def global_folder(self) -> Path:
        return Path(os.path.expanduser(self.settings.global_folder))

    @property
    def runtime_specific_global_folder(self) -> Path:
        """Global subfolder private to the running interpreter version."""
        return self.global_folder / f"python-{platform.python_version()}"

    @property
    def browser_approved_packages_path(self) -> Path:
        return self.common_config_folder / constants.BROWSER_APPROVED_PACKAGES_FILENAME

    @property
    def nonbrowser_approved_packages_path(self) -> Path:
        return self.common_config_folder / constants.NONBROWSER_APPROVED_PACKAGES_FILENAME
