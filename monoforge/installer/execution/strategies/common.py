"""Lifecycle steps shared by the package-manager strategies.

Everything here is synchronous file work; it runs before the package
manager is launched and is not expected to race with another installer.
Generated files are only rewritten when their content changes so their
timestamps stay usable by the skip heuristic.
"""

from __future__ import annotations

import hashlib
import json
import os
import re
from functools import partial
from typing import TYPE_CHECKING

import yaml
from loguru import logger

from monoforge.installer import constants, semver
from monoforge.installer.errors import LocalVersionMismatchError, PolicyError
from monoforge.installer.models import DependencySpecifier, RepoState, SpecifierType
from monoforge.installer.shrinkwrap.base import importer_key
from monoforge.installer.store.files import atomic_write, delete_file, read_text_or_none, sync_file

if TYPE_CHECKING:
    from pathlib import Path

    from monoforge.installer.execution.process import PackageManagerRunner
    from monoforge.installer.managers.recycler import AsyncRecycler
    from monoforge.installer.models import InstallOptions
    from monoforge.installer.monorepo import Subspace
    from monoforge.installer.shrinkwrap import ShrinkwrapFile

# ${NAME} is required, ${NAME?} may be empty
_ENV_REFERENCE_RE = re.compile(r"\$\{([^}?]+)(\?)?\}")


def write_if_changed(path: Path, text: str) -> bool:
    if read_text_or_none(path) == text:
        return False
    atomic_write(path, text)
    return True


# -- .npmrc --------------------------------------------------------------------


def sync_npmrc(source: Path, target_folder: Path) -> str | None:
    """Copy the committed ``.npmrc`` into *target_folder* and return its SHA-1.

    Lines that reference an undefined required environment variable are
    commented out, since npm would otherwise fail to parse the whole file.
    Returns ``None`` (and removes any stale copy) when there is no source.
    """
    target = target_folder / constants.NPMRC_FILENAME
    if not source.is_file():
        delete_file(target)
        return None

    lines: list[str] = []
    for line in source.read_text(encoding="utf-8").splitlines():
        missing = [name for name, optional in _ENV_REFERENCE_RE.findall(line) if not optional and name not in os.environ]
        if missing and not line.lstrip().startswith(("#", ";")):
            lines.append(f"; MISSING ENVIRONMENT VARIABLE: {', '.join(missing)}")
            lines.append(f"; {line}")
        else:
            lines.append(line)
    text = "\n".join(lines) + "\n"
    write_if_changed(target, text)
    return hashlib.sha1(text.encode()).hexdigest()  # noqa: S324


# -- Environment ---------------------------------------------------------------


def package_manager_environment(subspace: Subspace) -> dict[str, str]:
    """Variables to add to the package-manager process environment."""
    environment: dict[str, str] = {}
    for name, variable in subspace.monorepo.config.tool_options.environment_variables.items():
        existing = os.environ.get(name)
        if existing is not None and not variable.override:
            if existing != variable.value:
                logger.warning(
                    "The environment variable {} is already set; ignoring the configured value. "
                    "Set \"override\": true to replace it.",
                    name,
                )
            continue
        environment[name] = variable.value
    environment["NPM_CONFIG_WORKSPACE_DIR"] = str(subspace.temp_folder)
    return environment


# -- Temp folder ---------------------------------------------------------------


def write_temp_package_json(subspace: Subspace, *, workspaces: bool) -> None:
    document: dict[str, object] = {
        "name": f"{constants.PACKAGE_NAME}-{subspace.name}",
        "version": "0.0.0",
        "private": True,
        "description": "Generated by monoforge; do not edit",
    }
    if workspaces:
        document["workspaces"] = sorted(importer_key(p, subspace) for p in subspace.projects)
    write_if_changed(subspace.temp_folder / constants.PACKAGE_JSON_FILENAME, json.dumps(document, indent=2) + "\n")


def write_pnpm_workspace_file(subspace: Subspace) -> None:
    packages = sorted(importer_key(p, subspace) for p in subspace.projects)
    text = yaml.safe_dump({"packages": packages}, sort_keys=False)
    write_if_changed(subspace.temp_folder / constants.PNPM_WORKSPACE_FILENAME, text)


def sync_temp_shrinkwrap(subspace: Subspace, shrinkwrap: ShrinkwrapFile | None) -> None:
    """Seed the temp folder with the committed lockfile, or remove a stale one."""
    if shrinkwrap is None:
        delete_file(subspace.temp_shrinkwrap_path)
        return
    sync_file(shrinkwrap.path, subspace.temp_shrinkwrap_path)


# -- Consistency ---------------------------------------------------------------


def preferred_versions_changed(subspace: Subspace) -> bool:
    preferred = subspace.get_common_versions()
    recorded = RepoState.load(subspace.repo_state_path).preferred_versions_hash
    if recorded is None:
        return bool(preferred.preferred_versions)
    return recorded != preferred.preferred_versions_hash()


def refresh_repo_state(subspace: Subspace) -> bool:
    """Record the current preferred-versions hash.  Returns True if the file changed."""
    state = RepoState.load(subspace.repo_state_path)
    state.preferred_versions_hash = subspace.get_common_versions().preferred_versions_hash()
    return write_if_changed(subspace.repo_state_path, state.dump())


def check_shrinkwrap(subspace: Subspace, shrinkwrap: ShrinkwrapFile | None, warnings: list[str]) -> bool:
    """Whether the committed lockfile still describes every project.  Reasons go to *warnings*."""
    if shrinkwrap is None:
        warnings.append(f"The lockfile {subspace.committed_shrinkwrap_path} was not found or is being ignored")
        return False

    up_to_date = True
    orphans = shrinkwrap.find_orphaned_projects(subspace)
    if orphans:
        warnings.append(f"The lockfile references projects that no longer exist: {', '.join(orphans)}")
        up_to_date = False
    for project in subspace.projects:
        if shrinkwrap.is_project_out_of_date(project, subspace):
            warnings.append(f"The dependencies of {project.package_name} don't match the lockfile")
            up_to_date = False
    if preferred_versions_changed(subspace):
        warnings.append(f"The preferred versions in {subspace.common_versions_path} have changed")
        up_to_date = False
    return up_to_date


def validate_workspace_references(subspace: Subspace, *, allow_updates: bool, dry_run: bool = False) -> bool:
    """Check that dependencies on workspace projects are satisfiable ``workspace:`` references.

    Plain version/range references to a local project are rewritten to
    ``workspace:<range>`` when updates are allowed (unless *dry_run*) and
    rejected otherwise.  Returns True when a rewrite was needed.
    """
    monorepo = subspace.monorepo
    rewritten = False
    for project in subspace.projects:
        editor = project.package_json
        for name, spec, dependency_type in editor.all_dependencies():
            local = monorepo.try_get_project(name)
            if local is None or name in project.decoupled_local_dependencies:
                continue
            parsed = DependencySpecifier.parse(name, spec)
            if parsed.specifier_type is SpecifierType.WORKSPACE:
                workspace_range = parsed.workspace_range or "*"
                if workspace_range not in ("*", "^", "~") and not semver.satisfies(local.version, workspace_range):
                    raise LocalVersionMismatchError(name, spec, local.version)
                continue
            if parsed.specifier_type not in (SpecifierType.VERSION, SpecifierType.RANGE):
                continue
            if not semver.satisfies(local.version, spec):
                raise LocalVersionMismatchError(name, spec, local.version)
            if not allow_updates:
                msg = (
                    f'The dependency "{name}" of "{project.package_name}" must be declared as '
                    f'"{constants.WORKSPACE_PREFIX}{spec}". Run "monoforge update" to fix it.'
                )
                raise PolicyError(msg)
            rewritten = True
            if not dry_run:
                editor.add_or_update_dependency(name, f"{constants.WORKSPACE_PREFIX}{spec}", dependency_type)
        if not dry_run and editor.save_if_modified():
            logger.info("Updated workspace references in {}", editor.path)
    return rewritten


# -- Install -------------------------------------------------------------------


async def run_install(
    runner: PackageManagerRunner,
    recycler: AsyncRecycler,
    subspace: Subspace,
    args: list[str],
    options: InstallOptions,
    *,
    clean_install: bool,
) -> None:
    node_modules = subspace.temp_node_modules_folder
    if clean_install:
        logger.info("Recycling {} for a clean install", node_modules)
        recycler.move_folder(node_modules.absolute())
    subspace.temp_folder.mkdir(parents=True, exist_ok=True)

    await runner.run(
        args,
        cwd=subspace.temp_folder,
        env=package_manager_environment(subspace),
        max_attempts=options.max_install_attempts,
        on_retry=partial(recycler.move_folder, node_modules.absolute()),
    )


# -- Linking -------------------------------------------------------------------


def link_local_projects(subspace: Subspace, recycler: AsyncRecycler) -> int:
    """Symlink each project's workspace dependencies into its ``node_modules``.

    Links that already point at the right folder are left untouched.
    Returns the number of links created.
    """
    created = 0
    for project in subspace.projects:
        for dependency in project.local_dependency_projects():
            link = project.node_modules_folder / dependency.package_name
            target = dependency.folder.absolute()
            if link.is_symlink():
                if os.path.realpath(link) == os.path.realpath(target):
                    continue
                link.unlink()
            elif link.is_dir():
                recycler.move_folder(link.absolute())
            elif link.exists():
                link.unlink()
            link.parent.mkdir(parents=True, exist_ok=True)
            os.symlink(target, link, target_is_directory=True)
            created += 1
    return created
