"""Dependency version resolution -- what to write into package.json.

Decision order (first match wins):

1. An explicit specifier that equals the version the subspace already agrees
   on (implicitly, or via ``preferredVersions``) is used as-is.
2. Without a specifier, when consistent versions are enforced, the agreed
   version is reused.  No registry query happens.
3. A workspace project of the same name must satisfy the specifier; it is
   referenced as ``workspace:`` when workspaces are on, by exact version
   otherwise.
4. The registry is queried for published versions (or the ``latest`` tag).
5. The range style prefix (``^``, ``~``) is applied, except to workspace
   references and pass-through specifiers.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from loguru import logger

from monoforge.installer import constants, semver
from monoforge.installer.errors import InstallError, InvalidOptionsError, LocalVersionMismatchError, PolicyError
from monoforge.installer.models import DependencyType, PackageManagerKind, RangeStyle, SelectionReason, VersionSelection

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

    from monoforge.installer.execution.process import PackageManagerRunner
    from monoforge.installer.monorepo import Monorepo, Project, Subspace

_ANALYZED_TYPES = (DependencyType.REGULAR, DependencyType.DEV, DependencyType.OPTIONAL)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class VersionNotFoundError(PolicyError, LookupError):
    def __init__(self, package_name: str, specifier: str) -> None:
        super().__init__(f'No published version of "{package_name}" satisfies "{specifier}"')


class DependencyCycleError(PolicyError):
    def __init__(self, package_name: str, project_name: str) -> None:
        if package_name == project_name:
            super().__init__(f'Unable to add "{package_name}" as a dependency of itself')
        else:
            super().__init__(
                f'Adding "{package_name}" to "{project_name}" would create a cycle: '
                f'"{package_name}" already depends on "{project_name}"'
            )


class InconsistentVersionError(PolicyError):
    def __init__(self, package_name: str, specifier: str, existing: Sequence[str]) -> None:
        super().__init__(
            f'Adding "{package_name}@{specifier}" causes mismatched dependencies '
            f"(other projects use {', '.join(sorted(existing))}). "
            'Use the "--make-consistent" flag to update other projects, or choose one of the existing versions.'
        )


# ---------------------------------------------------------------------------
# Analysis
# ---------------------------------------------------------------------------


@dataclass
class DependencyAnalysis:
    """Versions of third-party packages already in use across a subspace."""

    all_versions_by_package: dict[str, set[str]] = field(default_factory=dict)
    implicitly_preferred_versions: dict[str, str] = field(default_factory=dict)
    """Packages every project declares with the same single specifier."""

    preferred_versions: dict[str, str] = field(default_factory=dict)
    allowed_alternative_versions: dict[str, list[str]] = field(default_factory=dict)

    @classmethod
    def for_subspace(cls, subspace: Subspace) -> DependencyAnalysis:
        monorepo = subspace.monorepo
        common_versions = subspace.get_common_versions()

        all_versions: dict[str, set[str]] = {}
        for project in subspace.projects:
            for name, spec, _ in project.package_json.all_dependencies(_ANALYZED_TYPES):
                if spec.startswith(constants.WORKSPACE_PREFIX):
                    continue
                if monorepo.try_get_project(name) is not None and name not in project.decoupled_local_dependencies:
                    continue
                all_versions.setdefault(name, set()).add(spec)

        implicit: dict[str, str] = {}
        if common_versions.implicitly_preferred_versions:
            for name, versions in all_versions.items():
                if len(versions) == 1 and name not in common_versions.allowed_alternative_versions:
                    implicit[name] = next(iter(versions))

        return cls(
            all_versions_by_package=all_versions,
            implicitly_preferred_versions=implicit,
            preferred_versions=dict(common_versions.preferred_versions),
            allowed_alternative_versions=dict(common_versions.allowed_alternative_versions),
        )

    def check_consistency(self, package_name: str, specifier: str) -> None:
        """Raise ``InconsistentVersionError`` if *specifier* would split the subspace."""
        existing = self.all_versions_by_package.get(package_name)
        if not existing or specifier in existing:
            return
        if specifier in self.allowed_alternative_versions.get(package_name, []):
            return
        raise InconsistentVersionError(package_name, specifier, list(existing))


# ---------------------------------------------------------------------------
# Range styles
# ---------------------------------------------------------------------------


def detect_range_style(specifier: str) -> RangeStyle:
    """Cheap guess of the style an existing specifier was written in."""
    if specifier.startswith("~"):
        return RangeStyle.TILDE
    if specifier.startswith("^"):
        return RangeStyle.CARET
    return RangeStyle.EXACT


def apply_range_style(version: str, range_style: RangeStyle) -> str:
    match range_style:
        case RangeStyle.CARET:
            return f"^{version}"
        case RangeStyle.TILDE:
            return f"~{version}"
        case _:
            return version


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------


class DependencyVersionResolver:
    def __init__(self, monorepo: Monorepo, runner: PackageManagerRunner) -> None:
        self.monorepo = monorepo
        self.runner = runner

    async def resolve(
        self,
        projects: Sequence[Project],
        package_name: str,
        specifier: str | None = None,
        range_style: RangeStyle = RangeStyle.TILDE,
        *,
        analysis: DependencyAnalysis | None = None,
    ) -> VersionSelection:
        """Pick the specifier to write for *package_name* in *projects*.

        All *projects* must belong to one subspace.
        """
        if not projects:
            msg = "At least one target project is required"
            raise InvalidOptionsError(msg)
        subspace = projects[0].subspace
        analysis = analysis or DependencyAnalysis.for_subspace(subspace)

        implicit = analysis.implicitly_preferred_versions.get(package_name)
        preferred = analysis.preferred_versions.get(package_name)

        if specifier:
            if specifier == implicit:
                logger.info('"{}" is already used by other projects; keeping {}', package_name, specifier)
                return VersionSelection(package_name=package_name, specifier=specifier, reason=SelectionReason.IMPLICITLY_PREFERRED)
            if specifier == preferred:
                logger.info('"{}" matches the preferred version {}', package_name, specifier)
                return VersionSelection(package_name=package_name, specifier=specifier, reason=SelectionReason.EXPLICITLY_PREFERRED)
        elif subspace.ensure_consistent_versions:
            if implicit:
                logger.info('Using the version of "{}" already used by other projects: {}', package_name, implicit)
                return VersionSelection(package_name=package_name, specifier=implicit, reason=SelectionReason.IMPLICITLY_PREFERRED)
            if preferred:
                logger.info('Using the preferred version of "{}": {}', package_name, preferred)
                return VersionSelection(package_name=package_name, specifier=preferred, reason=SelectionReason.EXPLICITLY_PREFERRED)

        use_workspaces = self.monorepo.use_workspaces
        if specifier and use_workspaces and specifier.startswith(constants.WORKSPACE_PREFIX):
            specifier = specifier[len(constants.WORKSPACE_PREFIX) :]

        local_project = self._try_get_local_project(package_name, projects)

        if specifier and specifier != "latest":
            if local_project is not None:
                return self._select_local(local_project, specifier, range_style)

            versions = await self._published_versions(package_name, subspace)
            match = semver.max_satisfying(versions, specifier)
            if match is None:
                raise VersionNotFoundError(package_name, specifier)
            logger.info('Found "{}" version {} satisfying {}', package_name, match, specifier)
            selected = specifier if range_style is RangeStyle.PASSTHROUGH else apply_range_style(match, range_style)
            return VersionSelection(package_name=package_name, specifier=selected, reason=SelectionReason.REGISTRY_MATCH)

        if local_project is not None:
            return self._select_local(local_project, None, range_style)

        latest = await self._latest_version(package_name, subspace)
        logger.info('Latest version of "{}" is {}', package_name, latest)
        return VersionSelection(
            package_name=package_name,
            specifier=apply_range_style(latest, range_style),
            reason=SelectionReason.REGISTRY_LATEST,
        )

    # -- Local projects --------------------------------------------------------

    def _select_local(self, local_project: Project, specifier: str | None, range_style: RangeStyle) -> VersionSelection:
        name = local_project.package_name
        version = local_project.version
        if specifier is not None and not semver.satisfies(version, specifier):
            raise LocalVersionMismatchError(name, specifier, version)

        if self.monorepo.use_workspaces:
            selected = "*" if specifier is None or specifier == version else specifier
            resolved = f"{constants.WORKSPACE_PREFIX}{selected}"
        else:
            resolved = apply_range_style(version, range_style)
        return VersionSelection(package_name=name, specifier=resolved, reason=SelectionReason.WORKSPACE_LOCAL)

    def _try_get_local_project(self, package_name: str, projects: Sequence[Project]) -> Project | None:
        local_project = self.monorepo.try_get_project(package_name)
        if local_project is None:
            return None
        if len(projects) > 1:
            msg = f'A workspace project ("{package_name}") can only be added to one project at a time'
            raise InvalidOptionsError(msg)

        target = projects[0]
        if package_name in target.decoupled_local_dependencies:
            return None
        if local_project is target:
            raise DependencyCycleError(package_name, target.package_name)
        if local_project in self._collect_downstream(target):
            raise DependencyCycleError(package_name, target.package_name)
        return local_project

    def _collect_downstream(self, project: Project) -> set[Project]:
        """Every project that depends on *project*, directly or transitively."""
        found: set[Project] = set()
        pending = [project]
        while pending:
            current = pending.pop()
            for consumer in self.monorepo.consumers_of(current):
                if consumer not in found:
                    found.add(consumer)
                    pending.append(consumer)
        return found

    # -- Registry --------------------------------------------------------------

    def _query_folder(self, subspace: Subspace) -> Path:
        # The synced .npmrc in the temp folder carries the registry configuration
        return subspace.temp_folder if subspace.temp_folder.is_dir() else self.monorepo.root

    async def _query(self, args: list[str], subspace: Subspace) -> str:
        settings = self.monorepo.settings
        return await self.runner.capture(
            args,
            cwd=self._query_folder(subspace),
            max_attempts=settings.registry_query_attempts,
            timeout=settings.registry_query_timeout,
        )

    async def _published_versions(self, package_name: str, subspace: Subspace) -> list[str]:
        if self.monorepo.package_manager is PackageManagerKind.YARN:
            args = ["info", package_name, "versions", "--json"]
        else:
            args = ["view", package_name, "versions", "--json"]
        output = await self._query(args, subspace)
        try:
            parsed = json.loads(output)
        except json.JSONDecodeError as exc:
            msg = f'Unexpected output while querying versions of "{package_name}": {output[:200]!r}'
            raise InstallError(msg) from exc

        if isinstance(parsed, dict):
            parsed = parsed.get("data", [])
        if isinstance(parsed, str):
            parsed = [parsed]
        return [str(v) for v in parsed]

    async def _latest_version(self, package_name: str, subspace: Subspace) -> str:
        if self.monorepo.package_manager is PackageManagerKind.YARN:
            args = ["info", package_name, "dist-tags.latest", "--silent"]
        else:
            args = ["view", f"{package_name}@latest", "version"]
        latest = (await self._query(args, subspace)).strip()
        if not semver.valid_version(latest):
            raise VersionNotFoundError(package_name, "latest")
        return latest
