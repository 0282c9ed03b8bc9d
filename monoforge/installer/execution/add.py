"""The add/remove dependency workflow.

Resolves a version per subspace, edits the affected package.json files and
then runs an update install for each touched subspace through the same
orchestrator the ``install`` command uses.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from loguru import logger

from monoforge.installer.errors import InvalidOptionsError
from monoforge.installer.execution.orchestrator import InstallOrchestrator
from monoforge.installer.execution.process import PackageManagerRunner
from monoforge.installer.execution.resolver import DependencyAnalysis, DependencyVersionResolver
from monoforge.installer.models import DependencyType, InstallOptions, RangeStyle, SelectionReason

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from monoforge.installer.models import AddOptions, VersionSelection
    from monoforge.installer.monorepo import Monorepo, Project, Subspace


def default_range_style(version: str | None, *, exact: bool = False, caret: bool = False) -> RangeStyle:
    """Range style for a package given on the command line.

    An explicit version is written as given; otherwise ``~`` unless
    ``--exact`` or ``--caret`` says differently.
    """
    if version and version != "latest":
        if exact or caret:
            msg = "The --caret and --exact flags cannot be used when a version is specified"
            raise InvalidOptionsError(msg)
        return RangeStyle.PASSTHROUGH
    if caret:
        return RangeStyle.CARET
    if exact:
        return RangeStyle.EXACT
    return RangeStyle.TILDE


class DependencyAdder:
    def __init__(
        self,
        monorepo: Monorepo,
        *,
        runner: PackageManagerRunner | None = None,
        orchestrator_factory: Callable[..., InstallOrchestrator] = InstallOrchestrator,
    ) -> None:
        self.monorepo = monorepo
        self._runner = runner
        self._orchestrator_factory = orchestrator_factory

    def _get_runner(self) -> PackageManagerRunner:
        if self._runner is None:
            self._runner = PackageManagerRunner.locate(self.monorepo.package_manager)
        return self._runner

    def _get_projects(self, names: Sequence[str]) -> list[Project]:
        if not names:
            msg = "At least one project must be selected"
            raise InvalidOptionsError(msg)
        return [self.monorepo.get_project(name) for name in names]

    # -- Add -------------------------------------------------------------------

    async def add(self, options: AddOptions) -> list[VersionSelection]:
        projects = self._get_projects(options.project_names)
        runner = self._get_runner()
        resolver = DependencyVersionResolver(self.monorepo, runner)

        selections: list[VersionSelection] = []
        touched: list[Subspace] = []
        for subspace in self.monorepo.subspaces_for_projects(projects):
            targets = [p for p in projects if p.subspace_name == subspace.name]
            analysis = DependencyAnalysis.for_subspace(subspace)

            for package in options.packages:
                selection = await resolver.resolve(
                    targets, package.package_name, package.version, package.range_style, analysis=analysis
                )
                if (
                    subspace.ensure_consistent_versions
                    and not options.make_consistent
                    and selection.reason is not SelectionReason.WORKSPACE_LOCAL
                ):
                    analysis.check_consistency(selection.package_name, selection.specifier)

                for project in targets:
                    project.package_json.add_or_update_dependency(
                        selection.package_name, selection.specifier, options.dependency_type
                    )
                if options.make_consistent:
                    self._make_consistent(subspace, targets, selection)
                logger.info("Adding {}@{} to {}", selection.package_name, selection.specifier, [p.package_name for p in targets])
                selections.append(selection)

            self._save(subspace)
            touched.append(subspace)

        if not options.skip_update:
            await self._update(touched, options.max_install_attempts)
        return selections

    def _make_consistent(self, subspace: Subspace, targets: list[Project], selection: VersionSelection) -> None:
        for project in subspace.projects:
            if project in targets:
                continue
            found = project.package_json.find_dependency(selection.package_name)
            if found is None:
                continue
            specifier, dependency_type = found
            if dependency_type is DependencyType.PEER or specifier == selection.specifier:
                continue
            logger.info(
                "Updating {} in {} from {} to {}",
                selection.package_name,
                project.package_name,
                specifier,
                selection.specifier,
            )
            project.package_json.add_or_update_dependency(selection.package_name, selection.specifier, dependency_type)

    # -- Remove ----------------------------------------------------------------

    async def remove(
        self,
        project_names: Sequence[str],
        package_names: Sequence[str],
        *,
        skip_update: bool = False,
        max_install_attempts: int = 1,
    ) -> None:
        projects = self._get_projects(project_names)
        for project in projects:
            for package_name in package_names:
                if not project.package_json.remove_dependency(package_name):
                    msg = f'The project "{project.package_name}" does not have a dependency on "{package_name}"'
                    raise InvalidOptionsError(msg)
                logger.info("Removing {} from {}", package_name, project.package_name)

        touched = self.monorepo.subspaces_for_projects(projects)
        for subspace in touched:
            self._save(subspace)
        if not skip_update:
            await self._update(touched, max_install_attempts)

    # -- Helpers ---------------------------------------------------------------

    def _save(self, subspace: Subspace) -> None:
        for project in subspace.projects:
            if project.package_json.save_if_modified():
                logger.debug("Saved {}", project.package_json_path)

    async def _update(self, subspaces: Sequence[Subspace], max_install_attempts: int) -> None:
        if not subspaces:
            return
        orchestrator = self._orchestrator_factory(self.monorepo, runner=self._get_runner())
        await orchestrator.run(
            InstallOptions(
                allow_shrinkwrap_updates=True,
                subspace_names=[s.name for s in subspaces],
                max_install_attempts=max_install_attempts,
            )
        )
