"""Install orchestrator -- decides whether to install, runs it, records it.

For each selected subspace:

1. **Prepare**: the strategy regenerates the temp folder and judges the
   committed lockfile against the projects' package.json files.
2. **Decide**: the install flag fingerprint (tool, config hashes, lockfile
   and common-versions content) and the timestamp heuristic decide whether
   the previous install can be reused.
3. **Install**: clear the flag, run the package manager, copy the lockfile
   back when updates are allowed, re-create the flag.
4. **Post-install**: link projects (skipped for filtered installs).

Clearing the flag before the package manager runs means a crash leaves no
flag behind, and the next run performs a clean install.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import httpx
from loguru import logger

import monoforge
from monoforge.installer import constants
from monoforge.installer.errors import InstallError, InvalidOptionsError, PolicyError
from monoforge.installer.execution.process import PackageManagerRunner
from monoforge.installer.execution.release_check import check_release_published
from monoforge.installer.execution.strategies import create_strategy
from monoforge.installer.execution.strategies.common import refresh_repo_state
from monoforge.installer.managers import setup_checks
from monoforge.installer.managers.approved_packages import ApprovedPackagesChecker
from monoforge.installer.managers.purge import PurgeManager
from monoforge.installer.shrinkwrap import ShrinkwrapParseError, load_shrinkwrap_file
from monoforge.installer.store.files import modified_time_ns, sync_file
from monoforge.installer.store.flag import InstallFlag, link_flag_for

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from monoforge.installer.execution.strategies import InstallStrategy
    from monoforge.installer.models import InstallOptions
    from monoforge.installer.monorepo import Monorepo, Subspace
    from monoforge.installer.shrinkwrap import ShrinkwrapFile


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class ShrinkwrapOutOfDateError(PolicyError):
    def __init__(self, path: object) -> None:
        super().__init__(f'The lockfile {path} is out of date. You need to run "monoforge update".')


class ApprovedPackagesOutOfDateError(PolicyError):
    def __init__(self, missing: list[tuple[str, str]]) -> None:
        listing = "\n".join(f"  {name} ({category})" for name, category in missing)
        super().__init__(f'Approved packages files are out of date. Run "monoforge update".\n{listing}'.rstrip())


# ---------------------------------------------------------------------------
# Result
# ---------------------------------------------------------------------------


@dataclass
class SubspaceInstallResult:
    """What happened to one subspace during ``run``."""

    subspace_name: str
    shrinkwrap_is_up_to_date: bool
    installed: bool = False
    clean_install: bool = False
    skipped: bool = False
    """The previous install was reused."""

    shrinkwrap_updated: bool = False
    warnings: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


class InstallOrchestrator:
    def __init__(
        self,
        monorepo: Monorepo,
        *,
        runner: PackageManagerRunner | None = None,
        purge_manager_factory: Callable[[Monorepo], PurgeManager] = PurgeManager,
        strategy_factory: Callable[..., InstallStrategy] = create_strategy,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.monorepo = monorepo
        self._runner = runner
        self._purge_manager_factory = purge_manager_factory
        self._strategy_factory = strategy_factory
        self._http_client = http_client
        self._setup_validated = False
        self.phantom_folders: list[Path] = []

    # -- Entry point -----------------------------------------------------------

    async def run(self, options: InstallOptions) -> list[SubspaceInstallResult]:
        monorepo = self.monorepo
        subspaces = self._select_subspaces(options)
        runner = self._runner or PackageManagerRunner.locate(monorepo.package_manager)

        if not self._setup_validated:
            self.phantom_folders = setup_checks.validate(monorepo)
            self._setup_validated = True

        purge_manager = self._purge_manager_factory(monorepo)
        try:
            strategy = self._strategy_factory(monorepo.package_manager, runner, purge_manager.temp_folder_recycler)
            self._validate_options(strategy, options)
            self._check_approved_packages(options)

            if options.purge and not options.check_only:
                purge_manager.purge_normal()

            results = []
            for subspace in subspaces:
                logger.info("Installing subspace '{}'", subspace.name)
                results.append(await self._run_subspace(subspace, strategy, options))
            return results
        finally:
            purge_manager.start_delete_all()

    # -- Preconditions ---------------------------------------------------------

    def _select_subspaces(self, options: InstallOptions) -> list[Subspace]:
        if options.subspace_names is None:
            return list(self.monorepo.subspaces.values())
        return [self.monorepo.get_subspace(name) for name in options.subspace_names]

    def _validate_options(self, strategy: InstallStrategy, options: InstallOptions) -> None:
        if not options.is_filtered:
            return
        if not strategy.supports_filtering:
            msg = f"Filtered installs are not supported with {strategy.kind}; run a full install instead"
            raise InvalidOptionsError(msg)
        if options.allow_shrinkwrap_updates and not self.monorepo.config.subspaces_enabled:
            msg = "Filtered installs cannot update the lockfile unless subspaces are enabled; run a full update"
            raise InvalidOptionsError(msg)
        unknown = [name for name in options.selected_projects if self.monorepo.try_get_project(name) is None]
        if unknown:
            msg = f"Unknown project(s) in filter: {', '.join(unknown)}"
            raise InvalidOptionsError(msg)

    def _check_approved_packages(self, options: InstallOptions) -> None:
        checker = ApprovedPackagesChecker(self.monorepo)
        if not checker.approved_packages_files_are_out_of_date:
            return
        if options.allow_shrinkwrap_updates and not options.check_only:
            checker.rewrite_config_files()
            logger.warning("Approved packages files were out of date and have been updated; please commit them")
            return
        if options.check_only:
            logger.warning('Approved packages files are out of date. Run "monoforge update".')
            return
        raise ApprovedPackagesOutOfDateError(checker.unapproved_dependencies())

    def _load_shrinkwrap(self, subspace: Subspace, options: InstallOptions) -> ShrinkwrapFile | None:
        if options.full_upgrade:
            return None
        try:
            return load_shrinkwrap_file(self.monorepo.package_manager, subspace.committed_shrinkwrap_path)
        except ShrinkwrapParseError:
            if not options.allow_shrinkwrap_updates:
                raise
            logger.warning("Ignoring unreadable lockfile {}", subspace.committed_shrinkwrap_path)
            return None

    # -- Transaction -----------------------------------------------------------

    async def _run_subspace(
        self, subspace: Subspace, strategy: InstallStrategy, options: InstallOptions
    ) -> SubspaceInstallResult:
        shrinkwrap = self._load_shrinkwrap(subspace, options)
        prepared = await strategy.prepare(subspace, shrinkwrap, options)
        up_to_date = prepared.shrinkwrap_is_up_to_date and not options.recheck_shrinkwrap
        for warning in prepared.warnings:
            logger.warning("{}", warning)

        result = SubspaceInstallResult(
            subspace_name=subspace.name,
            shrinkwrap_is_up_to_date=up_to_date,
            warnings=list(prepared.warnings),
        )
        if options.check_only:
            return result
        if not up_to_date and not options.allow_shrinkwrap_updates:
            raise ShrinkwrapOutOfDateError(subspace.committed_shrinkwrap_path)

        flag = InstallFlag.for_subspace(
            subspace, npmrc_hash=prepared.npmrc_hash, selected_projects=options.selected_projects
        )
        flag_is_valid = await flag.check_valid_and_report_store_issues()
        result.clean_install = not flag_is_valid

        if flag_is_valid and up_to_date and self._can_skip_install(flag, subspace, strategy):
            logger.info("Installation is already up-to-date.")
            result.skipped = True
        else:
            await self._check_release()
            await flag.clear()
            await link_flag_for(subspace).clear()

            await strategy.install(subspace, options, clean_install=result.clean_install)
            result.installed = True

            if options.allow_shrinkwrap_updates:
                result.shrinkwrap_updated = sync_file(subspace.temp_shrinkwrap_path, subspace.committed_shrinkwrap_path)
                if result.shrinkwrap_updated:
                    logger.info("Updated {}", subspace.committed_shrinkwrap_path)
                refresh_repo_state(subspace)

            # The lockfile may have changed, so fingerprint again
            flag = InstallFlag.for_subspace(
                subspace, npmrc_hash=prepared.npmrc_hash, selected_projects=options.selected_projects
            )
            await flag.create()

        if not options.is_filtered:
            await strategy.post_install(subspace)
        return result

    def _can_skip_install(self, flag: InstallFlag, subspace: Subspace, strategy: InstallStrategy) -> bool:
        """Timestamp heuristic: nothing the install reads is newer than the flag."""
        flag_time = flag.modified_time_ns()
        if flag_time is None:
            return False

        required = [
            subspace.committed_shrinkwrap_path,
            subspace.temp_node_modules_folder,
            self.monorepo.config_path,
            *strategy.skip_inputs(subspace),
        ]
        for path in required:
            mtime = modified_time_ns(path)
            if mtime is None or mtime > flag_time:
                logger.debug("Cannot skip install: {} is missing or newer than the install flag", path)
                return False

        for path in (subspace.common_versions_path, subspace.pnpmfile_path):
            mtime = modified_time_ns(path)
            if mtime is not None and mtime > flag_time:
                logger.debug("Cannot skip install: {} is newer than the install flag", path)
                return False
        return True

    async def _check_release(self) -> None:
        settings = self.monorepo.settings
        if settings.suppress_release_check:
            return
        try:
            published = await check_release_published(
                self.monorepo.global_folder,
                monoforge.__version__,
                registry_url=settings.registry_url,
                timeout=settings.network_timeout,
                client=self._http_client,
            )
        except (InstallError, httpx.HTTPError, OSError, ValueError) as exc:
            logger.debug("Skipping the release check: {}", exc)
            return
        if published is False:
            logger.warning(
                "The {} release {} has been unpublished; please upgrade to a newer version",
                constants.PACKAGE_NAME,
                monoforge.__version__,
            )
