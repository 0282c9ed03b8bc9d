"""pnpm: a single recursive workspace install per subspace."""

from __future__ import annotations

from typing import TYPE_CHECKING

from monoforge.installer import constants
from monoforge.installer.execution.strategies.base import PrepareResult
from monoforge.installer.execution.strategies.common import (
    check_shrinkwrap,
    run_install,
    sync_npmrc,
    sync_temp_shrinkwrap,
    validate_workspace_references,
    write_pnpm_workspace_file,
    write_temp_package_json,
)
from monoforge.installer.models import PackageManagerKind
from monoforge.installer.store.files import sync_file
from monoforge.installer.store.flag import link_flag_for

if TYPE_CHECKING:
    from pathlib import Path

    from monoforge.installer.execution.process import PackageManagerRunner
    from monoforge.installer.managers.recycler import AsyncRecycler
    from monoforge.installer.models import InstallOptions
    from monoforge.installer.monorepo import Subspace
    from monoforge.installer.shrinkwrap import ShrinkwrapFile


class PnpmInstallStrategy:
    kind = PackageManagerKind.PNPM
    supports_filtering = True

    def __init__(self, runner: PackageManagerRunner, recycler: AsyncRecycler) -> None:
        self.runner = runner
        self.recycler = recycler

    async def prepare(self, subspace: Subspace, shrinkwrap: ShrinkwrapFile | None, options: InstallOptions) -> PrepareResult:
        subspace.temp_folder.mkdir(parents=True, exist_ok=True)
        result = PrepareResult(shrinkwrap_is_up_to_date=True)
        result.npmrc_hash = sync_npmrc(subspace.npmrc_path, subspace.temp_folder)

        if subspace.monorepo.use_workspaces and validate_workspace_references(
            subspace, allow_updates=options.allow_shrinkwrap_updates, dry_run=options.check_only
        ):
            result.warnings.append("Some workspace dependencies were not using workspace: references")
            result.shrinkwrap_is_up_to_date = False

        if not check_shrinkwrap(subspace, shrinkwrap, result.warnings):
            result.shrinkwrap_is_up_to_date = False

        write_temp_package_json(subspace, workspaces=False)
        write_pnpm_workspace_file(subspace)
        sync_file(subspace.pnpmfile_path, subspace.temp_folder / constants.PNPMFILE_FILENAME)
        sync_temp_shrinkwrap(subspace, shrinkwrap)
        return result

    def skip_inputs(self, subspace: Subspace) -> list[Path]:
        inputs = [subspace.temp_folder / constants.PNPM_WORKSPACE_FILENAME]
        inputs.extend(project.package_json_path for project in subspace.projects)
        return inputs

    def install_arguments(self, subspace: Subspace, options: InstallOptions) -> list[str]:
        monorepo = subspace.monorepo
        args = ["install"]

        store_path = monorepo.pnpm_store_path
        if store_path is not None:
            args += [
                "--store",
                str(store_path),
                f"--config.cacheDir={subspace.temp_folder / 'pnpm-cache'}",
                f"--config.stateDir={subspace.temp_folder / 'pnpm-state'}",
            ]

        args.append("--no-prefer-frozen-lockfile" if options.allow_shrinkwrap_updates else "--frozen-lockfile")
        if monorepo.config.pnpm_options.strict_peer_dependencies:
            args.append("--strict-peer-dependencies")
        else:
            args.append("--no-strict-peer-dependencies")
        if options.network_concurrency:
            args += ["--network-concurrency", str(options.network_concurrency)]
        if options.offline:
            args.append("--offline")

        # Local projects are linked through workspace: references only
        args += ["--recursive", "--link-workspace-packages", "false"]
        for filter_argument in options.filter_arguments:
            args += ["--filter", filter_argument]
        return args

    async def install(self, subspace: Subspace, options: InstallOptions, *, clean_install: bool) -> None:
        await run_install(
            self.runner,
            self.recycler,
            subspace,
            self.install_arguments(subspace, options),
            options,
            clean_install=clean_install,
        )

    async def post_install(self, subspace: Subspace) -> None:
        for project in subspace.projects:
            project.node_modules_folder.mkdir(exist_ok=True)
        await link_flag_for(subspace).create()
