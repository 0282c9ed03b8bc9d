"""npm: workspaces install from the generated temp package.json."""

from __future__ import annotations

from typing import TYPE_CHECKING

from loguru import logger

from monoforge.installer import constants
from monoforge.installer.execution.strategies.base import PrepareResult
from monoforge.installer.execution.strategies.common import (
    check_shrinkwrap,
    link_local_projects,
    run_install,
    sync_npmrc,
    sync_temp_shrinkwrap,
    write_temp_package_json,
)
from monoforge.installer.models import PackageManagerKind
from monoforge.installer.store.flag import link_flag_for

if TYPE_CHECKING:
    from pathlib import Path

    from monoforge.installer.execution.process import PackageManagerRunner
    from monoforge.installer.managers.recycler import AsyncRecycler
    from monoforge.installer.models import InstallOptions
    from monoforge.installer.monorepo import Subspace
    from monoforge.installer.shrinkwrap import ShrinkwrapFile


class NpmInstallStrategy:
    kind = PackageManagerKind.NPM
    supports_filtering = False

    def __init__(self, runner: PackageManagerRunner, recycler: AsyncRecycler) -> None:
        self.runner = runner
        self.recycler = recycler

    async def prepare(self, subspace: Subspace, shrinkwrap: ShrinkwrapFile | None, options: InstallOptions) -> PrepareResult:
        subspace.temp_folder.mkdir(parents=True, exist_ok=True)
        result = PrepareResult(shrinkwrap_is_up_to_date=True)
        result.npmrc_hash = sync_npmrc(subspace.npmrc_path, subspace.temp_folder)
        result.shrinkwrap_is_up_to_date = check_shrinkwrap(subspace, shrinkwrap, result.warnings)
        write_temp_package_json(subspace, workspaces=True)
        sync_temp_shrinkwrap(subspace, shrinkwrap)
        return result

    def skip_inputs(self, subspace: Subspace) -> list[Path]:
        return [project.package_json_path for project in subspace.projects]

    def install_arguments(self, subspace: Subspace, options: InstallOptions) -> list[str]:
        args = ["install", "--cache", str(subspace.temp_folder / constants.NPM_CACHE_FOLDER_NAME), "--no-audit", "--no-fund"]
        if options.network_concurrency:
            args += ["--maxsockets", str(options.network_concurrency)]
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
        created = link_local_projects(subspace, self.recycler)
        if created:
            logger.info("Linked {} local project dependencies", created)
        await link_flag_for(subspace).create()
