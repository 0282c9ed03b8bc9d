"""Package-manager strategies, selected by ``create_strategy``."""

from __future__ import annotations

from typing import TYPE_CHECKING

from monoforge.installer.execution.strategies.base import InstallStrategy, PrepareResult
from monoforge.installer.execution.strategies.npm import NpmInstallStrategy
from monoforge.installer.execution.strategies.pnpm import PnpmInstallStrategy
from monoforge.installer.execution.strategies.yarn import YarnInstallStrategy
from monoforge.installer.models import PackageManagerKind

if TYPE_CHECKING:
    from monoforge.installer.execution.process import PackageManagerRunner
    from monoforge.installer.managers.recycler import AsyncRecycler

_STRATEGIES: dict[PackageManagerKind, type[NpmInstallStrategy | PnpmInstallStrategy | YarnInstallStrategy]] = {
    PackageManagerKind.NPM: NpmInstallStrategy,
    PackageManagerKind.PNPM: PnpmInstallStrategy,
    PackageManagerKind.YARN: YarnInstallStrategy,
}


def create_strategy(kind: PackageManagerKind, runner: PackageManagerRunner, recycler: AsyncRecycler) -> InstallStrategy:
    return _STRATEGIES[kind](runner, recycler)


__all__ = [
    "InstallStrategy",
    "NpmInstallStrategy",
    "PnpmInstallStrategy",
    "PrepareResult",
    "YarnInstallStrategy",
    "create_strategy",
]
