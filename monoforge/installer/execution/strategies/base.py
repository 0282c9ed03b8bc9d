"""The contract every package-manager strategy implements."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from pathlib import Path

    from monoforge.installer.models import InstallOptions, PackageManagerKind
    from monoforge.installer.monorepo import Subspace
    from monoforge.installer.shrinkwrap import ShrinkwrapFile


@dataclass
class PrepareResult:
    """What ``prepare`` learned about a subspace."""

    shrinkwrap_is_up_to_date: bool
    npmrc_hash: str | None = None
    """SHA-1 of the synced ``.npmrc``; ``None`` when there is none."""

    warnings: list[str] = field(default_factory=list)


@runtime_checkable
class InstallStrategy(Protocol):
    """Per-tool lifecycle: prepare, install, post-install.

    The orchestrator owns the transaction (flags, skip decisions, lockfile
    copy-back); strategies only know how to drive their tool.
    """

    kind: PackageManagerKind
    supports_filtering: bool

    async def prepare(self, subspace: Subspace, shrinkwrap: ShrinkwrapFile | None, options: InstallOptions) -> PrepareResult:
        """Generate the temp folder and judge whether the lockfile is current."""
        ...

    def skip_inputs(self, subspace: Subspace) -> list[Path]:
        """Tool-specific files whose modification invalidates the skip heuristic."""
        ...

    async def install(self, subspace: Subspace, options: InstallOptions, *, clean_install: bool) -> None:
        """Run the package manager in the subspace temp folder."""
        ...

    async def post_install(self, subspace: Subspace) -> None:
        """Link projects to the installed tree."""
        ...
