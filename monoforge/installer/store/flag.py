"""Marker files that let one run communicate forward to the next.

A flag is a JSON file holding a ``state`` dict.  It is valid when the stored
state equals the state the current run would write.  The install transaction
clears the flag before doing risky work and re-creates it afterwards, so a
crash in between is seen by the next run as a missing flag.
"""

from __future__ import annotations

import json
from functools import partial
from pathlib import Path
from typing import TYPE_CHECKING, Any

from anyio import to_thread

from monoforge.installer import constants
from monoforge.installer.errors import PolicyError
from monoforge.installer.models import PackageManagerKind
from monoforge.installer.store.files import atomic_write, delete_file, file_sha1, modified_time_ns, read_text_or_none

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from monoforge.installer.monorepo import Subspace


class StorePathMismatchError(PolicyError):
    def __init__(self, previous: str, current: str) -> None:
        super().__init__(
            "Current pnpm store path does not match the last one used. This may cause inconsistency in your builds.\n"
            "If you wish to install with the new store path, please run the install with --purge.\n"
            f"Old path: {previous}\nNew path: {current}"
        )


class FlagFile:
    def __init__(self, folder: Path, filename: str, state: dict[str, Any] | None = None) -> None:
        self.path = Path(folder) / filename
        self.state: dict[str, Any] = dict(state or {})

    def __repr__(self) -> str:
        return f"{type(self).__name__}({str(self.path)!r})"

    # -- Read ------------------------------------------------------------------

    async def read_stored_state(self) -> dict[str, Any] | None:
        """The state on disk, or ``None`` when missing or unreadable."""
        raw = await to_thread.run_sync(partial(read_text_or_none, self.path))
        if raw is None:
            return None
        try:
            stored = json.loads(raw)
        except json.JSONDecodeError:
            return None
        return stored if isinstance(stored, dict) else None

    async def is_valid(self, *, ignore: Iterable[str] = ()) -> bool:
        stored = await self.read_stored_state()
        if stored is None:
            return False
        ignored = set(ignore)
        return _without(stored, ignored) == _without(self.state, ignored)

    def modified_time_ns(self) -> int | None:
        return modified_time_ns(self.path)

    # -- Write -----------------------------------------------------------------

    async def create(self) -> None:
        data = json.dumps(self.state, indent=2, sort_keys=True) + "\n"
        await to_thread.run_sync(partial(atomic_write, self.path, data))

    async def clear(self) -> None:
        await to_thread.run_sync(partial(delete_file, self.path))


class InstallFlag(FlagFile):
    """Fingerprint of the last successful install of a subspace."""

    @classmethod
    def for_subspace(
        cls,
        subspace: Subspace,
        *,
        npmrc_hash: str | None,
        selected_projects: Sequence[str] = (),
    ) -> InstallFlag:
        monorepo = subspace.monorepo
        state: dict[str, Any] = {
            "packageManager": monorepo.package_manager.value,
            "packageManagerVersion": monorepo.package_manager_version,
            "monorepoRoot": str(monorepo.root),
            "npmrcHash": npmrc_hash or constants.NO_NPMRC_HASH,
            "shrinkwrapHash": file_sha1(subspace.committed_shrinkwrap_path) or constants.NO_FILE_HASH,
            "commonVersionsHash": file_sha1(subspace.common_versions_path) or constants.NO_FILE_HASH,
            "toolOptionsHash": monorepo.config.tool_options_hash(),
        }
        if monorepo.package_manager is PackageManagerKind.PNPM and monorepo.pnpm_store_path is not None:
            state["pnpmStorePath"] = str(monorepo.pnpm_store_path)
        if selected_projects:
            state["selectedProjectNames"] = sorted(selected_projects)
        return cls(subspace.temp_folder, constants.LAST_INSTALL_FLAG_FILENAME, state)

    async def check_valid_and_report_store_issues(self) -> bool:
        """Like ``is_valid`` but fail loudly when the pnpm store moved.

        Installing into a different store than the existing ``node_modules``
        was linked against produces a broken tree, so this needs ``--purge``.
        """
        stored = await self.read_stored_state()
        if stored is None:
            return False
        previous = stored.get("pnpmStorePath")
        current = self.state.get("pnpmStorePath")
        if previous and current and previous != current:
            raise StorePathMismatchError(previous, current)
        return stored == self.state


def link_flag_for(subspace: Subspace) -> FlagFile:
    return FlagFile(subspace.temp_folder, constants.LAST_LINK_FLAG_FILENAME)


def _without(state: dict[str, Any], keys: set[str]) -> dict[str, Any]:
    return {k: v for k, v in state.items() if k not in keys}
