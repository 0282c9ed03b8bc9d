"""Purge operations built on two recyclers.

One recycler lives in the monorepo's temp folder, the other in the per-user
global folder; each only ever receives paths from its own volume so renames
stay cheap.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from loguru import logger

from monoforge.installer import constants
from monoforge.installer.managers.recycler import AsyncRecycler

if TYPE_CHECKING:
    from monoforge.installer.monorepo import Monorepo


class PurgeManager:
    def __init__(self, monorepo: Monorepo, *, active_process_folder: Path | None = None) -> None:
        self.monorepo = monorepo
        self.temp_folder_recycler = AsyncRecycler(monorepo.temp_folder / constants.RECYCLER_FOLDER_NAME)
        self.global_folder_recycler = AsyncRecycler(monorepo.global_folder / constants.RECYCLER_FOLDER_NAME)
        self._active_process_folder = (active_process_folder or Path(__file__).resolve().parents[2]).absolute()

    def start_delete_all(self) -> None:
        """Start the background deletion for both recyclers."""
        self.temp_folder_recycler.start_delete_all()
        self.global_folder_recycler.start_delete_all()

    def purge_normal(self) -> None:
        """Recycle everything under the monorepo temp folder."""
        logger.info("Purging {}", self.monorepo.temp_folder)
        self.temp_folder_recycler.move_all_items_in_folder(
            self.monorepo.temp_folder,
            self._get_members_to_exclude(self.monorepo.temp_folder, show_warning=True),
        )

    def purge_unsafe(self) -> None:
        """``purge_normal`` plus the global folder (tool downloads, caches)."""
        self.purge_normal()

        runtime_folder = self.monorepo.runtime_specific_global_folder
        global_folder = self.monorepo.global_folder
        logger.info("Purging {}", global_folder)
        self.global_folder_recycler.move_all_items_in_folder(
            runtime_folder, self._get_members_to_exclude(runtime_folder, show_warning=True)
        )
        self.global_folder_recycler.move_all_items_in_folder(
            global_folder, self._get_members_to_exclude(global_folder, show_warning=False)
        )

        store_path = self.monorepo.pnpm_store_path
        if store_path is not None and store_path.absolute().is_relative_to(self.monorepo.temp_folder.absolute()):
            logger.warning(
                "The pnpm store at {} was purged as part of the temp folder; "
                "other repositories sharing it will download packages again",
                store_path,
            )

    def _get_members_to_exclude(self, folder: Path, *, show_warning: bool) -> set[str]:
        """Names under *folder* that must survive a purge.

        The recycler is excluded, and so is the first path segment leading to
        the running installation if it lives under *folder*: deleting a
        running program's files fails on some platforms.
        """
        excluded = {constants.RECYCLER_FOLDER_NAME}
        try:
            relative = self._active_process_folder.relative_to(Path(folder).absolute())
        except ValueError:
            return excluded
        if relative.parts:
            first_segment = relative.parts[0]
            excluded.add(first_segment)
            if show_warning:
                logger.warning("The active process's folder will not be deleted: {}", Path(folder) / first_segment)
        return excluded
