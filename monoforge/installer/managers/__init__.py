"""Managers for installer side concerns: recycling, purging, governance, setup checks."""

from monoforge.installer.managers.approved_packages import ApprovedPackagesChecker
from monoforge.installer.managers.purge import PurgeManager
from monoforge.installer.managers.recycler import AsyncRecycler, RecyclerClosedError

__all__ = ["ApprovedPackagesChecker", "AsyncRecycler", "PurgeManager", "RecyclerClosedError"]
