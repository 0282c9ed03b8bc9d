"""Persisted state: install/link flags and approved-package lists."""

from monoforge.installer.store.approved_packages import ApprovedPackageItem, ApprovedPackagesFile
from monoforge.installer.store.flag import FlagFile, InstallFlag, StorePathMismatchError, link_flag_for

__all__ = [
    "ApprovedPackageItem",
    "ApprovedPackagesFile",
    "FlagFile",
    "InstallFlag",
    "StorePathMismatchError",
    "link_flag_for",
]
