"""Data models for the installer."""

from monoforge.installer.models.config import (
    ApprovedPackagesPolicySpec,
    CommonVersionsConfig,
    EnvironmentVariableSpec,
    MonorepoConfig,
    PnpmOptionsSpec,
    ProjectSpec,
    RepoState,
    ToolOptionsSpec,
)
from monoforge.installer.models.enums import (
    DependencyType,
    PackageManagerKind,
    PnpmStoreMode,
    RangeStyle,
    SelectionReason,
    SpecifierType,
)
from monoforge.installer.models.options import AddOptions, InstallOptions, PackageToAdd
from monoforge.installer.models.package_json import PackageJsonEditor
from monoforge.installer.models.selection import VersionSelection
from monoforge.installer.models.specifier import DependencySpecifier, split_package_argument

__all__ = [
    "AddOptions",
    "ApprovedPackagesPolicySpec",
    "CommonVersionsConfig",
    "DependencySpecifier",
    "DependencyType",
    "EnvironmentVariableSpec",
    "InstallOptions",
    "MonorepoConfig",
    "PackageJsonEditor",
    "PackageManagerKind",
    "PackageToAdd",
    "PnpmOptionsSpec",
    "PnpmStoreMode",
    "ProjectSpec",
    "RangeStyle",
    "RepoState",
    "SelectionReason",
    "SpecifierType",
    "ToolOptionsSpec",
    "VersionSelection",
    "split_package_argument",
]
