"""Shared enumerations used across the installer."""

from __future__ import annotations

from enum import StrEnum

# -- Tooling -----------------------------------------------------------------


class PackageManagerKind(StrEnum):
    NPM = "npm"
    PNPM = "pnpm"
    YARN = "yarn"


class PnpmStoreMode(StrEnum):
    """Where pnpm keeps its content-addressable store."""

    LOCAL = "local"
    GLOBAL = "global"


# -- Dependencies ------------------------------------------------------------


class DependencyType(StrEnum):
    """package.json section names."""

    REGULAR = "dependencies"
    DEV = "devDependencies"
    PEER = "peerDependencies"
    OPTIONAL = "optionalDependencies"


class RangeStyle(StrEnum):
    """Prefix applied to a resolved version when writing it to package.json."""

    CARET = "caret"
    TILDE = "tilde"
    EXACT = "exact"
    PASSTHROUGH = "passthrough"


class SpecifierType(StrEnum):
    VERSION = "version"
    RANGE = "range"
    TAG = "tag"
    WORKSPACE = "workspace"
    ALIAS = "alias"
    REMOTE = "remote"


# -- Resolution --------------------------------------------------------------


class SelectionReason(StrEnum):
    """Why the resolver settled on a particular specifier."""

    IMPLICITLY_PREFERRED = "implicitly_preferred"
    EXPLICITLY_PREFERRED = "explicitly_preferred"
    WORKSPACE_LOCAL = "workspace_local"
    REGISTRY_MATCH = "registry_match"
    REGISTRY_LATEST = "registry_latest"
