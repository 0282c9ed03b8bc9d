"""Fixed file and folder names used across the installer."""

from __future__ import annotations

from monoforge.installer.models.enums import PackageManagerKind

CONFIG_FILENAME = "monoforge.json"
"""Monorepo configuration file at the repository root."""

COMMON_FOLDER_NAME = "common"
TEMP_FOLDER_NAME = "temp"
CONFIG_FOLDER_NAME = "config"
TOOL_CONFIG_FOLDER_NAME = "monoforge"
SUBSPACES_FOLDER_NAME = "subspaces"
DEFAULT_SUBSPACE_NAME = "default"

RECYCLER_FOLDER_NAME = "monoforge-recycler"
NODE_MODULES_FOLDER_NAME = "node_modules"
PACKAGE_JSON_FILENAME = "package.json"
NPMRC_FILENAME = ".npmrc"
PNPMFILE_FILENAME = ".pnpmfile.cjs"
PNPM_WORKSPACE_FILENAME = "pnpm-workspace.yaml"
PNPM_STORE_FOLDER_NAME = "pnpm-store"
NPM_CACHE_FOLDER_NAME = "npm-cache"
YARN_CACHE_FOLDER_NAME = "yarn-cache"

COMMON_VERSIONS_FILENAME = "common-versions.json"
REPO_STATE_FILENAME = "repo-state.json"
BROWSER_APPROVED_PACKAGES_FILENAME = "browser-approved-packages.json"
NONBROWSER_APPROVED_PACKAGES_FILENAME = "nonbrowser-approved-packages.json"

LAST_INSTALL_FLAG_FILENAME = "last-install.flag"
LAST_LINK_FLAG_FILENAME = "last-link.flag"
LAST_CHECK_FLAG_FILENAME = "last-check.flag"

SHRINKWRAP_FILENAMES: dict[PackageManagerKind, str] = {
    PackageManagerKind.NPM: "npm-shrinkwrap.json",
    PackageManagerKind.PNPM: "pnpm-lock.yaml",
    PackageManagerKind.YARN: "yarn.lock",
}

WORKSPACE_PREFIX = "workspace:"
NO_NPMRC_HASH = "<NO NPMRC>"
NO_FILE_HASH = "<NO FILE>"

PACKAGE_NAME = "monoforge"
"""Name under which monoforge itself is published (release-availability check)."""
