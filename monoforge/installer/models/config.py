"""Committed configuration files: monoforge.json, common-versions.json, repo-state.json.

JSON keys are camelCase (the JavaScript ecosystem's convention); the Python
attributes are snake_case via an alias generator.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Self

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from monoforge.installer.errors import ResourceError
from monoforge.installer.models.enums import PackageManagerKind, PnpmStoreMode


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    @classmethod
    def _load_file(cls, path: Path) -> Self:
        try:
            return cls.model_validate_json(path.read_text(encoding="utf-8"))
        except ValidationError as exc:
            msg = f"Invalid {path.name} at {path}:\n{exc}"
            raise ResourceError(msg) from exc


# -- monoforge.json ----------------------------------------------------------


class EnvironmentVariableSpec(_CamelModel):
    """A variable injected into the package-manager environment.

    An already-set process variable wins unless ``override`` is true.
    """

    value: str
    override: bool = False


class ProjectSpec(_CamelModel):
    package_name: str
    project_folder: str
    """Folder relative to the monorepo root."""

    review_category: str | None = None
    subspace_name: str | None = None
    decoupled_local_dependencies: list[str] = Field(default_factory=list)
    """Local project names consumed from the registry instead of linked."""


class ApprovedPackagesPolicySpec(_CamelModel):
    review_categories: list[str] = Field(default_factory=list)
    ignored_npm_scopes: list[str] = Field(default_factory=list)

    @property
    def enabled(self) -> bool:
        return bool(self.review_categories)


class ToolOptionsSpec(_CamelModel):
    environment_variables: dict[str, EnvironmentVariableSpec] = Field(default_factory=dict)


class PnpmOptionsSpec(ToolOptionsSpec):
    pnpm_store: PnpmStoreMode = PnpmStoreMode.LOCAL
    strict_peer_dependencies: bool = False
    use_workspaces: bool = True


class MonorepoConfig(_CamelModel):
    """Parsed ``monoforge.json``."""

    package_manager: PackageManagerKind
    package_manager_version: str
    projects: list[ProjectSpec] = Field(default_factory=list)

    subspaces_enabled: bool = False
    subspace_names: list[str] = Field(default_factory=list)

    ensure_consistent_versions: bool = False
    approved_packages_policy: ApprovedPackagesPolicySpec = Field(default_factory=ApprovedPackagesPolicySpec)

    pnpm_options: PnpmOptionsSpec = Field(default_factory=PnpmOptionsSpec)
    npm_options: ToolOptionsSpec = Field(default_factory=ToolOptionsSpec)
    yarn_options: ToolOptionsSpec = Field(default_factory=ToolOptionsSpec)

    @classmethod
    def load(cls, path: Path) -> MonorepoConfig:
        return cls._load_file(path)

    @property
    def tool_options(self) -> ToolOptionsSpec:
        match self.package_manager:
            case PackageManagerKind.PNPM:
                return self.pnpm_options
            case PackageManagerKind.NPM:
                return self.npm_options
            case PackageManagerKind.YARN:
                return self.yarn_options

    def tool_options_hash(self) -> str:
        """Hash of the active package manager's options, part of the install fingerprint."""
        payload = self.tool_options.model_dump_json(by_alias=True)
        return hashlib.sha1(payload.encode()).hexdigest()  # noqa: S324


# -- common-versions.json ----------------------------------------------------


class CommonVersionsConfig(_CamelModel):
    preferred_versions: dict[str, str] = Field(default_factory=dict)
    ensure_consistent_versions: bool | None = None
    """Overrides the monorepo-wide flag for this subspace when set."""

    implicitly_preferred_versions: bool = True
    allowed_alternative_versions: dict[str, list[str]] = Field(default_factory=dict)

    @classmethod
    def load(cls, path: Path) -> CommonVersionsConfig:
        """Load the file, returning defaults when it does not exist."""
        if not path.is_file():
            return cls()
        return cls._load_file(path)

    def preferred_versions_hash(self) -> str:
        payload = json.dumps(sorted(self.preferred_versions.items()), separators=(",", ":"))
        return hashlib.sha1(payload.encode()).hexdigest()  # noqa: S324


# -- repo-state.json ---------------------------------------------------------


class RepoState(_CamelModel):
    preferred_versions_hash: str | None = None

    @classmethod
    def load(cls, path: Path) -> RepoState:
        if not path.is_file():
            return cls()
        return cls._load_file(path)

    def dump(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True, indent=2) + "\n"
