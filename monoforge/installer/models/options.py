"""Caller-facing option models for install and add operations."""

from __future__ import annotations

from pydantic import BaseModel, Field

from monoforge.installer.models.enums import DependencyType, RangeStyle


class InstallOptions(BaseModel):
    """Options for a single ``InstallOrchestrator.run`` call."""

    allow_shrinkwrap_updates: bool = False
    """True for ``update``: the committed lockfile may be rewritten."""

    subspace_names: list[str] | None = None
    """Subspaces to install; ``None`` means all of them."""

    purge: bool = False
    full_upgrade: bool = False
    """Ignore the committed lockfile and resolve everything afresh."""

    recheck_shrinkwrap: bool = False
    check_only: bool = False

    selected_projects: list[str] = Field(default_factory=list)
    """Project names the install is filtered to; empty means unfiltered."""

    filter_arguments: list[str] = Field(default_factory=list)
    """Raw ``--filter`` arguments forwarded to the package manager."""

    max_install_attempts: int = Field(default=1, ge=1)
    network_concurrency: int | None = None
    offline: bool = False

    @property
    def is_filtered(self) -> bool:
        return bool(self.selected_projects or self.filter_arguments)


class PackageToAdd(BaseModel):
    package_name: str
    version: str | None = None
    range_style: RangeStyle = RangeStyle.TILDE


class AddOptions(BaseModel):
    project_names: list[str]
    packages: list[PackageToAdd]
    dependency_type: DependencyType = DependencyType.REGULAR
    make_consistent: bool = False
    skip_update: bool = False
    max_install_attempts: int = Field(default=1, ge=1)
