"""Approved-packages governance.

Every third-party dependency of a project that has a review category must
be listed, with that category, in either the browser or the non-browser
approved-packages file.  The checker computes the updated lists up front;
callers decide whether an out-of-date result is a warning or an error.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from loguru import logger

from monoforge.installer.models import DependencySpecifier, DependencyType
from monoforge.installer.store import ApprovedPackagesFile

if TYPE_CHECKING:
    from monoforge.installer.monorepo import Monorepo


class ApprovedPackagesChecker:
    def __init__(self, monorepo: Monorepo) -> None:
        self.monorepo = monorepo
        policy = monorepo.config.approved_packages_policy
        self.enabled = policy.enabled
        self._ignored_scopes = set(policy.ignored_npm_scopes)

        self.browser_approved_packages = ApprovedPackagesFile.load(monorepo.browser_approved_packages_path)
        self.nonbrowser_approved_packages = ApprovedPackagesFile.load(monorepo.nonbrowser_approved_packages_path)
        self.approved_packages_files_are_out_of_date = False

        if self.enabled:
            # An unreadable list is rebuilt from the projects on the next rewrite
            if self.browser_approved_packages.unreadable or self.nonbrowser_approved_packages.unreadable:
                self.approved_packages_files_are_out_of_date = True
            self._update_from_projects()

    def _update_from_projects(self) -> None:
        for project in self.monorepo.projects:
            if not project.review_category:
                continue
            for name, spec, _ in project.package_json.all_dependencies(tuple(DependencyType)):
                package_name = DependencySpecifier.parse(name, spec).effective_package_name
                if self._scope_of(package_name) in self._ignored_scopes:
                    continue
                if self._add_or_update(package_name, project.review_category):
                    logger.debug("Approving {} for review category '{}'", package_name, project.review_category)
                    self.approved_packages_files_are_out_of_date = True

    def _add_or_update(self, package_name: str, review_category: str) -> bool:
        # Packages already known as non-browser stay there; everything else defaults to browser
        if self.nonbrowser_approved_packages.get_item(package_name) is not None:
            return self.nonbrowser_approved_packages.add_or_update(package_name, review_category)
        return self.browser_approved_packages.add_or_update(package_name, review_category)

    @staticmethod
    def _scope_of(package_name: str) -> str | None:
        if package_name.startswith("@") and "/" in package_name:
            return package_name.split("/", 1)[0]
        return None

    def rewrite_config_files(self) -> None:
        self.browser_approved_packages.save()
        self.nonbrowser_approved_packages.save()

    def unapproved_dependencies(self) -> list[tuple[str, str]]:
        """``(package, category)`` pairs the on-disk lists would still reject."""
        on_disk_browser = ApprovedPackagesFile.load(self.monorepo.browser_approved_packages_path)
        on_disk_nonbrowser = ApprovedPackagesFile.load(self.monorepo.nonbrowser_approved_packages_path)
        missing: set[tuple[str, str]] = set()
        for item in [*self.browser_approved_packages.items, *self.nonbrowser_approved_packages.items]:
            for category in item.allowed_categories:
                allowed = [
                    existing
                    for existing in (on_disk_browser.get_item(item.name), on_disk_nonbrowser.get_item(item.name))
                    if existing is not None and category in existing.allowed_categories
                ]
                if not allowed:
                    missing.add((item.name, category))
        return sorted(missing)
