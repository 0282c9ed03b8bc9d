"""The two committed approved-package lists.

File format::

    {
      "packages": [
        {"name": "left-pad", "allowedCategories": ["production"]}
      ]
    }

Entries and categories are written sorted so rewrites produce stable diffs.
"""

from __future__ import annotations

import json
from pathlib import Path

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from monoforge.installer.store.files import atomic_write


class ApprovedPackageItem(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    name: str
    allowed_categories: set[str] = Field(default_factory=set)


class _ApprovedPackagesDocument(BaseModel):
    packages: list[ApprovedPackageItem] = Field(default_factory=list)


class ApprovedPackagesFile:
    def __init__(self, path: Path, items: list[ApprovedPackageItem] | None = None, *, unreadable: bool = False) -> None:
        self.path = path
        self.unreadable = unreadable
        self._items = {item.name: item for item in items or []}

    @classmethod
    def load(cls, path: Path) -> ApprovedPackagesFile:
        """Load *path*; a missing or unreadable file is an empty list."""
        if not path.is_file():
            return cls(path)
        try:
            document = _ApprovedPackagesDocument.model_validate_json(path.read_text(encoding="utf-8"))
        except (ValidationError, UnicodeDecodeError) as exc:
            logger.warning("Ignoring unreadable approved packages file {}: {}", path, exc)
            return cls(path, unreadable=True)
        return cls(path, document.packages)

    @property
    def items(self) -> list[ApprovedPackageItem]:
        return [self._items[name] for name in sorted(self._items)]

    def get_item(self, package_name: str) -> ApprovedPackageItem | None:
        return self._items.get(package_name)

    def add_or_update(self, package_name: str, review_category: str) -> bool:
        """Allow *package_name* in *review_category*.  Returns True if anything changed."""
        item = self._items.get(package_name)
        if item is None:
            self._items[package_name] = ApprovedPackageItem(name=package_name, allowed_categories={review_category})
            return True
        if review_category in item.allowed_categories:
            return False
        item.allowed_categories.add(review_category)
        return True

    def serialize(self) -> str:
        packages = [{"name": item.name, "allowedCategories": sorted(item.allowed_categories)} for item in self.items]
        return json.dumps({"packages": packages}, indent=2) + "\n"

    def save(self) -> None:
        atomic_write(self.path, self.serialize())
