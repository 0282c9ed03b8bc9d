"""Result of dependency-version resolution."""

from __future__ import annotations

from pydantic import BaseModel

from monoforge.installer.models.enums import SelectionReason


class VersionSelection(BaseModel):
    package_name: str
    specifier: str
    """The string written into package.json."""

    reason: SelectionReason
