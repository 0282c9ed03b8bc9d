"""Classification of the version strings found in package.json."""

from __future__ import annotations

from dataclasses import dataclass

from monoforge.installer import semver
from monoforge.installer.models.enums import SpecifierType

_ALIAS_PREFIX = "npm:"
_WORKSPACE_PREFIX = "workspace:"


@dataclass(frozen=True)
class DependencySpecifier:
    """A package name plus the version string that selects it.

    ``npm:target@range`` aliases carry the parsed target in ``alias_target``.
    """

    package_name: str
    version_specifier: str
    specifier_type: SpecifierType
    alias_target: DependencySpecifier | None = None

    @classmethod
    def parse(cls, package_name: str, version_specifier: str) -> DependencySpecifier:
        spec = version_specifier.strip()

        if spec.startswith(_ALIAS_PREFIX):
            target = spec[len(_ALIAS_PREFIX) :]
            # "@scope/name@range": the separator is the first "@" after position 0
            separator = target.find("@", 1)
            if separator == -1:
                target_name, target_range = target, ""
            else:
                target_name, target_range = target[:separator], target[separator + 1 :]
            return cls(
                package_name,
                spec,
                SpecifierType.ALIAS,
                alias_target=cls.parse(target_name, target_range),
            )

        if spec.startswith(_WORKSPACE_PREFIX):
            return cls(package_name, spec, SpecifierType.WORKSPACE)
        if semver.valid_version(spec):
            return cls(package_name, spec, SpecifierType.VERSION)
        if semver.valid_range(spec):
            return cls(package_name, spec, SpecifierType.RANGE)
        if ":" in spec or "/" in spec:
            return cls(package_name, spec, SpecifierType.REMOTE)
        return cls(package_name, spec, SpecifierType.TAG)

    @property
    def effective_package_name(self) -> str:
        """The registry package actually installed (the alias target, if any)."""
        return self.alias_target.package_name if self.alias_target else self.package_name

    @property
    def workspace_range(self) -> str | None:
        """``"^1.0.0"`` for ``"workspace:^1.0.0"``; ``None`` when not a workspace reference."""
        if self.specifier_type is not SpecifierType.WORKSPACE:
            return None
        return self.version_specifier[len(_WORKSPACE_PREFIX) :]


def split_package_argument(argument: str) -> tuple[str, str | None]:
    """Split ``"name@spec"`` (scoped names allowed) into name and optional spec."""
    separator = argument.find("@", 1)
    if separator == -1:
        return argument, None
    return argument[:separator], argument[separator + 1 :] or None
