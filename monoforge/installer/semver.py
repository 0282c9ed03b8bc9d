"""npm-style semver ranges.

npm ranges (``^1.2.3``, ``~1.2``, ``1.x``, ``1.2.3 - 2.0.0``, ``>=1 <2 || 3``)
are desugared into plain comparator sets.  The release triple is ordered by
``packaging.version.Version``; prerelease tags follow semver precedence
(dot-separated identifiers, numeric ones below alphanumeric ones, a shorter
matching prefix first) since PEP 440 has no equivalent for arbitrary tags.

Prerelease rule (same as npm): a prerelease version only satisfies a
comparator set when one of its comparators carries a prerelease on the same
``major.minor.patch`` tuple.
"""

from __future__ import annotations

import operator
import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

from packaging.version import Version

_VERSION_RE = re.compile(
    r"^\s*[v=]?\s*(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)"
    r"(?:-([0-9A-Za-z.-]+))?(?:\+[0-9A-Za-z.-]+)?\s*$"
)
_PARTIAL_RE = re.compile(
    r"^[v=]?(\d+|[xX*])(?:\.(\d+|[xX*]))?(?:\.(\d+|[xX*]))?"
    r"(?:-([0-9A-Za-z.-]+))?(?:\+[0-9A-Za-z.-]+)?$"
)
_OPERATOR_RE = re.compile(r"^(<=|>=|<|>|=|\^|~>|~)?(.*)$")
_OPERATOR_SPACE_RE = re.compile(r"(<=|>=|<|>|=|\^|~>|~)\s+")
_HYPHEN_RE = re.compile(r"^(\S+)\s+-\s+(\S+)$")

_COMPARE: dict[str, Callable[[Any, Any], bool]] = {
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
    "==": operator.eq,
}


class SemverRangeError(ValueError):
    """The text is not a valid npm version range."""

    def __init__(self, text: str) -> None:
        super().__init__(f"Invalid version range: {text!r}")


def _prerelease_key(prerelease: str | None) -> tuple[Any, ...]:
    # A release sorts after every prerelease of the same triple
    if not prerelease:
        return (1,)
    identifiers = tuple((0, int(part), "") if part.isdigit() else (1, 0, part) for part in prerelease.split("."))
    return (0, identifiers)


@dataclass(frozen=True)
class SemVer:
    major: int
    minor: int
    patch: int
    prerelease: str | None = None

    @property
    def release(self) -> tuple[int, int, int]:
        return (self.major, self.minor, self.patch)

    @property
    def key(self) -> tuple[Version, tuple[Any, ...]]:
        """Sort key: release version, then semver prerelease precedence."""
        return (Version(f"{self.major}.{self.minor}.{self.patch}"), _prerelease_key(self.prerelease))

    def __str__(self) -> str:
        text = f"{self.major}.{self.minor}.{self.patch}"
        return f"{text}-{self.prerelease}" if self.prerelease else text


@dataclass(frozen=True)
class _Comparator:
    op: str
    target: SemVer

    def test(self, version: SemVer) -> bool:
        return _COMPARE[self.op](version.key, self.target.key)


# -- Parsing -----------------------------------------------------------------


def parse_version(text: str) -> SemVer | None:
    """Parse an exact version, returning ``None`` when *text* is not one."""
    match = _VERSION_RE.match(text)
    if match is None:
        return None
    major, minor, patch, prerelease = match.groups()
    return SemVer(int(major), int(minor), int(patch), prerelease)


def valid_version(text: str) -> str | None:
    """Return the cleaned version string, or ``None``."""
    parsed = parse_version(text)
    return str(parsed) if parsed else None


def valid_range(text: str) -> bool:
    try:
        _parse_range(text)
    except SemverRangeError:
        return False
    return True


def _parse_partial(text: str) -> tuple[int | None, int | None, int | None, str | None]:
    match = _PARTIAL_RE.match(text)
    if match is None:
        raise SemverRangeError(text)
    parts: list[int | None] = [None if g is None or g in ("x", "X", "*") else int(g) for g in match.group(1, 2, 3)]
    # A wildcard swallows everything to its right: "1.x.3" means "1.x"
    if parts[0] is None:
        parts = [None, None, None]
    elif parts[1] is None:
        parts[2] = None
    prerelease = match.group(4) if parts[2] is not None else None
    return parts[0], parts[1], parts[2], prerelease


def _at_least(major: int, minor: int | None, patch: int | None, prerelease: str | None) -> _Comparator:
    return _Comparator(">=", SemVer(major, minor or 0, patch or 0, prerelease))


def _below_next(major: int, minor: int | None) -> _Comparator:
    """Upper bound excluding the next minor (or major, when minor is unknown)."""
    if minor is None:
        return _Comparator("<", SemVer(major + 1, 0, 0))
    return _Comparator("<", SemVer(major, minor + 1, 0))


def _desugar(op: str, text: str) -> list[_Comparator]:
    major, minor, patch, prerelease = _parse_partial(text)
    nothing = [_Comparator("<", SemVer(0, 0, 0, "0"))]

    match op:
        case "" | "=":
            if major is None:
                return []
            if patch is None:
                return [_at_least(major, minor, 0, None), _below_next(major, minor)]
            return [_Comparator("==", SemVer(major, minor or 0, patch, prerelease))]
        case "~" | "~>":
            if major is None:
                return []
            return [_at_least(major, minor, patch, prerelease), _below_next(major, minor)]
        case "^":
            if major is None:
                return []
            lower = _at_least(major, minor, patch, prerelease)
            if major > 0 or minor is None:
                return [lower, _Comparator("<", SemVer(major + 1, 0, 0))]
            if minor > 0 or patch is None:
                return [lower, _Comparator("<", SemVer(0, minor + 1, 0))]
            return [lower, _Comparator("<", SemVer(0, 0, patch + 1))]
        case ">":
            if major is None:
                return nothing
            if patch is None:
                bound = _below_next(major, minor).target
                return [_Comparator(">=", bound)]
            return [_Comparator(">", SemVer(major, minor or 0, patch, prerelease))]
        case ">=":
            return [] if major is None else [_at_least(major, minor, patch, prerelease)]
        case "<":
            if major is None:
                return nothing
            return [_Comparator("<", SemVer(major, minor or 0, patch or 0, prerelease))]
        case "<=":
            if major is None:
                return []
            if patch is None:
                return [_below_next(major, minor)]
            return [_Comparator("<=", SemVer(major, minor or 0, patch, prerelease))]
    raise SemverRangeError(text)


def _parse_set(text: str) -> list[_Comparator]:
    text = _OPERATOR_SPACE_RE.sub(r"\1", text.strip())
    hyphen = _HYPHEN_RE.match(text)
    if hyphen:
        low, high = hyphen.groups()
        comparators = _desugar(">=", low)
        major, minor, patch, prerelease = _parse_partial(high)
        if major is not None:
            if patch is None:
                comparators.append(_below_next(major, minor))
            else:
                comparators.append(_Comparator("<=", SemVer(major, minor or 0, patch, prerelease)))
        return comparators

    comparators: list[_Comparator] = []
    for token in text.split():
        match = _OPERATOR_RE.match(token)
        if match is None:  # pragma: no cover - the pattern accepts any string
            raise SemverRangeError(text)
        op, rest = match.groups()
        comparators.extend(_desugar(op or "", rest))
    return comparators


def _parse_range(text: str) -> list[list[_Comparator]]:
    return [_parse_set(part) for part in text.split("||")]


# -- Queries -----------------------------------------------------------------


def _test_set(comparators: list[_Comparator], version: SemVer) -> bool:
    if not all(c.test(version) for c in comparators):
        return False
    if version.prerelease is None:
        return True
    return any(c.target.prerelease is not None and c.target.release == version.release for c in comparators)


def satisfies(version: str, range_text: str) -> bool:
    """Whether *version* is inside *range_text*.  Invalid input never matches."""
    parsed = parse_version(version)
    if parsed is None:
        return False
    try:
        sets = _parse_range(range_text)
    except SemverRangeError:
        return False
    return any(_test_set(s, parsed) for s in sets)


def sort_versions(versions: Iterable[str], *, reverse: bool = False) -> list[str]:
    """Sort the valid versions in *versions*; invalid entries are dropped."""
    parsed = [(p, v) for v in versions if (p := parse_version(v)) is not None]
    parsed.sort(key=lambda item: item[0].key, reverse=reverse)
    return [v for _, v in parsed]


def max_satisfying(versions: Iterable[str], range_text: str) -> str | None:
    for version in sort_versions(versions, reverse=True):
        if satisfies(version, range_text):
            return version
    return None
