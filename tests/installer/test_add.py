"""Unit tests for the add/remove dependency workflow."""

from __future__ import annotations

import json

import pytest

from monoforge.installer.errors import InvalidOptionsError
from monoforge.installer.execution import DependencyAdder, default_range_style
from monoforge.installer.execution.resolver import InconsistentVersionError
from monoforge.installer.models import AddOptions, DependencyType, InstallOptions, PackageToAdd, RangeStyle
from monoforge.installer.monorepo import ProjectNotFoundError

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class _RecordingOrchestrator:
    runs: list[InstallOptions] = []

    def __init__(self, monorepo, *, runner=None) -> None:
        self.monorepo = monorepo
        self.runner = runner

    async def run(self, options: InstallOptions) -> list:
        _RecordingOrchestrator.runs.append(options)
        return []


@pytest.fixture
def monorepo(make_monorepo):
    return make_monorepo(
        [
            {"name": "app", "dependencies": {"react": "~18.2.0"}},
            {"name": "admin", "dependencies": {"react": "~18.1.0"}},
            {"name": "lib"},
        ],
        ensureConsistentVersions=True,
    )


@pytest.fixture
def adder(monorepo, make_runner) -> DependencyAdder:
    _RecordingOrchestrator.runs = []
    runner = make_runner(
        responses={
            "view react versions --json": json.dumps(["18.1.0", "18.2.0", "18.3.1"]),
            "view zod@latest version": "3.22.4",
        }
    )
    return DependencyAdder(monorepo, runner=runner, orchestrator_factory=_RecordingOrchestrator)


def _saved(monorepo, name: str) -> dict:
    return json.loads(monorepo.get_project(name).package_json_path.read_text())


# ---------------------------------------------------------------------------
# Range style
# ---------------------------------------------------------------------------


def test_default_range_style() -> None:
    assert default_range_style(None) is RangeStyle.TILDE
    assert default_range_style("latest", caret=True) is RangeStyle.CARET
    assert default_range_style(None, exact=True) is RangeStyle.EXACT
    assert default_range_style("^1.0.0") is RangeStyle.PASSTHROUGH
    with pytest.raises(InvalidOptionsError):
        default_range_style("1.0.0", exact=True)


# ---------------------------------------------------------------------------
# Add
# ---------------------------------------------------------------------------


async def test_add_writes_package_json_and_updates(adder: DependencyAdder, monorepo) -> None:
    options = AddOptions(
        project_names=["lib"],
        packages=[PackageToAdd(package_name="zod")],
        dependency_type=DependencyType.DEV,
    )

    [selection] = await adder.add(options)

    assert selection.specifier == "~3.22.4"
    assert _saved(monorepo, "lib")["devDependencies"] == {"zod": "~3.22.4"}
    [run] = _RecordingOrchestrator.runs
    assert run.allow_shrinkwrap_updates
    assert run.subspace_names == ["default"]


async def test_add_with_skip_update(adder: DependencyAdder, monorepo) -> None:
    options = AddOptions(project_names=["lib"], packages=[PackageToAdd(package_name="zod")], skip_update=True)
    await adder.add(options)
    assert _RecordingOrchestrator.runs == []
    assert "zod" in _saved(monorepo, "lib")["dependencies"]


async def test_add_inconsistent_version_is_rejected(adder: DependencyAdder, monorepo) -> None:
    options = AddOptions(
        project_names=["lib"],
        packages=[PackageToAdd(package_name="react", version="^18.3.0", range_style=RangeStyle.PASSTHROUGH)],
    )
    with pytest.raises(InconsistentVersionError):
        await adder.add(options)
    assert "dependencies" not in _saved(monorepo, "lib")


async def test_add_make_consistent_updates_other_projects(adder: DependencyAdder, monorepo) -> None:
    options = AddOptions(
        project_names=["lib"],
        packages=[PackageToAdd(package_name="react", version="~18.2.0", range_style=RangeStyle.PASSTHROUGH)],
        make_consistent=True,
    )

    await adder.add(options)

    assert _saved(monorepo, "lib")["dependencies"] == {"react": "~18.2.0"}
    assert _saved(monorepo, "admin")["dependencies"] == {"react": "~18.2.0"}
    assert _saved(monorepo, "app")["dependencies"] == {"react": "~18.2.0"}


async def test_add_to_unknown_project(adder: DependencyAdder) -> None:
    with pytest.raises(ProjectNotFoundError):
        await adder.add(AddOptions(project_names=["nope"], packages=[PackageToAdd(package_name="zod")]))


# ---------------------------------------------------------------------------
# Remove
# ---------------------------------------------------------------------------


async def test_remove(adder: DependencyAdder, monorepo) -> None:
    await adder.remove(["app"], ["react"])

    assert _saved(monorepo, "app")["dependencies"] == {}
    assert len(_RecordingOrchestrator.runs) == 1


async def test_remove_missing_dependency(adder: DependencyAdder) -> None:
    with pytest.raises(InvalidOptionsError, match="does not have a dependency"):
        await adder.remove(["lib"], ["react"], skip_update=True)
