"""Shared fixtures: a small on-disk monorepo and a fake package manager.

Nothing here touches the network or a real package manager.  ``FakeRunner``
records every invocation and simulates an install by creating the temp
``node_modules`` folder (and, optionally, a fresh lockfile).
"""

from __future__ import annotations

import json
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any

import pytest
import yaml

from monoforge.installer.execution.process import ProcessFailedError
from monoforge.installer.models import DependencyType
from monoforge.installer.monorepo import Monorepo, Subspace
from monoforge.installer.settings import MonoforgeSettings, get_settings
from monoforge.installer.shrinkwrap.base import importer_key


@pytest.fixture(autouse=True)
def _isolated_settings(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Keep the per-user global folder inside the test's tmp_path."""
    monkeypatch.setenv("MONOFORGE_GLOBAL_FOLDER", str(tmp_path / "global"))
    monkeypatch.setenv("MONOFORGE_SUPPRESS_RELEASE_CHECK", "true")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings(tmp_path: Path) -> MonoforgeSettings:
    return MonoforgeSettings(global_folder=tmp_path / "global", suppress_release_check=True)


# ---------------------------------------------------------------------------
# Monorepo factory
# ---------------------------------------------------------------------------


def _folder_name(package_name: str) -> str:
    return package_name.rsplit("/", 1)[-1]


def write_package_json(folder: Path, project: dict[str, Any]) -> None:
    folder.mkdir(parents=True, exist_ok=True)
    document: dict[str, Any] = {"name": project["name"], "version": project.get("version", "1.0.0")}
    for section in ("dependencies", "devDependencies", "peerDependencies", "optionalDependencies"):
        if project.get(section):
            document[section] = project[section]
    (folder / "package.json").write_text(json.dumps(document, indent=2) + "\n")


MonorepoFactory = Callable[..., Monorepo]


@pytest.fixture
def make_monorepo(tmp_path: Path, settings: MonoforgeSettings) -> MonorepoFactory:
    """Materialise ``monoforge.json`` plus one folder per project.

    Each project is a dict with ``name`` and optionally ``version``, the
    dependency sections, ``reviewCategory``, ``subspaceName`` and
    ``decoupledLocalDependencies``.  Extra keyword arguments go straight
    into ``monoforge.json``.
    """

    def _make(
        projects: list[dict[str, Any]],
        *,
        package_manager: str = "pnpm",
        package_manager_version: str = "8.15.0",
        **config: Any,
    ) -> Monorepo:
        root = tmp_path / "repo"
        root.mkdir(exist_ok=True)
        specs = []
        for project in projects:
            folder = f"projects/{_folder_name(project['name'])}"
            write_package_json(root / folder, project)
            spec: dict[str, Any] = {"packageName": project["name"], "projectFolder": folder}
            for key in ("reviewCategory", "subspaceName", "decoupledLocalDependencies"):
                if key in project:
                    spec[key] = project[key]
            specs.append(spec)

        document = {
            "packageManager": package_manager,
            "packageManagerVersion": package_manager_version,
            "projects": specs,
            **config,
        }
        (root / "monoforge.json").write_text(json.dumps(document, indent=2))
        return Monorepo.load(root, settings)

    return _make


def write_pnpm_lockfile(subspace: Subspace, path: Path | None = None) -> Path:
    """Write a lockfile (format 6) whose importers match the projects exactly."""
    importers: dict[str, Any] = {".": {}}
    for project in subspace.projects:
        entry: dict[str, Any] = {}
        for section in ("dependencies", "devDependencies", "optionalDependencies"):
            deps = project.package_json.dependencies(DependencyType(section))
            if deps:
                entry[section] = {name: {"specifier": spec, "version": spec.lstrip("^~")} for name, spec in deps.items()}
        importers[importer_key(project, subspace)] = entry
    target = path or subspace.committed_shrinkwrap_path
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(yaml.safe_dump({"lockfileVersion": "6.0", "importers": importers}, sort_keys=True))
    return target


# ---------------------------------------------------------------------------
# Fake package manager
# ---------------------------------------------------------------------------


class FakeRunner:
    """Stands in for ``PackageManagerRunner``.

    ``fail_first`` makes that many install attempts fail before one succeeds,
    exercising the retry path exactly like a flaky network would.
    """

    def __init__(
        self,
        *,
        responses: dict[str, str] | None = None,
        on_install: Callable[[Path], None] | None = None,
        fail_first: int = 0,
    ) -> None:
        self.responses = responses or {}
        self.installs: list[list[str]] = []
        self.queries: list[list[str]] = []
        self.retries = 0
        self._on_install = on_install
        self._failures_left = fail_first

    async def run(self, args, *, cwd: Path, env=None, max_attempts: int = 1, on_retry=None) -> None:
        attempt = 0
        while True:
            attempt += 1
            self.installs.append(list(args))
            if self._failures_left > 0:
                self._failures_left -= 1
                (cwd / "node_modules").mkdir(parents=True, exist_ok=True)
                if attempt >= max_attempts:
                    raise ProcessFailedError(["pnpm", *args], 1)
                self.retries += 1
                if on_retry is not None:
                    on_retry()
                continue
            node_modules = cwd / "node_modules"
            node_modules.mkdir(parents=True, exist_ok=True)
            (node_modules / ".modules.yaml").write_text("layoutVersion: 5\n")
            if self._on_install is not None:
                self._on_install(cwd)
            return

    async def capture(self, args, *, cwd: Path, max_attempts: int = 1, timeout: float | None = None) -> str:
        self.queries.append(list(args))
        key = " ".join(args)
        if key not in self.responses:
            raise ProcessFailedError(["npm", *args], 1, f"no fake response for {key}")
        return self.responses[key]


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def make_runner() -> type[FakeRunner]:
    return FakeRunner


@pytest.fixture
def write_lockfile() -> Callable[..., Path]:
    return write_pnpm_lockfile
