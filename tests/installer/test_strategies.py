"""Unit tests for the package-manager strategies and their shared steps."""

from __future__ import annotations

import json
import os

import pytest
import yaml

from monoforge.installer.errors import LocalVersionMismatchError, PolicyError
from monoforge.installer.execution.strategies import (
    NpmInstallStrategy,
    PnpmInstallStrategy,
    YarnInstallStrategy,
    create_strategy,
)
from monoforge.installer.execution.strategies.common import (
    link_local_projects,
    package_manager_environment,
    sync_npmrc,
    validate_workspace_references,
)
from monoforge.installer.managers import AsyncRecycler
from monoforge.installer.models import InstallOptions, PackageManagerKind
from monoforge.installer.shrinkwrap import load_shrinkwrap_file

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


@pytest.fixture
def recycler(tmp_path) -> AsyncRecycler:
    return AsyncRecycler(tmp_path / "recycler")


# ---------------------------------------------------------------------------
# .npmrc and environment
# ---------------------------------------------------------------------------


def test_sync_npmrc_comments_out_missing_variables(tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PRESENT_TOKEN", "abc")
    monkeypatch.delenv("MISSING_TOKEN", raising=False)
    source = tmp_path / "config" / ".npmrc"
    source.parent.mkdir()
    source.write_text(
        "registry=https://registry.npmjs.org/\n"
        "//a.example/:_authToken=${PRESENT_TOKEN}\n"
        "//b.example/:_authToken=${MISSING_TOKEN}\n"
        "//c.example/:_authToken=${OPTIONAL_TOKEN?}\n"
    )
    target_folder = tmp_path / "temp"
    target_folder.mkdir()

    digest = sync_npmrc(source, target_folder)

    lines = (target_folder / ".npmrc").read_text().splitlines()
    assert "//a.example/:_authToken=${PRESENT_TOKEN}" in lines
    assert "; MISSING ENVIRONMENT VARIABLE: MISSING_TOKEN" in lines
    assert "; //b.example/:_authToken=${MISSING_TOKEN}" in lines
    assert "//c.example/:_authToken=${OPTIONAL_TOKEN?}" in lines
    assert digest is not None and len(digest) == 40


def test_sync_npmrc_removes_stale_copy(tmp_path) -> None:
    (tmp_path / ".npmrc").write_text("stale\n")
    assert sync_npmrc(tmp_path / "missing" / ".npmrc", tmp_path) is None
    assert not (tmp_path / ".npmrc").exists()


def test_environment_respects_override(make_monorepo, monkeypatch: pytest.MonkeyPatch) -> None:
    monorepo = make_monorepo(
        [{"name": "a"}],
        pnpmOptions={
            "environmentVariables": {
                "KEEP_ME": {"value": "configured"},
                "REPLACE_ME": {"value": "configured", "override": True},
                "NEW_ONE": {"value": "configured"},
            }
        },
    )
    monkeypatch.setenv("KEEP_ME", "from-shell")
    monkeypatch.setenv("REPLACE_ME", "from-shell")
    monkeypatch.delenv("NEW_ONE", raising=False)
    subspace = monorepo.get_subspace("default")

    environment = package_manager_environment(subspace)

    assert "KEEP_ME" not in environment
    assert environment["REPLACE_ME"] == "configured"
    assert environment["NEW_ONE"] == "configured"
    assert environment["NPM_CONFIG_WORKSPACE_DIR"] == str(subspace.temp_folder)


# ---------------------------------------------------------------------------
# Workspace references
# ---------------------------------------------------------------------------


def test_plain_reference_to_local_project_is_rewritten(make_monorepo) -> None:
    monorepo = make_monorepo([{"name": "app", "dependencies": {"lib": "^1.0.0"}}, {"name": "lib", "version": "1.2.0"}])
    subspace = monorepo.get_subspace("default")

    assert validate_workspace_references(subspace, allow_updates=True)
    saved = json.loads(monorepo.get_project("app").package_json_path.read_text())
    assert saved["dependencies"]["lib"] == "workspace:^1.0.0"
    # Idempotent once rewritten
    assert not validate_workspace_references(subspace, allow_updates=False)


def test_plain_reference_without_updates_is_rejected(make_monorepo) -> None:
    monorepo = make_monorepo([{"name": "app", "dependencies": {"lib": "^1.0.0"}}, {"name": "lib", "version": "1.2.0"}])
    with pytest.raises(PolicyError, match="workspace:"):
        validate_workspace_references(monorepo.get_subspace("default"), allow_updates=False)


def test_dry_run_reports_without_writing(make_monorepo) -> None:
    monorepo = make_monorepo([{"name": "app", "dependencies": {"lib": "^1.0.0"}}, {"name": "lib", "version": "1.2.0"}])
    path = monorepo.get_project("app").package_json_path
    before = path.read_text()
    assert validate_workspace_references(monorepo.get_subspace("default"), allow_updates=True, dry_run=True)
    assert path.read_text() == before


@pytest.mark.parametrize("spec", ["^2.0.0", "workspace:^2.0.0"])
def test_unsatisfied_local_reference(make_monorepo, spec: str) -> None:
    monorepo = make_monorepo([{"name": "app", "dependencies": {"lib": spec}}, {"name": "lib", "version": "1.2.0"}])
    with pytest.raises(LocalVersionMismatchError, match="1.2.0"):
        validate_workspace_references(monorepo.get_subspace("default"), allow_updates=True)


def test_decoupled_dependency_is_left_alone(make_monorepo) -> None:
    monorepo = make_monorepo(
        [
            {"name": "app", "dependencies": {"lib": "^0.9.0"}, "decoupledLocalDependencies": ["lib"]},
            {"name": "lib", "version": "1.2.0"},
        ]
    )
    assert not validate_workspace_references(monorepo.get_subspace("default"), allow_updates=False)


# ---------------------------------------------------------------------------
# pnpm
# ---------------------------------------------------------------------------


async def test_pnpm_prepare_generates_temp_folder(make_monorepo, write_lockfile, fake_runner, recycler) -> None:
    monorepo = make_monorepo([{"name": "app", "dependencies": {"react": "^18.0.0"}}, {"name": "lib"}])
    subspace = monorepo.get_subspace("default")
    write_lockfile(subspace)
    strategy = PnpmInstallStrategy(fake_runner, recycler)

    shrinkwrap = load_shrinkwrap_file(PackageManagerKind.PNPM, subspace.committed_shrinkwrap_path)
    result = await strategy.prepare(subspace, shrinkwrap, InstallOptions())

    assert result.shrinkwrap_is_up_to_date
    assert result.npmrc_hash is None
    workspace = yaml.safe_load((subspace.temp_folder / "pnpm-workspace.yaml").read_text())
    assert workspace == {"packages": ["../../projects/app", "../../projects/lib"]}
    assert subspace.temp_shrinkwrap_path.read_bytes() == subspace.committed_shrinkwrap_path.read_bytes()
    assert (subspace.temp_folder / "package.json").is_file()


async def test_pnpm_prepare_without_lockfile_is_stale(make_monorepo, fake_runner, recycler) -> None:
    monorepo = make_monorepo([{"name": "app"}])
    subspace = monorepo.get_subspace("default")
    result = await PnpmInstallStrategy(fake_runner, recycler).prepare(subspace, None, InstallOptions())
    assert not result.shrinkwrap_is_up_to_date
    assert any("not found" in warning for warning in result.warnings)


def test_pnpm_install_arguments(make_monorepo, fake_runner, recycler) -> None:
    monorepo = make_monorepo([{"name": "app"}], pnpmOptions={"strictPeerDependencies": True})
    subspace = monorepo.get_subspace("default")
    strategy = PnpmInstallStrategy(fake_runner, recycler)

    args = strategy.install_arguments(
        subspace, InstallOptions(network_concurrency=8, offline=True, filter_arguments=["app..."])
    )

    assert args[:3] == ["install", "--store", str(monorepo.temp_folder / "pnpm-store")]
    assert "--frozen-lockfile" in args
    assert "--strict-peer-dependencies" in args
    assert args[args.index("--network-concurrency") + 1] == "8"
    assert "--offline" in args
    assert args[-2:] == ["--filter", "app..."]

    update_args = strategy.install_arguments(subspace, InstallOptions(allow_shrinkwrap_updates=True))
    assert "--no-prefer-frozen-lockfile" in update_args
    assert "--frozen-lockfile" not in update_args


def test_pnpm_global_store_has_no_store_argument(make_monorepo, fake_runner, recycler) -> None:
    monorepo = make_monorepo([{"name": "app"}], pnpmOptions={"pnpmStore": "global"})
    args = PnpmInstallStrategy(fake_runner, recycler).install_arguments(monorepo.get_subspace("default"), InstallOptions())
    assert "--store" not in args


# ---------------------------------------------------------------------------
# npm / yarn
# ---------------------------------------------------------------------------


async def test_npm_prepare_writes_workspaces_package_json(make_monorepo, fake_runner, recycler) -> None:
    monorepo = make_monorepo([{"name": "app"}, {"name": "lib"}], package_manager="npm", package_manager_version="9.0.0")
    subspace = monorepo.get_subspace("default")

    await NpmInstallStrategy(fake_runner, recycler).prepare(subspace, None, InstallOptions())

    document = json.loads((subspace.temp_folder / "package.json").read_text())
    assert document["private"] is True
    assert document["workspaces"] == ["../../projects/app", "../../projects/lib"]


def test_yarn_install_arguments(make_monorepo, fake_runner, recycler) -> None:
    monorepo = make_monorepo([{"name": "app"}], package_manager="yarn", package_manager_version="1.22.19")
    strategy = create_strategy(PackageManagerKind.YARN, fake_runner, recycler)
    assert isinstance(strategy, YarnInstallStrategy)
    assert not strategy.supports_filtering

    args = strategy.install_arguments(monorepo.get_subspace("default"), InstallOptions())
    assert "--frozen-lockfile" in args
    assert "--non-interactive" in args


async def test_clean_install_recycles_node_modules(make_monorepo, fake_runner, recycler) -> None:
    monorepo = make_monorepo([{"name": "app"}], package_manager="npm", package_manager_version="9.0.0")
    subspace = monorepo.get_subspace("default")
    stale = subspace.temp_node_modules_folder / "left-pad"
    stale.mkdir(parents=True)

    await NpmInstallStrategy(fake_runner, recycler).install(subspace, InstallOptions(), clean_install=True)

    assert not stale.exists()
    assert recycler.moved_count == 1
    assert fake_runner.installs[0][0] == "install"


async def test_npm_post_install_links_local_projects(make_monorepo, fake_runner, recycler) -> None:
    monorepo = make_monorepo(
        [{"name": "app", "dependencies": {"@acme/lib": "1.0.0"}}, {"name": "@acme/lib"}],
        package_manager="npm",
        package_manager_version="9.0.0",
    )
    subspace = monorepo.get_subspace("default")

    await NpmInstallStrategy(fake_runner, recycler).post_install(subspace)

    link = monorepo.get_project("app").node_modules_folder / "@acme" / "lib"
    assert link.is_symlink()
    assert os.path.realpath(link) == os.path.realpath(monorepo.get_project("@acme/lib").folder)
    assert (subspace.temp_folder / "last-link.flag").is_file()
    # Already correct links are left untouched
    assert link_local_projects(subspace, recycler) == 0
