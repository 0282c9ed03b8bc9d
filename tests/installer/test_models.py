"""Unit tests for the configuration models and package.json editing."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from pydantic import ValidationError

from monoforge.installer.errors import ResourceError
from monoforge.installer.models import (
    CommonVersionsConfig,
    DependencySpecifier,
    DependencyType,
    InstallOptions,
    MonorepoConfig,
    PackageJsonEditor,
    PackageManagerKind,
    RepoState,
    SpecifierType,
    split_package_argument,
)

# ---------------------------------------------------------------------------
# DependencySpecifier
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    ("spec", "expected"),
    [
        ("1.2.3", SpecifierType.VERSION),
        ("^1.2.3", SpecifierType.RANGE),
        ("~1.2", SpecifierType.RANGE),
        ("*", SpecifierType.RANGE),
        ("latest", SpecifierType.TAG),
        ("workspace:*", SpecifierType.WORKSPACE),
        ("github:user/repo", SpecifierType.REMOTE),
        ("file:../local", SpecifierType.REMOTE),
    ],
)
def test_specifier_types(spec: str, expected: SpecifierType) -> None:
    assert DependencySpecifier.parse("pkg", spec).specifier_type is expected


def test_alias_specifier() -> None:
    parsed = DependencySpecifier.parse("my-lodash", "npm:@scope/lodash@^4.17.0")
    assert parsed.specifier_type is SpecifierType.ALIAS
    assert parsed.alias_target is not None
    assert parsed.alias_target.package_name == "@scope/lodash"
    assert parsed.alias_target.specifier_type is SpecifierType.RANGE
    assert parsed.effective_package_name == "@scope/lodash"


def test_workspace_range() -> None:
    assert DependencySpecifier.parse("a", "workspace:^1.0.0").workspace_range == "^1.0.0"
    assert DependencySpecifier.parse("a", "^1.0.0").workspace_range is None


@pytest.mark.parametrize(
    ("argument", "expected"),
    [
        ("left-pad", ("left-pad", None)),
        ("left-pad@^1.3.0", ("left-pad", "^1.3.0")),
        ("@scope/pkg", ("@scope/pkg", None)),
        ("@scope/pkg@2.0.0", ("@scope/pkg", "2.0.0")),
        ("left-pad@", ("left-pad", None)),
    ],
)
def test_split_package_argument(argument: str, expected: tuple[str, str | None]) -> None:
    assert split_package_argument(argument) == expected


# ---------------------------------------------------------------------------
# PackageJsonEditor
# ---------------------------------------------------------------------------


@pytest.fixture
def package_json(tmp_path: Path) -> Path:
    path = tmp_path / "package.json"
    document = {
        "name": "app",
        "version": "1.0.0",
        "scripts": {"build": "tsc"},
        "dependencies": {"react": "^18.0.0"},
        "devDependencies": {"typescript": "~5.3.0"},
    }
    path.write_text(json.dumps(document, indent=2) + "\n")
    return path


def test_editor_reads_sections(package_json: Path) -> None:
    editor = PackageJsonEditor.load(package_json)
    assert editor.name == "app"
    assert editor.dependencies(DependencyType.DEV) == {"typescript": "~5.3.0"}
    assert editor.find_dependency("typescript") == ("~5.3.0", DependencyType.DEV)
    assert editor.find_dependency("missing") is None
    assert ("react", "^18.0.0", DependencyType.REGULAR) in editor.all_dependencies()


def test_editor_add_keeps_sections_sorted_and_other_keys(package_json: Path) -> None:
    editor = PackageJsonEditor.load(package_json)
    editor.add_or_update_dependency("axios", "~1.6.0", DependencyType.REGULAR)
    assert editor.modified
    assert editor.save_if_modified()

    saved = json.loads(package_json.read_text())
    assert list(saved["dependencies"]) == ["axios", "react"]
    assert saved["scripts"] == {"build": "tsc"}
    assert package_json.read_text().endswith("}\n")


def test_editor_noop_update_is_not_a_modification(package_json: Path) -> None:
    editor = PackageJsonEditor.load(package_json)
    editor.add_or_update_dependency("react", "^18.0.0", DependencyType.REGULAR)
    assert not editor.modified
    assert not editor.save_if_modified()


def test_editor_remove(package_json: Path) -> None:
    editor = PackageJsonEditor.load(package_json)
    assert editor.remove_dependency("typescript")
    assert not editor.remove_dependency("typescript")
    assert not editor.remove_dependency("react", DependencyType.DEV)
    assert editor.find_dependency("react") is not None


# ---------------------------------------------------------------------------
# Config files
# ---------------------------------------------------------------------------


def test_monorepo_config_camel_case(tmp_path: Path) -> None:
    path = tmp_path / "monoforge.json"
    path.write_text(
        json.dumps({
            "packageManager": "pnpm",
            "packageManagerVersion": "8.15.0",
            "projects": [{"packageName": "a", "projectFolder": "libs/a", "reviewCategory": "libraries"}],
            "pnpmOptions": {"environmentVariables": {"NODE_OPTIONS": {"value": "--max-old-space-size=4096"}}},
        })
    )
    config = MonorepoConfig.load(path)
    assert config.package_manager is PackageManagerKind.PNPM
    assert config.projects[0].review_category == "libraries"
    assert config.tool_options.environment_variables["NODE_OPTIONS"].override is False
    assert config.pnpm_options.use_workspaces


def test_monorepo_config_rejects_unknown_package_manager(tmp_path: Path) -> None:
    path = tmp_path / "monoforge.json"
    path.write_text(json.dumps({"packageManager": "bun", "packageManagerVersion": "1.0.0"}))
    with pytest.raises(ResourceError, match="Invalid monoforge.json") as excinfo:
        MonorepoConfig.load(path)
    assert isinstance(excinfo.value.__cause__, ValidationError)


def test_common_versions_defaults_when_missing(tmp_path: Path) -> None:
    config = CommonVersionsConfig.load(tmp_path / "common-versions.json")
    assert config.preferred_versions == {}
    assert config.implicitly_preferred_versions
    assert config.ensure_consistent_versions is None


def test_invalid_common_versions_is_a_resource_error(tmp_path: Path) -> None:
    path = tmp_path / "common-versions.json"
    path.write_text(json.dumps({"preferredVersions": ["react"]}))
    with pytest.raises(ResourceError, match="common-versions.json"):
        CommonVersionsConfig.load(path)


def test_preferred_versions_hash_ignores_key_order() -> None:
    first = CommonVersionsConfig(preferred_versions={"a": "1.0.0", "b": "2.0.0"})
    second = CommonVersionsConfig(preferred_versions={"b": "2.0.0", "a": "1.0.0"})
    third = CommonVersionsConfig(preferred_versions={"a": "1.0.1", "b": "2.0.0"})
    assert first.preferred_versions_hash() == second.preferred_versions_hash()
    assert first.preferred_versions_hash() != third.preferred_versions_hash()


def test_repo_state_dump_uses_camel_case() -> None:
    state = RepoState(preferred_versions_hash="abc")
    assert json.loads(state.dump()) == {"preferredVersionsHash": "abc"}
    assert json.loads(RepoState().dump()) == {}


def test_install_options_filtering() -> None:
    assert not InstallOptions().is_filtered
    assert InstallOptions(selected_projects=["a"]).is_filtered
    with pytest.raises(ValidationError):
        InstallOptions(max_install_attempts=0)
