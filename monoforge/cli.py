from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import click

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from monoforge.installer.monorepo import Monorepo


def _run(ctx: click.Context, action: Callable[[Monorepo], Awaitable[object]]) -> object:
    """Load the monorepo and run *action*, turning installer errors into a clean exit."""
    import anyio

    from monoforge.installer.errors import InstallError
    from monoforge.installer.log import setup_logging
    from monoforge.installer.monorepo import Monorepo
    from monoforge.installer.settings import get_settings

    settings = get_settings()
    setup_logging("DEBUG" if ctx.obj["verbose"] else settings.log_level)

    try:
        root = ctx.obj["root"]
        monorepo = Monorepo.load(root, settings) if root else Monorepo.discover(Path.cwd(), settings)
        return anyio.run(action, monorepo)
    except InstallError as exc:
        raise click.ClickException(str(exc)) from exc


def _install_options(**kwargs: object):
    from monoforge.installer.models import InstallOptions

    to_projects = list(kwargs.pop("to_projects", ()) or ())
    subspaces = list(kwargs.pop("subspaces", ()) or ()) or None
    max_attempts = kwargs.pop("max_install_attempts", None)
    if max_attempts is None:
        from monoforge.installer.settings import get_settings

        max_attempts = get_settings().max_install_attempts
    return InstallOptions(
        subspace_names=subspaces,
        selected_projects=to_projects,
        filter_arguments=[f"{name}..." for name in to_projects],
        max_install_attempts=max_attempts,
        **kwargs,
    )


def _install_command_options(func):
    options = [
        click.option("--purge", is_flag=True, default=False, help="Recycle the temp folder before installing."),
        click.option("--subspace", "subspaces", multiple=True, help="Only install this subspace (repeatable)."),
        click.option("--to", "to_projects", multiple=True, help="Only install this project and its dependencies."),
        click.option("--max-install-attempts", type=click.IntRange(min=1), default=None, help="Retry limit."),
        click.option("--network-concurrency", type=click.IntRange(min=1), default=None),
        click.option("--offline", is_flag=True, default=False, help="Only use packages already in the store."),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def _report(results) -> None:
    for result in results:
        if result.skipped:
            state = "up to date"
        elif result.installed:
            state = "installed (clean)" if result.clean_install else "installed"
        else:
            state = "checked"
        click.echo(f"{result.subspace_name}: {state}")


@click.group()
@click.option("--root", type=click.Path(file_okay=False, path_type=Path), default=None, help="Monorepo root folder.")
@click.option("-v", "--verbose", is_flag=True, default=False, help="Enable debug logging.")
@click.pass_context
def main(ctx: click.Context, root: Path | None, verbose: bool) -> None:
    """Monoforge - install orchestration for JavaScript monorepos."""
    ctx.ensure_object(dict)
    ctx.obj["root"] = root
    ctx.obj["verbose"] = verbose


# ---------------------------------------------------------------------------
# Install
# ---------------------------------------------------------------------------


@main.command()
@_install_command_options
@click.pass_context
def install(ctx: click.Context, **kwargs: object) -> None:
    """Install dependencies from the committed lockfile."""
    from monoforge.installer.execution import InstallOrchestrator

    options = _install_options(**kwargs)

    async def action(monorepo: Monorepo):
        return await InstallOrchestrator(monorepo).run(options)

    _report(_run(ctx, action))


@main.command()
@_install_command_options
@click.option("--full", "full_upgrade", is_flag=True, default=False, help="Ignore the lockfile and re-resolve everything.")
@click.option("--recheck", "recheck_shrinkwrap", is_flag=True, default=False, help="Run the package manager even if the lockfile looks current.")
@click.pass_context
def update(ctx: click.Context, **kwargs: object) -> None:
    """Install dependencies, updating the committed lockfile as needed."""
    from monoforge.installer.execution import InstallOrchestrator

    options = _install_options(allow_shrinkwrap_updates=True, **kwargs)

    async def action(monorepo: Monorepo):
        return await InstallOrchestrator(monorepo).run(options)

    _report(_run(ctx, action))


@main.command()
@click.option("--subspace", "subspaces", multiple=True, help="Only check this subspace (repeatable).")
@click.pass_context
def check(ctx: click.Context, subspaces: tuple[str, ...]) -> None:
    """Report whether each lockfile is up to date, without installing."""
    from monoforge.installer.execution import InstallOrchestrator
    from monoforge.installer.models import InstallOptions

    options = InstallOptions(check_only=True, subspace_names=list(subspaces) or None)

    async def action(monorepo: Monorepo):
        return await InstallOrchestrator(monorepo).run(options)

    results = _run(ctx, action)
    stale = [r.subspace_name for r in results if not r.shrinkwrap_is_up_to_date]
    for result in results:
        click.echo(f"{result.subspace_name}: {'up to date' if result.shrinkwrap_is_up_to_date else 'out of date'}")
    if stale:
        ctx.exit(1)


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------


@main.command()
@click.argument("packages", nargs=-1, required=True)
@click.option("-p", "--project", "projects", multiple=True, required=True, help="Project to add to (repeatable).")
@click.option("--dev", is_flag=True, default=False, help="Add as a devDependency.")
@click.option("--peer", is_flag=True, default=False, help="Add as a peerDependency.")
@click.option("--exact", is_flag=True, default=False, help="Write the exact version.")
@click.option("--caret", is_flag=True, default=False, help="Write a ^ range.")
@click.option("--make-consistent", is_flag=True, default=False, help="Update other projects to the same version.")
@click.option("--skip-update", is_flag=True, default=False, help="Edit package.json only; don't install.")
@click.pass_context
def add(
    ctx: click.Context,
    packages: tuple[str, ...],
    projects: tuple[str, ...],
    dev: bool,
    peer: bool,
    exact: bool,
    caret: bool,
    make_consistent: bool,
    skip_update: bool,
) -> None:
    """Add PACKAGES (name or name@version) to the selected projects."""
    from monoforge.installer.execution import DependencyAdder, default_range_style
    from monoforge.installer.models import AddOptions, DependencyType, PackageToAdd, split_package_argument

    if dev and peer:
        raise click.UsageError("--dev and --peer cannot be used together")

    to_add = []
    for argument in packages:
        name, version = split_package_argument(argument)
        try:
            style = default_range_style(version, exact=exact, caret=caret)
        except ValueError as exc:
            raise click.UsageError(str(exc)) from exc
        to_add.append(PackageToAdd(package_name=name, version=version, range_style=style))

    dependency_type = DependencyType.DEV if dev else DependencyType.PEER if peer else DependencyType.REGULAR
    options = AddOptions(
        project_names=list(projects),
        packages=to_add,
        dependency_type=dependency_type,
        make_consistent=make_consistent,
        skip_update=skip_update,
    )

    async def action(monorepo: Monorepo):
        return await DependencyAdder(monorepo).add(options)

    for selection in _run(ctx, action):
        click.echo(f"{selection.package_name}: {selection.specifier} ({selection.reason})")


@main.command()
@click.argument("packages", nargs=-1, required=True)
@click.option("-p", "--project", "projects", multiple=True, required=True, help="Project to remove from (repeatable).")
@click.option("--skip-update", is_flag=True, default=False, help="Edit package.json only; don't install.")
@click.pass_context
def remove(ctx: click.Context, packages: tuple[str, ...], projects: tuple[str, ...], skip_update: bool) -> None:
    """Remove PACKAGES from the selected projects."""
    from monoforge.installer.execution import DependencyAdder

    async def action(monorepo: Monorepo):
        await DependencyAdder(monorepo).remove(list(projects), list(packages), skip_update=skip_update)

    _run(ctx, action)


# ---------------------------------------------------------------------------
# Maintenance
# ---------------------------------------------------------------------------


@main.command()
@click.option("--unsafe", is_flag=True, default=False, help="Also purge the per-user global folder.")
@click.pass_context
def purge(ctx: click.Context, unsafe: bool) -> None:
    """Recycle generated files; deletion finishes in the background."""
    from monoforge.installer.managers import PurgeManager

    async def action(monorepo: Monorepo):
        manager = PurgeManager(monorepo)
        try:
            if unsafe:
                manager.purge_unsafe()
            else:
                manager.purge_normal()
        finally:
            manager.start_delete_all()

    _run(ctx, action)
    click.echo("Purge started.")


if __name__ == "__main__":
    main()
