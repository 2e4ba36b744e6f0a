"""Click CLI with graph, versions, key, extract and push subcommands."""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

import click

from evbuild import __version__
from evbuild.errors import EvBuildError
from evbuild.extractor import extract_source_for_build
from evbuild.git import ContentFingerprinter
from evbuild.graph import discover_unit_graph
from evbuild.models import PushEvent, WorkspaceConfig
from evbuild.pipeline import process_push, run_cold_start, run_full_recompute
from evbuild.store import VersionStore
from evbuild.versions import compute_build_key, unit_build_key

_KIND_COLORS = {
    "package": "blue",
    "panel": "magenta",
    "about": "yellow",
}

_workspace_arg = click.argument(
    "workspace",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=".",
)
_data_dir_opt = click.option(
    "--data-dir",
    type=click.Path(file_okay=False, path_type=Path),
    help="Where ev-map.json and ref-state.json live (default: $EVBUILD_DATA_DIR or ~/.evbuild)",
)


@click.group()
@click.version_option(version=__version__)
@click.option("--verbose", "-v", is_flag=True, help="Log git decisions and pass summaries")
def cli(verbose: bool):
    """evbuild: effective versions and pinned sources for workspace units."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


@cli.command()
@_workspace_arg
def graph(workspace: Path):
    """List units in dependency order."""
    try:
        unit_graph = discover_unit_graph(workspace)
    except EvBuildError as e:
        raise click.ClickException(str(e))

    if not len(unit_graph):
        click.echo("No units found.")
        return

    click.echo(f"\nFound {len(unit_graph)} unit(s), dependencies first:\n")
    for unit in unit_graph.topological_order():
        kind = click.style(f"{unit.kind.value:>8}", fg=_KIND_COLORS.get(unit.kind.value, "white"))
        click.echo(f"  {kind}  {unit.name}  {click.style(unit.relative_path, dim=True)}")
        for dep in unit.internal_deps:
            dep_ref = unit.internal_dep_refs.get(dep)
            mode = f" ({dep_ref.mode.value}: {dep_ref.raw})" if dep_ref and not dep_ref.is_default else ""
            click.echo(f"            -> {dep}{mode}")

    for warning in unit_graph.warnings:
        click.echo(click.style(f"warning: {warning}", fg="yellow"), err=True)


@cli.command()
@_workspace_arg
@_data_dir_opt
@click.option("--full", is_flag=True, help="Ignore persisted state and rehash every unit")
def versions(workspace: Path, data_dir: Path | None, full: bool):
    """Compute effective versions and report what changed since the last run."""
    config = WorkspaceConfig(workspace_root=workspace, data_dir=data_dir)
    store = VersionStore(config.data_dir)

    try:
        if full:
            result = run_full_recompute(config, store)
        else:
            result = run_cold_start(config, store)
    except EvBuildError as e:
        raise click.ClickException(str(e))
    except OSError as e:
        raise click.ClickException(f"Could not persist versions to {store.data_dir}: {e}")

    for unit in result.graph.topological_order():
        ev = result.ev_map.get(unit.name)
        if ev is None:
            click.echo(f"  {'-' * 16}  {unit.name}  {click.style('(no default branch)', dim=True)}")
            continue
        marker = ""
        if unit.name in result.changes.added:
            marker = click.style(" added", fg="green")
        elif unit.name in result.changes.changed:
            marker = click.style(" changed", fg="yellow")
        click.echo(f"  {ev}  {unit.name}{marker}")

    changes = result.changes
    click.echo(
        f"\n{len(changes.changed)} changed, {len(changes.added)} added, "
        f"{len(changes.removed)} removed"
    )
    for name in changes.removed:
        click.echo(click.style(f"  removed: {name}", fg="red"))


@cli.command()
@click.argument("unit_name")
@click.argument("ev")
@click.option("--sourcemap/--no-sourcemap", default=True, help="Build option flag")
def key(unit_name: str, ev: str, sourcemap: bool):
    """Print the build cache key for a unit at an effective version."""
    click.echo(compute_build_key(unit_name, ev, sourcemap))


@cli.command()
@_workspace_arg
@click.argument("unit_name")
@click.option("-o", "--output", "output_dir", type=click.Path(path_type=Path), help="Copy the extracted tree here")
def extract(workspace: Path, unit_name: str, output_dir: Path | None):
    """Extract a unit and its internal dependencies at their default-branch commits."""
    try:
        unit_graph = discover_unit_graph(workspace)
        unit = unit_graph.get(unit_name)
        extracted = extract_source_for_build(unit, unit_graph, workspace, fingerprinter=ContentFingerprinter())
    except EvBuildError as e:
        raise click.ClickException(str(e))

    for name in extracted.units:
        click.echo(f"  {extracted.commits[name][:12]}  {name}")

    if output_dir is None:
        click.echo(f"\nSources at {extracted.source_root}")
        return

    with extracted:
        if output_dir.exists():
            raise click.ClickException(f"{output_dir} already exists")
        shutil.copytree(extracted.source_root, output_dir)
    click.echo(f"\nSources copied to {output_dir}")


@cli.command()
@_workspace_arg
@click.argument("repo_path")
@click.argument("branch")
@click.argument("commit")
@_data_dir_opt
def push(workspace: Path, repo_path: str, branch: str, commit: str, data_dir: Path | None):
    """Apply a push of COMMIT to BRANCH of the unit at REPO_PATH."""
    config = WorkspaceConfig(workspace_root=workspace, data_dir=data_dir)
    store = VersionStore(config.data_dir)
    event = PushEvent(repo=repo_path, branch=branch, commit=commit)

    try:
        unit_graph = discover_unit_graph(workspace)
        outcome = process_push(config, unit_graph, store.load_ev_map(), event, store)
    except EvBuildError as e:
        raise click.ClickException(str(e))

    if outcome.unit_name is None:
        raise click.ClickException(f"No unit at {repo_path}")
    if not outcome.processed:
        click.echo(f"Push to {outcome.unit_name}@{branch} does not affect any effective version.")
        return

    mode = "full rediscovery" if outcome.rediscovered else "incremental"
    click.echo(f"Processed push to {outcome.unit_name} ({mode})")
    for name in outcome.changes.affected:
        click.echo(f"  {outcome.ev_map[name]}  {name}")
    if outcome.build_keys:
        click.echo("\nTo build:")
        for name, build_key in outcome.build_keys.items():
            click.echo(f"  {build_key}  {name}")


@cli.command(name="build-keys")
@_workspace_arg
@_data_dir_opt
def build_keys(workspace: Path, data_dir: Path | None):
    """Print build keys for every buildable unit with a persisted EV."""
    store = VersionStore(data_dir)
    ev_map = store.load_ev_map()
    try:
        unit_graph = discover_unit_graph(workspace)
    except EvBuildError as e:
        raise click.ClickException(str(e))

    for unit in unit_graph.all_units():
        if not unit.is_buildable or unit.name not in ev_map:
            continue
        click.echo(f"  {unit_build_key(unit, ev_map[unit.name])}  {unit.name}")


if __name__ == "__main__":
    cli()
