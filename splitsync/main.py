"""
CLI entry point for splitsync.

Provides command-line interface for extracting monorepo modules into
standalone repositories and for maintaining those repositories.
"""

from pathlib import Path

import click
from rich.table import Table

from .config import ExtractConfig, create_default_config, default_registry_path
from .errors import ResolutionError
from .git_ops import GitRepository, locate_repo_root
from .log import console
from .runner import CommandRunner
from .syncer import ComponentSyncer
from .versioning import JsonVersionRegistry


@click.group()
@click.version_option(package_name="splitsync")
def cli():
    """splitsync - Extract monorepo modules into standalone repositories."""
    pass


@cli.command()
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="YAML configuration file (options below override its values)",
)
@click.option(
    "--source",
    "-s",
    "source_path",
    type=click.Path(file_okay=False, path_type=Path),
    envvar="SPLITSYNC_SOURCE",
    help="Monorepo directory containing the modules",
)
@click.option(
    "--dest",
    "-d",
    "dest_path",
    type=click.Path(file_okay=False, path_type=Path),
    envvar="SPLITSYNC_DEST",
    help="Directory receiving one repository per module",
)
@click.option("--branch", "-b", envvar="SPLITSYNC_BRANCH", help="Source branch to extract from")
@click.option(
    "--keep-branch",
    envvar="SPLITSYNC_KEEP_BRANCH",
    help="The single branch kept in each target (default: main)",
)
@click.option("--vendor", envvar="SPLITSYNC_VENDOR", help="Package vendor prefix")
@click.option(
    "--modules",
    "-m",
    envvar="SPLITSYNC_MODULES",
    help="Modules to extract, separated by commas or spaces (default: all)",
)
@click.option("--name", help="Component name override (single module only)")
@click.option(
    "--meta",
    "git_meta",
    multiple=True,
    help="Git config ('user.name Jane') or filter flag ('--mailmap map.txt'); repeatable",
)
@click.option(
    "--rewrite-file",
    "rewrite_files",
    multiple=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Replacement rules file for the history filter; repeatable",
)
@click.option(
    "--search",
    "legacy_search",
    multiple=True,
    help="(deprecated) Literal text to replace; pairs with --replace",
)
@click.option(
    "--replace",
    "legacy_replace",
    multiple=True,
    help="(deprecated) Replacement text; pairs with --search",
)
@click.option(
    "--gitfilter-src",
    type=click.Path(file_okay=False, path_type=Path),
    envvar="SPLITSYNC_GITFILTER_SRC",
    help="Directory containing the git-filter-repo script",
)
@click.option(
    "--registry",
    "registry_path",
    type=click.Path(dir_okay=False, path_type=Path),
    envvar="SPLITSYNC_REGISTRY",
    help="Versions registry file",
)
@click.option(
    "--write",
    is_flag=True,
    envvar="SPLITSYNC_WRITE",
    help="Apply changes (default is a dry run)",
)
def extract(
    config_path: Path | None,
    source_path: Path | None,
    dest_path: Path | None,
    branch: str | None,
    keep_branch: str | None,
    vendor: str | None,
    modules: str | None,
    name: str | None,
    git_meta: tuple[str, ...],
    rewrite_files: tuple[Path, ...],
    legacy_search: tuple[str, ...],
    legacy_replace: tuple[str, ...],
    gitfilter_src: Path | None,
    registry_path: Path | None,
    write: bool,
):
    """Extract modules into standalone repositories."""
    try:
        config = ExtractConfig.from_sources(
            config_path,
            source_path=source_path,
            dest_path=dest_path,
            branch=branch,
            keep_branch=keep_branch,
            vendor=vendor,
            modules=modules,
            name=name,
            git_meta=git_meta,
            rewrite_files=rewrite_files,
            legacy_search=legacy_search,
            legacy_replace=legacy_replace,
            registry_path=registry_path,
            write=write or None,
        )
    except Exception as e:
        console.print(f"[red]Error loading config: {e}[/red]")
        raise SystemExit(1)

    if gitfilter_src is not None:
        config.filter_tool.source_dir = gitfilter_src

    if not config.write:
        console.print("[yellow]DRY RUN - pass --write to apply changes[/yellow]")

    result = ComponentSyncer(config).run()
    color = "green" if result.success else "red"
    console.print(f"[{color}]{result.summary}[/{color}]")
    if not result.success:
        raise SystemExit(1)


@cli.command()
@click.option(
    "--repo-path",
    "-r",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=Path("."),
    help="Any directory inside the repository",
)
@click.option("--keep", "-k", default="main", help="Branch to keep")
@click.option("--write", is_flag=True, help="Apply changes (default is a dry run)")
def prune(repo_path: Path, keep: str, write: bool):
    """Delete every branch except one, then expire the reflog and gc."""
    runner = CommandRunner(dry_run=not write)
    try:
        root = locate_repo_root(repo_path, runner)
        repo = GitRepository(root, runner)
    except (ResolutionError, ValueError) as e:
        console.print(f"[red]{e}[/red]")
        raise SystemExit(1)

    console.print(f"[bold]Pruning {root} to '{keep}'[/bold]")
    repo.prune_to_single_branch(keep)
    console.print("[green]Done.[/green]")


@cli.command()
@click.option(
    "--source",
    "-s",
    "source_path",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    required=True,
    help="Monorepo directory containing the modules",
)
@click.option(
    "--dest",
    "-d",
    "dest_path",
    type=click.Path(file_okay=False, path_type=Path),
    required=True,
    help="Directory receiving one repository per module",
)
@click.option("--vendor", default="acme", help="Package vendor prefix")
@click.option(
    "--gitfilter-src",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Directory containing the git-filter-repo script",
)
@click.option(
    "--output",
    "-o",
    type=click.Path(dir_okay=False, path_type=Path),
    default=Path("splitsync.yaml"),
    help="Output config file path",
)
def init(
    source_path: Path,
    dest_path: Path,
    vendor: str,
    gitfilter_src: Path | None,
    output: Path,
):
    """Initialize a new extraction configuration file."""
    config = create_default_config(
        source_path=source_path,
        dest_path=dest_path,
        vendor=vendor,
        gitfilter_src=gitfilter_src,
    )
    config.to_yaml(output)
    console.print(f"[green]Created configuration file: {output}[/green]")
    console.print(f"  Source: {source_path}")
    console.print(f"  Destination: {dest_path}")
    if gitfilter_src is None:
        console.print("  [yellow]Set filter_tool.source_dir before running extract[/yellow]")
    console.print("\nEdit this file to customize settings, then run 'splitsync extract -c'.")


@cli.command()
@click.option(
    "--registry",
    "registry_path",
    type=click.Path(dir_okay=False, path_type=Path),
    envvar="SPLITSYNC_REGISTRY",
    default=default_registry_path,
    help="Versions registry file",
)
def versions(registry_path: Path):
    """Show the versions registry."""
    registry = JsonVersionRegistry.load(registry_path)
    entries = registry.items()
    if not entries:
        console.print(f"[yellow]No versions recorded in {registry_path}[/yellow]")
        return

    table = Table(title=f"Versions ({registry_path})")
    table.add_column("Package", style="cyan")
    table.add_column("Version", style="green")
    for package, version in entries.items():
        table.add_row(package, version)
    console.print(table)


if __name__ == "__main__":
    cli()
