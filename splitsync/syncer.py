"""
Extraction engine: turns monorepo module directories into standalone
repositories and keeps them in sync on later runs.

Every selected module takes one of three paths:

- fresh: there is no target repository yet. History is filtered in a temp
  clone of the monorepo and the target is cloned from it.
- unchanged: the target already holds the newest module commit. Only the
  metadata (version, license, origin remote, tag) is refreshed.
- update: the module has new commits. A freshly filtered export is fetched
  into the target as a temporary remote and the target is hard-reset onto it.
"""

import re
from collections.abc import Callable
from contextlib import ExitStack
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

from git.exc import GitCommandError
from rich.table import Table

from .config import ExtractConfig
from .errors import CommandError, ConfigurationError, ResolutionError
from .filter_cmd import FilterCommandBuilder, FilterRequest
from .git_ops import (
    CONVENTIONAL_BRANCHES,
    GitRepository,
    locate_repo_root,
    relative_path,
    resolve_branch,
    to_git_path,
)
from .log import console, echo
from .package import ensure_license, manifest_version, read_manifest, write_manifest
from .runner import CommandRunner
from .tempdirs import remove_tree, scratch_dir
from .versioning import JsonVersionRegistry, VersionStore, determine_version

ModuleState = Literal["fresh", "unchanged", "update", "failed", "skipped"]

# Temporary remote the filtered export is fetched through during an update
EXPORT_REMOTE = "export"

FilterBuilder = Callable[[FilterRequest, Path], list[str]]


@dataclass
class Module:
    """A monorepo directory that is extracted into its own repository."""

    name: str
    path: str  # repo-relative, forward slashes
    latest_commit_time: int = 0


@dataclass
class ModuleResult:
    """Outcome of processing one module."""

    module: str
    state: ModuleState
    version: str = ""
    error: str | None = None


@dataclass
class BatchResult:
    """Result of an extraction run."""

    summary: str
    results: list[ModuleResult] = field(default_factory=list)
    started: bool = True

    @property
    def success(self) -> bool:
        return self.started and all(r.state != "failed" for r in self.results)


def discover_modules(root: Path) -> list[str]:
    """List the module directories under ``root`` in sorted order."""
    root = Path(root)
    if not root.is_dir():
        return []
    return sorted(
        entry.name
        for entry in root.iterdir()
        if entry.is_dir() and not entry.name.startswith(".")
    )


def select_modules(all_modules: list[str], requested: str) -> list[str]:
    """
    Narrow the module list to the requested names.

    Args:
        all_modules: Every discovered module
        requested: Names separated by commas and/or whitespace; empty selects all

    Returns:
        The selected modules, in the order of ``all_modules``
    """
    wanted = [name for name in re.split(r"[\s,]+", requested or "") if name]
    if not wanted:
        return list(all_modules)

    for name in wanted:
        if name not in all_modules:
            echo("warn", "module not found, skipping:", name)
    wanted_set = set(wanted)
    return [name for name in all_modules if name in wanted_set]


def is_unchanged(exists: bool, source_time: int, dest_time: int) -> bool:
    """A target is current when its newest commit is not older than the module's."""
    return exists and source_time > 0 and dest_time > 0 and dest_time >= source_time


def extract_branch_name(module: str) -> str:
    return "extract-" + re.sub(r"[\\/\s]+", "-", module)


def target_exists(path: Path) -> bool:
    return (Path(path) / ".git").is_dir()


class ComponentSyncer:
    """Extracts monorepo modules into standalone repositories."""

    def __init__(
        self,
        config: ExtractConfig,
        store: VersionStore | None = None,
        filter_builder: FilterBuilder | None = None,
    ):
        """Initialize the syncer with configuration."""
        self.config = config
        self.store = store
        # Mutations on live repositories honor dry-run; scratch work never does
        self.runner = CommandRunner(dry_run=not config.write)
        self.scratch = CommandRunner()
        self.filter_builder = filter_builder or FilterCommandBuilder(config.filter_tool).build
        self.meta_configs = config.meta_configs()

        self.source: GitRepository | None = None
        self.modules_root: Path | None = None
        self.module_base = ""
        self.branch = ""

    def _prepare(self) -> list[str]:
        """Validate paths, locate the monorepo and resolve branch and modules."""
        source = self.config.source_path
        if source is None or not str(source).strip():
            raise ConfigurationError("Source path required (--source or SPLITSYNC_SOURCE)")
        if not Path(source).is_dir():
            raise ConfigurationError(f"Source path not found: {source}")
        if self.config.dest_path is None or not str(self.config.dest_path).strip():
            raise ConfigurationError("Destination directory required (--dest or SPLITSYNC_DEST)")

        self.modules_root = Path(source).resolve()
        git_root = locate_repo_root(self.modules_root, self.scratch)
        echo("info", "git root:", git_root)
        self.module_base = to_git_path(relative_path(git_root, self.modules_root))
        self.source = GitRepository(git_root, self.scratch)

        selected = select_modules(discover_modules(self.modules_root), self.config.modules)
        if not selected:
            return []

        self.branch = resolve_branch(self.source, self.config.branch)
        echo("info", "source branch:", self.branch)
        if self.config.name and len(selected) > 1:
            echo("warn", "name override ignored when several modules are selected:", self.config.name)
        return selected

    def run(self) -> BatchResult:
        """Process every selected module and save the version registry."""
        try:
            selected = self._prepare()
        except (ConfigurationError, ResolutionError) as e:
            echo("error", str(e))
            return BatchResult(summary=str(e), started=False)

        if not selected:
            echo("warn", "No packages to process")
            return BatchResult(summary="No packages to process", started=False)

        if self.store is None:
            self.store = JsonVersionRegistry.load(self.config.registry_path)

        results = [self.sync_module(name, single=len(selected) == 1) for name in selected]

        if self.config.write:
            self.store.flush()
        else:
            echo("dry", "versions registry not saved")

        result = BatchResult(summary="All packages processed", results=results)
        self._print_summary(result)
        return result

    def sync_module(self, name: str, single: bool = True) -> ModuleResult:
        """Extract or refresh one module."""
        echo("extract", "package:", name)
        dest_parent = Path(self.config.dest_path)
        if self.config.write:
            try:
                dest_parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                echo("error", "cannot create destination directory:", f"{dest_parent} ({e})")
                return ModuleResult(name, "skipped", error=str(e))
        else:
            echo("dry", "destination directory not created:", dest_parent)

        component = self.config.name if (self.config.name and single) else name
        target = dest_parent / component
        package = self.config.package_name(component)
        module_path = f"{self.module_base}/{name}" if self.module_base else name
        module = Module(
            name=name,
            path=module_path,
            latest_commit_time=self.source.latest_commit_time(self.branch, module_path),
        )

        try:
            if not target_exists(target):
                version = self._export_fresh(module, target, package)
                state = "fresh"
            elif is_unchanged(
                True,
                module.latest_commit_time,
                GitRepository(target, self.runner).latest_commit_time(),
            ):
                echo("skip", "no new commits for", module.path)
                version = self._refresh_unchanged(module, target, package)
                state = "unchanged"
            else:
                version = self._update_existing(module, target, package)
                state = "update"
        except (CommandError, ConfigurationError, GitCommandError, OSError, ValueError) as e:
            echo("error", f"module {name} failed:", e)
            return ModuleResult(name, "failed", error=str(e))

        return ModuleResult(name, state, version)

    def _build_export(self, module: Module, workdir: Path, purpose: str) -> GitRepository:
        """Clone the monorepo into ``workdir`` and filter it down to the module."""
        echo("info", "using temp workdir:", workdir)
        self.scratch.run(["git", "clone", str(self.source.path), str(workdir)])
        export = GitRepository(workdir, self.scratch)
        export.checkout(self.branch)
        export.reset_branch(extract_branch_name(module.name))

        request = FilterRequest(
            module_path=module.path,
            rewrite_files=list(self.config.rewrite_files),
            legacy_search=list(self.config.legacy_search),
            legacy_replace=list(self.config.legacy_replace),
            meta_tokens=list(self.config.git_meta),
            purpose=purpose,
        )
        self.scratch.run(self.filter_builder(request, workdir), workdir)

        # Nothing done here may ever reach the monorepo
        if "origin" in export.remotes():
            export.remove_remote("origin")
        return export

    def _write_metadata(self, repo: GitRepository, package: str, version: str, apply: bool) -> bool:
        """Write manifest and license into a working tree. Returns True if a license was added."""
        manifest = read_manifest(repo.path, self.config.manifest_name)
        manifest.setdefault("name", package)
        manifest["version"] = version
        write_manifest(repo.path, manifest, apply=apply, name=self.config.manifest_name)
        return ensure_license(
            repo.path,
            apply=apply,
            url=self.config.license_url,
            cache_path=self.config.license_cache,
        )

    def _export_fresh(self, module: Module, target: Path, package: str) -> str:
        keep = self.config.keep_branch
        extract = extract_branch_name(module.name)

        with scratch_dir(module.name) as workdir:
            export = self._build_export(module, workdir, "fresh")
            version = determine_version(
                "", self.store.get(package), True, self.config.initial_version
            )
            self._write_metadata(export, package, version, apply=True)
            export.apply_config(self.meta_configs)
            export.commit_all(f"Prepare package {package} {version}")
            export.tag_version(version)
            export.reset_branch(keep)
            export.hard_reset(extract)
            export.prune_to_single_branch(keep)
            self.store.set(package, version)

            if self.config.write:
                if target.exists():
                    echo("info", "removing stale destination directory:", target)
                    remove_tree(target)
                self.runner.run(["git", "clone", "-b", keep, str(workdir), str(target)])
                echo("info", "exported to destination:", target)
                dest = GitRepository(target, self.runner)
                self._finalize_remote(dest, package)
                dest.tag_version(version)
            else:
                echo("dry", "fresh export prepared in temp workdir only:", workdir)
        return version

    def _refresh_unchanged(self, module: Module, target: Path, package: str) -> str:
        dest = GitRepository(target, self.runner)
        manifest = read_manifest(target, self.config.manifest_name)
        previous = manifest_version(manifest)
        version = determine_version(
            previous, self.store.get(package), False, self.config.initial_version
        )

        version_changed = version != previous
        if version_changed:
            manifest["version"] = version
            write_manifest(target, manifest, apply=self.config.write, name=self.config.manifest_name)
        license_added = ensure_license(
            target,
            apply=self.config.write,
            url=self.config.license_url,
            cache_path=self.config.license_cache,
        )
        self.store.set(package, version)

        if version_changed or license_added:
            dest.apply_config(self.meta_configs)
            dest.commit_all(f"Update package metadata for {package} {version}")

        self._finalize_remote(dest, package)
        dest.tag_version(version)
        return version

    def _update_existing(self, module: Module, target: Path, package: str) -> str:
        keep = self.config.keep_branch
        extract = extract_branch_name(module.name)

        with ExitStack() as stack:
            export_dir = stack.enter_context(scratch_dir(f"{module.name}-export"))
            if self.config.write:
                work = GitRepository(target, self.runner)
            else:
                work_dir = stack.enter_context(scratch_dir(f"{module.name}-dest"))
                echo("dry", "working on a temp clone of the destination:", work_dir)
                self.scratch.run(["git", "clone", str(target), str(work_dir)])
                work = GitRepository(work_dir, self.scratch)
                # Pruning the clone must never reach the live destination
                work.remove_remote("origin")

            export = self._build_export(module, export_dir, "update")

            if EXPORT_REMOTE in work.remotes():
                work.remove_remote(EXPORT_REMOTE)
            work.add_remote(EXPORT_REMOTE, str(export_dir))
            try:
                work.fetch(EXPORT_REMOTE)
                dest_branch = self._destination_branch(work)
                work.checkout(dest_branch)

                only_dest, only_export = work.count_unique_commits(
                    dest_branch, f"{EXPORT_REMOTE}/{extract}"
                )
                echo("info", f"unique commits dest/export: {only_dest}/{only_export}", work.path)
                version = determine_version(
                    manifest_version(read_manifest(work.path, self.config.manifest_name)),
                    self.store.get(package),
                    only_export > 0,
                    self.config.initial_version,
                )

                self._write_metadata(export, package, version, apply=True)
                export.apply_config(self.meta_configs)
                if export.has_working_tree_changes():
                    export.commit_all(f"Update package metadata for {package} {version}")
                self.store.set(package, version)

                work.fetch(EXPORT_REMOTE)
                work.reset_branch(keep)
                work.hard_reset(f"{EXPORT_REMOTE}/{extract}")
                # Drop the export refs before gc so none of their objects survive
                work.remove_remote(EXPORT_REMOTE)
                work.prune_to_single_branch(keep)
            finally:
                if EXPORT_REMOTE in work.remotes():
                    work.remove_remote(EXPORT_REMOTE, check=False)

            live = GitRepository(target, self.runner)
            self._finalize_remote(live, package)
            live.tag_version(version)

        if not self.config.write:
            echo("dry", "update prepared in temp directories; destination untouched:", target)
        return version

    def _destination_branch(self, repo: GitRepository) -> str:
        head = repo.get_current_branch()
        if head:
            return head
        for candidate in CONVENTIONAL_BRANCHES:
            if repo.has_local_branch(candidate):
                return candidate
        return self.config.keep_branch

    def _finalize_remote(self, repo: GitRepository, package: str) -> None:
        """Point origin at the package's hosting URL, or drop a stale origin."""
        component = package.split("/", 1)[-1]
        url = self.config.remote_url(component)
        if url:
            repo.ensure_origin_remote(url, self.config.keep_branch)
        elif "origin" in repo.remotes():
            # Left over from cloning the temp export
            repo.remove_remote("origin")

    def _print_summary(self, result: BatchResult) -> None:
        """Print a summary table of the run."""
        table = Table(title="Extraction Summary")
        table.add_column("Module", style="cyan")
        table.add_column("State")
        table.add_column("Version", style="green")
        table.add_column("Error", style="red")

        styles = {"failed": "red", "skipped": "yellow", "unchanged": "dim"}
        for item in result.results:
            state_style = styles.get(item.state, "green")
            table.add_row(
                item.module,
                f"[{state_style}]{item.state}[/{state_style}]",
                item.version,
                item.error or "",
            )
        console.print(table)
