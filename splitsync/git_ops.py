"""
Git operations for the extractor.

Provides a wrapper around a repository that reads state through GitPython
and sends every mutation through a :class:`~splitsync.runner.CommandRunner`,
plus helpers for locating repository roots, computing relative paths and
resolving the branch to extract from.
"""

import os
import re
import sys
from pathlib import Path

from git import Repo
from git.exc import GitCommandError, InvalidGitRepositoryError, NoSuchPathError

from .errors import ResolutionError
from .log import echo
from .runner import CommandResult, CommandRunner, is_temp_remote

CONVENTIONAL_BRANCHES = ("main", "master", "develop", "trunk")
MAX_PARENT_LEVELS = 20
CASE_INSENSITIVE_FS = sys.platform.startswith(("win", "cygwin"))


def to_git_path(path: str | Path) -> str:
    """Convert a path to git's forward-slash form."""
    return str(path).replace("\\", "/")


def relative_path(
    base: str | Path,
    target: str | Path,
    case_insensitive: bool = CASE_INSENSITIVE_FS,
) -> str:
    """
    Express ``target`` relative to ``base``.

    Existing paths are resolved first. Returns "" when both point at the same
    directory; climbs out with ``..`` segments when ``target`` is not under
    ``base``.
    """
    base_text = os.path.realpath(base) if os.path.exists(base) else str(base)
    target_text = os.path.realpath(target) if os.path.exists(target) else str(target)
    base_text = base_text.rstrip("/\\")
    target_text = target_text.rstrip("/\\")

    def fold(text: str) -> str:
        return text.lower() if case_insensitive else text

    if fold(base_text) == fold(target_text):
        return ""
    prefix = fold(base_text)
    if fold(target_text).startswith(prefix) and target_text[len(base_text)] in "/\\":
        return target_text[len(base_text) + 1 :]

    base_parts = [part for part in re.split(r"[\\/]", base_text) if part]
    target_parts = [part for part in re.split(r"[\\/]", target_text) if part]
    common = 0
    while (
        common < min(len(base_parts), len(target_parts))
        and fold(base_parts[common]) == fold(target_parts[common])
    ):
        common += 1
    parts = [".."] * (len(base_parts) - common) + target_parts[common:]
    return os.sep.join(parts)


def locate_repo_root(start: str | Path, runner: CommandRunner | None = None) -> Path:
    """
    Find the top-level directory of the repository containing ``start``.

    Asks git first, then walks up parent directories looking for a ``.git``
    directory or file.
    """
    runner = runner or CommandRunner()
    start = Path(start)

    result = runner.query(["git", "rev-parse", "--show-toplevel"], start)
    top = result.stdout.strip() if result.ok else ""
    if top and Path(top).is_dir():
        return Path(top).resolve()

    current = start.resolve()
    for _ in range(MAX_PARENT_LEVELS):
        if (current / ".git").exists():
            return current
        if current.parent == current:
            break
        current = current.parent
    raise ResolutionError(f"Could not locate a git repository above {start}")


class GitRepository:
    """Wrapper around a git repository for extraction operations."""

    def __init__(self, path: Path, runner: CommandRunner | None = None):
        """Initialize repository wrapper."""
        self.path = Path(path).resolve()
        self.runner = runner or CommandRunner()
        try:
            self.repo = Repo(self.path)
        except (InvalidGitRepositoryError, NoSuchPathError) as e:
            raise ValueError(f"Not a valid git repository: {self.path}") from e

    def with_runner(self, runner: CommandRunner) -> "GitRepository":
        """Get a wrapper for the same repository using another runner."""
        return GitRepository(self.path, runner)

    # Inspection (always executes, also in dry-run)

    def ref_exists(self, ref: str) -> bool:
        try:
            self.repo.git.show_ref("--verify", "--quiet", ref)
        except GitCommandError:
            return False
        return True

    def has_local_branch(self, name: str) -> bool:
        return bool(name) and self.ref_exists(f"refs/heads/{name}")

    def has_remote_branch(self, name: str, remote: str = "origin") -> bool:
        return bool(name) and self.ref_exists(f"refs/remotes/{remote}/{name}")

    def get_current_branch(self) -> str | None:
        """Get the branch HEAD points at, or None when HEAD is detached."""
        try:
            return self.repo.git.symbolic_ref("--quiet", "--short", "HEAD").strip() or None
        except GitCommandError:
            return None

    def local_branches(self) -> list[str]:
        out = self.repo.git.for_each_ref("--format=%(refname:short)", "refs/heads/")
        return [line.strip() for line in out.splitlines() if line.strip()]

    def remotes(self) -> list[str]:
        return [line.strip() for line in self.repo.git.remote().splitlines() if line.strip()]

    def remote_branches(self, remote: str) -> list[str]:
        """Get branch names known for a remote, without the remote prefix."""
        try:
            out = self.repo.git.for_each_ref("--format=%(refname)", f"refs/remotes/{remote}/")
        except GitCommandError:
            return []
        prefix = f"refs/remotes/{remote}/"
        branches = []
        for line in out.splitlines():
            name = line.strip()[len(prefix) :]
            if name and name != "HEAD":
                branches.append(name)
        return branches

    def latest_commit_time(self, rev: str | None = None, path: str | None = None) -> int:
        """
        Get the committer timestamp of the newest commit.

        Args:
            rev: Revision to inspect (HEAD when omitted)
            path: Only consider commits touching this path

        Returns:
            Unix timestamp, or 0 when there is no such commit
        """
        args = ["-1", "--format=%ct"]
        if rev:
            args.append(rev)
        if path is not None:
            args += ["--", path]
        try:
            out = self.repo.git.log(*args).strip()
        except GitCommandError:
            return 0
        try:
            return max(int(out or 0), 0)
        except ValueError:
            return 0

    def count_unique_commits(self, left: str, right: str) -> tuple[int, int]:
        """Count commits only on ``left`` and only on ``right``."""
        try:
            out = self.repo.git.rev_list("--left-right", "--count", f"{left}...{right}")
        except GitCommandError:
            return 0, 0
        parts = out.split()
        if len(parts) < 2:
            return 0, 0
        return int(parts[0]), int(parts[1])

    def has_working_tree_changes(self) -> bool:
        """Check for staged, unstaged or untracked changes."""
        return self.repo.is_dirty(untracked_files=True)

    # Mutations (through the runner)

    def run(self, *args: str, check: bool = True) -> CommandResult:
        return self.runner.run(["git", *args], self.path, check=check)

    def checkout(self, branch: str) -> None:
        self.run("checkout", branch)

    def reset_branch(self, branch: str) -> None:
        """Create or reset ``branch`` at HEAD and switch to it."""
        self.run("checkout", "-B", branch)

    def hard_reset(self, rev: str) -> None:
        self.run("reset", "--hard", rev)

    def commit_all(self, message: str) -> None:
        """Stage everything and commit."""
        self.run("add", "-A")
        self.run("commit", "-m", message)

    def apply_config(self, configs: dict[str, str]) -> None:
        """Set local git config values."""
        for key, value in configs.items():
            echo("info", "git config:", f"{key}={value}")
            self.run("config", key, value)

    def tag_version(self, version: str) -> None:
        """Point tag ``version`` at HEAD, moving it if it already exists."""
        version = (version or "").strip()
        if not version:
            return
        echo("info", "tagging version:", version)
        self.run("tag", "-f", version)

    def add_remote(self, name: str, url: str) -> None:
        self.run("remote", "add", name, url)

    def remove_remote(self, name: str, check: bool = True) -> None:
        self.run("remote", "remove", name, check=check)

    def fetch(self, remote: str) -> CommandResult:
        return self.run("fetch", remote)

    def prune_to_single_branch(self, keep: str = "main") -> None:
        """
        Reduce the repository to a single branch.

        Deletes every other local branch and every other branch on non-temporary
        remotes, then expires the reflog and garbage-collects so nothing of the
        removed history lingers.
        """
        self.reset_branch(keep)

        for branch in self.local_branches():
            if branch == keep:
                continue
            echo("info", "deleting local branch:", branch)
            self.run("branch", "-D", branch)

        for remote in self.remotes():
            if is_temp_remote(remote):
                echo("info", "skipping branch deletion for temporary remote:", remote)
                continue
            for branch in self.remote_branches(remote):
                if branch == keep:
                    continue
                echo("info", "deleting remote branch:", f"{remote}/{branch}")
                self.run("push", remote, "--delete", branch, check=False)
            self.run("remote", "set-head", remote, keep, check=False)

        self.run("reflog", "expire", "--expire=now", "--all")
        self.run("gc", "--prune=now", "--aggressive")

    def ensure_origin_remote(self, url: str, branch: str = "main") -> None:
        """
        Point ``origin`` at the package's hosting URL and track ``branch``.

        Nothing is pushed; the remote is only configured so a later
        ``git push`` publishes the branch.
        """
        if not url:
            return
        has_origin = "origin" in self.remotes()

        if self.runner.dry_run:
            action = "set origin url" if has_origin else "add origin"
            echo("dry", f"{action}:", url)
            echo("dry", "fetch --all --tags, checkout -B", branch)
            echo("dry", "config push.autoSetupRemote=true,", f"branch.{branch}.remote=origin")
            return

        if has_origin:
            self.run("remote", "set-url", "origin", url)
        else:
            self.run("remote", "add", "origin", url)

        # The hosted repository may not exist yet
        self.run("fetch", "--all", "--tags", check=False)
        self.reset_branch(branch)
        self.run("config", "push.autoSetupRemote", "true")
        self.run("config", f"branch.{branch}.remote", "origin")
        self.run("config", f"branch.{branch}.merge", f"refs/heads/{branch}")

        if self.has_remote_branch(branch):
            self.run("remote", "set-head", "origin", branch, check=False)
            self.run("branch", f"--set-upstream-to=origin/{branch}", branch, check=False)
        else:
            self.run("config", "advice.setUpstreamFailure", "false")
        echo("info", "origin remote configured:", url)


def resolve_branch(repo: GitRepository, preferred: str = "") -> str:
    """
    Pick the branch to extract from.

    Tries, in order: the preferred branch (creating a tracking branch from
    ``origin`` if needed), the checked-out branch, then the first of
    main/master/develop/trunk.

    Raises:
        ResolutionError: If none of them exists
    """

    def usable(name: str | None) -> bool:
        if not name:
            return False
        if repo.has_local_branch(name):
            return True
        if repo.has_remote_branch(name):
            echo("info", "creating local tracking branch:", f"{name} -> origin/{name}")
            repo.run("branch", "--track", name, f"origin/{name}", check=False)
            return repo.has_local_branch(name)
        return False

    preferred = (preferred or "").strip()
    if usable(preferred):
        return preferred
    if preferred:
        echo("warn", "preferred branch not found, falling back:", preferred)

    head = repo.get_current_branch()
    if usable(head):
        return head

    for candidate in CONVENTIONAL_BRANCHES:
        if usable(candidate):
            return candidate

    raise ResolutionError(f"Could not determine a usable source branch in {repo.path}")
