"""
Subprocess execution for splitsync.

Commands are argument lists executed through GitPython's process layer. A
runner in dry-run mode still answers read-only queries but replaces every
mutating command with a ``[dry]`` line. A non-zero exit is first checked
against a table of known benign outputs before it is treated as a failure.
"""

import shlex
from dataclasses import dataclass
from pathlib import Path

from git.cmd import Git
from git.exc import GitCommandNotFound

from .errors import CommandError
from .log import echo, echo_block

# Remotes the engine creates for itself; pruning never touches them
TEMP_REMOTE_NAMES = ("export", "project_export")


def is_temp_remote(name: str | None) -> bool:
    """Check whether a remote name is one of the engine's temporary remotes."""
    return (name or "").strip() in TEMP_REMOTE_NAMES


@dataclass
class CommandResult:
    """Outcome of a single external command."""

    argv: list[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""
    skipped: bool = False

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def output(self) -> str:
        return "\n".join(part for part in (self.stdout, self.stderr) if part)


@dataclass(frozen=True)
class OutputRule:
    """A failing command whose output marks the failure as harmless."""

    verb: str
    needle: str
    reason: str
    temp_remote_only: bool = False


@dataclass(frozen=True)
class Verdict:
    """Result of classifying a command outcome."""

    fatal: bool
    reason: str = ""


BENIGN_OUTCOMES: tuple[OutputRule, ...] = (
    OutputRule(
        "fetch",
        "would clobber existing tag",
        "Remote has tags that already exist locally; tag updates skipped",
    ),
    OutputRule(
        "fetch",
        "does not appear to be a git repository",
        "Temporary export remote is gone; fetch skipped",
        temp_remote_only=True,
    ),
    OutputRule(
        "fetch",
        "not a git repository",
        "Temporary export remote is gone; fetch skipped",
        temp_remote_only=True,
    ),
    OutputRule(
        "fetch",
        "could not fetch",
        "Temporary export remote unavailable; fetch skipped",
        temp_remote_only=True,
    ),
    OutputRule("commit", "nothing to commit", "Working tree clean; nothing to commit"),
    OutputRule("remote", "no such remote", "Remote not configured; nothing to remove"),
)


def command_verb(argv: list[str]) -> str:
    """Return the git subcommand (or program name) of an argument vector."""
    if not argv:
        return ""
    if Path(argv[0]).name == "git" and len(argv) > 1:
        return argv[1]
    return Path(argv[0]).name


def command_target(argv: list[str]) -> str | None:
    """Return the first positional argument after the verb, e.g. the remote of a fetch."""
    for arg in argv[2:]:
        if not arg.startswith("-"):
            return arg
    return None


def classify_failure(
    result: CommandResult, rules: tuple[OutputRule, ...] = BENIGN_OUTCOMES
) -> Verdict:
    """Decide whether a command outcome should stop processing."""
    if result.ok:
        return Verdict(fatal=False)

    verb = command_verb(result.argv)
    text = result.output.lower()
    target = command_target(result.argv)
    for rule in rules:
        if rule.verb != verb or rule.needle not in text:
            continue
        if rule.temp_remote_only and not is_temp_remote(target):
            continue
        return Verdict(fatal=False, reason=rule.reason)
    return Verdict(fatal=True)


class CommandRunner:
    """Runs external commands, honoring dry-run mode for mutations."""

    def __init__(self, dry_run: bool = False, rules: tuple[OutputRule, ...] = BENIGN_OUTCOMES):
        self.dry_run = dry_run
        self.rules = rules

    def execute(self, argv: list[str], cwd: Path | str | None = None) -> CommandResult:
        """Execute a command unconditionally and capture its output."""
        argv = [str(arg) for arg in argv]
        executor = Git(str(cwd) if cwd is not None else None)
        try:
            status, stdout, stderr = executor.execute(
                argv,
                with_extended_output=True,
                with_exceptions=False,
            )
        except GitCommandNotFound as e:
            return CommandResult(argv, 127, "", str(e))
        return CommandResult(argv, int(status or 0), stdout or "", stderr or "")

    def query(self, argv: list[str], cwd: Path | str | None = None) -> CommandResult:
        """Run a read-only command. Executes in dry-run mode too."""
        return self.execute(argv, cwd)

    def run(
        self,
        argv: list[str],
        cwd: Path | str | None = None,
        *,
        check: bool = True,
    ) -> CommandResult:
        """
        Run a mutating command.

        Args:
            argv: Program and arguments
            cwd: Working directory
            check: Raise CommandError on a fatal failure. When False the
                failure is only reported as a warning.

        Returns:
            The command result; a skipped result in dry-run mode
        """
        argv = [str(arg) for arg in argv]
        if self.dry_run:
            echo("dry", shlex.join(argv), f"(in {cwd})" if cwd else None)
            return CommandResult(argv, 0, skipped=True)

        result = self.execute(argv, cwd)
        if result.ok:
            return result

        verdict = classify_failure(result, self.rules)
        if not verdict.fatal:
            echo("info", f"git {command_verb(argv)}:", verdict.reason)
            return result

        if not check:
            lines = result.output.strip().splitlines()
            echo(
                "warn",
                f"{shlex.join(argv)} exited with {result.returncode}",
                lines[-1] if lines else None,
            )
            return result

        echo("error", f"command failed ({result.returncode}): {shlex.join(argv)}", cwd)
        # One verbose re-run so the full output ends up in the log
        retry = self.execute(argv, cwd)
        echo_block(retry.output)
        if retry.ok:
            return retry
        raise CommandError(retry)
