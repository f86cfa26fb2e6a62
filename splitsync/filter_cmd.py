"""
History filter command construction.

Builds the argument vector that runs git-filter-repo inside a container
against a temporary clone: the module directory becomes the repository root,
optional text replacement rules are applied and commit identities can be
rewritten. Nothing here executes the command.
"""

import os
import secrets
import shutil
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

from .config import ConfigAssignment, FilterToolSettings, FlagToken
from .errors import ConfigurationError
from .log import echo

CONTAINER_WORKDIR = "/app"
CONTAINER_TOOL_DIR = "/src"

# Inside .git so rule files are visible to the container but never committed
RULES_DIR = Path(".git") / "splitsync-rules"

NAME_KEYS = ("authorName", "committerName", "user.name")
EMAIL_KEYS = ("authorEmail", "committerEmail", "user.email")


@dataclass
class FilterRequest:
    """Everything the filter needs to know about one module."""

    module_path: str
    rewrite_files: list[Path] = field(default_factory=list)
    legacy_search: list[str] = field(default_factory=list)
    legacy_replace: list[str] = field(default_factory=list)
    meta_tokens: list[FlagToken | ConfigAssignment] = field(default_factory=list)
    purpose: Literal["fresh", "update"] = "fresh"


def escape_rule_text(text: str) -> str:
    """Escape line breaks so a value fits on one rule line."""
    return text.replace("\r\n", "\n").replace("\r", "\n").replace("\n", "\\n")


def legacy_rule_lines(search: list[str], replace: list[str]) -> list[str]:
    """Pair search/replace values index-wise into ``literal:`` rules."""
    searches = [value.strip() for value in search if value.strip()]
    replacements = [value.strip() for value in replace if value.strip()]
    count = min(len(searches), len(replacements))
    if count == 0:
        if searches or replacements:
            echo("warn", "search/replace lists need at least one value each; no rules generated")
        return []
    if len(searches) != len(replacements):
        echo(
            "warn",
            f"search/replace length mismatch ({len(searches)} vs {len(replacements)});",
            f"using the first {count} pairs",
        )
    return [
        f"literal:{escape_rule_text(old)}==>{escape_rule_text(new)}"
        for old, new in zip(searches[:count], replacements[:count])
    ]


def write_legacy_rewrite_file(
    search: list[str],
    replace: list[str],
    directory: Path | None = None,
) -> Path | None:
    """
    Write the legacy search/replace pairs as a replacement rules file.

    Args:
        search: Strings to find
        replace: Replacements, paired by position with ``search``
        directory: Where to write the file (system temp dir by default)

    Returns:
        Path of the generated file, or None when there was nothing to write
        or writing failed
    """
    lines = legacy_rule_lines(search, replace)
    if not lines:
        return None

    directory = Path(directory) if directory is not None else Path(tempfile.gettempdir())
    path = directory / f"splitsync_rewrite_{secrets.token_hex(4)}.txt"
    try:
        directory.mkdir(parents=True, exist_ok=True)
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    except OSError as e:
        echo("error", "could not write replacement rules file:", f"{path} ({e})")
        return None
    echo("info", "created replacement rules file:", path)
    return path


def identity_callback(value: str) -> str:
    """Build a filter-repo callback body returning ``value`` as bytes."""
    return f"return {value.encode('utf-8')!r}"


def desired_identity(tokens: list[FlagToken | ConfigAssignment]) -> tuple[str, str]:
    """Return the (name, email) requested by config tokens; "" when absent."""
    name = email = ""
    for token in tokens:
        if not isinstance(token, ConfigAssignment):
            continue
        if token.key in NAME_KEYS:
            name = token.value
        elif token.key in EMAIL_KEYS:
            email = token.value
    return name, email


class FilterCommandBuilder:
    """Builds containerized git-filter-repo invocations."""

    def __init__(self, settings: FilterToolSettings):
        self.settings = settings

    def tool_arguments(self, request: FilterRequest, rule_files: list[str]) -> list[str]:
        """Arguments passed to git-filter-repo itself."""
        module = request.module_path.strip("/") + "/"
        args = ["--path", module, "--path-rename", f"{module}:", "--force"]
        for rule_file in rule_files:
            args += ["--replace-text", rule_file]

        passthrough = [
            part
            for token in request.meta_tokens
            if isinstance(token, FlagToken)
            for part in token.parts
        ]
        name, email = desired_identity(request.meta_tokens)
        if name and "--name-callback" not in passthrough:
            args += ["--name-callback", identity_callback(name)]
        if email and "--email-callback" not in passthrough:
            args += ["--email-callback", identity_callback(email)]
        return args + passthrough

    def stage_rule_files(self, request: FilterRequest, workdir: Path) -> list[str]:
        """
        Place replacement rule files inside the work tree's git directory.

        Explicit rule files win over the legacy search/replace lists.

        Returns:
            In-container paths of the staged files
        """
        staging = Path(workdir) / RULES_DIR
        staged: list[Path] = []

        sources = [Path(p) for p in request.rewrite_files if str(p).strip()]
        if sources:
            staging.mkdir(parents=True, exist_ok=True)
            for index, source in enumerate(sources):
                if not source.is_file():
                    raise ConfigurationError(f"replacement rules file not found: {source}")
                target = staging / f"{index:02d}-{source.name}"
                shutil.copyfile(source, target)
                staged.append(target)
        elif request.legacy_search or request.legacy_replace:
            generated = write_legacy_rewrite_file(
                request.legacy_search, request.legacy_replace, staging
            )
            if generated is not None:
                staged.append(generated)

        return [f"{CONTAINER_WORKDIR}/{RULES_DIR.as_posix()}/{path.name}" for path in staged]

    def wrap(self, inner: list[str], workdir: Path, tool_dir: Path) -> list[str]:
        """Wrap a command so it runs in the filter container."""
        outer = ["docker", "run", "--rm"]
        if self.settings.map_user and hasattr(os, "getuid"):
            outer += ["--user", f"{os.getuid()}:{os.getgid()}"]
        outer += [
            "-v",
            f"{Path(workdir).resolve()}:{CONTAINER_WORKDIR}",
            "-v",
            f"{tool_dir}:{CONTAINER_TOOL_DIR}",
            "-w",
            CONTAINER_WORKDIR,
            self.settings.image,
        ]
        return outer + inner

    def build(self, request: FilterRequest, workdir: Path) -> list[str]:
        """Build the full command for filtering ``workdir`` down to one module."""
        tool_dir = self.settings.resolved_source()
        rule_files = self.stage_rule_files(request, workdir)
        inner = [
            "python3",
            f"{CONTAINER_TOOL_DIR}/{self.settings.script}",
            *self.tool_arguments(request, rule_files),
        ]
        return self.wrap(inner, workdir, tool_dir)
