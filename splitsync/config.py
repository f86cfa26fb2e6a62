"""
Configuration handling for splitsync.

Defines the extraction settings schema, the metadata tokens that drive git
identity and filter-tool passthrough flags, and methods for loading/saving
the configuration from YAML files.
"""

import re
from pathlib import Path
from typing import Annotated, Literal, Union

import click
import yaml
from pydantic import BaseModel, Field, field_serializer, field_validator

from .errors import ConfigurationError
from .log import echo

APP_NAME = "splitsync"
REGISTRY_FILE_NAME = "versions.json"
DEFAULT_REMOTE_URL = "https://github.com/{vendor}/{name}.git"
DEFAULT_LICENSE_URL = "https://www.apache.org/licenses/LICENSE-2.0.txt"

# Shorthand metadata keys accepted in place of git config names
CONFIG_KEY_ALIASES = {
    "authorName": "user.name",
    "committerName": "user.name",
    "authorEmail": "user.email",
    "committerEmail": "user.email",
}

FLAG_PATTERN = re.compile(r"^-{1,2}\S")


def default_registry_path() -> Path:
    """
    Get the default versions registry location.

    The registry lives in the per-user application directory, so every
    invocation sees the same versions regardless of the working directory.
    """
    return Path(click.get_app_dir(APP_NAME)) / REGISTRY_FILE_NAME


class FlagToken(BaseModel):
    """Metadata token forwarded to the history filter as command-line flags."""

    kind: Literal["flag"] = "flag"
    parts: list[str] = Field(..., description="Flag and its arguments, split on whitespace")

    def __str__(self) -> str:
        return " ".join(self.parts)


class ConfigAssignment(BaseModel):
    """Metadata token that sets a git config value, e.g. ``user.name Jane``."""

    kind: Literal["config"] = "config"
    key: str = Field(..., description="Git config key or one of its aliases")
    value: str = Field(..., description="Value to assign")

    @property
    def config_key(self) -> str:
        """The git config key with aliases resolved."""
        return CONFIG_KEY_ALIASES.get(self.key, self.key)

    def __str__(self) -> str:
        return f"{self.key} {self.value}"


MetaToken = Annotated[Union[FlagToken, ConfigAssignment], Field(discriminator="kind")]


def parse_meta_token(raw: str) -> FlagToken | ConfigAssignment | None:
    """
    Parse one raw metadata string.

    Strings starting with a dash become flags; ``key value`` strings become
    config assignments. Anything else yields None.
    """
    text = raw.strip()
    if not text:
        return None
    if FLAG_PATTERN.match(text):
        return FlagToken(parts=text.split())

    pieces = re.split(r"\s+", text, maxsplit=1)
    if len(pieces) < 2 or not pieces[1].strip():
        return None
    return ConfigAssignment(key=pieces[0], value=pieces[1].strip())


def parse_meta_tokens(raw_tokens: list[str]) -> list[FlagToken | ConfigAssignment]:
    """Parse raw metadata strings, dropping (and reporting) unusable ones."""
    tokens = []
    for raw in raw_tokens:
        token = parse_meta_token(raw)
        if token is None:
            if raw.strip():
                echo("warn", "ignoring metadata token (expected a flag or 'key value'):", raw)
            continue
        tokens.append(token)
    return tokens


def build_meta_configs(tokens: list[FlagToken | ConfigAssignment]) -> dict[str, str]:
    """Collect git config assignments; later tokens override earlier ones."""
    configs: dict[str, str] = {}
    for token in tokens:
        if isinstance(token, ConfigAssignment):
            configs[token.config_key] = token.value
    return configs


class FilterToolSettings(BaseModel):
    """Where to find the history filter tool and how to run it."""

    # Directory holding the git-filter-repo script, mounted read-only at /src
    source_dir: Path | None = Field(
        default=None, description="Directory containing the git-filter-repo script"
    )
    # git-filter-repo shells out to git, which the slim images lack
    image: str = Field(
        default="python:3.12", description="Container image used to run the filter"
    )
    script: str = Field(
        default="git-filter-repo", description="Script name inside source_dir"
    )
    # Run the container as the invoking user so rewritten files stay owned by them
    map_user: bool = Field(
        default=True, description="Pass --user uid:gid to the container"
    )

    def resolved_source(self) -> Path:
        """Return the tool directory, failing if it is unset or missing."""
        if self.source_dir is None or not str(self.source_dir).strip():
            raise ConfigurationError(
                "git-filter-repo source directory is not configured (set SPLITSYNC_GITFILTER_SRC)"
            )
        source = Path(self.source_dir).expanduser()
        if not source.is_dir():
            raise ConfigurationError(f"git-filter-repo source directory not found: {source}")
        return source.resolve()


class ExtractConfig(BaseModel):
    """Main configuration for an extraction run."""

    # Monorepo side
    source_path: Path | None = Field(
        default=None, description="Directory whose sub-directories are the modules"
    )
    branch: str = Field(
        default="", description="Preferred source branch (falls back to HEAD, main, master, ...)"
    )
    modules: str = Field(
        default="", description="Comma or space separated module names; empty selects all"
    )

    # Target side
    dest_path: Path | None = Field(
        default=None, description="Directory that receives one repository per module"
    )
    keep_branch: str = Field(
        default="main", description="The single branch kept in every target repository"
    )
    vendor: str = Field(default="acme", description="Package vendor prefix")
    name: str = Field(
        default="", description="Component name override when a single module is selected"
    )
    remote_url_template: str = Field(
        default=DEFAULT_REMOTE_URL,
        description="Origin URL for targets; {vendor} and {name} are substituted. Empty disables",
    )

    # History rewriting
    git_meta: list[MetaToken] = Field(
        default_factory=list,
        description="Git config assignments ('user.name Jane') or filter flags ('--mailmap x')",
    )
    rewrite_files: list[Path] = Field(
        default_factory=list, description="Replacement rule files passed to the filter"
    )
    legacy_search: list[str] = Field(
        default_factory=list, description="Deprecated: literal strings to replace"
    )
    legacy_replace: list[str] = Field(
        default_factory=list, description="Deprecated: replacements, paired with legacy_search"
    )
    filter_tool: FilterToolSettings = Field(default_factory=FilterToolSettings)

    # Packaging
    manifest_name: str = Field(default="composer.json", description="Package manifest file name")
    initial_version: str = Field(default="0.1.0", description="Version of a first release")
    license_url: str = Field(
        default=DEFAULT_LICENSE_URL, description="Where to download the license text from"
    )
    license_cache: Path | None = Field(
        default=None, description="Cached license text (defaults to the system temp dir)"
    )
    registry_path: Path = Field(
        default_factory=default_registry_path,
        description="Path to the versions registry JSON file",
    )

    # Without write, only temp directories are modified
    write: bool = Field(default=False, description="Apply changes instead of a dry run")

    @field_validator("git_meta", mode="before")
    @classmethod
    def _parse_raw_meta(cls, value):
        if value is None:
            return []
        if isinstance(value, (str, dict, BaseModel)):
            value = [value]
        tokens = []
        for item in value:
            if isinstance(item, str):
                tokens.extend(parse_meta_tokens([item]))
            else:
                tokens.append(item)
        return tokens

    @field_serializer("git_meta")
    def _serialize_meta(self, tokens: list[FlagToken | ConfigAssignment]) -> list[str]:
        return [str(token) for token in tokens]

    def meta_configs(self) -> dict[str, str]:
        """Git config values to apply before committing."""
        return build_meta_configs(self.git_meta)

    def package_name(self, component: str) -> str:
        """Get the ``vendor/component`` package name."""
        return f"{self.vendor}/{component}"

    def remote_url(self, component: str) -> str:
        """Get the origin URL for a component, or "" when disabled."""
        if not self.remote_url_template.strip():
            return ""
        return self.remote_url_template.format(vendor=self.vendor, name=component)

    @classmethod
    def from_yaml(cls, path: Path) -> "ExtractConfig":
        """Load configuration from a YAML file."""
        with open(path) as f:
            data = yaml.safe_load(f)
        return cls.model_validate(data or {})

    def to_yaml(self, path: Path) -> None:
        """Save configuration to a YAML file."""
        with open(path, "w") as f:
            yaml.dump(
                self.model_dump(mode="json"),
                f,
                default_flow_style=False,
                sort_keys=False,
            )

    @classmethod
    def from_sources(cls, path: Path | None = None, **overrides) -> "ExtractConfig":
        """
        Build a configuration from an optional YAML file plus overrides.

        Overrides that are None or empty collections are ignored, so unset
        command-line options never mask values from the file.
        """
        data = {}
        if path is not None:
            data = cls.from_yaml(path).model_dump()
        for key, value in overrides.items():
            if value is None or (isinstance(value, (tuple, list)) and not value):
                continue
            data[key] = list(value) if isinstance(value, tuple) else value
        return cls.model_validate(data)


def create_default_config(
    source_path: Path,
    dest_path: Path,
    vendor: str = "acme",
    gitfilter_src: Path | None = None,
) -> ExtractConfig:
    """Create a starter configuration with sensible defaults."""
    return ExtractConfig(
        source_path=source_path,
        dest_path=dest_path,
        vendor=vendor,
        filter_tool=FilterToolSettings(source_dir=gitfilter_src),
        git_meta=["user.name splitsync", "user.email splitsync@localhost"],
    )
