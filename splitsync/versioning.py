"""
Semantic versioning for extracted packages.

Versions are plain ``MAJOR.MINOR.PATCH`` strings. The registry remembers the
last version handed out per package so numbers keep increasing even when a
target repository is deleted and extracted again.
"""

import json
import re
from pathlib import Path
from typing import Protocol

from .log import echo

INITIAL_VERSION = "0.1.0"
SEMVER_PATTERN = re.compile(r"^(\d+)\.(\d+)\.(\d+)")


def parse_semver(version: str | None) -> tuple[int, int, int] | None:
    """Return the leading numeric triple of a version, or None if there is none."""
    match = SEMVER_PATTERN.match((version or "").strip())
    if not match:
        return None
    return int(match.group(1)), int(match.group(2)), int(match.group(3))


def compare_semver(a: str | None, b: str | None) -> int:
    """
    Compare two versions by their numeric triple.

    Suffixes such as ``-rc1`` are ignored. An unparseable version sorts below
    any valid one, and two unparseable versions compare equal.

    Returns:
        -1, 0 or 1
    """
    left = parse_semver(a)
    right = parse_semver(b)
    if left is None and right is None:
        return 0
    if left is None:
        return -1
    if right is None:
        return 1
    return (left > right) - (left < right)


def bump_patch(version: str | None, fallback: str = INITIAL_VERSION) -> str:
    """Increment the patch number, or return ``fallback`` for an unusable version."""
    parsed = parse_semver(version)
    if parsed is None:
        return fallback
    major, minor, patch = parsed
    return f"{major}.{minor}.{patch + 1}"


def determine_version(
    manifest_version: str | None,
    registry_version: str | None,
    has_changes: bool,
    initial: str = INITIAL_VERSION,
) -> str:
    """
    Pick the version a package should carry after this run.

    Args:
        manifest_version: Version found in the target's manifest ("" if none)
        registry_version: Version recorded in the registry ("" if none)
        has_changes: Whether new history is being published
        initial: Version for a package that has never been published

    Returns:
        The version string to write, tag and record
    """
    manifest = (manifest_version or "").strip()
    registry = (registry_version or "").strip()

    higher = manifest
    if registry and (not higher or compare_semver(registry, higher) > 0):
        higher = registry

    # A registry ahead of the manifest is adopted as-is; only new history bumps
    if has_changes:
        return bump_patch(higher, initial)
    return higher or initial


class VersionStore(Protocol):
    """Storage for the package -> version mapping."""

    def get(self, package: str) -> str: ...

    def set(self, package: str, version: str) -> None: ...

    def flush(self) -> None: ...

    def items(self) -> dict[str, str]: ...


class InMemoryVersionStore:
    """Version store that never touches the filesystem."""

    def __init__(self, versions: dict[str, str] | None = None):
        self._versions: dict[str, str] = dict(versions or {})

    def get(self, package: str) -> str:
        return self._versions.get(package, "")

    def set(self, package: str, version: str) -> None:
        """Record a version unless it would lower the stored one."""
        version = (version or "").strip()
        if not version:
            return
        current = self._versions.get(package, "")
        if current and compare_semver(version, current) < 0:
            echo("warn", f"registry keeps {package} at {current}; ignoring lower version", version)
            return
        self._versions[package] = version

    def flush(self) -> None:
        pass

    def items(self) -> dict[str, str]:
        return dict(sorted(self._versions.items()))


class JsonVersionRegistry(InMemoryVersionStore):
    """Version store persisted as a JSON object on disk."""

    def __init__(self, path: Path, versions: dict[str, str] | None = None):
        super().__init__(versions)
        self.path = Path(path)

    @classmethod
    def load(cls, path: Path) -> "JsonVersionRegistry":
        """Load the registry; a missing or malformed file yields an empty one."""
        path = Path(path)
        if not path.is_file():
            return cls(path)

        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            echo("warn", "could not read versions registry, starting empty:", f"{path} ({e})")
            return cls(path)

        if not isinstance(data, dict):
            echo("warn", "versions registry is not a JSON object, starting empty:", path)
            return cls(path)

        versions = {key: str(value) for key, value in data.items() if isinstance(key, str)}
        return cls(path, versions)

    def flush(self) -> None:
        """Write the registry back to disk. Failures are reported, never raised."""
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(self.items(), indent=4) + "\n", encoding="utf-8")
        except OSError as e:
            echo("warn", "could not save versions registry:", f"{self.path} ({e})")
            return
        echo("info", "saved versions registry:", self.path)
