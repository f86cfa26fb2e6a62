"""Tests for versioning module."""

import json
from pathlib import Path

from splitsync.versioning import (
    InMemoryVersionStore,
    JsonVersionRegistry,
    bump_patch,
    compare_semver,
    determine_version,
    parse_semver,
)


class TestCompareSemver:
    """Tests for compare_semver."""

    def test_numeric_ordering(self):
        """Test that components compare as integers."""
        assert compare_semver("1.2.3", "1.2.10") == -1
        assert compare_semver("1.10.0", "1.9.9") == 1
        assert compare_semver("2.0.0", "2.0.0") == 0

    def test_suffix_ignored(self):
        """Test that pre-release suffixes are ignored."""
        assert compare_semver("1.2.3-rc1", "1.2.3") == 0

    def test_unparseable(self):
        """Test ordering of invalid versions."""
        assert compare_semver("garbage", "0.0.1") == -1
        assert compare_semver("0.0.1", "") == 1
        assert compare_semver("x", "y") == 0

    def test_parse_semver(self):
        """Test extracting the numeric triple."""
        assert parse_semver(" 3.4.5 ") == (3, 4, 5)
        assert parse_semver("v1.2.3") is None


class TestBumpPatch:
    """Tests for bump_patch."""

    def test_bump(self):
        """Test incrementing the patch number."""
        assert bump_patch("1.2.9") == "1.2.10"

    def test_fallback(self):
        """Test fallback for empty or invalid input."""
        assert bump_patch("", "0.1.0") == "0.1.0"
        assert bump_patch("not-a-version", "0.1.0") == "0.1.0"
        assert bump_patch(None, "2.0.0") == "2.0.0"


class TestDetermineVersion:
    """Tests for determine_version."""

    def test_registry_catch_up(self):
        """Test adopting a registry version ahead of the manifest."""
        assert determine_version("1.0.0", "1.0.2", False) == "1.0.2"

    def test_bump_on_changes(self):
        """Test bumping the higher version when there are changes."""
        assert determine_version("1.0.0", "1.0.2", True) == "1.0.3"
        assert determine_version("1.4.0", "1.0.2", True) == "1.4.1"

    def test_unchanged_keeps_manifest(self):
        """Test that nothing changes without new history."""
        assert determine_version("1.4.0", "1.0.2", False) == "1.4.0"
        assert determine_version("1.4.0", "", False) == "1.4.0"

    def test_initial_version(self):
        """Test the first release of a package."""
        assert determine_version("", "", False) == "0.1.0"
        assert determine_version("", "", True) == "0.1.0"
        assert determine_version("", "", True, initial="1.0.0") == "1.0.0"

    def test_registry_only(self):
        """Test a recreated target with only a registry entry."""
        assert determine_version("", "0.1.4", True) == "0.1.5"
        assert determine_version("", "0.1.4", False) == "0.1.4"


class TestInMemoryVersionStore:
    """Tests for InMemoryVersionStore."""

    def test_get_missing(self):
        """Test that unknown packages have no version."""
        assert InMemoryVersionStore().get("acme/libs") == ""

    def test_set_is_monotonic(self):
        """Test that lower versions are refused."""
        store = InMemoryVersionStore({"acme/libs": "1.2.0"})
        store.set("acme/libs", "1.1.9")
        assert store.get("acme/libs") == "1.2.0"

        store.set("acme/libs", "1.2.1")
        assert store.get("acme/libs") == "1.2.1"

    def test_set_ignores_empty(self):
        """Test that empty versions are not stored."""
        store = InMemoryVersionStore()
        store.set("acme/libs", "  ")
        assert store.items() == {}


class TestJsonVersionRegistry:
    """Tests for JsonVersionRegistry."""

    def test_load_missing_file(self, temp_dir: Path):
        """Test loading a registry that does not exist yet."""
        registry = JsonVersionRegistry.load(temp_dir / "versions.json")
        assert registry.items() == {}

    def test_load_malformed(self, temp_dir: Path):
        """Test that malformed JSON yields an empty registry."""
        path = temp_dir / "versions.json"
        path.write_text("{not json")
        assert JsonVersionRegistry.load(path).items() == {}

    def test_load_non_object(self, temp_dir: Path):
        """Test that a JSON array yields an empty registry."""
        path = temp_dir / "versions.json"
        path.write_text('["acme/libs"]')
        assert JsonVersionRegistry.load(path).items() == {}

    def test_load_coerces_values(self, temp_dir: Path):
        """Test that values are coerced to strings."""
        path = temp_dir / "versions.json"
        path.write_text('{"acme/libs": "0.1.2", "acme/odd": 3}')
        registry = JsonVersionRegistry.load(path)
        assert registry.get("acme/libs") == "0.1.2"
        assert registry.get("acme/odd") == "3"

    def test_flush_round_trip(self, temp_dir: Path):
        """Test writing the registry and reading it back."""
        path = temp_dir / "nested" / "versions.json"
        registry = JsonVersionRegistry(path)
        registry.set("acme/tools", "0.2.0")
        registry.set("acme/libs", "0.1.0")
        registry.flush()

        text = path.read_text()
        assert text.endswith("\n")
        assert json.loads(text) == {"acme/libs": "0.1.0", "acme/tools": "0.2.0"}
        assert JsonVersionRegistry.load(path).get("acme/tools") == "0.2.0"

    def test_flush_failure_is_not_raised(self, temp_dir: Path):
        """Test that an unwritable registry only warns."""
        blocker = temp_dir / "file"
        blocker.write_text("")
        registry = JsonVersionRegistry(blocker / "versions.json")
        registry.set("acme/libs", "0.1.0")
        registry.flush()
        assert not (blocker / "versions.json").exists()
