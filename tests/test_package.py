"""Tests for package metadata helpers."""

import json
from pathlib import Path

import requests

from splitsync import package
from splitsync.package import (
    FALLBACK_LICENSE,
    cached_license_text,
    ensure_license,
    has_license,
    manifest_version,
    read_manifest,
    write_manifest,
)


class FakeResponse:
    text = "Downloaded License\n"

    def raise_for_status(self):
        pass


class TestManifest:
    """Tests for manifest reading and writing."""

    def test_read_missing(self, temp_dir: Path):
        """Test that a missing manifest reads as empty."""
        assert read_manifest(temp_dir) == {}

    def test_read_malformed(self, temp_dir: Path):
        """Test that malformed JSON reads as empty."""
        (temp_dir / "composer.json").write_text("{broken")
        assert read_manifest(temp_dir) == {}

    def test_read_non_object(self, temp_dir: Path):
        """Test that a JSON list reads as empty."""
        (temp_dir / "composer.json").write_text("[1, 2]")
        assert read_manifest(temp_dir) == {}

    def test_write_apply(self, temp_dir: Path):
        """Test the written format."""
        write_manifest(temp_dir, {"name": "acme/libs", "homepage": "https://x.y/z", "author": "Zoë"}, apply=True)
        text = (temp_dir / "composer.json").read_text(encoding="utf-8")
        assert text.endswith("}\n")
        assert "https://x.y/z" in text
        assert "Zoë" in text
        assert json.loads(text)["name"] == "acme/libs"

    def test_write_dry_run(self, temp_dir: Path):
        """Test that dry-run writes nothing."""
        write_manifest(temp_dir, {"name": "acme/libs"}, apply=False)
        assert not (temp_dir / "composer.json").exists()

    def test_custom_manifest_name(self, temp_dir: Path):
        """Test reading and writing another manifest file."""
        write_manifest(temp_dir, {"version": "1.0.0"}, apply=True, name="package.json")
        assert read_manifest(temp_dir, "package.json") == {"version": "1.0.0"}

    def test_manifest_version(self):
        """Test extracting the version field."""
        assert manifest_version({"version": " 1.2.3 "}) == "1.2.3"
        assert manifest_version({}) == ""


class TestLicense:
    """Tests for license handling."""

    def test_existing_license_variants(self, temp_dir: Path):
        """Test that any license file name counts."""
        (temp_dir / "LICENSE.md").write_text("MIT")
        assert has_license(temp_dir)
        assert ensure_license(temp_dir, apply=True) is False

    def test_copies_cached_license(self, temp_dir: Path, license_cache: Path):
        """Test adding the cached license text."""
        repo_dir = temp_dir / "repo"
        repo_dir.mkdir()
        assert ensure_license(repo_dir, apply=True, cache_path=license_cache) is True
        assert (repo_dir / "LICENSE").read_text() == "Test License\n"

    def test_dry_run(self, temp_dir: Path, license_cache: Path):
        """Test that dry-run reports but does not write."""
        repo_dir = temp_dir / "repo"
        repo_dir.mkdir()
        assert ensure_license(repo_dir, apply=False, cache_path=license_cache) is True
        assert not (repo_dir / "LICENSE").exists()

    def test_download_and_cache(self, temp_dir: Path, monkeypatch):
        """Test that the license is downloaded once and cached."""
        calls = []

        def fake_get(url, timeout, headers):
            calls.append((url, timeout))
            return FakeResponse()

        monkeypatch.setattr(package.requests, "get", fake_get)
        cache = temp_dir / "cache" / "license.txt"

        assert cached_license_text("https://example.invalid/LICENSE", cache) == "Downloaded License\n"
        assert cached_license_text("https://example.invalid/LICENSE", cache) == "Downloaded License\n"
        assert calls == [("https://example.invalid/LICENSE", 15)]

    def test_download_failure_uses_notice(self, temp_dir: Path, monkeypatch):
        """Test the fallback notice when the download fails."""

        def fake_get(url, timeout, headers):
            raise requests.ConnectionError("offline")

        monkeypatch.setattr(package.requests, "get", fake_get)
        cache = temp_dir / "license.txt"

        assert cached_license_text(cache_path=cache) == FALLBACK_LICENSE
        assert cache.read_text() == FALLBACK_LICENSE
