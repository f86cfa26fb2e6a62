"""Tests for temporary directory handling."""

import tempfile
from pathlib import Path

import pytest

from splitsync.tempdirs import cleanup_temp_dir, is_under_system_temp, remove_tree, scratch_dir


@pytest.fixture
def fake_temp_root(temp_dir: Path, monkeypatch) -> Path:
    root = temp_dir / "system-temp"
    root.mkdir()
    monkeypatch.setattr(tempfile, "gettempdir", lambda: str(root))
    return root


class TestScratchDir:
    """Tests for scratch_dir."""

    def test_removed_on_exit(self, fake_temp_root: Path):
        """Test that the directory is created lazily and removed afterwards."""
        with scratch_dir("packages/libs") as path:
            assert path.parent == fake_temp_root
            assert path.name.startswith("splitsync_")
            assert path.name.endswith("_packages-libs")
            assert not path.exists()
            (path / "sub").mkdir(parents=True)
            (path / "sub" / "file.txt").write_text("x")
        assert not path.exists()

    def test_removed_on_error(self, fake_temp_root: Path):
        """Test cleanup when the body raises."""
        with pytest.raises(RuntimeError):
            with scratch_dir("libs") as path:
                path.mkdir()
                raise RuntimeError("boom")
        assert not path.exists()

    def test_read_only_files(self, fake_temp_root: Path):
        """Test that read-only files (like git packs) are removed."""
        with scratch_dir("libs") as path:
            path.mkdir()
            locked = path / "pack.idx"
            locked.write_text("x")
            locked.chmod(0o444)
        assert not path.exists()


class TestCleanupGuard:
    """Tests for the temp root guard."""

    def test_refuses_outside_temp(self, fake_temp_root: Path, temp_dir: Path):
        """Test that directories outside the temp root survive."""
        outside = temp_dir / "outside"
        outside.mkdir()
        assert is_under_system_temp(outside) is False
        assert cleanup_temp_dir(outside) is False
        assert outside.exists()

    def test_temp_root_itself_is_kept(self, fake_temp_root: Path):
        """Test that the temp root is never deleted."""
        assert is_under_system_temp(fake_temp_root) is False

    def test_missing_path(self, fake_temp_root: Path):
        """Test cleaning up a path that was never created."""
        assert cleanup_temp_dir(fake_temp_root / "never") is False

    def test_remove_tree_file(self, temp_dir: Path):
        """Test removing a single file."""
        target = temp_dir / "single.txt"
        target.write_text("x")
        remove_tree(target)
        assert not target.exists()
