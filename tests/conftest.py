"""Pytest configuration and fixtures for splitsync tests."""

import tempfile
import time
from pathlib import Path

import pytest
from git import Repo

from splitsync.config import ExtractConfig

NOW = int(time.time())
# Source history is dated in the past so fresh exports look current
T0 = NOW - 7200
T1 = NOW - 3600


def commit_files(
    repo_path: Path,
    files: dict[str, str],
    message: str,
    timestamp: int | None = None,
) -> str:
    """Write files into a repository and commit them, optionally back-dated."""
    repo = Repo(repo_path)
    for rel_path, content in files.items():
        target = repo_path / rel_path
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content)
    repo.index.add(list(files))

    dates = {}
    if timestamp is not None:
        stamp = f"{timestamp} +0000"
        dates = {"author_date": stamp, "commit_date": stamp}
    commit = repo.index.commit(message, **dates)
    return commit.hexsha


@pytest.fixture(autouse=True)
def git_identity(monkeypatch):
    """Give every git process (including clones) a committer identity."""
    monkeypatch.setenv("GIT_AUTHOR_NAME", "Test User")
    monkeypatch.setenv("GIT_AUTHOR_EMAIL", "test@example.com")
    monkeypatch.setenv("GIT_COMMITTER_NAME", "Test User")
    monkeypatch.setenv("GIT_COMMITTER_EMAIL", "test@example.com")
    monkeypatch.setenv("FILTER_BRANCH_SQUELCH_WARNING", "1")


@pytest.fixture(autouse=True)
def app_dir(monkeypatch, tmp_path_factory) -> Path:
    """Point the per-user application directory at a throwaway location."""
    path = tmp_path_factory.mktemp("appdir").resolve()
    monkeypatch.setenv("XDG_CONFIG_HOME", str(path))
    monkeypatch.setenv("APPDATA", str(path))
    monkeypatch.setenv("HOME", str(path))
    return path


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir).resolve()


@pytest.fixture
def commit():
    """Helper for committing files into test repositories."""
    return commit_files


@pytest.fixture
def plain_repo(temp_dir: Path):
    """Create a temporary git repository with a single commit."""
    repo_path = temp_dir / "plain"
    repo_path.mkdir()

    repo = Repo.init(repo_path)
    repo.config_writer().set_value("user", "name", "Test User").release()
    repo.config_writer().set_value("user", "email", "test@example.com").release()

    commit_files(repo_path, {"README.md": "# Plain Repo\n"}, "Initial commit")
    yield repo_path


@pytest.fixture
def monorepo(temp_dir: Path):
    """Create a monorepo with two modules under packages/."""
    repo_path = temp_dir / "mono"
    repo_path.mkdir()

    repo = Repo.init(repo_path)
    repo.config_writer().set_value("user", "name", "Test User").release()
    repo.config_writer().set_value("user", "email", "test@example.com").release()

    commit_files(repo_path, {"README.md": "# Monorepo\n"}, "Initial commit", T0)
    commit_files(
        repo_path,
        {
            "packages/libs/composer.json": '{\n    "name": "acme/libs",\n    "type": "library"\n}\n',
            "packages/libs/src/Lib.php": "<?php\nclass Lib {}\n",
            "packages/tools/README.md": "# Tools\n",
        },
        "Add libs and tools",
        T1,
    )
    yield repo_path


@pytest.fixture
def license_cache(temp_dir: Path) -> Path:
    """Pre-seeded license cache so tests never download anything."""
    path = temp_dir / "license-cache.txt"
    path.write_text("Test License\n")
    return path


@pytest.fixture
def remotes_dir(temp_dir: Path) -> Path:
    """Bare repositories standing in for the hosted package repositories."""
    path = temp_dir / "remotes"
    for name in ("libs", "tools", "library"):
        Repo.init(path / f"{name}.git", mkdir=True, bare=True)
    return path


@pytest.fixture
def subdirectory_filter():
    """History filter that runs locally instead of in a container."""

    def build(request, workdir):
        return ["git", "filter-branch", "-f", "--subdirectory-filter", request.module_path, "HEAD"]

    return build


@pytest.fixture
def extract_config(
    monorepo: Path, temp_dir: Path, license_cache: Path, remotes_dir: Path
) -> ExtractConfig:
    """Configuration extracting the libs module in apply mode."""
    return ExtractConfig(
        source_path=monorepo / "packages",
        dest_path=temp_dir / "out",
        vendor="acme",
        modules="libs",
        write=True,
        license_cache=license_cache,
        registry_path=temp_dir / "versions.json",
        remote_url_template=str(remotes_dir / "{name}.git"),
    )
