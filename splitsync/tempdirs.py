"""
Temporary working directories.

Every clone or export the engine makes lives in a directory under the system
temp root and is removed again however the work inside it ends.
"""

import os
import re
import secrets
import shutil
import stat
import sys
import tempfile
from contextlib import contextmanager
from pathlib import Path

from .log import echo


def system_temp_root() -> Path:
    return Path(tempfile.gettempdir())


def is_under_system_temp(path: Path) -> bool:
    """Check whether ``path`` exists strictly inside the system temp root."""
    try:
        resolved = Path(path).resolve(strict=True)
        temp_root = system_temp_root().resolve(strict=True)
    except OSError:
        return False
    return temp_root in resolved.parents


def _make_writable_and_retry(func, target, _exc):
    # git marks pack files read-only
    os.chmod(target, stat.S_IWRITE)
    func(target)


def remove_tree(path: Path) -> None:
    """Delete a file or directory tree, including read-only files."""
    path = Path(path)
    if path.is_symlink() or path.is_file():
        path.unlink()
        return
    if sys.version_info >= (3, 12):
        shutil.rmtree(path, onexc=_make_writable_and_retry)
    else:
        shutil.rmtree(path, onerror=_make_writable_and_retry)


def cleanup_temp_dir(path: Path) -> bool:
    """
    Remove a temp directory created by :func:`scratch_dir`.

    Refuses to touch anything outside the system temp root.

    Returns:
        True if the directory was removed
    """
    path = Path(path)
    if not path.exists():
        return False
    if not is_under_system_temp(path):
        echo("warn", "refusing to delete directory outside the temp root:", path)
        return False
    try:
        remove_tree(path)
    except OSError as e:
        echo("warn", "could not remove temp dir:", f"{path} ({e})")
        return False
    echo("cleanup", "removed temp dir:", path)
    return True


@contextmanager
def scratch_dir(suffix: str, prefix: str = "splitsync"):
    """
    Reserve a temp directory path and remove it on exit.

    The directory itself is not created, so it can be the target of a
    ``git clone``.
    """
    label = re.sub(r"[\\/\s]+", "-", suffix).strip("-") or "work"
    path = system_temp_root() / f"{prefix}_{secrets.token_hex(4)}_{label}"
    try:
        yield path
    finally:
        cleanup_temp_dir(path)
