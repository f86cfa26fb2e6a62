"""
Package metadata for extracted repositories.

Reads and writes the package manifest (``composer.json`` by default) and
makes sure every extracted repository ships a license file.
"""

import json
import tempfile
from pathlib import Path

import requests

from . import __version__
from .config import DEFAULT_LICENSE_URL
from .log import echo

LICENSE_NAMES = ("LICENSE", "LICENSE.txt", "LICENSE.md")
LICENSE_CACHE_NAME = "apache-2.0.LICENSE.txt"
DOWNLOAD_TIMEOUT = 15

FALLBACK_LICENSE = """\
Apache License
Version 2.0, January 2004
http://www.apache.org/licenses/

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at

    http://www.apache.org/licenses/LICENSE-2.0

Unless required by applicable law or agreed to in writing, software
distributed under the License is distributed on an "AS IS" BASIS,
WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
See the License for the specific language governing permissions and
limitations under the License.
"""


def read_manifest(directory: Path, name: str = "composer.json") -> dict:
    """Read a JSON manifest; a missing or malformed file yields {}."""
    path = Path(directory) / name
    if not path.is_file():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        echo("warn", f"could not parse {name}, treating it as empty:", f"{path} ({e})")
        return {}
    return data if isinstance(data, dict) else {}


def manifest_version(manifest: dict) -> str:
    """Get the manifest's version string, "" when absent."""
    value = manifest.get("version")
    return str(value).strip() if value is not None else ""


def render_manifest(data: dict) -> str:
    return json.dumps(data, indent=4, ensure_ascii=False) + "\n"


def write_manifest(directory: Path, data: dict, *, apply: bool, name: str = "composer.json") -> None:
    """Write the manifest, or print what would be written in dry-run mode."""
    path = Path(directory) / name
    text = render_manifest(data)
    if not apply:
        echo("dry", f"would write {name}:", path)
        echo("dry", "content preview:", text.strip())
        return
    path.write_text(text, encoding="utf-8")
    echo("info", f"wrote {name}:", path)


def has_license(directory: Path) -> bool:
    return any((Path(directory) / name).is_file() for name in LICENSE_NAMES)


def default_license_cache() -> Path:
    return Path(tempfile.gettempdir()) / LICENSE_CACHE_NAME


def cached_license_text(url: str = DEFAULT_LICENSE_URL, cache_path: Path | None = None) -> str:
    """
    Get the license text, downloading it once into a cache file.

    When the download fails a short Apache-2.0 notice is cached instead.
    """
    cache = Path(cache_path) if cache_path is not None else default_license_cache()
    if cache.is_file():
        return cache.read_text(encoding="utf-8")

    try:
        response = requests.get(
            url,
            timeout=DOWNLOAD_TIMEOUT,
            headers={"User-Agent": f"splitsync/{__version__}"},
        )
        response.raise_for_status()
        text = response.text
    except requests.RequestException as e:
        echo("warn", "could not download license text, using the short notice:", e)
        text = FALLBACK_LICENSE

    try:
        cache.parent.mkdir(parents=True, exist_ok=True)
        cache.write_text(text, encoding="utf-8")
    except OSError as e:
        echo("warn", "could not cache license text:", f"{cache} ({e})")
    return text


def ensure_license(
    directory: Path,
    *,
    apply: bool,
    url: str = DEFAULT_LICENSE_URL,
    cache_path: Path | None = None,
) -> bool:
    """
    Add a LICENSE file unless the directory already has one.

    Returns:
        True when a license was added (or would be, in dry-run mode)
    """
    directory = Path(directory)
    if has_license(directory):
        return False

    target = directory / "LICENSE"
    if not apply:
        echo("dry", "would add Apache-2.0 LICENSE:", target)
        return True

    try:
        target.write_text(cached_license_text(url, cache_path), encoding="utf-8")
    except OSError as e:
        echo("warn", "could not write LICENSE:", f"{target} ({e})")
        return False
    echo("info", "added LICENSE:", target)
    return True
