"""Repository snapshots: archive extraction, naming and cleanup.

``open_snapshot`` turns a RepositorySource into a directory the pipeline
can walk. Archives are unpacked into a fresh temporary directory that is
removed on every exit path; a source marked ``cleanup`` (an uploaded
archive, a pre-fetched clone) is removed as well.

Repository naming priority:
1. Caller-supplied name
2. Git remote ``origin``
3. Project manifest (package.json, pyproject.toml, Cargo.toml, composer.json, go.mod)
4. Archive stem or directory name
"""

import json
import logging
import re
import shutil
import subprocess
import tarfile
import tempfile
import tomllib
import zipfile
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from vigil.exceptions import SourceError
from vigil.models.repository import RepositorySnapshot, RepositorySource, archive_stem

logger = logging.getLogger(__name__)

# Archive metadata directories ignored when looking for a single top-level folder
ARCHIVE_NOISE = frozenset({"__MACOSX"})


# =============================================================================
# Snapshot Lifecycle
# =============================================================================


@contextmanager
def open_snapshot(source: RepositorySource) -> Iterator[RepositorySnapshot]:
    """Open a repository source as a walkable snapshot.

    Args:
        source: Directory or archive to open

    Yields:
        RepositorySnapshot rooted at the extracted (or given) directory

    Raises:
        SourceError: If the source is missing, unsupported or corrupt
    """
    temp_dir: Path | None = None
    try:
        if not source.path.exists():
            raise SourceError(f"Repository source not found: {source.path}")

        if source.is_archive:
            temp_dir = Path(tempfile.mkdtemp(prefix="vigil_"))
            root = extract_archive(source.path, temp_dir)
            fallback = archive_stem(source.path)
            archive: Path | None = source.path
        elif source.path.is_dir():
            root = source.path
            fallback = source.path.name
            archive = None
        else:
            raise SourceError(f"Unsupported repository source (not a directory or archive): {source.path}")

        name = resolve_repository_name(root, source.name, fallback)
        logger.debug("Snapshot of %s at %s", name, root)
        yield RepositorySnapshot(root=root, name=name, identity=name, archive=archive)
    finally:
        if temp_dir is not None:
            _remove(temp_dir)
        if source.cleanup:
            _remove(source.path)


def _remove(path: Path) -> None:
    """Delete a file or directory tree; failures are logged, never raised."""
    try:
        if path.is_dir() and not path.is_symlink():
            shutil.rmtree(path)
        else:
            path.unlink(missing_ok=True)
    except OSError as e:
        logger.warning("Failed to remove %s: %s", path, e)


# =============================================================================
# Archive Extraction
# =============================================================================


def extract_archive(archive: Path, destination: Path) -> Path:
    """Extract a zip or tar archive and return the repository root.

    When the archive holds a single top-level directory (as GitHub source
    downloads do), that directory is the root.

    Raises:
        SourceError: If the archive is corrupt or unsupported
    """
    name = archive.name.lower()
    try:
        if name.endswith(".zip"):
            with zipfile.ZipFile(archive) as zf:
                zf.extractall(destination)
        elif tarfile.is_tarfile(archive):
            with tarfile.open(archive) as tf:
                tf.extractall(destination, filter="data")
        else:
            raise SourceError(f"Unsupported archive format: {archive.name}")
    except (zipfile.BadZipFile, tarfile.TarError) as e:
        raise SourceError(f"Corrupt archive {archive.name}: {e}") from e
    except OSError as e:
        raise SourceError(f"Failed to extract {archive.name}: {e}") from e

    entries = [p for p in destination.iterdir() if p.name not in ARCHIVE_NOISE]
    if len(entries) == 1 and entries[0].is_dir():
        return entries[0]
    return destination


# =============================================================================
# Repository Naming
# =============================================================================


def resolve_repository_name(root: Path, explicit: str | None, fallback: str) -> str:
    """Resolve the display name (and cache identity) of a repository.

    Args:
        root: Repository root directory
        explicit: Caller-supplied name (wins when set)
        fallback: Name used when nothing better is found

    Returns:
        Non-empty repository name
    """
    if explicit and explicit.strip():
        return explicit.strip()

    remote = get_git_remote_url(root)
    if remote:
        name = name_from_remote_url(remote)
        if name:
            return name

    name = name_from_manifest(root)
    if name:
        return name

    return fallback or root.name


def get_git_remote_url(root: Path) -> str | None:
    """Get the ``origin`` remote URL of a repository root.

    Only looks at a ``.git`` directly under ``root`` so an enclosing
    repository is never picked up.

    Returns:
        Remote URL if available, None otherwise
    """
    git_dir = root / ".git"
    if not git_dir.exists():
        return None

    try:
        result = subprocess.run(
            ["git", "remote", "get-url", "origin"],
            capture_output=True,
            text=True,
            cwd=root,
            timeout=10,
        )
        if result.returncode == 0 and result.stdout.strip():
            return result.stdout.strip()
    except (subprocess.TimeoutExpired, FileNotFoundError, OSError):
        pass

    return _remote_from_git_config(git_dir / "config")


def _remote_from_git_config(config_path: Path) -> str | None:
    try:
        text = config_path.read_text(encoding="utf-8", errors="replace")
    except OSError:
        return None
    match = re.search(r'\[remote "origin"\][^\[]*?^\s*url\s*=\s*(\S+)', text, re.MULTILINE)
    return match.group(1) if match else None


def name_from_remote_url(url: str) -> str | None:
    """Repository name from an HTTPS or SCP-style remote URL."""
    last = re.split(r"[/:]", url.rstrip("/"))[-1]
    if last.endswith(".git"):
        last = last[:-4]
    return last or None


def name_from_manifest(root: Path) -> str | None:
    """Project name declared by a manifest at the repository root."""
    readers = (
        ("package.json", _name_from_package_json),
        ("pyproject.toml", _name_from_pyproject),
        ("Cargo.toml", _name_from_cargo),
        ("composer.json", _name_from_composer),
        ("go.mod", _name_from_go_mod),
    )
    for filename, reader in readers:
        path = root / filename
        if not path.is_file():
            continue
        try:
            name = reader(path)
        except (OSError, ValueError, tomllib.TOMLDecodeError) as e:
            logger.debug("Could not read %s: %s", path, e)
            continue
        if isinstance(name, str) and name.strip():
            return name.strip()
    return None


def _name_from_package_json(path: Path) -> str | None:
    return json.loads(path.read_text(encoding="utf-8")).get("name")


def _name_from_pyproject(path: Path) -> str | None:
    with open(path, "rb") as f:
        data = tomllib.load(f)
    return data.get("project", {}).get("name") or data.get("tool", {}).get("poetry", {}).get("name")


def _name_from_cargo(path: Path) -> str | None:
    with open(path, "rb") as f:
        data = tomllib.load(f)
    return data.get("package", {}).get("name")


def _name_from_composer(path: Path) -> str | None:
    name = json.loads(path.read_text(encoding="utf-8")).get("name")
    # vendor/package -> package
    return name.split("/")[-1] if isinstance(name, str) else None


def _name_from_go_mod(path: Path) -> str | None:
    for line in path.read_text(encoding="utf-8").splitlines():
        if line.startswith("module "):
            return line.split()[1].rstrip("/").split("/")[-1]
    return None
