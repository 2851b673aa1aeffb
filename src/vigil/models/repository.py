"""Repository source and snapshot entities.

A RepositorySource is what the caller hands to the pipeline: a directory or
an archive. A RepositorySnapshot is the extracted, filesystem-accessible
copy the pipeline walks. Snapshots are created by
``vigil.repository.open_snapshot`` and live only for the duration of a scan.
"""

from dataclasses import dataclass
from pathlib import Path

ARCHIVE_SUFFIXES = (".tar.gz", ".tar.bz2", ".tar.xz", ".tgz", ".tar", ".zip")


def archive_stem(path: Path) -> str:
    """Strip a known archive suffix from a file name."""
    name = path.name
    lowered = name.lower()
    for suffix in ARCHIVE_SUFFIXES:
        if lowered.endswith(suffix):
            return name[: -len(suffix)]
    return path.stem


@dataclass
class RepositorySource:
    """Input to a scan.

    Attributes:
        path: Directory or archive to analyze
        name: Caller-supplied repository name (highest naming priority)
        cleanup: Whether the pipeline owns ``path`` and must delete it
            when the scan ends (uploaded archives, pre-fetched clones)
    """

    path: Path
    name: str | None = None
    cleanup: bool = False

    def __post_init__(self) -> None:
        if isinstance(self.path, str):
            self.path = Path(self.path)
        self.path = self.path.expanduser().resolve()

    @property
    def is_archive(self) -> bool:
        """Check whether the source looks like a supported archive."""
        return self.path.name.lower().endswith(ARCHIVE_SUFFIXES)

    @property
    def provisional_name(self) -> str:
        """Name usable before the snapshot is opened."""
        if self.name:
            return self.name
        return archive_stem(self.path) if self.is_archive else self.path.name


@dataclass
class RepositorySnapshot:
    """Extracted repository owned by a single scan.

    Attributes:
        root: Directory the pipeline traverses
        name: Resolved repository name
        identity: Stable identity used in cache keys
        archive: Archive the snapshot was extracted from, if any
    """

    root: Path
    name: str
    identity: str
    archive: Path | None = None
