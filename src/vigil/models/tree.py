"""Repository tree entity.

A TreeNode hierarchy mirrors the repository's directory structure with
excluded directories pruned. Children are ordered directories-first, then
by name (ordinal, case-sensitive). The tree is built once per scan and not
mutated afterwards.
"""

from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class NodeKind(Enum):
    """Kind of tree node."""

    FILE = "file"
    DIRECTORY = "directory"


@dataclass(frozen=True)
class TreeNode:
    """A file or directory in the repository tree.

    Attributes:
        name: Entry name (last path component)
        path: POSIX path relative to the repository root ("." for the root)
        kind: File or directory
        children: Ordered children (always empty for files)
    """

    name: str
    path: str
    kind: NodeKind
    children: tuple["TreeNode", ...] = field(default_factory=tuple)

    @property
    def is_directory(self) -> bool:
        return self.kind == NodeKind.DIRECTORY

    def sort_key(self) -> tuple[int, str]:
        """Directories before files, then ordinal name order."""
        return (0 if self.is_directory else 1, self.name)

    def iter_files(self) -> Iterator["TreeNode"]:
        """Yield file nodes depth-first in child order."""
        if not self.is_directory:
            yield self
            return
        for child in self.children:
            yield from child.iter_files()

    def file_count(self) -> int:
        """Count file leaves under this node."""
        return sum(1 for _ in self.iter_files())

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        data: dict[str, Any] = {
            "name": self.name,
            "path": self.path,
            "type": self.kind.value,
        }
        if self.is_directory:
            data["children"] = [child.to_dict() for child in self.children]
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TreeNode":
        """Rebuild a tree from its serialized form."""
        return cls(
            name=data["name"],
            path=data["path"],
            kind=NodeKind(data["type"]),
            children=tuple(cls.from_dict(c) for c in data.get("children", [])),
        )
