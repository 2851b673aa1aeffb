"""Repository tree builder.

Builds an immutable TreeNode hierarchy depth-first. Excluded directories
(version control, dependencies) are pruned. A child that cannot be read
(permissions, broken symlink) is dropped and recorded as a recoverable
AnalysisError; only a failure at the root is fatal.

Directory symlinks are not followed, which also rules out symlink loops.
"""

import errno
import logging
import os
from pathlib import Path

from vigil.analyzers.eligibility import is_eligible, is_excluded_directory
from vigil.exceptions import TraversalError
from vigil.models.analysis import AnalysisError
from vigil.models.tree import NodeKind, TreeNode

logger = logging.getLogger(__name__)

ROOT_PATH = "."


class TreeBuilder:
    """Builds a sorted repository tree and collects non-fatal issues.

    Usage:
        builder = TreeBuilder()
        tree = builder.build(repo_root)
        for issue in builder.errors:
            ...

    Attributes:
        errors: Recoverable problems from the most recent build
    """

    def __init__(self) -> None:
        self.errors: list[AnalysisError] = []

    def build(self, root: Path) -> TreeNode:
        """Build the tree rooted at ``root``.

        Args:
            root: Repository root (a file yields a single leaf)

        Returns:
            Root TreeNode with path "."

        Raises:
            TraversalError: If the root cannot be read
        """
        root = Path(root)
        self.errors = []

        if not root.exists():
            raise TraversalError(str(root), "No such file or directory")

        if not root.is_dir():
            return TreeNode(name=root.name, path=ROOT_PATH, kind=NodeKind.FILE)

        try:
            tree = self._build_directory(root, ROOT_PATH)
        except OSError as e:
            raise TraversalError(str(root), e.strerror or str(e)) from e

        if self.errors:
            logger.warning(
                "Tree built with %d unreadable entr%s skipped",
                len(self.errors),
                "y" if len(self.errors) == 1 else "ies",
            )
        return tree

    def _build_directory(self, path: Path, rel_path: str) -> TreeNode:
        """Build a directory node; listing errors propagate to the caller."""
        with os.scandir(path) as it:
            entries = list(it)

        children: list[TreeNode] = []
        for entry in entries:
            child_path = entry.name if rel_path == ROOT_PATH else f"{rel_path}/{entry.name}"
            try:
                node = self._build_entry(entry, child_path)
            except OSError as e:
                self._record(child_path, e.strerror or str(e))
                continue
            if node is not None:
                children.append(node)

        children.sort(key=TreeNode.sort_key)
        return TreeNode(
            name=path.name,
            path=rel_path,
            kind=NodeKind.DIRECTORY,
            children=tuple(children),
        )

    def _build_entry(self, entry: os.DirEntry, rel_path: str) -> TreeNode | None:
        if entry.is_symlink():
            target = Path(entry.path)
            if not target.exists():
                raise OSError(errno.ENOENT, "Broken symbolic link")
            if target.is_dir():
                self._record(rel_path, "Directory symlink not followed")
                return None
            return TreeNode(name=entry.name, path=rel_path, kind=NodeKind.FILE)

        if entry.is_dir(follow_symlinks=False):
            if is_excluded_directory(entry.name):
                logger.debug("Skipping excluded directory: %s", rel_path)
                return None
            return self._build_directory(Path(entry.path), rel_path)

        return TreeNode(name=entry.name, path=rel_path, kind=NodeKind.FILE)

    def _record(self, rel_path: str, message: str) -> None:
        logger.warning("Skipping %s: %s", rel_path, message)
        self.errors.append(
            AnalysisError(
                component="tree",
                message=message,
                file_path=rel_path,
                recoverable=True,
            )
        )


def build_tree(root: Path) -> TreeNode:
    """Build a repository tree (convenience wrapper around TreeBuilder)."""
    return TreeBuilder().build(root)


def iter_eligible_files(tree: TreeNode) -> list[TreeNode]:
    """Eligible file nodes in deterministic depth-first traversal order."""
    return [node for node in tree.iter_files() if is_eligible(node.name)]
