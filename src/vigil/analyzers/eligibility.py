"""File eligibility and directory exclusion.

These two predicates are the only traversal-pruning logic. Hidden
directories are NOT skipped wholesale: some repositories keep real source
under dot-prefixed directories (.github/scripts, .husky, ...). Only
version-control metadata and dependency directories are excluded.
"""

from pathlib import PurePosixPath

# Source-code extensions across common ecosystems (lowercase)
SOURCE_EXTENSIONS: frozenset[str] = frozenset({
    # JavaScript / TypeScript
    ".js", ".jsx", ".mjs", ".cjs", ".ts", ".tsx", ".mts", ".cts", ".vue", ".svelte",
    # Python
    ".py", ".pyw",
    # Ruby / PHP / Perl / Lua
    ".rb", ".php", ".pl", ".pm", ".lua",
    # JVM
    ".java", ".kt", ".kts", ".scala", ".groovy", ".clj",
    # Go / Rust / Swift / Dart
    ".go", ".rs", ".swift", ".dart",
    # .NET
    ".cs", ".fs", ".vb",
    # C family
    ".c", ".h", ".cc", ".cpp", ".cxx", ".hpp", ".hh", ".m", ".mm",
    # Elixir / Erlang / Haskell
    ".ex", ".exs", ".erl", ".hs",
    # Shell
    ".sh", ".bash", ".zsh", ".ps1",
})

# Version-control metadata
VCS_DIRECTORIES: frozenset[str] = frozenset({
    ".git", ".hg", ".svn", ".bzr", "_darcs", "CVS",
})

# Third-party dependency and package directories
DEPENDENCY_DIRECTORIES: frozenset[str] = frozenset({
    "node_modules",
    "bower_components",
    "jspm_packages",
    "vendor",
    "venv",
    ".venv",
    "site-packages",
    "__pypackages__",
    "Pods",
})

EXCLUDED_DIRECTORIES: frozenset[str] = VCS_DIRECTORIES | DEPENDENCY_DIRECTORIES


def is_eligible(filename: str) -> bool:
    """Check whether a file name has a supported source extension.

    Comparison is case-insensitive: ``A.JS`` is eligible.

    Args:
        filename: File name (a path is accepted; only the suffix matters)

    Returns:
        True if the file should be analyzed
    """
    return PurePosixPath(filename).suffix.lower() in SOURCE_EXTENSIONS


def is_excluded_directory(name: str) -> bool:
    """Check whether traversal must not descend into a directory.

    Args:
        name: Directory name (not a path)

    Returns:
        True for version-control metadata and dependency directories
    """
    return name in EXCLUDED_DIRECTORIES
