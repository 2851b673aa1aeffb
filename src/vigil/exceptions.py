"""Vigil exception hierarchy.

Fatal errors end the current scan in the ``failed`` state. Recoverable
errors (``ClassifierError``, non-root traversal problems) are logged by the
pipeline and never unwind the traversal.
"""


class VigilError(Exception):
    """Base exception for all Vigil errors."""

    pass


class SourceError(VigilError):
    """Raised when the repository source cannot be opened or extracted."""

    pass


class ScanError(VigilError):
    """Raised when a scan cannot proceed on an otherwise valid snapshot."""

    pass


class EmptyRepositoryError(ScanError):
    """Raised when a repository has nothing the classifier can look at."""

    pass


class TraversalError(ScanError):
    """Raised when the repository root itself cannot be traversed."""

    def __init__(self, path: str, message: str) -> None:
        self.path = path
        super().__init__(f"Cannot traverse {path}: {message}")


class ClassifierError(VigilError):
    """Raised when a single (file, rule) classification fails.

    Covers transport failures, timeouts and malformed responses.
    """

    def __init__(self, rule_id: str, message: str) -> None:
        self.rule_id = rule_id
        super().__init__(f"Classifier failed for rule {rule_id}: {message}")


class StorageError(VigilError):
    """Raised when the cache or scan store is unavailable."""

    pass


class RuleSetError(VigilError):
    """Raised when a rule-set file is missing or invalid."""

    pass
