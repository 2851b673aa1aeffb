"""Abstract base class for security classifiers.

The pipeline depends only on this interface, so the LLM-backed classifier
can be swapped for another backend (or a test double) without touching
the orchestrator. Each classifier:
1. Evaluates one file's content against one rule
2. Returns a Finding, or None when the rule does not apply
   (should_classify() lets a backend decline a pair before any call)
3. Raises ClassifierError for transport failures and malformed verdicts
"""

from abc import ABC, abstractmethod
from typing import Any

from vigil.models.analysis import Finding, SecurityRule


class SecurityClassifier(ABC):
    """Abstract interface for per-(file, rule) classifiers.

    Attributes:
        name: Backend identifier (e.g., "llm")
    """

    def __init__(self, name: str) -> None:
        """Initialize the classifier.

        Args:
            name: Backend identifier
        """
        self.name = name

    @abstractmethod
    def classify(
        self,
        content: str,
        rule: SecurityRule,
        location: str = "",
    ) -> Finding | None:
        """Evaluate ``content`` against ``rule``.

        Args:
            content: Full text of the file
            rule: Rule to evaluate
            location: Repository-relative path recorded on the finding

        Returns:
            Finding if the rule flags the content, None otherwise

        Raises:
            ValueError: If content or rule prompt is empty
            ClassifierError: If the backend fails or answers malformed output
        """
        pass

    def should_classify(self, content: str, rule: SecurityRule) -> bool:
        """Whether ``content`` is worth a classifier call for ``rule``.

        A False answer is not a verdict: callers must not cache it.
        """
        return True

    def get_metadata(self) -> dict[str, Any]:
        """Get classifier metadata for logging and debugging."""
        return {"name": self.name}
