"""Test fixtures for Vigil.

This package provides sample repositories and test doubles for unit and
integration testing.

Sample Repositories:
- sample_repos/vulnerable_app: Small Python/JS shop with a hardcoded
  password (src/shop/app.py line 8), a concatenated SQL query
  (src/shop/db.py line 8), an empty package marker and an excluded
  node_modules directory
"""

import json
from collections.abc import Callable
from pathlib import Path
from unittest.mock import MagicMock

from vigil.analyzers.base import SecurityClassifier
from vigil.exceptions import ClassifierError
from vigil.models.analysis import Finding, SecurityRule

# Path to fixtures directory
FIXTURES_DIR = Path(__file__).parent

# Path to sample repositories
SAMPLE_REPOS_DIR = FIXTURES_DIR / "sample_repos"

# Specific sample repository paths
VULNERABLE_APP_PATH = SAMPLE_REPOS_DIR / "vulnerable_app"

# Eligible files of vulnerable_app in traversal order
VULNERABLE_APP_FILES = [
    "src/shop/__init__.py",
    "src/shop/app.py",
    "src/shop/db.py",
    "static/js/format.js",
]


def get_sample_repo(name: str) -> Path:
    """Get path to a sample repository.

    Args:
        name: Name of the sample repository

    Returns:
        Path to the sample repository

    Raises:
        ValueError: If repository doesn't exist
    """
    repo_path = SAMPLE_REPOS_DIR / name
    if not repo_path.exists():
        raise ValueError(f"Sample repository not found: {name}")
    return repo_path


Verdict = Callable[[str, SecurityRule, str], Finding | None]


class FakeClassifier(SecurityClassifier):
    """Scripted classifier that records every call.

    By default a rule matches when its ``category`` keyword appears in the
    file (case-insensitive); the finding points at the first such line.
    Specific (location, rule id) pairs can be scripted to fail, and rules
    can be declined before any call.

    Attributes:
        calls: (location, rule id) pairs in call order
        failures: (location, rule id) pairs that raise ClassifierError
        declined: Rule ids for which should_classify() answers False
    """

    def __init__(
        self,
        verdict: Verdict | None = None,
        failures: set[tuple[str, str]] | None = None,
        declined: set[str] | None = None,
    ) -> None:
        super().__init__("fake")
        self.verdict = verdict or keyword_verdict
        self.failures = failures or set()
        self.declined = declined or set()
        self.calls: list[tuple[str, str]] = []

    def should_classify(self, content: str, rule: SecurityRule) -> bool:
        return rule.id not in self.declined

    def classify(
        self,
        content: str,
        rule: SecurityRule,
        location: str = "",
    ) -> Finding | None:
        if not content.strip():
            raise ValueError("File content must not be empty")
        self.calls.append((location, rule.id))
        if (location, rule.id) in self.failures:
            raise ClassifierError(rule.id, "scripted failure")
        return self.verdict(content, rule, location)


def keyword_verdict(content: str, rule: SecurityRule, location: str) -> Finding | None:
    """Flag the first line containing the rule's category keyword."""
    keyword = rule.category.lower()
    for number, line in enumerate(content.split("\n"), start=1):
        if keyword in line.lower():
            return Finding(
                rule_id=rule.id,
                rule_name=rule.name,
                severity=rule.severity,
                location=location,
                line_number=number,
                description=f"{rule.category} found",
                recommendation="Remove it",
                code_snippet=line,
            )
    return None


def make_llm_response(content: str, model: str = "llama3.2") -> MagicMock:
    """Create a mock LiteLLM completion response."""
    mock_response = MagicMock()
    mock_response.choices = [
        MagicMock(
            message=MagicMock(content=content),
            finish_reason="stop",
        )
    ]
    mock_response.model = model
    mock_response.usage = MagicMock(
        prompt_tokens=100,
        completion_tokens=20,
        total_tokens=120,
    )
    return mock_response


def verdict_json(
    vulnerable: bool,
    line_number: int = 0,
    description: str = "",
    recommendation: str = "",
) -> str:
    """Serialize a classifier verdict the way a provider returns it."""
    return json.dumps(
        {
            "vulnerable": vulnerable,
            "description": description,
            "recommendation": recommendation,
            "lineNumber": line_number,
        }
    )
