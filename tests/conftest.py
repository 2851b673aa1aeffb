"""Shared pytest fixtures for Vigil tests.

This module provides common fixtures used across unit and integration
tests. Fixtures are organized by category:
- Path fixtures: Sample repositories and temporary repositories
- Rule fixtures: Small rule sets
- Storage fixtures: Database, cache and scan store on a temporary SQLite file
- LLM fixtures: Mock LiteLLM responses
"""

import logging
from collections.abc import Callable, Iterator
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from tests.fixtures import SAMPLE_REPOS_DIR, FakeClassifier, make_llm_response, verdict_json
from vigil.models.analysis import SecurityRule, Severity
from vigil.storage import AnalysisCache, Database, ScanStore
from vigil.utils.logging import ROOT_LOGGER

# =============================================================================
# Logging Isolation
# =============================================================================


@pytest.fixture(autouse=True)
def reset_vigil_logging() -> Iterator[None]:
    """Detach handlers the CLI installs so later tests start clean."""
    yield
    logger = logging.getLogger(ROOT_LOGGER)
    logger.handlers.clear()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


# =============================================================================
# Path Fixtures
# =============================================================================


@pytest.fixture
def fixtures_dir() -> Path:
    """Return the path to the test fixtures directory."""
    return Path(__file__).parent / "fixtures"


@pytest.fixture
def sample_repos_dir() -> Path:
    """Return the path to sample repository fixtures."""
    return SAMPLE_REPOS_DIR


@pytest.fixture
def make_repo(tmp_path: Path) -> Callable[[dict[str, str | bytes]], Path]:
    """Factory creating a repository from a {relative path: content} map.

    Usage:
        root = make_repo({"src/a.py": "x = 1", "README.md": "# hi"})
    """

    def _make(files: dict[str, str | bytes], name: str = "repo") -> Path:
        root = tmp_path / name
        root.mkdir(parents=True, exist_ok=True)
        for rel_path, content in files.items():
            path = root / rel_path
            path.parent.mkdir(parents=True, exist_ok=True)
            if isinstance(content, bytes):
                path.write_bytes(content)
            else:
                path.write_text(content, encoding="utf-8")
        return root

    return _make


@pytest.fixture
def temp_repo(tmp_path: Path) -> Path:
    """Create a temporary directory that mimics a git repository.

    Creates basic structure with .git directory marker.
    """
    root = tmp_path / "temp_repo"
    (root / ".git").mkdir(parents=True)
    return root


# =============================================================================
# Rule Fixtures
# =============================================================================


@pytest.fixture
def password_rule() -> SecurityRule:
    """High-severity rule whose category doubles as a keyword for FakeClassifier."""
    return SecurityRule(
        id="hardcoded-password",
        name="Hardcoded Password",
        category="password",
        severity=Severity.HIGH,
        description="Passwords embedded in source code",
        classifier_prompt="Check whether this code contains a hardcoded password.",
    )


@pytest.fixture
def sql_rule() -> SecurityRule:
    """Medium-severity rule matching files that mention SELECT."""
    return SecurityRule(
        id="sql-injection",
        name="SQL Injection",
        category="select",
        severity=Severity.MEDIUM,
        description="SQL built from untrusted input",
        classifier_prompt="Check whether SQL is built by string concatenation.",
    )


@pytest.fixture
def rules(password_rule: SecurityRule, sql_rule: SecurityRule) -> list[SecurityRule]:
    """Two-rule set in evaluation order."""
    return [password_rule, sql_rule]


@pytest.fixture
def rules_yaml() -> str:
    """Return a small rule file in YAML form."""
    return """rules:
  - id: hardcoded-credentials
    name: Hardcoded Credentials
    category: credentials
    severity: high
    description: Secrets in source
    llm_prompt: Check for hardcoded secrets.
  - name: Weak Cryptography
    category: cryptography
    severity: medium
    llmPrompt: Check for MD5 or SHA-1 used for passwords.
"""


# =============================================================================
# Storage Fixtures
# =============================================================================


@pytest.fixture
def database(tmp_path: Path) -> Iterator[Database]:
    """SQLite database file under tmp_path with all tables created."""
    db = Database(f"sqlite:///{tmp_path / 'vigil.db'}")
    db.create_all()
    yield db
    db.dispose()


@pytest.fixture
def cache(database: Database) -> AnalysisCache:
    """Analysis cache on the temporary database."""
    return AnalysisCache(database)


@pytest.fixture
def scans(database: Database) -> ScanStore:
    """Scan store on the temporary database."""
    return ScanStore(database)


@pytest.fixture
def fake_classifier() -> FakeClassifier:
    """Keyword-driven classifier double."""
    return FakeClassifier()


# =============================================================================
# LLM Fixtures
# =============================================================================


@pytest.fixture
def safe_response() -> MagicMock:
    """LiteLLM response with a not-vulnerable verdict."""
    return make_llm_response(verdict_json(False))


@pytest.fixture
def vulnerable_response() -> MagicMock:
    """LiteLLM response flagging line 8."""
    return make_llm_response(
        verdict_json(
            True,
            line_number=8,
            description="Hardcoded administrator password",
            recommendation="Read the password from the environment",
        )
    )
