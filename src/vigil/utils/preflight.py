"""Preflight validation.

External dependencies are validated before a scan begins, not during
processing: a missing LLM provider or an unreachable database should stop
the run with a clear message instead of producing a scan full of
classifier errors.
"""

import importlib.util
import json
import shutil
import subprocess
import urllib.error
import urllib.request
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from vigil.exceptions import RuleSetError, StorageError
from vigil.llm.client import LLMClient
from vigil.models.llm_config import DEFAULT_OLLAMA_BASE, LLMConfig
from vigil.rules import load_rules
from vigil.storage.database import Database


@dataclass
class ToolCheck:
    """Result of checking a single dependency.

    Attributes:
        name: Dependency name
        available: Whether it is usable
        version: Version if known
        required: Whether it is required for this run
        path: Executable path, module path or endpoint
        message: Status message (human-readable context)
    """

    name: str
    available: bool
    version: str | None = None
    required: bool = True
    path: str | None = None
    message: str = ""


@dataclass
class PreflightResult:
    """Result of preflight validation.

    Attributes:
        success: Whether all required checks passed
        checks: Individual check results
        errors: Messages for failed required checks
        warnings: Messages for failed optional checks
    """

    success: bool = True
    checks: list[ToolCheck] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def add_check(self, check: ToolCheck) -> None:
        """Add a check result."""
        self.checks.append(check)

        if not check.available:
            if check.required:
                self.success = False
                self.errors.append(f"{check.name}: {check.message}")
            else:
                self.warnings.append(f"{check.name}: {check.message}")

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON output."""
        return {
            "success": self.success,
            "checks": [
                {
                    "name": c.name,
                    "available": c.available,
                    "version": c.version,
                    "required": c.required,
                    "path": c.path,
                    "message": c.message,
                }
                for c in self.checks
            ],
            "errors": self.errors,
            "warnings": self.warnings,
        }


class PreflightChecker:
    """Validates scan dependencies before analysis.

    Usage:
        checker = PreflightChecker()
        result = checker.check_all(config.llm, config.storage.url, rules_path)
        if not result.success:
            raise typer.Exit(1)
    """

    def __init__(self, timeout: int = 10) -> None:
        """Initialize preflight checker.

        Args:
            timeout: Timeout in seconds for network and version checks
        """
        self.timeout = timeout

    def check_git(self, required: bool = False) -> ToolCheck:
        """Check if Git is available (used to name repositories from their remote)."""
        path = shutil.which("git")
        if path is None:
            return ToolCheck(
                name="git",
                available=False,
                required=required,
                message="Not found; repository names fall back to manifests. Install from: https://git-scm.com",
            )

        version = None
        try:
            result = subprocess.run(
                ["git", "--version"],
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
            if result.returncode == 0:
                version = result.stdout.strip()
        except (subprocess.TimeoutExpired, OSError):
            pass

        return ToolCheck(
            name="git",
            available=True,
            version=version,
            required=required,
            path=path,
            message="Version control",
        )

    def check_litellm(self, required: bool = True) -> ToolCheck:
        """Check if the LiteLLM package is importable."""
        litellm_spec = importlib.util.find_spec("litellm")
        if litellm_spec is None:
            return ToolCheck(
                name="litellm",
                available=False,
                required=required,
                message="Install with: pip install litellm",
            )

        import litellm

        return ToolCheck(
            name="litellm",
            available=True,
            version=getattr(litellm, "__version__", None),
            required=required,
            path=litellm_spec.origin,
            message="Unified LLM interface (Python package)",
        )

    def check_ollama_server(self, api_base: str = DEFAULT_OLLAMA_BASE) -> ToolCheck:
        """Check if the Ollama server is running and responding.

        Args:
            api_base: Ollama API base URL

        Returns:
            ToolCheck result
        """
        try:
            req = urllib.request.Request(f"{api_base}/api/tags", method="GET")
            with urllib.request.urlopen(req, timeout=self.timeout) as response:
                if response.status == 200:
                    return ToolCheck(
                        name="ollama",
                        available=True,
                        version=self._ollama_version(api_base),
                        required=True,
                        path=api_base,
                        message="Local LLM server (source code stays on this machine)",
                    )
        except (urllib.error.URLError, OSError):
            pass

        return ToolCheck(
            name="ollama",
            available=False,
            required=True,
            message=f"Ollama not responding at {api_base}. Install from: https://ollama.ai",
        )

    def _ollama_version(self, api_base: str) -> str | None:
        try:
            req = urllib.request.Request(f"{api_base}/api/version", method="GET")
            with urllib.request.urlopen(req, timeout=5) as response:
                return json.loads(response.read().decode()).get("version")
        except (urllib.error.URLError, OSError, ValueError):
            return None

    def check_llm_provider(self, config: LLMConfig) -> ToolCheck:
        """Check that the configured LLM provider answers a minimal request.

        Args:
            config: LLM configuration

        Returns:
            ToolCheck result
        """
        if config.provider == "ollama":
            return self.check_ollama_server(config.api_base or DEFAULT_OLLAMA_BASE)

        if LLMClient(config).check_available():
            return ToolCheck(
                name=config.provider,
                available=True,
                required=True,
                path=config.api_base,
                message=f"API verified (model: {config.get_litellm_model_name()})",
            )

        return ToolCheck(
            name=config.provider,
            available=False,
            required=True,
            message=f"No response from {config.get_litellm_model_name()}; check credentials and model",
        )

    def check_storage(self, database_url: str) -> ToolCheck:
        """Check that the database is reachable."""
        try:
            db = Database(database_url)
            try:
                db.ping()
            finally:
                db.dispose()
        except StorageError as e:
            return ToolCheck(name="storage", available=False, required=True, message=str(e))

        return ToolCheck(
            name="storage",
            available=True,
            required=True,
            path=database_url.split("@")[-1],
            message="Analysis cache and scan history",
        )

    def check_rules(self, rules_path: Path) -> ToolCheck:
        """Check that the rule set loads and is not empty."""
        try:
            rules = load_rules(rules_path)
        except RuleSetError as e:
            return ToolCheck(name="rules", available=False, required=True, message=str(e))

        if not rules:
            return ToolCheck(
                name="rules",
                available=False,
                required=True,
                path=str(rules_path),
                message="Rule set is empty",
            )

        return ToolCheck(
            name="rules",
            available=True,
            required=True,
            path=str(rules_path),
            message=f"{len(rules)} rule(s)",
        )

    def check_all(
        self,
        llm_config: LLMConfig,
        database_url: str,
        rules_path: Path,
        skip_llm: bool = False,
    ) -> PreflightResult:
        """Run all preflight checks.

        Args:
            llm_config: Classifier LLM configuration
            database_url: SQLAlchemy URL of the store
            rules_path: Rule set file
            skip_llm: Skip the provider connectivity test

        Returns:
            PreflightResult with all check results
        """
        result = PreflightResult()

        result.add_check(self.check_git(required=False))
        result.add_check(self.check_storage(database_url))
        result.add_check(self.check_rules(rules_path))

        result.add_check(self.check_litellm(required=True))
        if not skip_llm and llm_config.enabled:
            result.add_check(self.check_llm_provider(llm_config))

        return result
