"""Vigil configuration system.

Configuration is YAML-based with minimal CLI overrides (--rules, --output, --ci).
Supports environment variable substitution (${VAR}) in config files.

Configuration file discovery (in priority order):
1. CLI --config argument
2. ./.vigil/config.yaml
3. ./vigil.yaml
"""

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from vigil.models.analysis import Severity
from vigil.models.llm_config import LLMConfig
from vigil.storage.database import DEFAULT_DATABASE_URL

# =============================================================================
# Configuration Dataclasses
# =============================================================================


@dataclass
class StorageConfig:
    """Persistence configuration.

    Attributes:
        url: SQLAlchemy database URL for the cache, scans and reports
    """

    url: str = DEFAULT_DATABASE_URL


@dataclass
class RulesConfig:
    """Rule set configuration.

    Attributes:
        path: YAML or JSON rule file
    """

    path: str = ".vigil/rules.yaml"


@dataclass
class ScanConfig:
    """Scan behaviour.

    Attributes:
        prefilter: Skip the LLM when a file has no keyword of the rule's category
        include_file_content: Attach full file content to findings
    """

    prefilter: bool = True
    include_file_content: bool = False


@dataclass
class OutputConfig:
    """Output configuration.

    Attributes:
        path: JSON report path (None prints to stdout)
    """

    path: str | None = None


@dataclass
class CIConfig:
    """CI/CD-specific configuration.

    Attributes:
        fail_on: Lowest finding severity that fails the run (or "none")
        json_output: Use JSON log output
    """

    fail_on: str = "high"
    json_output: bool = False

    def __post_init__(self) -> None:
        """Validate CI configuration."""
        self.fail_on = str(self.fail_on).strip().lower()
        if self.fail_on != "none":
            Severity.parse(self.fail_on)

    @property
    def threshold(self) -> Severity | None:
        """Severity threshold, or None when findings never fail the run."""
        return None if self.fail_on == "none" else Severity.parse(self.fail_on)


@dataclass
class VigilConfig:
    """Top-level Vigil configuration.

    Attributes:
        llm: LLM settings for the classifier (Ollama default: code stays local)
        storage: Database settings
        rules: Rule set location
        scan: Scan behaviour
        output: Report output
        ci: CI/CD settings
    """

    llm: LLMConfig = field(default_factory=LLMConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    rules: RulesConfig = field(default_factory=RulesConfig)
    scan: ScanConfig = field(default_factory=ScanConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    ci: CIConfig = field(default_factory=CIConfig)

    # Runtime overrides (set by CLI)
    _config_path: Path | None = field(default=None, repr=False)

    @property
    def config_path(self) -> Path | None:
        """Get the path to the config file that was loaded."""
        return self._config_path


# =============================================================================
# Environment Variable Substitution
# =============================================================================


def substitute_env_vars(value: Any) -> Any:
    """Substitute environment variables in config values.

    Supports ${VAR} syntax for environment variable substitution.
    Example: ${OPENAI_API_KEY} -> value of OPENAI_API_KEY

    Args:
        value: Config value (string, dict, list, or other)

    Returns:
        Value with environment variables substituted

    Raises:
        ValueError: If a referenced variable is not set
    """
    if isinstance(value, str):
        pattern = re.compile(r"\$\{([^}]+)\}")

        def replace_var(match: re.Match[str]) -> str:
            var_name = match.group(1)
            env_value = os.environ.get(var_name)
            if env_value is None:
                raise ValueError(f"Environment variable not set: {var_name}")
            return env_value

        return pattern.sub(replace_var, value)

    elif isinstance(value, dict):
        return {k: substitute_env_vars(v) for k, v in value.items()}

    elif isinstance(value, list):
        return [substitute_env_vars(v) for v in value]

    return value


# =============================================================================
# Config File Discovery
# =============================================================================


def find_config_file(start_path: Path | None = None) -> Path | None:
    """Find configuration file in standard locations.

    Search order:
    1. ./.vigil/config.yaml
    2. ./vigil.yaml

    Args:
        start_path: Starting directory for search (defaults to cwd)

    Returns:
        Path to config file if found, None otherwise
    """
    if start_path is None:
        start_path = Path.cwd()

    start_path = start_path.resolve()

    candidates = [
        start_path / ".vigil" / "config.yaml",
        start_path / "vigil.yaml",
    ]

    for candidate in candidates:
        if candidate.exists():
            return candidate

    return None


# =============================================================================
# Config Loading
# =============================================================================


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise ValueError(f"Config section '{name}' must be a mapping")
    return section


def load_config_from_dict(data: dict[str, Any]) -> VigilConfig:
    """Load configuration from a dictionary.

    Args:
        data: Configuration dictionary

    Returns:
        VigilConfig instance

    Raises:
        ValueError: If a value is invalid
    """
    data = substitute_env_vars(data)

    config = VigilConfig()

    if "llm" in data:
        config.llm = LLMConfig.from_dict(_section(data, "llm"))

    if "storage" in data:
        storage_data = _section(data, "storage")
        config.storage = StorageConfig(url=storage_data.get("url", config.storage.url))

    if "rules" in data:
        rules_data = _section(data, "rules")
        config.rules = RulesConfig(path=str(rules_data.get("path", config.rules.path)))

    if "scan" in data:
        scan_data = _section(data, "scan")
        config.scan = ScanConfig(
            prefilter=bool(scan_data.get("prefilter", True)),
            include_file_content=bool(scan_data.get("include_file_content", False)),
        )

    if "output" in data:
        output_data = _section(data, "output")
        config.output = OutputConfig(path=output_data.get("path"))

    if "ci" in data:
        ci_data = _section(data, "ci")
        config.ci = CIConfig(
            fail_on=ci_data.get("fail_on", "high"),
            json_output=bool(ci_data.get("json_output", False)),
        )

    return config


def load_config(
    config_path: Path | None = None,
    auto_discover: bool = True,
) -> VigilConfig:
    """Load configuration from file.

    Args:
        config_path: Explicit path to config file
        auto_discover: Whether to search for config file if not specified

    Returns:
        VigilConfig instance

    Raises:
        FileNotFoundError: If config_path specified but doesn't exist
        ValueError: If the file holds invalid values
    """
    if config_path is not None:
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
        found_path = config_path
    elif auto_discover:
        found_path = find_config_file()
    else:
        found_path = None

    if found_path is not None:
        with open(found_path) as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Config file must contain a mapping: {found_path}")
        config = load_config_from_dict(data)
        config._config_path = found_path
    else:
        config = VigilConfig()

    return config


def create_default_config() -> str:
    """Create default configuration YAML content.

    Returns:
        YAML string with default configuration and comments
    """
    return '''# Vigil Configuration

# LLM settings for the security classifier
# Default: Ollama, so source code never leaves the machine
llm:
  provider: "ollama"     # ollama (local), openai, claude, gemini, bedrock
  model: "llama3.2"
  # api_key: "${OPENAI_API_KEY}"  # Required for openai/claude/gemini
  api_base: "http://localhost:11434"  # Ollama server URL
  temperature: 0         # MUST be 0 so cached verdicts stay valid
  max_tokens: 1024
  timeout: 120           # Seconds per classifier call

# Analysis cache, scan history and reports
storage:
  url: "sqlite:///.vigil/vigil.db"

# Rule set (YAML or JSON)
rules:
  path: ".vigil/rules.yaml"

scan:
  prefilter: true              # Skip the LLM for files with no category keywords
  include_file_content: false  # Attach full file content to findings

# output:
#   path: "vigil-report.json"

# CI/CD settings
ci:
  fail_on: "high"        # low, medium, high, none
  json_output: false
'''
