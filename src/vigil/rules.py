"""Security rule sets.

Rules are managed outside the pipeline and supplied in full before a scan
starts. A rule file is YAML or JSON holding either a list of rules or a
mapping with a ``rules`` list. The exported form is a JSON array of
``{name, description, category, severity, llmPrompt}`` objects, which is
also accepted on import.

File order is rule order. Rules without an ``id`` get ``rule-<n>`` from
their 1-based position, so ids stay stable as long as the file is only
appended to.
"""

import json
import logging
from pathlib import Path
from typing import Any

import yaml

from vigil.exceptions import RuleSetError
from vigil.models.analysis import SecurityRule, Severity

logger = logging.getLogger(__name__)

# Accepted spellings of the classifier prompt key, in priority order
PROMPT_KEYS = ("classifier_prompt", "llm_prompt", "llmPrompt")

REQUIRED_FIELDS = ("name", "category", "severity")


def rule_from_dict(data: dict[str, Any], position: int) -> SecurityRule:
    """Build a SecurityRule from one rule-file entry.

    Args:
        data: Rule mapping
        position: 1-based position in the file (used for the default id)

    Returns:
        SecurityRule instance

    Raises:
        RuleSetError: If a required field is missing or invalid
    """
    if not isinstance(data, dict):
        raise RuleSetError(f"Rule #{position} is not a mapping")

    missing = [key for key in REQUIRED_FIELDS if not data.get(key)]
    prompt = next((data[key] for key in PROMPT_KEYS if data.get(key)), None)
    if prompt is None:
        missing.append("llmPrompt")
    if missing:
        raise RuleSetError(f"Rule #{position} is missing: {', '.join(missing)}")

    try:
        severity = Severity.parse(data["severity"])
    except ValueError as e:
        raise RuleSetError(f"Rule #{position} ({data['name']}): {e}") from e

    return SecurityRule(
        id=str(data.get("id") or f"rule-{position}"),
        name=str(data["name"]).strip(),
        category=str(data["category"]).strip(),
        severity=severity,
        description=str(data.get("description", "")).strip(),
        classifier_prompt=str(prompt).strip(),
    )


def parse_rules(data: Any) -> list[SecurityRule]:
    """Build rules from already-parsed YAML/JSON data.

    Raises:
        RuleSetError: If the structure or any rule is invalid, or ids repeat
    """
    if isinstance(data, dict):
        data = data.get("rules")
    if data is None:
        return []
    if not isinstance(data, list):
        raise RuleSetError("Rule set must be a list of rules or a mapping with a 'rules' list")

    rules = [rule_from_dict(entry, i) for i, entry in enumerate(data, start=1)]

    seen: set[str] = set()
    for rule in rules:
        if rule.id in seen:
            raise RuleSetError(f"Duplicate rule id: {rule.id}")
        seen.add(rule.id)

    return rules


def load_rules(path: Path) -> list[SecurityRule]:
    """Load a rule set from a YAML or JSON file.

    Args:
        path: Rule file path

    Returns:
        Rules in file order

    Raises:
        RuleSetError: If the file is missing, unparsable or invalid
    """
    path = Path(path)
    if not path.exists():
        raise RuleSetError(f"Rule file not found: {path}")

    try:
        with open(path, encoding="utf-8") as f:
            # YAML is a superset of JSON, so one loader covers both formats
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise RuleSetError(f"Cannot parse rule file {path}: {e}") from e
    except OSError as e:
        raise RuleSetError(f"Cannot read rule file {path}: {e}") from e

    rules = parse_rules(data)
    logger.debug("Loaded %d rule(s) from %s", len(rules), path)
    return rules


def dump_rules(rules: list[SecurityRule], path: Path, include_ids: bool = True) -> None:
    """Export rules to a YAML or JSON file (chosen by suffix).

    The JSON export uses the ``llmPrompt`` key so the file can be imported
    by tools that expect the original export format.

    Args:
        rules: Rules to export
        path: Destination (``.json`` for JSON, anything else for YAML)
        include_ids: Whether to write rule ids
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    if path.suffix.lower() == ".json":
        entries = []
        for rule in rules:
            entry = rule.to_dict(include_id=include_ids)
            entry["llmPrompt"] = entry.pop("llm_prompt")
            entries.append(entry)
        path.write_text(json.dumps(entries, indent=2) + "\n", encoding="utf-8")
    else:
        entries = [rule.to_dict(include_id=include_ids) for rule in rules]
        with open(path, "w", encoding="utf-8") as f:
            yaml.safe_dump({"rules": entries}, f, sort_keys=False, allow_unicode=True)


def create_default_rules() -> str:
    """Create starter rule-set YAML content.

    Returns:
        YAML string with a few common rules
    """
    return '''# Vigil rule set
# Each rule is evaluated against every eligible source file.
# Rules without an id get rule-<position>; keep ids stable to keep the cache warm.

rules:
  - id: hardcoded-credentials
    name: "Hardcoded Credentials"
    category: credentials
    severity: high
    description: "Passwords, API keys or tokens embedded in source code"
    llm_prompt: |
      Check whether this code contains hardcoded secrets such as passwords,
      API keys, access tokens or private keys assigned to variables,
      constants or configuration literals. Ignore obvious placeholders
      and values read from the environment.

  - id: sql-injection
    name: "SQL Injection"
    category: sql_injection
    severity: high
    description: "SQL built from untrusted input without parameterization"
    llm_prompt: |
      Check whether SQL statements are built by concatenating or formatting
      untrusted input instead of using bound parameters.

  - id: command-injection
    name: "Command Injection"
    category: command_injection
    severity: high
    description: "Shell commands built from untrusted input"
    llm_prompt: |
      Check whether operating system commands are executed with arguments
      derived from untrusted input, especially through a shell.

  - id: weak-cryptography
    name: "Weak Cryptography"
    category: cryptography
    severity: medium
    description: "Broken hash functions or ciphers used for security purposes"
    llm_prompt: |
      Check whether MD5, SHA-1, DES, RC4 or ECB mode are used to protect
      passwords, tokens or sensitive data, or whether non-cryptographic
      random numbers are used for security values.
'''
