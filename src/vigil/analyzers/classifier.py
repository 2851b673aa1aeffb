"""LLM-backed security classifier.

Wraps one LLM call per (file, rule) pair and normalizes the answer into a
Finding or None. Transport failures and malformed verdicts surface as
ClassifierError so the pipeline can skip the pair and leave its cache slot
open for a later retry.
"""

import json
import logging
import re
from typing import Any

from vigil.analyzers.base import SecurityClassifier
from vigil.analyzers.heuristics import should_analyze
from vigil.exceptions import ClassifierError
from vigil.llm.client import LLMClient, LLMError
from vigil.llm.prompts import (
    VERDICT_FIELDS,
    build_system_prompt,
    build_user_prompt,
    split_lines,
)
from vigil.models.analysis import Finding, SecurityRule

logger = logging.getLogger(__name__)

# Lines of context returned around the reported line
DEFAULT_SNIPPET_WINDOW = 5


class LLMClassifier(SecurityClassifier):
    """Security classifier backed by an LLM via LiteLLM.

    Attributes:
        client: LLM client used for completions
        prefilter: Skip files with no category keyword before calling the LLM
        snippet_window: Number of lines extracted around a finding
    """

    def __init__(
        self,
        client: LLMClient,
        prefilter: bool = True,
        snippet_window: int = DEFAULT_SNIPPET_WINDOW,
    ) -> None:
        """Initialize the classifier.

        Args:
            client: Configured LLM client
            prefilter: Enable the category heuristic short-circuit
            snippet_window: Context window size (lines) for code snippets
        """
        super().__init__("llm")
        if snippet_window < 1:
            raise ValueError("snippet_window must be at least 1")
        self.client = client
        self.prefilter = prefilter
        self.snippet_window = snippet_window
        self.calls = 0

    def classify(
        self,
        content: str,
        rule: SecurityRule,
        location: str = "",
    ) -> Finding | None:
        """Evaluate ``content`` against ``rule`` with one LLM call.

        Args:
            content: Full text of the file
            rule: Rule to evaluate
            location: Repository-relative path recorded on the finding

        Returns:
            Finding if the LLM reports a vulnerability, None otherwise

        Raises:
            ValueError: If content or rule prompt is empty
            ClassifierError: If the call fails or the verdict is malformed
        """
        if not content or not content.strip():
            raise ValueError("File content must not be empty")
        if not rule.classifier_prompt or not rule.classifier_prompt.strip():
            raise ValueError(f"Rule {rule.id} has an empty classifier prompt")

        if not self.should_classify(content, rule):
            logger.debug("Pre-filter skipped %s for rule %s", location or "<content>", rule.id)
            return None

        self.calls += 1
        try:
            response = self.client.complete(
                build_user_prompt(content, rule),
                system_prompt=build_system_prompt(rule),
                json_mode=True,
            )
        except LLMError as e:
            raise ClassifierError(rule.id, str(e)) from e

        verdict = parse_verdict(response.content, rule.id)
        if not verdict["vulnerable"]:
            return None

        lines = split_lines(content)
        line_number = clamp_line_number(verdict["lineNumber"], len(lines))

        return Finding(
            rule_id=rule.id,
            rule_name=rule.name,
            severity=rule.severity,
            location=location,
            line_number=line_number,
            description=verdict["description"],
            recommendation=verdict["recommendation"],
            code_snippet=extract_snippet(lines, line_number, self.snippet_window),
        )

    def should_classify(self, content: str, rule: SecurityRule) -> bool:
        """Apply the category pre-filter (always True when it is disabled)."""
        return not self.prefilter or should_analyze(content, rule.category)

    def get_metadata(self) -> dict[str, Any]:
        """Get classifier metadata for logging and debugging."""
        return {
            "name": self.name,
            "model": self.client.config.get_litellm_model_name(),
            "prefilter": self.prefilter,
            "snippet_window": self.snippet_window,
            "calls": self.calls,
        }


def parse_verdict(response_text: str, rule_id: str) -> dict[str, Any]:
    """Parse the LLM's verdict JSON.

    Accepts a bare object or one wrapped in a ```json fence.

    Args:
        response_text: Raw completion text
        rule_id: Rule being evaluated (for error messages)

    Returns:
        Dict with a boolean ``vulnerable``; when vulnerable, also string
        ``description``/``recommendation`` and an int ``lineNumber``

    Raises:
        ClassifierError: If the response is empty, not JSON, not an object,
            or lacks a required field
    """
    if not response_text or not response_text.strip():
        raise ClassifierError(rule_id, "empty response")

    json_match = re.search(r"```json\s*(.*?)\s*```", response_text, re.DOTALL)
    if json_match:
        json_str = json_match.group(1)
    else:
        json_match = re.search(r"\{[\s\S]*\}", response_text)
        if not json_match:
            raise ClassifierError(rule_id, "response contains no JSON object")
        json_str = json_match.group(0)

    try:
        data = json.loads(json_str)
    except json.JSONDecodeError as e:
        raise ClassifierError(rule_id, f"invalid JSON: {e}") from e

    if not isinstance(data, dict):
        raise ClassifierError(rule_id, "response is not a JSON object")

    vulnerable = _as_bool(data.get("vulnerable"))
    if vulnerable is None:
        raise ClassifierError(rule_id, "missing or non-boolean 'vulnerable' field")
    if not vulnerable:
        return {"vulnerable": False}

    missing = [key for key in VERDICT_FIELDS[1:] if data.get(key) is None]
    if missing:
        raise ClassifierError(rule_id, f"missing fields: {', '.join(missing)}")

    try:
        line_number = int(data["lineNumber"])
    except (TypeError, ValueError) as e:
        raise ClassifierError(rule_id, f"invalid lineNumber: {data['lineNumber']!r}") from e

    return {
        "vulnerable": True,
        "description": str(data["description"]).strip(),
        "recommendation": str(data["recommendation"]).strip(),
        "lineNumber": line_number,
    }


def _as_bool(value: Any) -> bool | None:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    return None


def clamp_line_number(line_number: int, line_count: int) -> int:
    """Clamp a reported 1-based line number into ``[1, line_count]``."""
    return min(max(line_number, 1), max(line_count, 1))


def extract_snippet(lines: list[str], line_number: int, window: int = DEFAULT_SNIPPET_WINDOW) -> str:
    """Extract ``window`` lines centered on a 1-based line number.

    Near the start or end of the file the window shifts so it still holds
    ``window`` lines when the file is long enough.
    """
    index = line_number - 1
    start = max(0, index - window // 2)
    end = min(len(lines), start + window)
    start = max(0, end - window)
    return "\n".join(lines[start:end])
