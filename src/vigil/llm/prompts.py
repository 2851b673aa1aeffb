"""LLM prompt templates for per-file security classification.

The system prompt is a fixed instruction template that names the rule and
demands a schema-constrained JSON verdict. The user prompt carries the
rule's own classifier prompt followed by the line-numbered file.
"""

from vigil.models.analysis import SecurityRule

# Required keys of a verdict; lineNumber only matters when vulnerable
VERDICT_FIELDS = ("vulnerable", "description", "recommendation", "lineNumber")

CLASSIFIER_SYSTEM_PROMPT_TEMPLATE = """You are a security code analyzer. Analyze the following code for {category} vulnerabilities, focusing on {rule_name}.

Evaluate ONLY this rule. Report the single most relevant occurrence.
Line numbers are shown at the start of each code line as "N | ".

Your response must be a single JSON object with EXACTLY these fields:
{{
    "vulnerable": true or false,
    "description": "Brief description of the vulnerability if found, otherwise empty string",
    "recommendation": "Specific recommendation to fix the issue, otherwise empty string",
    "lineNumber": 1-based line number where the issue occurs (0 if not vulnerable)
}}

Do not wrap the JSON in markdown. Do not add any other text."""

CLASSIFIER_USER_PROMPT_TEMPLATE = """{classifier_prompt}

Code to analyze:
{numbered_code}"""

# Very large files are cut to keep the request within provider limits
MAX_CONTENT_CHARS = 100_000


def build_system_prompt(rule: SecurityRule) -> str:
    """Build the fixed instruction template for a rule."""
    return CLASSIFIER_SYSTEM_PROMPT_TEMPLATE.format(
        category=rule.category,
        rule_name=rule.name,
    )


def split_lines(content: str) -> list[str]:
    """Split into lines; a trailing newline does not start another line."""
    lines = content.split("\n")
    if len(lines) > 1 and lines[-1] == "":
        lines.pop()
    return lines


def number_lines(content: str) -> str:
    """Prefix every line with its 1-based line number."""
    lines = split_lines(content)
    width = len(str(len(lines)))
    return "\n".join(f"{i:>{width}} | {line}" for i, line in enumerate(lines, start=1))


def build_user_prompt(content: str, rule: SecurityRule) -> str:
    """Build the user prompt for one (file, rule) pair.

    Args:
        content: Full file content
        rule: Rule being evaluated

    Returns:
        Formatted prompt string for LLM
    """
    if len(content) > MAX_CONTENT_CHARS:
        omitted = len(content) - MAX_CONTENT_CHARS
        content = content[:MAX_CONTENT_CHARS] + f"\n... [truncated, {omitted} chars omitted]"

    return CLASSIFIER_USER_PROMPT_TEMPLATE.format(
        classifier_prompt=rule.classifier_prompt.strip(),
        numbered_code=number_lines(content),
    )
