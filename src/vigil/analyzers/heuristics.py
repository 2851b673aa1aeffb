"""Category keyword heuristics for the classifier pre-filter.

Before paying for an LLM call, the classifier may check whether a file
contains anything associated with the rule's category. This is a cost
short-circuit, not a correctness guarantee: a category without an entry
in the table is always analyzed.

Category names are normalized (lowercase, separators collapsed to "_"),
so "SQL Injection", "sql-injection" and "sql_injection" share an entry.
"""

import re

_FLAGS = re.IGNORECASE

CATEGORY_PATTERNS: dict[str, tuple[re.Pattern[str], ...]] = {
    "credentials": (
        re.compile(r"passw(or)?d|passwd|pwd", _FLAGS),
        re.compile(r"secret|api[_-]?key|access[_-]?key|token", _FLAGS),
        re.compile(r"private[_-]?key|BEGIN (RSA |EC |OPENSSH )?PRIVATE KEY", _FLAGS),
        re.compile(r"credential|auth", _FLAGS),
    ),
    "sql_injection": (
        re.compile(r"\b(select|insert|update|delete)\b.+\b(from|into|set|where)\b", _FLAGS),
        re.compile(r"\.(execute|executemany|raw|query)\s*\(", _FLAGS),
        re.compile(r"cursor|sqlalchemy|jdbc|mysql|sqlite|postgres", _FLAGS),
    ),
    "command_injection": (
        re.compile(r"\b(exec|system|popen|spawn|shell_exec|passthru)\s*\(", _FLAGS),
        re.compile(r"subprocess|child_process|os\.system|Runtime\.getRuntime", _FLAGS),
        re.compile(r"shell\s*=\s*True", _FLAGS),
    ),
    "xss": (
        re.compile(r"innerHTML|outerHTML|document\.write|dangerouslySetInnerHTML", _FLAGS),
        re.compile(r"\|\s*safe\b|mark_safe|v-html|html\s*\(", _FLAGS),
        re.compile(r"render|template|response\.write", _FLAGS),
    ),
    "path_traversal": (
        re.compile(r"\.\./"),
        re.compile(r"\b(open|readFile|createReadStream|sendFile|send_file)\s*\(", _FLAGS),
        re.compile(r"os\.path\.join|path\.join|path\.resolve|File\s*\(", _FLAGS),
    ),
    "deserialization": (
        re.compile(r"pickle|marshal|yaml\.load|unserialize|ObjectInputStream", _FLAGS),
        re.compile(r"BinaryFormatter|readObject|jsonpickle", _FLAGS),
    ),
    "cryptography": (
        re.compile(r"\b(md5|sha1|des|rc4|ecb)\b", _FLAGS),
        re.compile(r"crypto|cipher|hashlib|random|Math\.random", _FLAGS),
    ),
    "ssrf": (
        re.compile(r"requests\.(get|post)|urlopen|fetch\s*\(|axios|http\.get|HttpClient", _FLAGS),
        re.compile(r"curl_exec|file_get_contents|URLConnection", _FLAGS),
    ),
}

# Alternate category spellings mapped to a table entry
CATEGORY_ALIASES: dict[str, str] = {
    "hardcoded_credentials": "credentials",
    "secrets": "credentials",
    "secret": "credentials",
    "authentication": "credentials",
    "injection": "sql_injection",
    "sqli": "sql_injection",
    "sql": "sql_injection",
    "rce": "command_injection",
    "os_command_injection": "command_injection",
    "cross_site_scripting": "xss",
    "directory_traversal": "path_traversal",
    "insecure_deserialization": "deserialization",
    "crypto": "cryptography",
    "weak_cryptography": "cryptography",
    "server_side_request_forgery": "ssrf",
}


def normalize_category(category: str) -> str:
    """Normalize a category name to its table key."""
    key = re.sub(r"[^a-z0-9]+", "_", category.strip().lower()).strip("_")
    return CATEGORY_ALIASES.get(key, key)


def patterns_for(category: str) -> tuple[re.Pattern[str], ...]:
    """Return the heuristic pattern set for a category (empty if none)."""
    return CATEGORY_PATTERNS.get(normalize_category(category), ())


def should_analyze(content: str, category: str) -> bool:
    """Decide whether a file is worth sending to the classifier.

    Args:
        content: File content
        category: Rule category

    Returns:
        False only when the category has a pattern set and none matches
    """
    patterns = patterns_for(category)
    if not patterns:
        return True
    return any(p.search(content) for p in patterns)
