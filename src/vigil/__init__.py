"""Vigil - LLM-assisted repository security analysis.

Vigil walks a repository, evaluates every eligible source file against a
set of security rules with an LLM classifier and produces a findings
report. Classifier verdicts are cached per file content, rule and
repository, so re-scanning an unchanged repository costs no LLM calls.

Core behaviour:
- Deterministic traversal: directories first, then files, by name
- Content-addressed cache: an edited file is re-analyzed, nothing else is
- Scan lifecycle: pending -> running -> completed | failed
- Recoverable per-file errors never abort a scan
"""

__version__ = "0.1.0"
__author__ = "Vigil Contributors"
