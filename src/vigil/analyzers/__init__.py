"""Vigil analyzers - the per-file building blocks of a scan.

Deterministic steps run before any LLM invocation:
- Fingerprint: content hash used as a cache key component
- Eligibility: extension allow-list and directory exclusions
- Tree: sorted repository tree, excluded directories pruned
- Heuristics: category keyword pre-filter

The classifier is the only analyzer that calls out to an LLM.
"""

from vigil.analyzers.base import SecurityClassifier
from vigil.analyzers.classifier import LLMClassifier, extract_snippet, parse_verdict
from vigil.analyzers.eligibility import is_eligible, is_excluded_directory
from vigil.analyzers.fingerprint import fingerprint
from vigil.analyzers.heuristics import normalize_category, should_analyze
from vigil.analyzers.tree import TreeBuilder, build_tree, iter_eligible_files

__all__ = [
    "LLMClassifier",
    "SecurityClassifier",
    "TreeBuilder",
    "build_tree",
    "extract_snippet",
    "fingerprint",
    "is_eligible",
    "is_excluded_directory",
    "iter_eligible_files",
    "normalize_category",
    "parse_verdict",
    "should_analyze",
]
