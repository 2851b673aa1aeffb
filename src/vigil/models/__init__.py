"""Vigil data models.

This module exports all core entities used throughout the application:
- SecurityRule: Rule evaluated against each eligible file
- Finding: One reported potential vulnerability
- Scan / ScanStatus: Pipeline invocation lifecycle
- AnalysisReport: Aggregated findings for a completed scan
- TreeNode: Repository directory structure
- RepositorySource / RepositorySnapshot: Scan input and its working copy
"""

from vigil.models.analysis import (
    AnalysisError,
    AnalysisReport,
    Finding,
    Scan,
    ScanStatus,
    SecurityRule,
    Severity,
    overall_severity,
)
from vigil.models.repository import RepositorySnapshot, RepositorySource
from vigil.models.tree import NodeKind, TreeNode

__all__ = [
    "AnalysisError",
    "AnalysisReport",
    "Finding",
    "NodeKind",
    "RepositorySnapshot",
    "RepositorySource",
    "Scan",
    "ScanStatus",
    "SecurityRule",
    "Severity",
    "TreeNode",
    "overall_severity",
]
