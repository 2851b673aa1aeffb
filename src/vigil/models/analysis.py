"""Scan and finding entities.

This module contains entities that flow through the analysis pipeline:
- Severity: Ordinal rank low < medium < high
- AnalysisError: Non-fatal errors encountered during a scan
- SecurityRule: Read-only rule evaluated against each eligible file
- Finding: One reported potential vulnerability
- Scan: Lifecycle record of one pipeline invocation
- AnalysisReport: Aggregated findings for a completed scan
"""

from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import Enum
from typing import Any


class Severity(Enum):
    """Finding and report severity, ordered low < medium < high."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        """Ordinal rank used for comparisons and aggregation."""
        return _SEVERITY_RANK[self]

    @classmethod
    def parse(cls, value: "str | Severity") -> "Severity":
        """Parse a severity name (case-insensitive).

        Raises:
            ValueError: If the value is not a known severity
        """
        if isinstance(value, Severity):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            valid = ", ".join(s.value for s in cls)
            raise ValueError(f"Invalid severity '{value}'. Valid: {valid}") from None


_SEVERITY_RANK = {Severity.LOW: 0, Severity.MEDIUM: 1, Severity.HIGH: 2}


class ScanStatus(Enum):
    """Status of a scan."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        """Completed and failed scans never change state again."""
        return self in (ScanStatus.COMPLETED, ScanStatus.FAILED)

    def can_transition_to(self, target: "ScanStatus") -> bool:
        """Check whether ``self -> target`` is a legal transition."""
        if self == target:
            return not self.is_terminal
        return target in _TRANSITIONS[self]


_TRANSITIONS = {
    ScanStatus.PENDING: {ScanStatus.RUNNING, ScanStatus.FAILED},
    ScanStatus.RUNNING: {ScanStatus.COMPLETED, ScanStatus.FAILED},
    ScanStatus.COMPLETED: set(),
    ScanStatus.FAILED: set(),
}


@dataclass
class AnalysisError:
    """Non-fatal error encountered during a scan.

    Attributes:
        component: Component that failed (tree, read, classifier)
        message: Error description
        file_path: File that caused the error (if applicable)
        recoverable: Whether the scan continued after this error
    """

    component: str
    message: str
    file_path: str | None = None
    recoverable: bool = True

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "component": self.component,
            "message": self.message,
            "file_path": self.file_path,
            "recoverable": self.recoverable,
        }


@dataclass(frozen=True)
class SecurityRule:
    """Security rule evaluated by the classifier.

    Attributes:
        id: Stable rule identifier (cache key component)
        name: Human-readable rule name
        category: Vulnerability category (drives the heuristic pre-filter)
        severity: Severity assigned to findings of this rule
        description: What the rule looks for
        classifier_prompt: Rule-specific instructions for the classifier
    """

    id: str
    name: str
    category: str
    severity: Severity
    description: str
    classifier_prompt: str

    def to_dict(self, include_id: bool = True) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        data: dict[str, Any] = {
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "severity": self.severity.value,
            "llm_prompt": self.classifier_prompt,
        }
        if include_id:
            data = {"id": self.id, **data}
        return data


@dataclass(frozen=True)
class Finding:
    """One reported potential vulnerability, scoped to a rule and a file.

    Attributes:
        rule_id: Identifier of the rule that produced the finding
        rule_name: Name of that rule
        severity: Severity inherited from the rule
        location: File path relative to the repository root
        line_number: 1-based line in the original file
        description: Classifier's description of the issue
        recommendation: Classifier's remediation advice
        code_snippet: Context window around ``line_number``
        file_content: Full file content (only when requested)
    """

    rule_id: str
    rule_name: str
    severity: Severity
    location: str
    line_number: int
    description: str
    recommendation: str
    code_snippet: str
    file_content: str | None = None

    def with_location(self, location: str) -> "Finding":
        """Return a copy bound to a repository-relative path."""
        return replace(self, location=location)

    def with_file_content(self, content: str | None) -> "Finding":
        """Return a copy carrying (or stripped of) the full file content."""
        return replace(self, file_content=content)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        data: dict[str, Any] = {
            "rule_id": self.rule_id,
            "rule_name": self.rule_name,
            "severity": self.severity.value,
            "location": self.location,
            "line_number": self.line_number,
            "description": self.description,
            "recommendation": self.recommendation,
            "code_snippet": self.code_snippet,
        }
        if self.file_content is not None:
            data["file_content"] = self.file_content
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Finding":
        """Create a Finding from its serialized form."""
        return cls(
            rule_id=str(data["rule_id"]),
            rule_name=data["rule_name"],
            severity=Severity.parse(data["severity"]),
            location=data.get("location", ""),
            line_number=int(data.get("line_number", 1)),
            description=data.get("description", ""),
            recommendation=data.get("recommendation", ""),
            code_snippet=data.get("code_snippet", ""),
            file_content=data.get("file_content"),
        )


def overall_severity(findings: list[Finding]) -> Severity:
    """Highest severity among findings; ``low`` when there are none."""
    if not findings:
        return Severity.LOW
    return max((f.severity for f in findings), key=lambda s: s.rank)


@dataclass
class Scan:
    """Lifecycle record of one end-to-end pipeline invocation.

    Attributes:
        id: Scan identifier
        repository_name: Display name of the repository
        repository_identity: Stable identity used for cache keys
        status: Current lifecycle state
        progress_percent: Integer percentage of eligible files processed
        current_file: File currently being analyzed
        total_files: Number of eligible files
        processed_files: Number of eligible files started so far
        started_at: Creation timestamp (UTC)
        completed_at: Terminal-state timestamp (UTC)
        error_message: Failure reason for failed scans
    """

    id: str
    repository_name: str
    repository_identity: str
    status: ScanStatus = ScanStatus.PENDING
    progress_percent: int = 0
    current_file: str | None = None
    total_files: int = 0
    processed_files: int = 0
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    completed_at: datetime | None = None
    error_message: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "repository_name": self.repository_name,
            "repository_identity": self.repository_identity,
            "status": self.status.value,
            "progress_percent": self.progress_percent,
            "current_file": self.current_file,
            "total_files": self.total_files,
            "processed_files": self.processed_files,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "error_message": self.error_message,
        }


@dataclass
class AnalysisReport:
    """Aggregated findings for a completed scan.

    Attributes:
        scan_id: Scan that produced the report
        repository_name: Name of the analyzed repository
        findings: All findings, in traversal then rule order
        overall_severity: Highest finding severity (low when empty)
        timestamp: Report creation time (UTC)
    """

    scan_id: str
    repository_name: str
    findings: list[Finding] = field(default_factory=list)
    overall_severity: Severity = Severity.LOW
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def build(
        cls,
        scan_id: str,
        repository_name: str,
        findings: list[Finding],
    ) -> "AnalysisReport":
        """Create a report, computing overall severity from the findings."""
        return cls(
            scan_id=scan_id,
            repository_name=repository_name,
            findings=list(findings),
            overall_severity=overall_severity(findings),
        )

    def count_by_severity(self) -> dict[str, int]:
        """Count findings per severity level."""
        counts = {s.value: 0 for s in Severity}
        for finding in self.findings:
            counts[finding.severity.value] += 1
        return counts

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "scan_id": self.scan_id,
            "repository_name": self.repository_name,
            "findings": [f.to_dict() for f in self.findings],
            "overall_severity": self.overall_severity.value,
            "timestamp": self.timestamp.isoformat(),
        }
