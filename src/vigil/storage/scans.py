"""Scan state and report persistence.

ScanStore is the only writer of scan rows. It enforces the lifecycle
pending -> running -> {completed, failed}: terminal scans never change, and
an illegal status transition raises ScanError.
"""

import logging
import uuid
from typing import Any

from sqlalchemy import select

from vigil.exceptions import ScanError
from vigil.models.analysis import AnalysisReport, Finding, Scan, ScanStatus, Severity
from vigil.models.tree import TreeNode
from vigil.storage.base import as_utc, utcnow
from vigil.storage.database import Database
from vigil.storage.models import ReportRow, ScanRow

logger = logging.getLogger(__name__)

# Scan fields callers may change through update()
UPDATABLE_FIELDS = frozenset(
    {
        "status",
        "progress_percent",
        "current_file",
        "total_files",
        "processed_files",
        "completed_at",
        "error_message",
        "repository_name",
        "repository_identity",
    }
)


class ScanStore:
    """Create, update and query scans and their reports."""

    def __init__(self, db: Database) -> None:
        self.db = db

    def create(self, repository_name: str, repository_identity: str) -> Scan:
        """Create a new scan in the ``pending`` state."""
        scan = Scan(
            id=str(uuid.uuid4()),
            repository_name=repository_name,
            repository_identity=repository_identity,
        )
        with self.db.session_scope() as session:
            session.add(
                ScanRow(
                    id=scan.id,
                    repository_name=scan.repository_name,
                    repository_identity=scan.repository_identity,
                    status=scan.status.value,
                    progress_percent=0,
                    total_files=0,
                    processed_files=0,
                    started_at=scan.started_at,
                )
            )
        logger.debug("Created scan %s for %s", scan.id, repository_name)
        return scan

    def update(self, scan_id: str, **fields: Any) -> Scan:
        """Update fields of a non-terminal scan.

        Args:
            scan_id: Scan to update
            **fields: Scan attributes to set (``status`` accepts ScanStatus
                or its string value)

        Returns:
            The updated Scan

        Raises:
            ValueError: If a field is not updatable
            ScanError: If the scan does not exist, is terminal, or the
                status transition is illegal
            StorageError: If the database is unavailable
        """
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update scan field(s): {', '.join(sorted(unknown))}")

        if "status" in fields:
            fields["status"] = ScanStatus(fields["status"])

        with self.db.session_scope() as session:
            row = session.get(ScanRow, scan_id)
            if row is None:
                raise ScanError(f"Scan not found: {scan_id}")

            current = ScanStatus(row.status)
            if current.is_terminal:
                raise ScanError(f"Scan {scan_id} is already {current.value}")

            target = fields.get("status", current)
            if target != current and not current.can_transition_to(target):
                raise ScanError(
                    f"Illegal transition for scan {scan_id}: {current.value} -> {target.value}"
                )
            if target.is_terminal and "completed_at" not in fields:
                fields["completed_at"] = utcnow()

            for key, value in fields.items():
                setattr(row, key, value.value if isinstance(value, ScanStatus) else value)

            return _scan_from_row(row)

    def get(self, scan_id: str) -> Scan | None:
        with self.db.session_scope() as session:
            row = session.get(ScanRow, scan_id)
            return _scan_from_row(row) if row else None

    def list_recent(self, limit: int = 50) -> list[Scan]:
        """Most recent scans, newest first."""
        stmt = select(ScanRow).order_by(ScanRow.started_at.desc()).limit(limit)
        with self.db.session_scope() as session:
            return [_scan_from_row(row) for row in session.execute(stmt).scalars()]

    def save_report(self, scan_id: str, report: AnalysisReport, tree: TreeNode | None) -> None:
        """Persist a scan's report and tree.

        Findings are stored exactly as reported, including file content when
        the scan was asked to attach it.
        """
        with self.db.session_scope() as session:
            session.merge(
                ReportRow(
                    scan_id=scan_id,
                    repository_name=report.repository_name,
                    findings=[f.to_dict() for f in report.findings],
                    overall_severity=report.overall_severity.value,
                    tree=tree.to_dict() if tree else None,
                    created_at=report.timestamp,
                )
            )

    def get_report(self, scan_id: str) -> AnalysisReport | None:
        """Report of a completed scan; None for unknown, running or failed scans."""
        with self.db.session_scope() as session:
            scan_row = session.get(ScanRow, scan_id)
            if scan_row is None or scan_row.status != ScanStatus.COMPLETED.value:
                return None
            row = session.get(ReportRow, scan_id)
            if row is None:
                return None
            return AnalysisReport(
                scan_id=row.scan_id,
                repository_name=row.repository_name,
                findings=[Finding.from_dict(f) for f in row.findings],
                overall_severity=Severity.parse(row.overall_severity),
                timestamp=as_utc(row.created_at),
            )

    def get_tree(self, scan_id: str) -> TreeNode | None:
        """Tree of a completed scan; None for unknown, running or failed scans."""
        with self.db.session_scope() as session:
            scan_row = session.get(ScanRow, scan_id)
            if scan_row is None or scan_row.status != ScanStatus.COMPLETED.value:
                return None
            row = session.get(ReportRow, scan_id)
            if row is None or row.tree is None:
                return None
            return TreeNode.from_dict(row.tree)


def _scan_from_row(row: ScanRow) -> Scan:
    return Scan(
        id=row.id,
        repository_name=row.repository_name,
        repository_identity=row.repository_identity,
        status=ScanStatus(row.status),
        progress_percent=row.progress_percent,
        current_file=row.current_file,
        total_files=row.total_files,
        processed_files=row.processed_files,
        started_at=as_utc(row.started_at),
        completed_at=as_utc(row.completed_at),
        error_message=row.error_message,
    )
