"""ORM tables for the analysis cache, scans and reports."""

from datetime import datetime

from sqlalchemy import JSON, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from vigil.storage.base import Base, utcnow


class AnalyzedFileRow(Base):
    """One (path, repository) pair and the content hash it was last seen with."""

    __tablename__ = "analyzed_files"
    __table_args__ = (
        UniqueConstraint("file_path", "repository_identity", name="uq_analyzed_file"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    file_path: Mapped[str] = mapped_column(String(1024), nullable=False)
    repository_identity: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    file_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    last_analyzed: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    analyses: Mapped[list["FileRuleAnalysisRow"]] = relationship(
        back_populates="file", order_by="FileRuleAnalysisRow.id"
    )


class FileRuleAnalysisRow(Base):
    """Outcome of one rule against one exact file content. Append-only."""

    __tablename__ = "file_rule_analyses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    file_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("analyzed_files.id"), nullable=False, index=True
    )
    rule_id: Mapped[str] = mapped_column(String(255), nullable=False)
    file_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    findings: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    analyzed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    file: Mapped[AnalyzedFileRow] = relationship(back_populates="analyses")


class ScanRow(Base):
    __tablename__ = "scans"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    repository_name: Mapped[str] = mapped_column(String(255), nullable=False)
    repository_identity: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    progress_percent: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    current_file: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    total_files: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    processed_files: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)


class ReportRow(Base):
    __tablename__ = "analysis_reports"

    scan_id: Mapped[str] = mapped_column(String(36), ForeignKey("scans.id"), primary_key=True)
    repository_name: Mapped[str] = mapped_column(String(255), nullable=False)
    findings: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    overall_severity: Mapped[str] = mapped_column(String(10), nullable=False)
    tree: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
