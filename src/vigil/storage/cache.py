"""Content-addressed analysis cache.

A cache key is (file path, content hash, repository identity, rule id).
The analyzed-file row for (path, identity) is upserted on every record;
rule-analysis rows are only ever appended. Each rule-analysis row carries
the content hash it was computed for, so an edited file misses the cache
while analyses of earlier content stay in place for audit.

A (file, rule) pair with no row for the current hash is pending: the next
scan that reaches it calls the classifier again. This is how classifier
failures get retried.
"""

import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from vigil.exceptions import StorageError
from vigil.models.analysis import Finding
from vigil.storage.base import as_utc, utcnow
from vigil.storage.database import Database
from vigil.storage.models import AnalyzedFileRow, FileRuleAnalysisRow

logger = logging.getLogger(__name__)


@dataclass
class CacheLookup:
    """Result of a cache lookup.

    Attributes:
        hit: Whether the exact key was found
        findings: Cached findings (possibly empty) on a hit
    """

    hit: bool
    findings: list[Finding] = field(default_factory=list)


@dataclass
class CacheEntry:
    """One retained rule analysis (audit view)."""

    rule_id: str
    file_hash: str
    findings: list[Finding]
    analyzed_at: datetime


@dataclass
class _KeyLock:
    lock: threading.Lock = field(default_factory=threading.Lock)
    holders: int = 0


class AnalysisCache:
    """Per-file, per-rule findings cache backed by the database.

    Attributes:
        db: Database holding the cache tables
    """

    def __init__(self, db: Database) -> None:
        self.db = db
        self._locks: dict[tuple[str, str, str], _KeyLock] = {}
        self._locks_guard = threading.Lock()

    @contextmanager
    def lock_for(self, file_path: str, repository_identity: str, rule_id: str) -> Iterator[None]:
        """Serialize lookup-then-record for one cache key in this process.

        The key's lock lives only while some thread holds or waits on it.
        """
        key = (file_path, repository_identity, rule_id)
        with self._locks_guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = _KeyLock()
            entry.holders += 1

        try:
            with entry.lock:
                yield
        finally:
            with self._locks_guard:
                entry.holders -= 1
                if entry.holders == 0:
                    del self._locks[key]

    @property
    def active_locks(self) -> int:
        """Number of keys currently held or waited on."""
        with self._locks_guard:
            return len(self._locks)

    def lookup(
        self,
        file_path: str,
        file_hash: str,
        repository_identity: str,
        rule_id: str,
    ) -> CacheLookup:
        """Look up findings for an exact key.

        Returns:
            CacheLookup with ``hit`` False when no analysis exists for this
            content hash

        Raises:
            StorageError: If the database is unavailable
        """
        stmt = (
            select(FileRuleAnalysisRow.findings)
            .join(AnalyzedFileRow, FileRuleAnalysisRow.file_id == AnalyzedFileRow.id)
            .where(
                AnalyzedFileRow.file_path == file_path,
                AnalyzedFileRow.repository_identity == repository_identity,
                FileRuleAnalysisRow.rule_id == rule_id,
                FileRuleAnalysisRow.file_hash == file_hash,
            )
            .order_by(FileRuleAnalysisRow.id.desc())
            .limit(1)
        )
        with self.db.session_scope() as session:
            findings = session.execute(stmt).scalar_one_or_none()

        if findings is None:
            return CacheLookup(hit=False)
        return CacheLookup(hit=True, findings=[Finding.from_dict(f) for f in findings])

    def record(
        self,
        file_path: str,
        file_hash: str,
        repository_identity: str,
        rule_id: str,
        findings: list[Finding],
    ) -> None:
        """Record the outcome of one rule against one file content.

        Full file content is never stored; findings are cached without it.

        Raises:
            StorageError: If the database is unavailable
        """
        payload = [f.with_file_content(None).to_dict() for f in findings]
        now = utcnow()

        try:
            self._append(file_path, file_hash, repository_identity, rule_id, payload, now)
        except StorageError as e:
            if not isinstance(e.__cause__, IntegrityError):
                raise
            # Another writer created the analyzed-file row first; it exists now
            self._append(file_path, file_hash, repository_identity, rule_id, payload, now)

        logger.debug(
            "Cached %d finding(s) for %s [%s] rule %s",
            len(findings),
            file_path,
            file_hash[:8],
            rule_id,
        )

    def _append(
        self,
        file_path: str,
        file_hash: str,
        repository_identity: str,
        rule_id: str,
        payload: list[dict],
        now: datetime,
    ) -> None:
        with self.db.session_scope() as session:
            file_row = self._upsert_file(session, file_path, repository_identity, file_hash, now)
            session.add(
                FileRuleAnalysisRow(
                    file_id=file_row.id,
                    rule_id=rule_id,
                    file_hash=file_hash,
                    findings=payload,
                    analyzed_at=now,
                )
            )

    def _upsert_file(
        self,
        session: Session,
        file_path: str,
        repository_identity: str,
        file_hash: str,
        now: datetime,
    ) -> AnalyzedFileRow:
        stmt = select(AnalyzedFileRow).where(
            AnalyzedFileRow.file_path == file_path,
            AnalyzedFileRow.repository_identity == repository_identity,
        )
        row = session.execute(stmt).scalar_one_or_none()
        if row is None:
            row = AnalyzedFileRow(
                file_path=file_path,
                repository_identity=repository_identity,
                file_hash=file_hash,
                last_analyzed=now,
            )
            session.add(row)
            session.flush()
            return row

        row.file_hash = file_hash
        row.last_analyzed = now
        session.flush()
        return row

    def history(self, file_path: str, repository_identity: str) -> list[CacheEntry]:
        """All retained analyses for a file, oldest first."""
        stmt = (
            select(FileRuleAnalysisRow)
            .join(AnalyzedFileRow, FileRuleAnalysisRow.file_id == AnalyzedFileRow.id)
            .where(
                AnalyzedFileRow.file_path == file_path,
                AnalyzedFileRow.repository_identity == repository_identity,
            )
            .order_by(FileRuleAnalysisRow.id)
        )
        with self.db.session_scope() as session:
            rows = session.execute(stmt).scalars().all()
            return [
                CacheEntry(
                    rule_id=row.rule_id,
                    file_hash=row.file_hash,
                    findings=[Finding.from_dict(f) for f in row.findings],
                    analyzed_at=as_utc(row.analyzed_at),
                )
                for row in rows
            ]
