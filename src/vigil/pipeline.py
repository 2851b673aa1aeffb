"""Repository analysis pipeline.

Scan lifecycle: pending -> running -> {completed, failed}.

The sequence for one scan:
1. Create the Scan record (pending) and open the repository snapshot
2. Resolve the repository name; move the Scan to running
3. Build the tree and count eligible files (zero is fatal)
4. Walk eligible files depth-first; for each file publish progress, then
   evaluate every rule through the cache, calling the classifier on misses
5. Aggregate findings into a report, persist it, complete the Scan

Any fatal error fails the Scan with its message and is re-raised. The
snapshot (and any owned archive) is removed on every exit path.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path

from vigil.analyzers.base import SecurityClassifier
from vigil.analyzers.fingerprint import fingerprint
from vigil.analyzers.tree import TreeBuilder, iter_eligible_files
from vigil.exceptions import ClassifierError, EmptyRepositoryError, ScanError, StorageError
from vigil.models.analysis import (
    AnalysisError,
    AnalysisReport,
    Finding,
    Scan,
    ScanStatus,
    SecurityRule,
)
from vigil.models.repository import RepositorySnapshot, RepositorySource
from vigil.models.tree import TreeNode
from vigil.progress import ProgressEvent, ProgressReporter
from vigil.repository import open_snapshot
from vigil.storage.cache import AnalysisCache
from vigil.storage.scans import ScanStore
from vigil.utils.logging import structured

logger = logging.getLogger(__name__)


@dataclass
class PipelineOptions:
    """Options for controlling pipeline execution.

    Attributes:
        include_file_content: Attach the full file content to each finding
        use_cache: Consult the cache before classifying (results are
            recorded either way)
    """

    include_file_content: bool = False
    use_cache: bool = True


@dataclass
class ScanOutcome:
    """Result of a completed scan.

    Attributes:
        scan: Final Scan record (completed)
        report: Aggregated findings
        tree: Repository tree
        errors: Recoverable problems (unreadable entries, classifier failures)
    """

    scan: Scan
    report: AnalysisReport
    tree: TreeNode
    errors: list[AnalysisError] = field(default_factory=list)


@dataclass
class _Progress:
    processed: int = 0
    total: int = 0


class AnalysisPipeline:
    """Runs scans: traversal, cached classification and scan lifecycle.

    The pipeline is stateless between runs, so one instance may serve
    several scans (including concurrent ones sharing the same cache).
    """

    def __init__(
        self,
        classifier: SecurityClassifier,
        cache: AnalysisCache,
        scans: ScanStore,
        reporter: ProgressReporter | None = None,
        options: PipelineOptions | None = None,
    ) -> None:
        """Initialize the pipeline.

        Args:
            classifier: Per-(file, rule) classifier
            cache: Analysis cache shared across scans
            scans: Scan and report store
            reporter: Progress fan-out (a private one if None)
            options: Execution options
        """
        self.classifier = classifier
        self.cache = cache
        self.scans = scans
        self.reporter = reporter or ProgressReporter()
        self.options = options or PipelineOptions()

    def run(self, source: RepositorySource, rules: list[SecurityRule]) -> ScanOutcome:
        """Execute one scan.

        Args:
            source: Repository directory or archive
            rules: Rules to evaluate, in evaluation order

        Returns:
            ScanOutcome with the completed Scan, its report and tree

        Raises:
            ValueError: If the rule set is empty (no Scan is created)
            SourceError: If the source cannot be opened (Scan failed)
            EmptyRepositoryError: If nothing is analyzable (Scan failed)
            TraversalError: If the root cannot be read (Scan failed)
            StorageError: If persistence fails (Scan failed when possible)
        """
        if not rules:
            raise ValueError("At least one security rule is required to scan")

        scan = self.scans.create(source.provisional_name, source.provisional_name)
        progress = _Progress()
        errors: list[AnalysisError] = []
        self._publish(scan.id, progress, status=ScanStatus.PENDING)

        try:
            with open_snapshot(source) as snapshot:
                scan = self.scans.update(
                    scan.id,
                    status=ScanStatus.RUNNING,
                    repository_name=snapshot.name,
                    repository_identity=snapshot.identity,
                )
                structured(
                    logger,
                    logging.INFO,
                    f"Scanning {snapshot.name}",
                    scan_id=scan.id,
                    rules=len(rules),
                )

                builder = TreeBuilder()
                tree = builder.build(snapshot.root)
                errors.extend(builder.errors)

                files = iter_eligible_files(tree)
                if not files:
                    raise EmptyRepositoryError(
                        f"No analyzable files found in repository {snapshot.name}"
                    )

                progress.total = len(files)
                scan = self.scans.update(scan.id, total_files=progress.total)
                self._publish(scan.id, progress)

                findings: list[Finding] = []
                for node in files:
                    findings.extend(
                        self._analyze_file(scan, snapshot, node, rules, progress, errors)
                    )

                repository_name = snapshot.name

            report = AnalysisReport.build(scan.id, repository_name, findings)
            self.scans.save_report(scan.id, report, tree)
            scan = self.scans.update(
                scan.id,
                status=ScanStatus.COMPLETED,
                progress_percent=100,
                processed_files=progress.total,
                current_file=None,
            )

        except Exception as e:
            self._fail(scan.id, progress, e)
            raise

        self._publish(scan.id, progress, status=ScanStatus.COMPLETED)
        structured(
            logger,
            logging.INFO,
            f"Scan of {scan.repository_name} completed: "
            f"{len(report.findings)} finding(s), overall severity {report.overall_severity.value}",
            scan_id=scan.id,
            findings=len(report.findings),
            recoverable_errors=len(errors),
        )
        return ScanOutcome(scan=scan, report=report, tree=tree, errors=errors)

    def _analyze_file(
        self,
        scan: Scan,
        snapshot: RepositorySnapshot,
        node: TreeNode,
        rules: list[SecurityRule],
        progress: _Progress,
        errors: list[AnalysisError],
    ) -> list[Finding]:
        """Evaluate every rule against one file.

        Progress is persisted and published before any rule runs, so
        observers see the file being analyzed rather than only finished.
        """
        raw = self._read(snapshot.root / node.path, node.path, errors)

        progress.processed += 1
        self.scans.update(
            scan.id,
            current_file=node.path,
            processed_files=progress.processed,
            progress_percent=progress.processed * 100 // progress.total,
        )
        self._publish(scan.id, progress, file=node.path)

        if raw is None:
            return []

        content = raw.decode("utf-8", errors="replace")
        if not content.strip():
            logger.debug("Skipping empty file: %s", node.path)
            return []

        file_hash = fingerprint(raw)
        findings: list[Finding] = []
        for rule in rules:
            findings.extend(
                self._evaluate_rule(snapshot.identity, node.path, file_hash, content, rule, errors)
            )

        if self.options.include_file_content:
            findings = [f.with_file_content(content) for f in findings]
        return findings

    def _evaluate_rule(
        self,
        identity: str,
        location: str,
        file_hash: str,
        content: str,
        rule: SecurityRule,
        errors: list[AnalysisError],
    ) -> list[Finding]:
        """Cached evaluation of one (file, rule) pair.

        A classifier failure or a pre-filter skip records nothing, so the
        pair stays a cache miss and is evaluated by the next scan that
        reaches it.
        """
        with self.cache.lock_for(location, identity, rule.id):
            if self.options.use_cache:
                cached = self.cache.lookup(location, file_hash, identity, rule.id)
                if cached.hit:
                    logger.debug("Cache hit: %s rule %s", location, rule.id)
                    return [f.with_location(location) for f in cached.findings]

            if not self.classifier.should_classify(content, rule):
                logger.debug("Pre-filter skipped %s for rule %s", location, rule.id)
                return []

            try:
                finding = self.classifier.classify(content, rule, location=location)
            except ClassifierError as e:
                logger.warning("Skipping rule %s on %s: %s", rule.id, location, e)
                errors.append(
                    AnalysisError(component="classifier", message=str(e), file_path=location)
                )
                return []

            results = [finding.with_location(location)] if finding else []
            self.cache.record(location, file_hash, identity, rule.id, results)
            return results

    def _read(self, path: Path, location: str, errors: list[AnalysisError]) -> bytes | None:
        try:
            return path.read_bytes()
        except OSError as e:
            logger.warning("Cannot read %s: %s", location, e.strerror or e)
            errors.append(AnalysisError(component="read", message=str(e), file_path=location))
            return None

    def _fail(self, scan_id: str, progress: _Progress, error: Exception) -> None:
        """Move a scan to failed; a store failure here is logged, not raised."""
        message = str(error) or type(error).__name__
        logger.error("Scan %s failed: %s", scan_id, message)
        try:
            self.scans.update(scan_id, status=ScanStatus.FAILED, error_message=message)
        except (ScanError, StorageError) as e:
            logger.error("Could not record failure of scan %s: %s", scan_id, e)
        self._publish(scan_id, progress, status=ScanStatus.FAILED)

    def _publish(
        self,
        scan_id: str,
        progress: _Progress,
        file: str | None = None,
        status: ScanStatus = ScanStatus.RUNNING,
    ) -> None:
        event = ProgressEvent(
            scan_id=scan_id,
            current=progress.processed,
            total=progress.total,
            file=file,
            status=status,
        )
        if file is not None:
            structured(
                logger,
                logging.DEBUG,
                f"[{progress.processed}/{progress.total}] {file}",
                **event.to_dict(),
            )
        self.reporter.publish(event)
