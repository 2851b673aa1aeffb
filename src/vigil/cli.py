"""Vigil CLI interface.

Commands:
- scan: Analyze a repository directory or archive
- status: Show scan state (one scan, or the most recent ones)
- report: Print the persisted report and tree of a completed scan
- rules: List or export the rule set
- check: Validate dependencies before scanning
- init: Initialize Vigil configuration and starter rules

Global options:
- --config: Path to configuration file
- --verbose: Enable verbose output with timestamps
- --quiet: Suppress info messages
- --ci: JSON log lines
- --version: Show version and exit
"""

import json
import logging
from pathlib import Path
from typing import Annotated, Any

import typer

from vigil import __version__
from vigil.config import VigilConfig, create_default_config, load_config
from vigil.exceptions import RuleSetError, StorageError, VigilError
from vigil.models.analysis import AnalysisReport, Scan
from vigil.rules import create_default_rules, dump_rules, load_rules
from vigil.storage import AnalysisCache, Database, ScanStore
from vigil.utils.logging import configure_from_cli, get_logger, structured

# Create Typer app
app = typer.Typer(
    name="vigil",
    help="LLM-assisted security analysis of source code repositories",
    add_completion=False,
    no_args_is_help=True,
)

# Global state
_config: VigilConfig | None = None
_logger = get_logger()


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"vigil {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    config: Annotated[
        Path | None,
        typer.Option(
            "--config",
            "-c",
            help="Path to configuration file",
            exists=True,
            dir_okay=False,
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option(
            "--verbose",
            "-v",
            help="Enable verbose output with timestamps",
        ),
    ] = False,
    quiet: Annotated[
        bool,
        typer.Option(
            "--quiet",
            "-q",
            help="Suppress info messages (warnings and errors only)",
        ),
    ] = False,
    ci: Annotated[
        bool,
        typer.Option(
            "--ci",
            help="Enable CI mode with JSON log output",
        ),
    ] = False,
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=version_callback,
            is_eager=True,
            help="Show version and exit",
        ),
    ] = False,
) -> None:
    """Vigil - security review of repositories with an LLM classifier.

    Every eligible source file is evaluated against every rule; results are
    cached by content hash so unchanged files are never classified twice.
    """
    global _config

    try:
        _config = load_config(config_path=config)
    except FileNotFoundError as e:
        configure_from_cli(verbose=verbose, quiet=quiet, ci=ci)
        _logger.error(str(e))
        raise typer.Exit(1)
    except (ValueError, OSError) as e:
        configure_from_cli(verbose=verbose, quiet=quiet, ci=ci)
        _logger.error(f"Failed to load config: {e}")
        raise typer.Exit(1)

    configure_from_cli(verbose=verbose, quiet=quiet, ci=ci or _config.ci.json_output)
    if _config.config_path:
        _logger.debug(f"Loaded config from: {_config.config_path}")


def _get_config() -> VigilConfig:
    return _config or VigilConfig()


def _open_stores() -> tuple[AnalysisCache, ScanStore]:
    """Open the configured database and return (cache, scans)."""
    db = Database(_get_config().storage.url)
    db.create_all()
    return AnalysisCache(db), ScanStore(db)


def _emit_json(data: dict[str, Any], output: Path | None) -> None:
    """Write JSON to ``output`` or stdout."""
    text = json.dumps(data, indent=2)
    if output is None:
        typer.echo(text)
        return
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(text + "\n", encoding="utf-8")
    _logger.info(f"Report written to: {output}")


# =============================================================================
# scan command
# =============================================================================


@app.command()
def scan(
    source: Annotated[
        Path,
        typer.Argument(
            help="Repository directory or archive (.zip, .tar.gz, ...)",
            exists=True,
        ),
    ],
    name: Annotated[
        str | None,
        typer.Option(
            "--name",
            "-n",
            help="Repository name (overrides git remote and manifest names)",
        ),
    ] = None,
    rules: Annotated[
        Path | None,
        typer.Option(
            "--rules",
            "-r",
            help="Rule set file (overrides config)",
        ),
    ] = None,
    output: Annotated[
        Path | None,
        typer.Option(
            "--output",
            "-o",
            help="JSON report path (overrides config; stdout if unset)",
        ),
    ] = None,
    include_content: Annotated[
        bool,
        typer.Option(
            "--include-content",
            help="Attach full file content to each finding",
        ),
    ] = False,
    no_prefilter: Annotated[
        bool,
        typer.Option(
            "--no-prefilter",
            help="Send every file to the LLM, even without category keywords",
        ),
    ] = False,
    no_cache: Annotated[
        bool,
        typer.Option(
            "--no-cache",
            help="Re-classify every file (results are still cached)",
        ),
    ] = False,
) -> None:
    """Analyze a repository against the rule set.

    Exit codes:
        0: Scan completed, no finding at or above ci.fail_on
        1: Scan failed (or could not start)
        2: Scan completed with findings at or above ci.fail_on
    """
    from vigil.analyzers.classifier import LLMClassifier
    from vigil.llm import create_client
    from vigil.models.repository import RepositorySource
    from vigil.pipeline import AnalysisPipeline, PipelineOptions
    from vigil.progress import ProgressEvent, ProgressReporter

    config = _get_config()
    rules_path = rules or Path(config.rules.path)

    try:
        rule_set = load_rules(rules_path)
    except RuleSetError as e:
        _logger.error(str(e))
        raise typer.Exit(1)
    if not rule_set:
        _logger.error(f"Rule set is empty: {rules_path}")
        raise typer.Exit(1)

    try:
        client = create_client(config.llm)
    except ValueError as e:
        _logger.error(str(e))
        raise typer.Exit(1)

    for warning in config.llm.validate():
        _logger.warning(warning)

    try:
        cache, scans = _open_stores()
    except StorageError as e:
        _logger.error(str(e))
        raise typer.Exit(1)

    reporter = ProgressReporter()

    def log_progress(event: ProgressEvent) -> None:
        if event.file:
            structured(
                _logger,
                logging.INFO,
                f"[{event.current}/{event.total}] {event.file}",
                **event.to_dict(),
            )

    reporter.subscribe(log_progress)

    pipeline = AnalysisPipeline(
        classifier=LLMClassifier(client, prefilter=config.scan.prefilter and not no_prefilter),
        cache=cache,
        scans=scans,
        reporter=reporter,
        options=PipelineOptions(
            include_file_content=include_content or config.scan.include_file_content,
            use_cache=not no_cache,
        ),
    )

    _logger.info(f"Scanning {source} with {len(rule_set)} rule(s)")
    try:
        outcome = pipeline.run(RepositorySource(source, name=name), rule_set)
    except (VigilError, ValueError) as e:
        _logger.error(f"Scan failed: {e}")
        raise typer.Exit(1)

    for error in outcome.errors:
        _logger.warning(f"  [{error.component}] {error.file_path}: {error.message}")

    _log_report_summary(outcome.report)

    output_path = output or (Path(config.output.path) if config.output.path else None)
    _emit_json(
        {
            "scan": outcome.scan.to_dict(),
            "report": outcome.report.to_dict(),
            "tree": outcome.tree.to_dict(),
            "errors": [e.to_dict() for e in outcome.errors],
        },
        output_path,
    )

    threshold = config.ci.threshold
    if threshold is not None and any(
        f.severity.rank >= threshold.rank for f in outcome.report.findings
    ):
        _logger.warning(f"Findings at or above '{threshold.value}' severity")
        raise typer.Exit(2)
    raise typer.Exit(0)


def _log_report_summary(report: AnalysisReport) -> None:
    counts = report.count_by_severity()
    _logger.info(
        f"{len(report.findings)} finding(s): "
        f"{counts['high']} high, {counts['medium']} medium, {counts['low']} low "
        f"(overall: {report.overall_severity.value})"
    )
    for finding in report.findings:
        _logger.info(
            f"  [{finding.severity.value}] {finding.rule_name} "
            f"at {finding.location}:{finding.line_number}"
        )


# =============================================================================
# status / report commands
# =============================================================================


def _format_scan(scan_record: Scan) -> str:
    line = (
        f"{scan_record.id}  {scan_record.status.value:<9}  {scan_record.progress_percent:>3}%  "
        f"{scan_record.repository_name}  ({scan_record.processed_files}/{scan_record.total_files})"
    )
    if scan_record.error_message:
        line += f"\n    error: {scan_record.error_message}"
    elif scan_record.current_file and not scan_record.status.is_terminal:
        line += f"\n    analyzing: {scan_record.current_file}"
    return line


@app.command()
def status(
    scan_id: Annotated[
        str | None,
        typer.Argument(help="Scan id (omit to list recent scans)"),
    ] = None,
    limit: Annotated[
        int,
        typer.Option("--limit", "-l", help="Number of recent scans to list"),
    ] = 50,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show the state of a scan, or list the most recent scans."""
    try:
        _, scans = _open_stores()
        records = [scans.get(scan_id)] if scan_id else scans.list_recent(limit)
    except StorageError as e:
        _logger.error(str(e))
        raise typer.Exit(1)

    if scan_id and records[0] is None:
        _logger.error(f"Scan not found: {scan_id}")
        raise typer.Exit(1)

    if json_output:
        data = [r.to_dict() for r in records]
        typer.echo(json.dumps(data[0] if scan_id else data, indent=2))
        return

    if not records:
        typer.echo("No scans yet")
        return
    for record in records:
        typer.echo(_format_scan(record))


@app.command()
def report(
    scan_id: Annotated[str, typer.Argument(help="Scan id")],
    output: Annotated[
        Path | None,
        typer.Option("--output", "-o", help="Write JSON to this path instead of stdout"),
    ] = None,
) -> None:
    """Print the report and tree of a completed scan as JSON."""
    try:
        _, scans = _open_stores()
        scan_record = scans.get(scan_id)
        analysis_report = scans.get_report(scan_id)
        tree = scans.get_tree(scan_id)
    except StorageError as e:
        _logger.error(str(e))
        raise typer.Exit(1)

    if scan_record is None:
        _logger.error(f"Scan not found: {scan_id}")
        raise typer.Exit(1)
    if analysis_report is None:
        _logger.error(
            f"Scan {scan_id} is {scan_record.status.value}; "
            "reports exist only for completed scans"
        )
        raise typer.Exit(1)

    _emit_json(
        {
            "scan": scan_record.to_dict(),
            "report": analysis_report.to_dict(),
            "tree": tree.to_dict() if tree else None,
        },
        output,
    )


# =============================================================================
# rules command
# =============================================================================


@app.command("rules")
def rules_command(
    rules: Annotated[
        Path | None,
        typer.Option("--rules", "-r", help="Rule set file (overrides config)"),
    ] = None,
    export: Annotated[
        Path | None,
        typer.Option("--export", "-e", help="Export the rule set (.json or .yaml)"),
    ] = None,
    no_ids: Annotated[
        bool,
        typer.Option("--no-ids", help="Omit rule ids from the export"),
    ] = False,
) -> None:
    """List the configured rule set, or export it."""
    rules_path = rules or Path(_get_config().rules.path)
    try:
        rule_set = load_rules(rules_path)
    except RuleSetError as e:
        _logger.error(str(e))
        raise typer.Exit(1)

    if export is not None:
        dump_rules(rule_set, export, include_ids=not no_ids)
        _logger.info(f"Exported {len(rule_set)} rule(s) to {export}")
        return

    for rule in rule_set:
        typer.echo(f"{rule.id:<24} [{rule.severity.value:<6}] {rule.name} ({rule.category})")


# =============================================================================
# check command (preflight)
# =============================================================================


@app.command()
def check(
    json_output: Annotated[
        bool,
        typer.Option(
            "--json",
            help="Output results as JSON",
        ),
    ] = False,
    skip_llm: Annotated[
        bool,
        typer.Option(
            "--skip-llm",
            help="Do not contact the LLM provider",
        ),
    ] = False,
) -> None:
    """Validate dependencies before scanning.

    Exit codes:
        0: All required checks passed
        1: One or more required checks failed
        2: Only optional checks failed (warnings)
    """
    from vigil.utils.preflight import PreflightChecker

    config = _get_config()
    result = PreflightChecker().check_all(
        llm_config=config.llm,
        database_url=config.storage.url,
        rules_path=Path(config.rules.path),
        skip_llm=skip_llm,
    )

    if json_output:
        typer.echo(json.dumps(result.to_dict(), indent=2))
    else:
        typer.echo("\nPreflight Check Results\n")
        for check_result in result.checks:
            mark = "ok" if check_result.available else "FAIL"
            version_str = f" ({check_result.version})" if check_result.version else ""
            required_str = " [required]" if check_result.required else " [optional]"
            typer.echo(f"  [{mark:>4}] {check_result.name}{version_str}{required_str}")
            typer.echo(f"         {check_result.message}")
        typer.echo()

    if result.errors:
        if not json_output:
            typer.echo("Preflight check FAILED")
            for error in result.errors:
                typer.echo(f"   - {error}")
        raise typer.Exit(1)
    if result.warnings:
        if not json_output:
            typer.echo("Preflight check passed with WARNINGS")
            for warning in result.warnings:
                typer.echo(f"   - {warning}")
        raise typer.Exit(2)
    if not json_output:
        typer.echo("All preflight checks passed")


# =============================================================================
# init command
# =============================================================================


@app.command()
def init(
    force: Annotated[
        bool,
        typer.Option(
            "--force",
            help="Overwrite existing files",
        ),
    ] = False,
    directory: Annotated[
        Path,
        typer.Option(
            "--dir",
            "-d",
            help="Project directory to initialize",
            file_okay=False,
        ),
    ] = Path("."),
) -> None:
    """Initialize Vigil configuration.

    Creates .vigil/config.yaml and a starter .vigil/rules.yaml.
    """
    vigil_dir = directory / ".vigil"
    vigil_dir.mkdir(parents=True, exist_ok=True)

    files = {
        vigil_dir / "config.yaml": create_default_config(),
        vigil_dir / "rules.yaml": create_default_rules(),
    }

    existing = [path for path in files if path.exists()]
    if existing and not force:
        for path in existing:
            _logger.error(f"Already exists: {path}")
        _logger.info("Use --force to overwrite")
        raise typer.Exit(1)

    for path, content in files.items():
        path.write_text(content, encoding="utf-8")
        typer.echo(f"Created {path}")

    typer.echo("\nNext steps:")
    typer.echo("  1. Review .vigil/config.yaml (LLM provider, storage)")
    typer.echo("  2. Edit .vigil/rules.yaml")
    typer.echo("  3. Run: vigil check")
    typer.echo("  4. Run: vigil scan <path-or-archive>")


if __name__ == "__main__":
    app()
