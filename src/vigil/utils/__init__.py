"""Vigil utility modules.

- logging: Standardized logging with human/verbose/JSON modes
- preflight: Dependency checks before a scan
"""

from vigil.utils.logging import configure_from_cli, get_logger, setup_logging, structured
from vigil.utils.preflight import PreflightChecker, PreflightResult

__all__ = [
    "PreflightChecker",
    "PreflightResult",
    "configure_from_cli",
    "get_logger",
    "setup_logging",
    "structured",
]
