"""Entry point for running Vigil as a module.

Usage:
    python -m vigil [command] [options]

Example:
    python -m vigil scan ./my-repo --output report.json
    python -m vigil check
"""

from vigil.cli import app

if __name__ == "__main__":
    app()
