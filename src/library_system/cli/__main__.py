"""CLI entry point.

Usage:
    python -m library_system.cli demo
    library-cli --storage-dir ./data seed
    library-cli --storage-dir ./data search --title code
"""

from library_system.cli.app import app
from library_system.logging import setup_logging
from library_system.settings import get_settings


def main() -> None:
    """CLI entry point with logging configuration."""
    setup_logging(get_settings().log_level, compact=True)
    app()


if __name__ == "__main__":
    main()
