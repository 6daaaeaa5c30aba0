"""CLI module for the library system.

Provides a command-line interface for running the demo and inspecting a
stored catalog.
"""

from library_system.cli.app import app

__all__ = ["app"]
