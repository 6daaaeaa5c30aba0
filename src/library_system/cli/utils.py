"""CLI utility functions shared across commands.

This module contains generic CLI utilities for:
- Building the library from the CLI's settings
- Rendering books and statistics as rich tables
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

import typer
from rich.console import Console
from rich.table import Table

from library_system.exceptions import LibraryError
from library_system.models import Book
from library_system.services.library import Library, SystemStats, create_library
from library_system.settings import Settings

console = Console()

T = TypeVar("T")


def run_with_library(settings: Settings, action: Callable[[Library], Awaitable[T]]) -> T:
    """Initialize a library from ``settings``, run ``action`` on it and shut it down.

    Library errors are printed and turned into exit code 1.

    Raises:
        typer.Exit: If the action fails with a library error
    """

    async def _run() -> T:
        library = create_library(settings)
        await library.initialize()
        try:
            return await action(library)
        finally:
            await library.shutdown()

    try:
        return asyncio.run(_run())
    except LibraryError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1) from None


def books_table(books: list[Book], title: str = "Books") -> Table:
    table = Table(title=title)
    table.add_column("ID", style="cyan")
    table.add_column("Title")
    table.add_column("Author")
    table.add_column("ISBN")
    table.add_column("Status")
    table.add_column("Copies", justify="right")

    for book in books:
        status_style = "green" if book.is_available() else "yellow"
        table.add_row(
            book.id,
            book.title,
            book.author,
            book.isbn,
            f"[{status_style}]{book.status}[/{status_style}]",
            f"{book.available_copies}/{book.total_copies}",
        )
    return table


def stats_table(stats: SystemStats) -> Table:
    table = Table(title=f"{stats.library} statistics")
    table.add_column("Metric")
    table.add_column("Value", justify="right")

    table.add_row("Total books", str(stats.total_books))
    table.add_row("Available books", str(stats.available_books))
    table.add_row("Borrowed books", str(stats.borrowed_books))
    table.add_row("Total users", str(stats.total_users))
    table.add_row("Total transactions", str(stats.total_transactions))
    return table
