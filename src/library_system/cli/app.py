"""Main CLI application."""

from pathlib import Path

import typer

from library_system.cli.utils import books_table, console, run_with_library, stats_table
from library_system.constants import EVENT_BOOK_BORROWED, EVENT_BOOK_RETURNED, EVENT_USER_REGISTERED
from library_system.events import BookBorrowedEvent, BookReturnedEvent, UserRegisteredEvent
from library_system.logging import setup_logging
from library_system.seed import seed_sample_data
from library_system.services.library import Library
from library_system.settings import Settings, get_settings

app = typer.Typer(
    name="library-cli",
    help="Library management CLI - Demo and catalog tools",
    no_args_is_help=True,
)


def _settings(ctx: typer.Context) -> Settings:
    return ctx.obj if isinstance(ctx.obj, Settings) else get_settings()


@app.callback()
def main_callback(
    ctx: typer.Context,
    storage_dir: Path | None = typer.Option(
        None,
        "--storage-dir",
        help="Directory for JSON snapshots (default: in-memory, lost on exit)",
    ),
    connection_string: str | None = typer.Option(
        None,
        "--connection-string",
        help="Key under which the snapshot is stored",
    ),
    latency_scale: float | None = typer.Option(
        None,
        "--latency-scale",
        min=0.0,
        help="Multiplier for the simulated database latency (0 disables it)",
    ),
    log_level: str | None = typer.Option(
        None,
        "--log-level",
        help="Log level (TRACE, DEBUG, INFO, WARNING, ERROR)",
    ),
):
    """Global options for all commands."""
    overrides = {
        "storage_dir": storage_dir,
        "connection_string": connection_string,
        "latency_scale": latency_scale,
        "log_level": log_level,
    }
    data = get_settings().model_dump()
    data.update({key: value for key, value in overrides.items() if value is not None})
    try:
        settings = Settings.model_validate(data)
    except ValueError as e:
        console.print(f"[red]Error: Invalid option: {e}[/red]")
        raise typer.Exit(2) from None

    if log_level is not None:
        setup_logging(settings.log_level, compact=True)
    ctx.obj = settings


@app.command()
def demo(ctx: typer.Context):
    """Run a borrow/return walkthrough on the sample data.

    Seeds the sample users and books, lends a book, returns it and prints
    the events published along the way followed by the library statistics.

    Examples:
        library-cli demo
        library-cli --latency-scale 0 demo
    """

    async def _demo(library: Library) -> None:
        library.on(EVENT_USER_REGISTERED, _print_registered)
        library.on(EVENT_BOOK_BORROWED, _print_borrowed)
        library.on(EVENT_BOOK_RETURNED, _print_returned)

        console.print(f"[bold]Library: {library.name}[/bold]\n")
        await seed_sample_data(library)

        user = library.get_all_users()[0]
        book = next((b for b in library.get_all_books() if b.is_available()), None)
        if book is None:
            console.print("[yellow]No available book to lend[/yellow]")
            return

        await library.borrow_book(user.id, book.id)
        await library.return_book(user.id, book.id)

        console.print()
        console.print(stats_table(library.get_system_stats()))

    run_with_library(_settings(ctx), _demo)


@app.command()
def stats(ctx: typer.Context):
    """Print catalog and circulation statistics from storage.

    Examples:
        library-cli --storage-dir ./data stats
    """

    async def _stats(library: Library) -> None:
        console.print(stats_table(library.get_system_stats()))

    run_with_library(_settings(ctx), _stats)


@app.command()
def search(
    ctx: typer.Context,
    title: str | None = typer.Option(None, "--title", help="Case-insensitive title substring"),
    author: str | None = typer.Option(None, "--author", help="Case-insensitive author substring"),
    isbn: str | None = typer.Option(None, "--isbn", help="Exact ISBN"),
    available: bool | None = typer.Option(
        None,
        "--available/--unavailable",
        help="Only books that can (or cannot) be borrowed right now",
    ),
):
    """Search the catalog.

    Examples:
        library-cli --storage-dir ./data search --title code
        library-cli --storage-dir ./data search --author martin --available
    """

    async def _search(library: Library) -> None:
        criteria = {"title": title, "author": author, "isbn": isbn, "available": available}
        books = library.search_books(**{key: value for key, value in criteria.items() if value is not None})
        if not books:
            console.print("[yellow]No books found[/yellow]")
            return
        console.print(books_table(books, title=f"{len(books)} matching books"))

    run_with_library(_settings(ctx), _search)


@app.command()
def seed(ctx: typer.Context):
    """Write the sample users and books into storage.

    Existing ids are left untouched. Without ``--storage-dir`` the data only
    lives for the duration of the command.

    Examples:
        library-cli --storage-dir ./data seed
    """

    async def _seed(library: Library) -> tuple[int, int]:
        users, books = await seed_sample_data(library)
        return len(users), len(books)

    user_count, book_count = run_with_library(_settings(ctx), _seed)
    console.print(f"[green]Seeded {user_count} users and {book_count} books[/green]")


def _print_registered(event: UserRegisteredEvent) -> None:
    console.print(f"[cyan]user.registered[/cyan] {event.name} ({event.type})")


def _print_borrowed(event: BookBorrowedEvent) -> None:
    console.print(
        f"[cyan]book.borrowed[/cyan] {event.book_title} by {event.user_name}, "
        f"due {event.due_date.date().isoformat()}"
    )


def _print_returned(event: BookReturnedEvent) -> None:
    console.print(f"[cyan]book.returned[/cyan] {event.book_title} by {event.user_name}, late fee ${event.late_fee:.2f}")
