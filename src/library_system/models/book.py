"""Book entity and its availability state machine.

A ``Book`` is a catalog title with one or more physical copies. Its status
moves between ``available``, ``borrowed``, ``reserved``, ``maintenance`` and
``lost`` only through the methods below; identity fields (``id``, ``isbn``)
are fixed at construction.
"""

import math
import re
from datetime import datetime
from enum import StrEnum
from typing import Any

from loguru import logger

from library_system.exceptions import BookNotAvailableError, InvalidStateError, RecordValidationError
from library_system.utils.time_utils import SECONDS_PER_DAY, parse_datetime, utc_now

_ISBN_SEPARATORS = re.compile(r"[-\s]")
_ISBN10 = re.compile(r"^\d{9}[\dXx]$")
_ISBN13 = re.compile(r"^\d{13}$")


class BookStatus(StrEnum):
    """Lifecycle status of a catalog title."""

    AVAILABLE = "available"
    BORROWED = "borrowed"
    RESERVED = "reserved"
    MAINTENANCE = "maintenance"
    LOST = "lost"


class BookCategory(StrEnum):
    """Closed set of catalog categories."""

    FICTION = "fiction"
    NON_FICTION = "non-fiction"
    SCIENCE = "science"
    TECHNOLOGY = "technology"
    HISTORY = "history"
    BIOGRAPHY = "biography"
    CHILDREN = "children"
    REFERENCE = "reference"


class Book:
    """A catalog title with copy counts and borrow metadata.

    Invariants kept by every method:
    - ``0 <= available_copies <= total_copies``
    - ``borrowed_by``, ``borrow_date`` and ``due_date`` are set exactly when
      the status is ``borrowed``

    Reservations are a single slot (``reserved_by``), not a queue.
    """

    def __init__(
        self,
        book_id: str,
        isbn: str,
        title: str,
        author: str,
        *,
        category: BookCategory | str = BookCategory.FICTION,
        published_year: int | None = None,
        publisher: str = "",
        location: str = "",
        description: str = "",
        total_copies: int = 1,
    ):
        """Create a book with every copy available.

        Raises:
            RecordValidationError: If any field is missing or malformed
        """
        if not book_id:
            raise RecordValidationError("id", "Book must have an id")
        if not title:
            raise RecordValidationError("title", "Book must have a title")
        if not author:
            raise RecordValidationError("author", "Book must have an author")
        if not isinstance(isbn, str) or not Book.validate_isbn(isbn):
            raise RecordValidationError("isbn", f"Invalid ISBN format: {isbn!r}")
        if not Book.validate_category(category):
            raise RecordValidationError("category", f"Invalid book category: {category!r}")

        current_year = utc_now().year
        year = current_year if published_year is None else published_year
        if isinstance(year, bool) or not isinstance(year, int):
            raise RecordValidationError("publishedYear", f"Published year must be an integer, got: {year!r}")
        if year > current_year:
            raise RecordValidationError("publishedYear", "Published year cannot be in the future")

        if isinstance(total_copies, bool) or not isinstance(total_copies, int) or total_copies < 1:
            raise RecordValidationError("totalCopies", "Total copies must be at least 1")

        self._id = book_id
        self._isbn = isbn
        self._title = title
        self._author = author
        self._category = BookCategory(category)
        self._published_year = year
        self._publisher = publisher or ""
        self._location = location or ""
        self._description = description or ""
        self._total_copies = total_copies
        self._available_copies = total_copies
        self._status = BookStatus.AVAILABLE
        self._borrowed_by: str | None = None
        self._borrow_date: datetime | None = None
        self._due_date: datetime | None = None
        self._reserved_by: str | None = None
        self._status_before_reservation: BookStatus | None = None

    # Read-only attributes

    @property
    def id(self) -> str:
        return self._id

    @property
    def isbn(self) -> str:
        return self._isbn

    @property
    def title(self) -> str:
        return self._title

    @property
    def author(self) -> str:
        return self._author

    @property
    def category(self) -> BookCategory:
        return self._category

    @property
    def published_year(self) -> int:
        return self._published_year

    @property
    def publisher(self) -> str:
        return self._publisher

    @property
    def status(self) -> BookStatus:
        return self._status

    @property
    def borrowed_by(self) -> str | None:
        return self._borrowed_by

    @property
    def borrow_date(self) -> datetime | None:
        return self._borrow_date

    @property
    def due_date(self) -> datetime | None:
        return self._due_date

    @property
    def reserved_by(self) -> str | None:
        return self._reserved_by

    @property
    def total_copies(self) -> int:
        return self._total_copies

    @property
    def available_copies(self) -> int:
        return self._available_copies

    # Mutable descriptive attributes

    @property
    def location(self) -> str:
        return self._location

    @location.setter
    def location(self, value: str | None) -> None:
        self._location = value or ""

    @property
    def description(self) -> str:
        return self._description

    @description.setter
    def description(self, value: str | None) -> None:
        self._description = value or ""

    # Queries

    def is_available(self) -> bool:
        return self._status == BookStatus.AVAILABLE and self._available_copies > 0

    def is_borrowed(self) -> bool:
        return self._status == BookStatus.BORROWED

    def is_overdue(self, now: datetime | None = None) -> bool:
        if self._due_date is None:
            return False
        return (now or utc_now()) > self._due_date

    def get_days_until_due(self, now: datetime | None = None) -> int | None:
        """Days until the due date, rounded up; negative once overdue."""
        if self._due_date is None:
            return None
        seconds = (self._due_date - (now or utc_now())).total_seconds()
        return math.ceil(seconds / SECONDS_PER_DAY)

    def matches(self, term: str) -> bool:
        """Case-insensitive substring search over title, author, ISBN, category and publisher."""
        needle = term.lower()
        return any(
            needle in field.lower()
            for field in (self._title, self._author, self._isbn, str(self._category), self._publisher)
        )

    # Transitions

    def borrow(self, user_id: str, due_date: datetime, now: datetime | None = None) -> dict[str, Any]:
        """Lend one copy to ``user_id`` until ``due_date``.

        Raises:
            BookNotAvailableError: If the book is not available; nothing is changed
        """
        if not self.is_available():
            raise BookNotAvailableError(f'Book "{self._title}" is not available for borrowing')

        self._status = BookStatus.BORROWED
        self._borrowed_by = user_id
        self._borrow_date = now or utc_now()
        self._due_date = due_date
        self._available_copies -= 1
        if self._reserved_by == user_id:
            self._reserved_by = None

        logger.debug(f"Book {self._id} borrowed by {user_id}, due {due_date.isoformat()}")
        return {
            "bookId": self._id,
            "userId": user_id,
            "borrowDate": self._borrow_date,
            "dueDate": self._due_date,
        }

    def return_book(self, now: datetime | None = None) -> dict[str, Any]:
        """Take the borrowed copy back and return a summary of the loan.

        Raises:
            InvalidStateError: If the book is not currently borrowed
        """
        if not self.is_borrowed():
            raise InvalidStateError(f'Book "{self._title}" is not currently borrowed')

        return_date = now or utc_now()
        summary = {
            "bookId": self._id,
            "userId": self._borrowed_by,
            "borrowDate": self._borrow_date,
            "returnDate": return_date,
            "wasOverdue": self.is_overdue(return_date),
        }

        self._status = BookStatus.AVAILABLE
        self._clear_borrow_metadata()
        self._available_copies += 1

        logger.debug(f"Book {self._id} returned")
        return summary

    def reserve(self, user_id: str) -> bool:
        """Hold the single reservation slot for ``user_id``.

        Only possible while the book cannot be borrowed. A borrowed book keeps
        its ``borrowed`` status; otherwise the status becomes ``reserved``
        until the reservation is cancelled.

        Raises:
            InvalidStateError: If the book is available or already reserved
        """
        if self.is_available():
            raise InvalidStateError("Book is available, no need to reserve")
        if self._reserved_by is not None:
            raise InvalidStateError("Book is already reserved")

        self._reserved_by = user_id
        if self._status != BookStatus.BORROWED:
            self._status_before_reservation = self._status
            self._status = BookStatus.RESERVED
        return True

    def cancel_reservation(self) -> bool:
        """Release the reservation slot and restore the previous status.

        Raises:
            InvalidStateError: If the book is not reserved
        """
        if self._reserved_by is None:
            raise InvalidStateError("Book is not reserved")

        self._reserved_by = None
        if self._status == BookStatus.RESERVED:
            self._status = self._status_before_reservation or BookStatus.AVAILABLE
            self._status_before_reservation = None
        return True

    def mark_as_lost(self) -> None:
        """Mark the title lost from any state, dropping active borrow metadata."""
        self._status = BookStatus.LOST
        self._status_before_reservation = None
        self._clear_borrow_metadata()

    def mark_for_maintenance(self) -> None:
        """Take one copy out of circulation.

        Raises:
            InvalidStateError: If the book is currently borrowed
        """
        if self.is_borrowed():
            raise InvalidStateError("Cannot mark borrowed book for maintenance")

        self._status = BookStatus.MAINTENANCE
        self._available_copies = max(0, self._available_copies - 1)

    def finish_maintenance(self) -> None:
        """Put one copy back into circulation.

        Raises:
            InvalidStateError: If the book is not under maintenance
        """
        if self._status != BookStatus.MAINTENANCE:
            raise InvalidStateError("Book is not under maintenance")

        self._status = BookStatus.AVAILABLE
        self._available_copies = min(self._total_copies, self._available_copies + 1)

    def add_copies(self, count: int) -> int:
        """Add ``count`` copies, all available. Returns the new total."""
        if count <= 0:
            raise RecordValidationError("count", "Copy count must be positive")

        self._total_copies += count
        self._available_copies += count
        return self._total_copies

    def remove_copies(self, count: int) -> int:
        """Remove ``count`` available copies. Returns the new total.

        Raises:
            RecordValidationError: If ``count`` is not positive
            InvalidStateError: If fewer than ``count`` copies are available
        """
        if count <= 0:
            raise RecordValidationError("count", "Copy count must be positive")
        if count > self._available_copies:
            raise InvalidStateError("Cannot remove more copies than available")

        self._total_copies -= count
        self._available_copies -= count
        return self._total_copies

    def _clear_borrow_metadata(self) -> None:
        self._borrowed_by = None
        self._borrow_date = None
        self._due_date = None

    # Validation helpers

    @staticmethod
    def validate_isbn(isbn: str) -> bool:
        """Check for a 10-digit (optional trailing X) or 13-digit ISBN, ignoring dashes and spaces."""
        cleaned = _ISBN_SEPARATORS.sub("", isbn)
        return bool(_ISBN10.match(cleaned) or _ISBN13.match(cleaned))

    @staticmethod
    def validate_category(category: Any) -> bool:
        return isinstance(category, str) and category in BookCategory._value2member_map_

    # Serialization

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> "Book":
        """Rebuild a book from its ``to_json`` snapshot."""
        book = cls(
            data.get("id"),
            data.get("isbn"),
            data.get("title"),
            data.get("author"),
            category=data.get("category") or BookCategory.FICTION,
            published_year=data.get("publishedYear"),
            publisher=data.get("publisher") or "",
            location=data.get("location") or "",
            description=data.get("description") or "",
            total_copies=data.get("totalCopies") or 1,
        )

        try:
            book._status = BookStatus(data.get("status") or BookStatus.AVAILABLE)
        except ValueError:
            raise RecordValidationError("status", f"Invalid book status: {data.get('status')!r}") from None

        available = data.get("availableCopies", book._total_copies)
        if isinstance(available, bool) or not isinstance(available, int) or not 0 <= available <= book._total_copies:
            raise RecordValidationError("availableCopies", f"Available copies out of range: {available!r}")
        book._available_copies = available

        if book._status == BookStatus.BORROWED:
            book._borrowed_by = data.get("borrowedBy")
            book._borrow_date = parse_datetime(data.get("borrowDate"))
            book._due_date = parse_datetime(data.get("dueDate"))
            for field, value in (
                ("borrowedBy", book._borrowed_by),
                ("borrowDate", book._borrow_date),
                ("dueDate", book._due_date),
            ):
                if not value:
                    raise RecordValidationError(field, f"Borrowed book {book._id} is missing {field}")
        book._reserved_by = data.get("reservedBy")
        if book._status == BookStatus.RESERVED:
            book._status_before_reservation = BookStatus.AVAILABLE
        return book

    def to_json(self) -> dict[str, Any]:
        return {
            "id": self._id,
            "isbn": self._isbn,
            "title": self._title,
            "author": self._author,
            "category": str(self._category),
            "publishedYear": self._published_year,
            "publisher": self._publisher,
            "status": str(self._status),
            "borrowedBy": self._borrowed_by,
            "borrowDate": self._borrow_date,
            "dueDate": self._due_date,
            "reservedBy": self._reserved_by,
            "location": self._location,
            "description": self._description,
            "totalCopies": self._total_copies,
            "availableCopies": self._available_copies,
        }

    def __str__(self) -> str:
        return f'"{self._title}" by {self._author} ({self._status})'

    def __repr__(self) -> str:
        return f"Book(id={self._id!r}, isbn={self._isbn!r}, status={str(self._status)!r})"
