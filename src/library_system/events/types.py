"""Event payload definitions for the library system.

Each domain event published by the ``Library`` facade carries one of these
Pydantic models as its single positional argument. ``model_dump(by_alias=True)``
yields the camelCase form (``userId``, ``bookTitle`` ...).
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class LibraryEvent(BaseModel):
    """Base class for event payloads."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class SystemInitializedEvent(LibraryEvent):
    """Emitted once ``Library.initialize()`` has completed."""

    library_name: str
    timestamp: datetime


class UserRegisteredEvent(LibraryEvent):
    user_id: str
    name: str
    email: str
    type: str


class BookAddedEvent(LibraryEvent):
    book_id: str
    title: str
    author: str
    category: str


class BookBorrowedEvent(LibraryEvent):
    """Emitted after a borrow has been persisted."""

    user_id: str
    user_name: str
    book_id: str
    book_title: str
    due_date: datetime
    timestamp: datetime


class BookReturnedEvent(LibraryEvent):
    """Emitted after a return has been persisted.

    ``late_fee`` is zero for on-time returns.
    """

    user_id: str
    user_name: str
    book_id: str
    book_title: str
    return_date: datetime
    late_fee: float
    timestamp: datetime
