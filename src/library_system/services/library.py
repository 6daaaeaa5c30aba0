"""Library facade coordinating users, books, transactions and events."""

import asyncio
import contextlib
from collections.abc import AsyncIterator
from typing import Any

from loguru import logger
from pydantic import BaseModel, ConfigDict, ValidationError

from library_system.constants import (
    DEFAULT_LIBRARY_NAME,
    EVENT_BOOK_ADDED,
    EVENT_BOOK_BORROWED,
    EVENT_BOOK_RETURNED,
    EVENT_SYSTEM_INITIALIZED,
    EVENT_USER_REGISTERED,
    FINE_PER_DAY,
)
from library_system.database import Database
from library_system.database.storage import FileStorage, MemoryStorage
from library_system.event_bus import EventBus, Listener
from library_system.events import (
    BookAddedEvent,
    BookBorrowedEvent,
    BookReturnedEvent,
    SystemInitializedEvent,
    UserRegisteredEvent,
    register_event_handlers,
)
from library_system.exceptions import (
    AlreadyInitializedError,
    BookNotAvailableError,
    BorrowLimitError,
    DuplicateRecordError,
    InactiveUserError,
    InvalidStateError,
    LibraryError,
    NotInitializedError,
    RecordValidationError,
    ResourceNotFoundError,
)
from library_system.models import Book, Transaction, TransactionType, User
from library_system.settings import Settings, get_settings
from library_system.utils.time_utils import Clock, utc_now


class BookSearchCriteria(BaseModel):
    """Filters accepted by ``Library.search_books``.

    Text filters are case-insensitive substring matches; ``available`` filters
    on ``Book.is_available()``; ``isbn`` must match exactly. Empty or missing
    filters are ignored.
    """

    model_config = ConfigDict(extra="forbid")

    title: str | None = None
    author: str | None = None
    isbn: str | None = None
    available: bool | None = None

    def matches(self, book: Book) -> bool:
        if self.title and self.title.lower() not in book.title.lower():
            return False
        if self.author and self.author.lower() not in book.author.lower():
            return False
        if self.isbn and self.isbn != book.isbn:
            return False
        if self.available is not None and book.is_available() != self.available:
            return False
        return True


class SystemStats(BaseModel):
    """Snapshot of the library's counters."""

    library: str
    total_books: int
    available_books: int
    borrowed_books: int
    total_users: int
    total_transactions: int
    is_initialized: bool


class Library:
    """Public entry point of the library system.

    Owns the in-memory user and book catalogs and the transaction history,
    persists every change through ``Database`` and publishes domain events on
    its ``EventBus``. All operations other than construction require a prior
    ``initialize()``.

    When ``serialize_mutations`` is set, registration, borrow and return calls
    touching the same user or book run one at a time. Borrow and return hold
    both the user and the book lock, so two concurrent borrows of the last
    copy, or by a user one loan below the limit, cannot both pass the checks.
    """

    def __init__(
        self,
        name: str = DEFAULT_LIBRARY_NAME,
        *,
        database: Database | None = None,
        event_bus: EventBus | None = None,
        clock: Clock = utc_now,
        fine_per_day: float = FINE_PER_DAY,
        serialize_mutations: bool = True,
    ):
        self._name = name
        self._clock = clock
        self._database = database if database is not None else Database(clock=clock)
        self._event_bus = event_bus if event_bus is not None else EventBus()
        self._fine_per_day = fine_per_day
        self._serialize_mutations = serialize_mutations
        self._users: dict[str, User] = {}
        self._books: dict[str, Book] = {}
        self._transactions: list[Transaction] = []
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_refs: dict[str, int] = {}
        self._is_initialized = False

    @property
    def name(self) -> str:
        return self._name

    @property
    def is_initialized(self) -> bool:
        return self._is_initialized

    # Lifecycle

    async def initialize(self) -> bool:
        """Connect the database, load stored data and start publishing events.

        A stored snapshot that cannot be turned back into entities is logged
        and the library starts empty.

        Raises:
            AlreadyInitializedError: If the library is already initialized
        """
        if self._is_initialized:
            raise AlreadyInitializedError(f"Library {self._name} is already initialized")

        logger.info(f"Initializing library: {self._name}")
        await self._database.connect()
        await self._load_data()

        register_event_handlers(self._event_bus)
        self._is_initialized = True

        self._event_bus.emit(
            EVENT_SYSTEM_INITIALIZED,
            SystemInitializedEvent(library_name=self._name, timestamp=self._clock()),
        )
        return True

    async def _load_data(self) -> None:
        data = await self._database.load_all()
        try:
            users = {key: User.from_json(record) for key, record in data["users"].items()}
            books = {key: Book.from_json(record) for key, record in data["books"].items()}
            transactions = [Transaction.from_json(record) for record in data["transactions"]]
        except (LibraryError, ValidationError, KeyError, TypeError) as e:
            logger.warning(f"Stored data could not be loaded, starting empty: {e}")
            return

        self._users, self._books, self._transactions = users, books, transactions
        logger.info(f"Loaded {len(users)} users, {len(books)} books and {len(transactions)} transactions")

    async def shutdown(self) -> None:
        """Persist everything, disconnect and drop all event listeners.

        Does nothing when the library is not initialized.
        """
        if not self._is_initialized:
            return

        logger.info(f"Shutting down library: {self._name}")
        stored = await self._database.load_all()
        await self._database.save_all(
            {
                "users": {
                    user_id: {**stored["users"].get(user_id, {}), **user.to_json()}
                    for user_id, user in self._users.items()
                },
                "books": {
                    book_id: {**stored["books"].get(book_id, {}), **book.to_json()}
                    for book_id, book in self._books.items()
                },
                "transactions": [transaction.to_json() for transaction in self._transactions],
            }
        )
        await self._database.disconnect()

        self._event_bus.remove_all_listeners()
        self._is_initialized = False
        logger.info("Library system shutdown complete")

    # Registration

    async def register_user(self, user: User) -> User:
        """Register a new user.

        Raises:
            NotInitializedError: If the library is not initialized
            DuplicateRecordError: If the id or email is already registered
            RecordValidationError: If the user record fails schema validation
        """
        self._ensure_initialized()

        async with self._guard(f"user:{user.id}"):
            if user.id in self._users:
                raise DuplicateRecordError("User", "id", user.id)

            await self._database.save_user(user.to_json())
            self._users[user.id] = user

        logger.debug(f"Service: register_user - registered {user.id}")
        self._event_bus.emit(
            EVENT_USER_REGISTERED,
            UserRegisteredEvent(user_id=user.id, name=user.name, email=user.email, type=str(user.type)),
        )
        return user

    async def add_book(self, book: Book) -> Book:
        """Add a book to the catalog.

        Raises:
            NotInitializedError: If the library is not initialized
            DuplicateRecordError: If the id or ISBN already exists
            RecordValidationError: If the book record fails schema validation
        """
        self._ensure_initialized()

        async with self._guard(f"book:{book.id}"):
            if book.id in self._books:
                raise DuplicateRecordError("Book", "id", book.id)

            await self._database.save_book(book.to_json())
            self._books[book.id] = book

        logger.debug(f"Service: add_book - added {book.id}")
        self._event_bus.emit(
            EVENT_BOOK_ADDED,
            BookAddedEvent(book_id=book.id, title=book.title, author=book.author, category=str(book.category)),
        )
        return book

    # Circulation

    async def borrow_book(self, user_id: str, book_id: str) -> Transaction:
        """Lend a book to a user.

        The borrow transaction is persisted before the book and user are
        updated; the due date follows the user's borrowing policy.

        Returns:
            The active borrow transaction

        Raises:
            NotInitializedError: If the library is not initialized
            ResourceNotFoundError: If the user or book does not exist
            BookNotAvailableError: If the book is not available
            InactiveUserError: If the user is deactivated
            BorrowLimitError: If the user already holds the maximum number of books
        """
        self._ensure_initialized()

        async with self._guard(f"user:{user_id}", f"book:{book_id}"):
            user = self._require_user(user_id)
            book = self._require_book(book_id)

            if not book.is_available():
                raise BookNotAvailableError(f"Book is not available: {book.title}")
            if not user.is_active:
                raise InactiveUserError(f"User {user.id} is not active")
            if not user.can_borrow():
                raise BorrowLimitError(f"User {user.id} has reached the borrowing limit")

            now = self._clock()
            due_date = user.calculate_due_date(now)
            transaction = Transaction.create_borrow(user.id, book.id, now, due_date)
            await self._database.save_transaction(transaction.to_json())

            loan = user.borrow_book(book, now)
            try:
                book.borrow(user.id, due_date, now)
            except BookNotAvailableError:
                user.discard_loan(loan)
                raise
            self._transactions.append(transaction)

            await self._database.save_book(book.to_json())
            await self._database.save_user(user.to_json())

        logger.debug(f"Service: borrow_book - {book.id} lent to {user.id} until {due_date.isoformat()}")
        self._event_bus.emit(
            EVENT_BOOK_BORROWED,
            BookBorrowedEvent(
                user_id=user.id,
                user_name=user.name,
                book_id=book.id,
                book_title=book.title,
                due_date=due_date,
                timestamp=now,
            ),
        )
        return transaction

    async def return_book(self, user_id: str, book_id: str) -> Transaction:
        """Take back a borrowed book and charge any late fee.

        Returns:
            The completed return transaction, carrying ``late_fee``

        Raises:
            NotInitializedError: If the library is not initialized
            ResourceNotFoundError: If the user, the book or an active borrow
                of that book by that user does not exist
            InvalidStateError: If the book is no longer marked as borrowed
        """
        self._ensure_initialized()

        async with self._guard(f"user:{user_id}", f"book:{book_id}"):
            user = self._require_user(user_id)
            book = self._require_book(book_id)

            borrow = next((t for t in self._transactions if t.is_active_borrow_of(user_id, book_id)), None)
            if borrow is None:
                raise ResourceNotFoundError("Active borrow transaction", f"{user_id}/{book_id}")
            if not book.is_borrowed():
                raise InvalidStateError(f"Book {book.id} is not borrowed")
            if all(loan.book_id != book_id for loan in user.borrowed_books):
                raise ResourceNotFoundError("Borrowed book", book_id)

            now = self._clock()
            return_transaction = Transaction.create_return(borrow, now, self._fine_per_day)
            await self._database.save_transaction(return_transaction.to_json())

            book.return_book(now)
            user.return_book(book_id, now)
            borrow.complete()
            self._transactions.append(return_transaction)

            await self._database.save_transaction(borrow.to_json())
            await self._database.save_book(book.to_json())
            await self._database.save_user(user.to_json())

        logger.debug(f"Service: return_book - {book.id} returned by {user.id}, fee {return_transaction.late_fee}")
        self._event_bus.emit(
            EVENT_BOOK_RETURNED,
            BookReturnedEvent(
                user_id=user.id,
                user_name=user.name,
                book_id=book.id,
                book_title=book.title,
                return_date=now,
                late_fee=return_transaction.late_fee,
                timestamp=now,
            ),
        )
        return return_transaction

    # Queries

    def search_books(self, **criteria: Any) -> list[Book]:
        """Books matching every given filter (``title``, ``author``, ``isbn``, ``available``).

        Raises:
            RecordValidationError: If an unknown filter is passed or a value has the wrong type
        """
        self._ensure_initialized()
        try:
            search = BookSearchCriteria(**criteria)
        except ValidationError as e:
            error = e.errors()[0]
            field = ".".join(str(part) for part in error["loc"]) or "criteria"
            raise RecordValidationError(field, f"Invalid search criteria: {error['msg']}") from None
        return [book for book in self._books.values() if search.matches(book)]

    def search_catalog(self, term: str) -> list[Book]:
        """Books whose title, author, ISBN, category or publisher contains ``term``."""
        self._ensure_initialized()
        return [book for book in self._books.values() if book.matches(term)]

    def get_user(self, user_id: str) -> User | None:
        self._ensure_initialized()
        return self._users.get(user_id)

    def get_book(self, book_id: str) -> Book | None:
        self._ensure_initialized()
        return self._books.get(book_id)

    def get_all_users(self) -> list[User]:
        self._ensure_initialized()
        return list(self._users.values())

    def get_all_books(self) -> list[Book]:
        self._ensure_initialized()
        return list(self._books.values())

    def get_transaction_history(
        self,
        *,
        user_id: str | None = None,
        book_id: str | None = None,
        type: TransactionType | str | None = None,
    ) -> list[Transaction]:
        """Transactions in creation order, optionally filtered by user, book or type."""
        self._ensure_initialized()
        return [
            transaction.model_copy()
            for transaction in self._transactions
            if (user_id is None or transaction.user_id == user_id)
            and (book_id is None or transaction.book_id == book_id)
            and (type is None or transaction.type == type)
        ]

    def get_system_stats(self) -> SystemStats:
        self._ensure_initialized()
        books = self._books.values()
        return SystemStats(
            library=self._name,
            total_books=len(self._books),
            available_books=sum(1 for book in books if book.is_available()),
            borrowed_books=sum(1 for book in books if book.is_borrowed()),
            total_users=len(self._users),
            total_transactions=len(self._transactions),
            is_initialized=self._is_initialized,
        )

    # Events

    def on(self, event_name: str, listener: Listener) -> "Library":
        self._event_bus.on(event_name, listener)
        return self

    def once(self, event_name: str, listener: Listener) -> "Library":
        self._event_bus.once(event_name, listener)
        return self

    def off(self, event_name: str, listener: Listener | None = None) -> "Library":
        self._event_bus.off(event_name, listener)
        return self

    # Helpers

    def _ensure_initialized(self) -> None:
        if not self._is_initialized:
            raise NotInitializedError("Library system not initialized")

    def _require_user(self, user_id: str) -> User:
        user = self._users.get(user_id)
        if user is None:
            raise ResourceNotFoundError("User", user_id)
        return user

    def _require_book(self, book_id: str) -> Book:
        book = self._books.get(book_id)
        if book is None:
            raise ResourceNotFoundError("Book", book_id)
        return book

    @contextlib.asynccontextmanager
    async def _guard(self, *keys: str) -> AsyncIterator[None]:
        """Hold the locks of every key, acquired in sorted order."""
        if not self._serialize_mutations:
            yield
            return
        async with contextlib.AsyncExitStack() as stack:
            for key in sorted(set(keys)):
                await stack.enter_async_context(self._hold_lock(key))
            yield

    @contextlib.asynccontextmanager
    async def _hold_lock(self, key: str) -> AsyncIterator[None]:
        # A lock is dropped once no holder or waiter references it.
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._lock_refs[key] = self._lock_refs.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_refs[key] -= 1
            if not self._lock_refs[key]:
                del self._lock_refs[key]
                del self._locks[key]


def create_library(settings: Settings | None = None) -> Library:
    """Build a ``Library`` wired according to ``settings``.

    Uses file storage under ``settings.storage_dir`` when it is set, and
    in-memory storage otherwise.
    """
    settings = settings or get_settings()
    storage = FileStorage(settings.storage_dir) if settings.storage_dir else MemoryStorage()
    database = Database(settings.connection_string, storage=storage, latency_scale=settings.latency_scale)
    return Library(
        settings.library_name,
        database=database,
        event_bus=EventBus(max_listeners=settings.max_listeners),
        fine_per_day=settings.fine_per_day,
        serialize_mutations=settings.serialize_mutations,
    )
