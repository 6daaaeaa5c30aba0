"""Tests for the Library facade."""

import asyncio
from datetime import UTC, datetime, timedelta

import pytest
import pytest_asyncio

from library_system.database import Database, MemoryStorage
from library_system.event_bus import EventBus
from library_system.exceptions import (
    AlreadyConnectedError,
    AlreadyInitializedError,
    BookNotAvailableError,
    BorrowLimitError,
    DuplicateRecordError,
    InactiveUserError,
    NotInitializedError,
    RecordValidationError,
    ResourceNotFoundError,
)
from library_system.models import Book, BookCategory, Transaction, TransactionStatus, TransactionType, User, UserType
from library_system.services import Library, SystemStats, create_library
from library_system.settings import Settings

NOW = datetime(2024, 3, 1, 10, 0, tzinfo=UTC)


class FixedClock:
    def __init__(self, moment: datetime):
        self.moment = moment

    def __call__(self) -> datetime:
        return self.moment

    def advance(self, **kwargs) -> None:
        self.moment += timedelta(**kwargs)


class EventRecorder:
    def __init__(self):
        self.events = []

    def __call__(self, payload):
        self.events.append(payload)


def make_user(user_id="u1", email="alice@example.com", user_type=UserType.MEMBER) -> User:
    return User(user_id, "Alice", email, user_type, membership_date=NOW)


def make_book(book_id="b1", isbn="9780132350884", title="Clean Code", author="Robert C. Martin", **kwargs) -> Book:
    return Book(book_id, isbn, title, author, category=BookCategory.TECHNOLOGY, published_year=2008, **kwargs)


def build_library(clock, *, serialize_mutations=True, storage=None) -> Library:
    database = Database("test_db", storage=storage or MemoryStorage(), latency_scale=0, clock=clock)
    return Library("Test Library", database=database, clock=clock, serialize_mutations=serialize_mutations)


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(NOW)


@pytest_asyncio.fixture
async def library(clock):
    lib = build_library(clock)
    await lib.initialize()
    yield lib
    await lib.shutdown()


class TestLifecycle:
    """Tests for initialize and shutdown."""

    @pytest.mark.asyncio
    async def test_operations_require_initialization(self, clock):
        lib = build_library(clock)

        assert not lib.is_initialized
        with pytest.raises(NotInitializedError):
            await lib.register_user(make_user())
        with pytest.raises(NotInitializedError):
            await lib.borrow_book("u1", "b1")
        with pytest.raises(NotInitializedError):
            lib.search_books(title="x")
        with pytest.raises(NotInitializedError):
            lib.get_system_stats()
        with pytest.raises(NotInitializedError):
            lib.get_all_books()

    @pytest.mark.asyncio
    async def test_initialize_emits_system_initialized(self, clock):
        lib = build_library(clock)
        recorder = EventRecorder()
        lib.on("system.initialized", recorder)

        assert await lib.initialize() is True

        assert lib.is_initialized
        assert lib.name == "Test Library"
        assert len(recorder.events) == 1
        assert recorder.events[0].model_dump(by_alias=True) == {"libraryName": "Test Library", "timestamp": NOW}
        await lib.shutdown()

    @pytest.mark.asyncio
    async def test_initialize_twice_rejected(self, library):
        with pytest.raises(AlreadyInitializedError):
            await library.initialize()

    @pytest.mark.asyncio
    async def test_connection_failure_propagates(self, clock):
        database = Database(latency_scale=0)
        await database.connect()
        lib = Library(database=database, clock=clock)

        with pytest.raises(AlreadyConnectedError):
            await lib.initialize()
        assert not lib.is_initialized

    @pytest.mark.asyncio
    async def test_shutdown_when_uninitialized_is_noop(self, clock):
        lib = build_library(clock)
        await lib.shutdown()
        assert not lib.is_initialized

    @pytest.mark.asyncio
    async def test_shutdown_clears_listeners(self, clock):
        event_bus = EventBus()
        lib = Library(database=Database(latency_scale=0), event_bus=event_bus, clock=clock)
        await lib.initialize()
        lib.on("book.added", EventRecorder())

        await lib.shutdown()

        assert event_bus.event_names() == []
        assert not lib.is_initialized

    @pytest.mark.asyncio
    async def test_shutdown_persists_and_reinitialize_restores(self, clock):
        storage = MemoryStorage()
        lib = build_library(clock, storage=storage)
        await lib.initialize()
        await lib.register_user(make_user())
        await lib.add_book(make_book())
        await lib.borrow_book("u1", "b1")
        await lib.shutdown()

        restored = build_library(clock, storage=storage)
        await restored.initialize()

        assert restored.get_user("u1").borrowed_books[0].book_id == "b1"
        assert restored.get_book("b1").borrowed_by == "u1"
        assert len(restored.get_transaction_history()) == 1

        clock.advance(days=1)
        returned = await restored.return_book("u1", "b1")
        assert returned.late_fee == 0.0
        await restored.shutdown()

    @pytest.mark.asyncio
    async def test_create_library_from_settings(self, tmp_path):
        settings = Settings(
            _env_file=None,
            library_name="Branch",
            storage_dir=tmp_path,
            latency_scale=0,
            fine_per_day=1.0,
        )
        lib = create_library(settings)
        await lib.initialize()
        await lib.add_book(make_book())
        await lib.shutdown()

        assert lib.name == "Branch"
        assert (tmp_path / "library_management_db.json").exists()


class TestRegistration:
    """Tests for register_user and add_book."""

    @pytest.mark.asyncio
    async def test_register_user(self, library):
        recorder = EventRecorder()
        library.on("user.registered", recorder)

        user = await library.register_user(make_user())

        assert library.get_user("u1") is user
        assert recorder.events[0].model_dump(by_alias=True) == {
            "userId": "u1",
            "name": "Alice",
            "email": "alice@example.com",
            "type": "member",
        }

    @pytest.mark.asyncio
    async def test_duplicate_user_id(self, library):
        await library.register_user(make_user())

        with pytest.raises(DuplicateRecordError):
            await library.register_user(make_user(email="other@example.com"))

    @pytest.mark.asyncio
    async def test_duplicate_email_leaves_state_untouched(self, library):
        """Test that a second user with the same email is rejected."""
        recorder = EventRecorder()
        await library.register_user(make_user("u1", "same@example.com"))
        library.on("user.registered", recorder)

        with pytest.raises(DuplicateRecordError) as exc_info:
            await library.register_user(make_user("u2", "same@example.com"))

        assert exc_info.value.field == "email"
        assert library.get_user("u2") is None
        assert len(library.get_all_users()) == 1
        assert recorder.events == []

    @pytest.mark.asyncio
    async def test_add_book(self, library):
        recorder = EventRecorder()
        library.on("book.added", recorder)

        await library.add_book(make_book())

        assert library.get_book("b1").title == "Clean Code"
        assert recorder.events[0].model_dump(by_alias=True) == {
            "bookId": "b1",
            "title": "Clean Code",
            "author": "Robert C. Martin",
            "category": "technology",
        }

    @pytest.mark.asyncio
    async def test_duplicate_isbn(self, library):
        await library.add_book(make_book("b1"))

        with pytest.raises(DuplicateRecordError):
            await library.add_book(make_book("b2"))
        assert library.get_book("b2") is None


class TestCirculation:
    """Tests for borrow_book and return_book."""

    @pytest_asyncio.fixture
    async def stocked(self, library):
        await library.register_user(make_user())
        await library.add_book(make_book())
        return library

    @pytest.mark.asyncio
    async def test_end_to_end_scenario(self, stocked, clock):
        """Register, borrow, return three days late and check the fee."""
        borrow = await stocked.borrow_book("u1", "b1")

        assert not stocked.get_book("b1").is_available()
        assert borrow.due_date == NOW + timedelta(days=14)
        assert stocked.get_user("u1").borrowed_books[0].book_id == "b1"

        clock.advance(days=17)
        returned = await stocked.return_book("u1", "b1")

        assert returned.late_fee == pytest.approx(1.5)
        assert returned.type == TransactionType.RETURN
        assert stocked.get_book("b1").is_available()
        assert stocked.get_user("u1").borrowed_books == []
        assert stocked.get_transaction_history(type="borrow")[0].status == TransactionStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_on_time_return_has_no_fee(self, stocked, clock):
        await stocked.borrow_book("u1", "b1")
        clock.advance(days=10)

        returned = await stocked.return_book("u1", "b1")

        assert returned.late_fee == 0.0

    @pytest.mark.asyncio
    async def test_single_copy_scenario(self, library):
        """Add, register, borrow, fail a second borrow, then return."""
        await library.add_book(Book("b1", "0130149882", "Effective C++", "Scott Meyers", total_copies=1))
        await library.register_user(User("u1", "Alice", "a@x.com", UserType.MEMBER, membership_date=NOW))

        await library.borrow_book("u1", "b1")
        assert library.get_book("b1").is_available() is False

        with pytest.raises(BookNotAvailableError):
            await library.borrow_book("u1", "b1")

        await library.return_book("u1", "b1")
        assert library.get_book("b1").is_available() is True

    @pytest.mark.asyncio
    async def test_fee_for_return_three_days_after_new_year(self, stocked, clock):
        """Test due 2025-01-01 returned 2025-01-04 costs 1.50."""
        clock.moment = datetime(2024, 12, 18, tzinfo=UTC)
        borrow = await stocked.borrow_book("u1", "b1")
        assert borrow.due_date == datetime(2025, 1, 1, tzinfo=UTC)

        clock.moment = datetime(2025, 1, 4, tzinfo=UTC)
        returned = await stocked.return_book("u1", "b1")

        assert returned.late_fee == pytest.approx(1.50)

    @pytest.mark.asyncio
    async def test_borrow_emits_only_borrowed_event(self, stocked):
        borrowed, returned = EventRecorder(), EventRecorder()
        stocked.on("book.borrowed", borrowed).on("book.returned", returned)

        await stocked.borrow_book("u1", "b1")

        assert [(e.user_id, e.book_id) for e in borrowed.events] == [("u1", "b1")]
        assert returned.events == []

    @pytest.mark.asyncio
    async def test_borrow_and_return_events(self, stocked, clock):
        borrowed, returned = EventRecorder(), EventRecorder()
        stocked.on("book.borrowed", borrowed).on("book.returned", returned)

        await stocked.borrow_book("u1", "b1")
        clock.advance(days=15)
        await stocked.return_book("u1", "b1")

        assert borrowed.events[0].model_dump(by_alias=True) == {
            "userId": "u1",
            "userName": "Alice",
            "bookId": "b1",
            "bookTitle": "Clean Code",
            "dueDate": NOW + timedelta(days=14),
            "timestamp": NOW,
        }
        assert returned.events[0].model_dump(by_alias=True) == {
            "userId": "u1",
            "userName": "Alice",
            "bookId": "b1",
            "bookTitle": "Clean Code",
            "returnDate": NOW + timedelta(days=15),
            "lateFee": 0.5,
            "timestamp": NOW + timedelta(days=15),
        }

    @pytest.mark.asyncio
    async def test_once_listener(self, stocked):
        recorder = EventRecorder()
        stocked.once("book.borrowed", recorder)
        await stocked.add_book(make_book("b2", "9780201616224", "The Pragmatic Programmer", "Andy Hunt"))

        await stocked.borrow_book("u1", "b1")
        await stocked.borrow_book("u1", "b2")

        assert len(recorder.events) == 1

    @pytest.mark.asyncio
    async def test_off_listener(self, stocked):
        recorder = EventRecorder()
        stocked.on("book.borrowed", recorder).off("book.borrowed", recorder)

        await stocked.borrow_book("u1", "b1")

        assert recorder.events == []

    @pytest.mark.asyncio
    async def test_librarian_loan_period(self, stocked):
        await stocked.register_user(make_user("u2", "jane@example.com", UserType.LIBRARIAN))

        borrow = await stocked.borrow_book("u2", "b1")

        assert borrow.due_date == NOW + timedelta(days=30)

    @pytest.mark.asyncio
    async def test_unknown_user_or_book(self, stocked):
        with pytest.raises(ResourceNotFoundError):
            await stocked.borrow_book("nobody", "b1")
        with pytest.raises(ResourceNotFoundError):
            await stocked.borrow_book("u1", "missing")

    @pytest.mark.asyncio
    async def test_borrow_unavailable_book(self, stocked):
        await stocked.register_user(make_user("u2", "jane@example.com"))
        await stocked.borrow_book("u1", "b1")

        with pytest.raises(BookNotAvailableError):
            await stocked.borrow_book("u2", "b1")
        assert len(stocked.get_transaction_history()) == 1

    @pytest.mark.asyncio
    async def test_inactive_user(self, stocked):
        stocked.get_user("u1").deactivate()

        with pytest.raises(InactiveUserError):
            await stocked.borrow_book("u1", "b1")
        assert stocked.get_book("b1").is_available()

    @pytest.mark.asyncio
    async def test_borrow_limit(self, stocked):
        for index in range(5):
            await stocked.add_book(make_book(f"x{index}", f"978030640615{index}"))
            await stocked.borrow_book("u1", f"x{index}")

        with pytest.raises(BorrowLimitError):
            await stocked.borrow_book("u1", "b1")

    @pytest.mark.asyncio
    async def test_return_without_borrow(self, stocked):
        with pytest.raises(ResourceNotFoundError):
            await stocked.return_book("u1", "b1")

    @pytest.mark.asyncio
    async def test_return_by_other_user(self, stocked):
        await stocked.register_user(make_user("u2", "jane@example.com"))
        await stocked.borrow_book("u1", "b1")

        with pytest.raises(ResourceNotFoundError):
            await stocked.return_book("u2", "b1")
        assert stocked.get_book("b1").borrowed_by == "u1"

    @pytest.mark.asyncio
    async def test_custom_fine_per_day(self, clock):
        lib = Library(database=Database(latency_scale=0, clock=clock), clock=clock, fine_per_day=2.0)
        await lib.initialize()
        await lib.register_user(make_user())
        await lib.add_book(make_book())
        await lib.borrow_book("u1", "b1")
        clock.advance(days=16)

        returned = await lib.return_book("u1", "b1")

        assert returned.late_fee == pytest.approx(4.0)
        await lib.shutdown()


class TestConcurrentBorrow:
    """Two borrowers racing for the last copy."""

    async def _race(self, lib: Library):
        await lib.initialize()
        await lib.register_user(make_user("u1", "a@example.com"))
        await lib.register_user(make_user("u2", "b@example.com"))
        await lib.add_book(make_book())

        results = await asyncio.gather(
            lib.borrow_book("u1", "b1"),
            lib.borrow_book("u2", "b1"),
            return_exceptions=True,
        )
        return results

    @pytest.mark.asyncio
    async def test_race_without_serialization_persists_orphan_borrow(self, clock):
        """Both borrowers pass the availability check; the loser's transaction is already stored."""
        database = Database(latency_scale=0, clock=clock)
        lib = Library(database=database, clock=clock, serialize_mutations=False)

        results = await self._race(lib)

        assert sum(isinstance(r, BookNotAvailableError) for r in results) == 1
        assert len(await database.find_transactions({"type": "borrow"})) == 2
        assert len(lib.get_transaction_history()) == 1
        await lib.shutdown()

    @pytest.mark.asyncio
    async def test_race_with_serialization(self, clock):
        """Only one borrow transaction exists when mutations are serialized."""
        database = Database(latency_scale=0, clock=clock)
        lib = Library(database=database, clock=clock)

        results = await self._race(lib)

        assert sum(isinstance(r, BookNotAvailableError) for r in results) == 1
        assert len(await database.find_transactions({"type": "borrow"})) == 1
        assert lib.get_book("b1").borrowed_by in {"u1", "u2"}
        await lib.shutdown()

    async def _limit_race(self, lib: Library):
        """Bring u1 to one loan below the member limit, then race two borrows of different books."""
        await lib.initialize()
        await lib.register_user(make_user("u1", "a@example.com"))
        for index in range(6):
            await lib.add_book(make_book(f"x{index}", f"978030640615{index}"))
        for index in range(4):
            await lib.borrow_book("u1", f"x{index}")

        return await asyncio.gather(
            lib.borrow_book("u1", "x4"),
            lib.borrow_book("u1", "x5"),
            return_exceptions=True,
        )

    @pytest.mark.asyncio
    async def test_same_user_race_at_limit(self, clock):
        """Only one of two concurrent borrows by a user one below the limit succeeds."""
        database = Database(latency_scale=0, clock=clock)
        lib = Library(database=database, clock=clock)

        results = await self._limit_race(lib)

        assert sum(isinstance(r, Transaction) for r in results) == 1
        assert sum(isinstance(r, BorrowLimitError) for r in results) == 1
        loser = "x5" if isinstance(results[1], BorrowLimitError) else "x4"
        book = lib.get_book(loser)
        assert book.is_available()
        assert book.borrowed_by is None
        assert book.available_copies == 1
        assert len(lib.get_user("u1").borrowed_books) == 5
        assert len(await database.find_transactions({"type": "borrow"})) == 5
        await lib.shutdown()

    @pytest.mark.asyncio
    async def test_same_user_race_without_serialization_leaves_book_available(self, clock):
        """The user's limit is enforced before the book changes state."""
        lib = Library(database=Database(latency_scale=0, clock=clock), clock=clock, serialize_mutations=False)

        results = await self._limit_race(lib)

        assert sum(isinstance(r, BorrowLimitError) for r in results) == 1
        assert sum(lib.get_book(book_id).is_borrowed() for book_id in ("x4", "x5")) == 1
        assert len(lib.get_user("u1").borrowed_books) == 5
        await lib.shutdown()

    @pytest.mark.asyncio
    async def test_return_after_limit_race(self, clock):
        lib = Library(database=Database(latency_scale=0, clock=clock), clock=clock)
        results = await self._limit_race(lib)
        winner = next(r for r in results if isinstance(r, Transaction))

        returned = await lib.return_book("u1", winner.book_id)

        assert returned.borrow_transaction_id == winner.id
        assert lib.get_book(winner.book_id).is_available()
        await lib.shutdown()

    @pytest.mark.asyncio
    async def test_locks_released_after_operations(self, clock):
        lib = Library(database=Database(latency_scale=0, clock=clock), clock=clock)

        await self._limit_race(lib)

        assert lib._locks == {}
        assert lib._lock_refs == {}
        await lib.shutdown()


class TestQueries:
    """Tests for search, history and stats."""

    @pytest_asyncio.fixture
    async def catalog(self, library):
        await library.register_user(make_user())
        await library.add_book(make_book("b1", "9780132350884", "Clean Code", "Robert C. Martin"))
        await library.add_book(make_book("b2", "9780201616224", "The Pragmatic Programmer", "Andy Hunt"))
        await library.add_book(make_book("b3", "9780596517748", "JavaScript: The Good Parts", "Douglas Crockford"))
        await library.borrow_book("u1", "b2")
        return library

    @pytest.mark.asyncio
    async def test_search_by_title_case_insensitive(self, catalog):
        assert [b.id for b in catalog.search_books(title="CLEAN")] == ["b1"]

    @pytest.mark.asyncio
    async def test_search_and_semantics(self, catalog):
        assert [b.id for b in catalog.search_books(title="the", available=True)] == ["b3"]
        assert [b.id for b in catalog.search_books(author="hunt", available=False)] == ["b2"]

    @pytest.mark.asyncio
    async def test_search_by_exact_isbn(self, catalog):
        assert [b.id for b in catalog.search_books(isbn="9780596517748")] == ["b3"]
        assert catalog.search_books(isbn="97805965") == []

    @pytest.mark.asyncio
    async def test_search_without_criteria_returns_all(self, catalog):
        assert len(catalog.search_books()) == 3

    @pytest.mark.asyncio
    async def test_search_unknown_criteria(self, catalog):
        with pytest.raises(RecordValidationError):
            catalog.search_books(publisher="x")

    @pytest.mark.asyncio
    async def test_search_catalog(self, catalog):
        assert {b.id for b in catalog.search_catalog("programmer")} == {"b2"}
        assert len(catalog.search_catalog("technology")) == 3

    @pytest.mark.asyncio
    async def test_transaction_history_filters(self, catalog):
        await catalog.return_book("u1", "b2")

        assert len(catalog.get_transaction_history()) == 2
        assert len(catalog.get_transaction_history(user_id="u1", book_id="b2")) == 2
        assert [t.type for t in catalog.get_transaction_history(type=TransactionType.RETURN)] == ["return"]
        assert catalog.get_transaction_history(book_id="b1") == []

    @pytest.mark.asyncio
    async def test_system_stats(self, catalog):
        stats = catalog.get_system_stats()

        assert stats == SystemStats(
            library="Test Library",
            total_books=3,
            available_books=2,
            borrowed_books=1,
            total_users=1,
            total_transactions=1,
            is_initialized=True,
        )

    @pytest.mark.asyncio
    async def test_system_stats_idempotent(self, catalog):
        assert catalog.get_system_stats() == catalog.get_system_stats()

    @pytest.mark.asyncio
    async def test_getters(self, catalog):
        assert catalog.get_user("missing") is None
        assert catalog.get_book("missing") is None
        assert [u.id for u in catalog.get_all_users()] == ["u1"]
        assert [b.id for b in catalog.get_all_books()] == ["b1", "b2", "b3"]
