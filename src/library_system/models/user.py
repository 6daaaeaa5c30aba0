"""User entity with per-type borrowing policy."""

import re
from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from library_system.constants import FINE_PER_DAY
from library_system.exceptions import (
    BorrowLimitError,
    InactiveUserError,
    InvalidStateError,
    RecordValidationError,
    ResourceNotFoundError,
)
from library_system.utils.time_utils import add_days, days_late, parse_datetime, utc_now

if TYPE_CHECKING:
    from library_system.models.book import Book

_EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


class UserType(StrEnum):
    """Kind of library account."""

    MEMBER = "member"
    LIBRARIAN = "librarian"
    ADMIN = "admin"


@dataclass(frozen=True)
class BorrowPolicy:
    """How many books a user type may hold and for how long."""

    max_books: int
    loan_days: int


BORROW_POLICIES: dict[UserType, BorrowPolicy] = {
    UserType.MEMBER: BorrowPolicy(max_books=5, loan_days=14),
    UserType.LIBRARIAN: BorrowPolicy(max_books=10, loan_days=30),
    UserType.ADMIN: BorrowPolicy(max_books=20, loan_days=30),
}


class Loan(BaseModel):
    """One entry of a user's borrowed-books list."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    book_id: str
    borrow_date: datetime
    due_date: datetime


class User:
    """A library account.

    Email addresses are stored lower-cased and names trimmed. A user can only
    be deactivated once every borrowed book has been returned.
    """

    def __init__(
        self,
        user_id: str,
        name: str,
        email: str,
        user_type: UserType | str = UserType.MEMBER,
        *,
        membership_date: datetime | None = None,
    ):
        if not user_id:
            raise RecordValidationError("id", "User must have an id")
        if not User.validate_user_type(user_type):
            raise RecordValidationError("type", f"Invalid user type: {user_type!r}")

        self._id = user_id
        self._type = UserType(user_type)
        self._name = ""
        self._email = ""
        self.name = name
        self.email = email
        self._borrowed_books: list[Loan] = []
        self._membership_date = membership_date or utc_now()
        self._is_active = True

    @property
    def id(self) -> str:
        return self._id

    @property
    def type(self) -> UserType:
        return self._type

    @property
    def membership_date(self) -> datetime:
        return self._membership_date

    @property
    def is_active(self) -> bool:
        return self._is_active

    @property
    def borrowed_books(self) -> list[Loan]:
        return list(self._borrowed_books)

    @property
    def policy(self) -> BorrowPolicy:
        return BORROW_POLICIES[self._type]

    @property
    def name(self) -> str:
        return self._name

    @name.setter
    def name(self, value: str) -> None:
        if not isinstance(value, str) or len(value.strip()) < 2:
            raise RecordValidationError("name", "Name must be at least 2 characters long")
        self._name = value.strip()

    @property
    def email(self) -> str:
        return self._email

    @email.setter
    def email(self, value: str) -> None:
        if not isinstance(value, str) or not _EMAIL_PATTERN.match(value):
            raise RecordValidationError("email", f"Invalid email format: {value!r}")
        self._email = value.lower()

    def can_borrow(self) -> bool:
        return len(self._borrowed_books) < self.policy.max_books

    def calculate_due_date(self, now: datetime | None = None) -> datetime:
        """Due date for a loan starting at ``now`` under this user's policy."""
        return add_days(now or utc_now(), self.policy.loan_days)

    def borrow_book(self, book: "Book", now: datetime | None = None) -> Loan:
        """Record a loan of ``book``.

        Raises:
            InactiveUserError: If the account is deactivated
            BorrowLimitError: If the user already holds the maximum number of books
        """
        if not self._is_active:
            raise InactiveUserError("Inactive user cannot borrow books")
        if not self.can_borrow():
            raise BorrowLimitError(f"User {self._id} has reached the borrowing limit of {self.policy.max_books}")

        borrow_date = now or utc_now()
        loan = Loan(book_id=book.id, borrow_date=borrow_date, due_date=self.calculate_due_date(borrow_date))
        self._borrowed_books.append(loan)
        return loan

    def discard_loan(self, loan: Loan) -> None:
        """Drop ``loan`` without recording a return, used to undo a borrow that did not complete."""
        self._borrowed_books.remove(loan)

    def return_book(self, book_id: str, now: datetime | None = None) -> dict[str, Any]:
        """Remove the loan of ``book_id``.

        Raises:
            ResourceNotFoundError: If the user has not borrowed that book
        """
        for index, loan in enumerate(self._borrowed_books):
            if loan.book_id == book_id:
                del self._borrowed_books[index]
                return {"bookId": book_id, "borrowDate": loan.borrow_date, "returnDate": now or utc_now()}
        raise ResourceNotFoundError("Borrowed book", book_id)

    def get_overdue_books(self, now: datetime | None = None) -> list[Loan]:
        moment = now or utc_now()
        return [loan for loan in self._borrowed_books if loan.due_date < moment]

    def calculate_fines(self, now: datetime | None = None, fine_per_day: float = FINE_PER_DAY) -> float:
        """Sum of ``days overdue * fine_per_day`` over current overdue loans.

        Fines are not capped.
        """
        moment = now or utc_now()
        return sum((days_late(loan.due_date, moment) * fine_per_day for loan in self.get_overdue_books(moment)), 0.0)

    def deactivate(self) -> None:
        """Deactivate the account.

        Raises:
            InvalidStateError: If the user still holds borrowed books
        """
        if self._borrowed_books:
            raise InvalidStateError("Cannot deactivate user with borrowed books")
        self._is_active = False

    def activate(self) -> None:
        self._is_active = True

    @staticmethod
    def validate_user_type(user_type: Any) -> bool:
        return isinstance(user_type, str) and user_type in UserType._value2member_map_

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> "User":
        """Rebuild a user from its ``to_json`` snapshot."""
        user = cls(
            data.get("id"),
            data.get("name"),
            data.get("email"),
            data.get("type") or UserType.MEMBER,
            membership_date=parse_datetime(data.get("membershipDate")),
        )
        user._borrowed_books = [
            Loan(
                book_id=entry["bookId"],
                borrow_date=parse_datetime(entry["borrowDate"]),
                due_date=parse_datetime(entry["dueDate"]),
            )
            for entry in data.get("borrowedBooks") or []
        ]
        user._is_active = bool(data.get("isActive", True))
        return user

    def to_json(self) -> dict[str, Any]:
        return {
            "id": self._id,
            "name": self._name,
            "email": self._email,
            "type": str(self._type),
            "borrowedBooks": [loan.model_dump(by_alias=True) for loan in self._borrowed_books],
            "membershipDate": self._membership_date,
            "isActive": self._is_active,
        }

    def __str__(self) -> str:
        return f"User({self._id}): {self._name} ({self._type})"

    def __repr__(self) -> str:
        return f"User(id={self._id!r}, email={self._email!r}, type={str(self._type)!r})"
