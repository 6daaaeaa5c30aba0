"""Domain entities of the library system."""

from library_system.models.book import Book, BookCategory, BookStatus
from library_system.models.transaction import Transaction, TransactionStatus, TransactionType
from library_system.models.user import BORROW_POLICIES, BorrowPolicy, Loan, User, UserType

__all__ = [
    "BORROW_POLICIES",
    "Book",
    "BookCategory",
    "BookStatus",
    "BorrowPolicy",
    "Loan",
    "Transaction",
    "TransactionStatus",
    "TransactionType",
    "User",
    "UserType",
]
