"""Sample users and books for demos and manual testing."""

from loguru import logger

from library_system.models import Book, BookCategory, User, UserType
from library_system.services.library import Library

SAMPLE_USERS = [
    {"user_id": "u1", "name": "John Doe", "email": "john@example.com", "user_type": UserType.MEMBER},
    {"user_id": "u2", "name": "Jane Smith", "email": "jane@example.com", "user_type": UserType.LIBRARIAN},
    {"user_id": "u3", "name": "Admin User", "email": "admin@example.com", "user_type": UserType.ADMIN},
]

SAMPLE_BOOKS = [
    {
        "book_id": "b1",
        "isbn": "978-0-596-51774-8",
        "title": "JavaScript: The Good Parts",
        "author": "Douglas Crockford",
        "category": BookCategory.TECHNOLOGY,
        "published_year": 2008,
        "publisher": "O'Reilly Media",
    },
    {
        "book_id": "b2",
        "isbn": "978-0-13-235088-4",
        "title": "Clean Code",
        "author": "Robert C. Martin",
        "category": BookCategory.TECHNOLOGY,
        "published_year": 2008,
        "publisher": "Prentice Hall",
        "total_copies": 2,
    },
    {
        "book_id": "b3",
        "isbn": "978-0-201-61622-4",
        "title": "The Pragmatic Programmer",
        "author": "Andy Hunt",
        "category": BookCategory.TECHNOLOGY,
        "published_year": 1999,
        "publisher": "Addison-Wesley",
    },
]


async def seed_sample_data(library: Library) -> tuple[list[User], list[Book]]:
    """Register the sample users and books that are not in ``library`` yet.

    Entries whose id already exists are skipped, so seeding twice is harmless.

    Returns:
        The users and books that were added
    """
    users = []
    for data in SAMPLE_USERS:
        if library.get_user(data["user_id"]) is None:
            users.append(await library.register_user(User(**data)))

    books = []
    for data in SAMPLE_BOOKS:
        if library.get_book(data["book_id"]) is None:
            books.append(await library.add_book(Book(**data)))

    logger.info(f"Seeded {len(users)} users and {len(books)} books")
    return users, books
