from __future__ import annotations

from datetime import date
from typing import Any, Dict, Optional

from lending_library.errors import InvariantViolation
from lending_library.validators import Validator


def _is_count(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


class Book:
    """A title held by the library, with its copy counts."""

    def __init__(self, title: str, author: str, isbn: str, publication_year: int,
                 total_copies: int = 1, borrowed_copies: int = 0, genre: str = "General") -> None:
        self.title = title
        self.author = author
        self.isbn = isbn
        self.publication_year = publication_year
        self.total_copies = 0
        self.borrowed_copies = 0
        self.genre = genre
        self.set_copies(total_copies, borrowed_copies)

    def __str__(self) -> str:  # pragma: no cover - string formatting trivial
        return f"{self.title} by {self.author} (ISBN: {self.isbn})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Book):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    __hash__ = None  # mutable entity

    # ------------------------- Derived values ------------------------- #
    @property
    def available_copies(self) -> int:
        return self.total_copies - self.borrowed_copies

    @property
    def is_available(self) -> bool:
        return self.available_copies > 0

    @property
    def age(self) -> int:
        return date.today().year - self.publication_year

    @property
    def info(self) -> str:
        return (
            f"Title: {self.title}\n"
            f"Author: {self.author}\n"
            f"ISBN: {self.isbn}\n"
            f"Publication Year: {self.publication_year}\n"
            f"Genre: {self.genre}"
        )

    def formatted_info(self) -> str:
        return (
            f"{self.info}\n"
            f"Book Age: {self.age} years\n"
            f"Total Copies: {self.total_copies}\n"
            f"Borrowed Copies: {self.borrowed_copies}\n"
            f"Available Copies: {self.available_copies}\n"
            f"Available: {'Yes' if self.is_available else 'No'}"
        )

    # ------------------------- Mutations ------------------------- #
    def set_copies(self, total: int, borrowed: int) -> None:
        """Replace both copy counts at once; neither is written unless both are valid."""
        if not _is_count(total) or total < 0:
            raise InvariantViolation("InvalidCopyCount", "Total copies cannot be less than 0.")
        if not _is_count(borrowed) or borrowed < 0 or borrowed > total:
            raise InvariantViolation("InvalidCopyCount", "Borrowed copies must be between 0 and total copies.")
        self.total_copies = total
        self.borrowed_copies = borrowed

    def update_details(self, *, title: Optional[str] = None, author: Optional[str] = None,
                       genre: Optional[str] = None) -> None:
        if title is not None:
            self.title = title
        if author is not None:
            self.author = author
        if genre is not None:
            self.genre = genre

    def borrow(self) -> None:
        if not self.is_available:
            raise InvariantViolation("NoCopiesAvailable", f'No copies of "{self.title}" available.')
        self.borrowed_copies += 1

    def return_copy(self) -> None:
        if self.borrowed_copies <= 0:
            raise InvariantViolation("NoCopiesBorrowed", f'No borrowed copies of "{self.title}" to return.')
        self.borrowed_copies -= 1

    # ------------------------- Helpers ------------------------- #
    @staticmethod
    def is_valid_book(data: Dict[str, Any]) -> bool:
        return (Validator.is_valid_isbn(data.get("isbn"))
                and Validator.is_valid_year(data.get("publication_year"))
                and Validator.is_valid_page_count(data.get("total_copies")))

    @staticmethod
    def compare_by_year(book: "Book") -> int:
        """Sort key ordering books from oldest to newest."""
        return book.publication_year

    def to_dict(self) -> dict:
        return {
            "title": self.title,
            "author": self.author,
            "isbn": self.isbn,
            "publication_year": self.publication_year,
            "total_copies": self.total_copies,
            "borrowed_copies": self.borrowed_copies,
            "genre": self.genre,
        }

    @staticmethod
    def from_dict(data: dict) -> "Book":
        return Book(
            title=data.get("title", "Unknown"),
            author=data.get("author", "Unknown"),
            isbn=data["isbn"],
            publication_year=data.get("publication_year", date.today().year),
            total_copies=data.get("total_copies", 1),
            borrowed_copies=data.get("borrowed_copies", 0),
            genre=data.get("genre", "General"),
        )
