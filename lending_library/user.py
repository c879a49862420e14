from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from lending_library.date_utils import days_between, format_date, parse_datetime
from lending_library.errors import ConflictError, InvariantViolation, NotFoundError

DEFAULT_BORROW_LIMIT = 5


@dataclass
class BorrowRecord:
    """One borrowed copy as seen from the member's side."""
    isbn: str
    title: str
    borrow_date: datetime

    def to_dict(self) -> dict:
        return {"isbn": self.isbn, "title": self.title, "borrow_date": self.borrow_date.isoformat()}

    @staticmethod
    def from_dict(data: dict) -> "BorrowRecord":
        return BorrowRecord(isbn=data["isbn"], title=data.get("title", ""),
                            borrow_date=parse_datetime(data["borrow_date"]))


class User:
    """A library member and the books they currently hold."""

    def __init__(self, name: str, email: str, borrow_limit: int = DEFAULT_BORROW_LIMIT,
                 registration_date: Optional[datetime] = None) -> None:
        self.name = name
        self.email = email
        self.borrow_limit = borrow_limit
        self._registration_date = registration_date or datetime.now()
        self.borrowed_books: List[BorrowRecord] = []
        self.borrow_history: List[BorrowRecord] = []

    def __str__(self) -> str:  # pragma: no cover - string formatting trivial
        return f"{self.name} <{self.email}>"

    @property
    def registration_date(self) -> datetime:
        return self._registration_date

    @property
    def can_borrow(self) -> bool:
        return len(self.borrowed_books) < self.borrow_limit

    @property
    def borrow_count(self) -> int:
        return len(self.borrowed_books)

    @property
    def profile(self) -> dict:
        return {
            "name": self.name,
            "email": self.email,
            "registration_date": self.registration_date,
            "borrowed_books": list(self.borrowed_books),
            "borrow_history": list(self.borrow_history),
        }

    def update_info(self, *, name: Optional[str] = None, email: Optional[str] = None) -> None:
        if name is not None:
            self.name = name
        if email is not None:
            self.email = email

    def holds(self, isbn: str) -> bool:
        return any(record.isbn == isbn for record in self.borrowed_books)

    def add_borrowed_book(self, isbn: str, title: str, borrow_date: Optional[datetime] = None) -> BorrowRecord:
        if not self.can_borrow:
            raise InvariantViolation("BorrowLimitReached", f"{self.name} has reached the borrowing limit.")
        if self.holds(isbn):
            raise ConflictError("DuplicateLoan", f"{self.name} already holds ISBN {isbn}.")
        record = BorrowRecord(isbn=isbn, title=title, borrow_date=borrow_date or datetime.now())
        self.borrowed_books.append(record)
        self.borrow_history.append(record)
        return record

    def remove_borrowed_book(self, isbn: str) -> BorrowRecord:
        for index, record in enumerate(self.borrowed_books):
            if record.isbn == isbn:
                return self.borrowed_books.pop(index)
        raise NotFoundError("BookNotBorrowed", f"ISBN {isbn} is not among {self.name}'s borrowed books.")

    def get_borrow_history(self) -> List[BorrowRecord]:
        return list(self.borrow_history)

    def formatted_history(self) -> str:
        lines = [
            f"User: {self.name}",
            f"Email: {self.email}",
            f"No. Borrowed Books: {self.borrow_count}",
            "Account History:",
        ]
        lines.extend(
            f"• {r.title} (ISBN: {r.isbn}) borrowed on {format_date(r.borrow_date)}"
            for r in self.borrow_history
        )
        return "\n".join(lines)

    def has_overdue_books(self, days: float, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now()
        return any(days_between(r.borrow_date, now) > days for r in self.borrowed_books)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "email": self.email,
            "registration_date": self.registration_date.isoformat(),
            "borrowed_books": [r.to_dict() for r in self.borrowed_books],
            "borrow_history": [r.to_dict() for r in self.borrow_history],
        }

    @staticmethod
    def from_dict(data: dict, borrow_limit: int = DEFAULT_BORROW_LIMIT) -> "User":
        registered = data.get("registration_date")
        user = User(
            name=data.get("name", "Anonymous"),
            email=data["email"],
            borrow_limit=borrow_limit,
            registration_date=parse_datetime(registered) if registered else None,
        )
        user.borrowed_books = [BorrowRecord.from_dict(r) for r in data.get("borrowed_books", [])]
        user.borrow_history = [BorrowRecord.from_dict(r) for r in data.get("borrow_history", [])]
        return user
