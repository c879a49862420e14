from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Type, TypeVar, Union

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from lending_library import events
from lending_library.book import Book
from lending_library.config import settings
from lending_library.errors import (
    AllSourcesFailed,
    ConflictError,
    ExternalServiceError,
    InvariantViolation,
    LibraryError,
    NotFoundError,
    ValidationError,
)
from lending_library.events import Event, EventLog, Subscription
from lending_library.loan import Loan
from lending_library.schemas import BookIn, BookUpdate, UserIn, UserUpdate
from lending_library.services.cache_manager import CacheManager
from lending_library.services.concurrency import first_success, with_timeout
from lending_library.services.data_manager import DataManager, SaveResult
from lending_library.services.open_library import OpenLibraryClient
from lending_library.user import User

logger = logging.getLogger(__name__)

BOOK_UPDATABLE_FIELDS = {"title", "author", "genre", "publication_year", "total_copies"}
USER_UPDATABLE_FIELDS = {"name", "email"}

ModelT = TypeVar("ModelT", bound=BaseModel)


@dataclass
class ImportFailure:
    """Why one item of a bulk import was rejected."""
    kind: str  # "book" or "user"
    index: int
    key: Optional[str]
    code: str
    message: str


@dataclass
class ImportSummary:
    added_books: int = 0
    failed_books: int = 0
    added_users: int = 0
    failed_users: int = 0
    errors: List[ImportFailure] = field(default_factory=list)


@dataclass
class LookupResult:
    book: Book
    source: str  # "local", "cache" or "api"


class Library:
    """Owns the books, members and loans and runs the borrow/return lifecycle.

    Every mutating call runs inside one re-entrant lock, so a borrow or return
    is never observed half applied. Each successful mutation emits an event that
    is recorded in the bounded history and then passed to the subscribers.
    """

    def __init__(self, name: Optional[str] = None, max_books_per_user: Optional[int] = None, *,
                 history_size: Optional[int] = None, cache: Optional[CacheManager] = None,
                 metadata_client_factory: Optional[Callable[[], OpenLibraryClient]] = None) -> None:
        self.name = name or settings.library_name
        self.max_books_per_user = settings.max_books_per_user if max_books_per_user is None else max_books_per_user
        if self.max_books_per_user < 0:
            raise ValueError("max_books_per_user cannot be negative.")
        self.events = EventLog(history_size or settings.event_history_size)
        self.cache = cache or CacheManager()
        self._metadata_client_factory = metadata_client_factory or OpenLibraryClient
        self._books: Dict[str, Book] = {}
        self._users: Dict[str, User] = {}
        self._loans: List[Loan] = []
        self._lock = threading.RLock()

    # ------------------------- Aggregates ------------------------- #
    @property
    def total_books(self) -> int:
        return len(self._books)

    @property
    def available_books(self) -> int:
        with self._lock:
            return sum(1 for book in self._books.values() if book.is_available)

    @property
    def statistics(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "name": self.name,
                "total_books": self.total_books,
                "available_books": self.available_books,
                "total_users": len(self._users),
                "active_loans": len(self._loans),
            }

    # ------------------------- Books ------------------------- #
    def add_book(self, book_data: Union[Mapping[str, Any], BookIn]) -> Book:
        payload = self._parse(BookIn, book_data, "InvalidBookData")
        if not payload.isbn:
            raise ValidationError("MissingISBN", "ISBN is required to add a book.")
        with self._lock:
            if payload.isbn in self._books:
                raise ConflictError("DuplicateBook", f"A book with ISBN {payload.isbn} already exists.")
            book = Book(**payload.model_dump())
            self._books[book.isbn] = book
            self._emit(events.BOOK_ADDED, book=book)
        logger.info(f"Book added: {book}")
        return book

    def remove_book(self, isbn: str) -> Book:
        with self._lock:
            book = self._require_book(isbn)
            if any(loan.isbn == isbn for loan in self._loans):
                raise ConflictError("BookHasActiveLoans",
                                    f'"{book.title}" cannot be removed while copies are on loan.')
            del self._books[isbn]
            self._emit(events.BOOK_REMOVED, book=book)
        logger.info(f"Book removed: {isbn}")
        return book

    def find_book_by_isbn(self, isbn: str) -> Optional[Book]:
        return self._books.get(isbn)

    def find_books_by_author(self, author: str) -> List[Book]:
        wanted = author.lower()
        return [book for book in self.list_books() if book.author.lower() == wanted]

    def find_books_by_genre(self, genre: str) -> List[Book]:
        wanted = genre.lower()
        return [book for book in self.list_books() if book.genre.lower() == wanted]

    def list_books(self) -> List[Book]:
        with self._lock:
            return list(self._books.values())

    def update_book(self, isbn: str, **updates: Any) -> Book:
        """Apply a partial update; keys whose value is None are left untouched."""
        changes = self._changes(updates, BOOK_UPDATABLE_FIELDS)
        self._parse(BookUpdate, changes, "InvalidBookData")
        year = changes.get("publication_year")
        with self._lock:
            book = self._require_book(isbn)
            if "total_copies" in changes:
                book.set_copies(changes["total_copies"], book.borrowed_copies)
            book.update_details(title=changes.get("title"), author=changes.get("author"),
                                genre=changes.get("genre"))
            if year is not None:
                book.publication_year = year
            self._emit(events.BOOK_UPDATED, book=book, changes=changes)
        return book

    # ------------------------- Users ------------------------- #
    def register_user(self, user_data: Union[Mapping[str, Any], UserIn]) -> User:
        payload = self._parse(UserIn, user_data, "InvalidUserData")
        if not payload.email:
            raise ValidationError("MissingEmail", "Email is required to register a user.")
        with self._lock:
            if payload.email in self._users:
                raise ConflictError("DuplicateUser", f"User with email {payload.email} already exists.")
            user = User(payload.name, payload.email, borrow_limit=self.max_books_per_user)
            self._users[user.email] = user
            self._emit(events.USER_REGISTERED, user=user)
        logger.info(f"User registered: {user.email}")
        return user

    def remove_user(self, email: str) -> User:
        with self._lock:
            user = self._require_user(email)
            if user.borrowed_books:
                raise ConflictError("UserHasActiveLoans",
                                    f"{user.name} cannot be removed while holding {user.borrow_count} book(s).")
            del self._users[email]
            self._emit(events.USER_REMOVED, user=user)
        logger.info(f"User removed: {email}")
        return user

    def find_user_by_email(self, email: str) -> Optional[User]:
        return self._users.get(email)

    def list_users(self) -> List[User]:
        with self._lock:
            return list(self._users.values())

    def update_user(self, email: str, **updates: Any) -> User:
        """Apply a partial update; a new email must stay unique and carries the user's loans with it."""
        changes = self._changes(updates, USER_UPDATABLE_FIELDS)
        self._parse(UserUpdate, changes, "InvalidUserData")
        new_email = changes.get("email")
        if new_email is not None and not new_email:
            raise ValidationError("MissingEmail", "Email cannot be empty.")
        with self._lock:
            user = self._require_user(email)
            if new_email is not None and new_email != email:
                if new_email in self._users:
                    raise ConflictError("DuplicateUser", f"User with email {new_email} already exists.")
                # Rebuild to keep registration order
                self._users = {(new_email if key == email else key): value for key, value in self._users.items()}
                for loan in self._loans:
                    if loan.user_email == email:
                        loan.user_email = new_email
            user.update_info(name=changes.get("name"), email=new_email)
            self._emit(events.USER_UPDATED, user=user, changes=changes, previous_email=email)
        return user

    # ------------------------- Loans ------------------------- #
    def borrow_book(self, user_email: str, isbn: str) -> Loan:
        with self._lock:
            user = self._require_user(user_email)
            book = self._require_book(isbn)
            # All guards run before the first mutation
            if not book.is_available:
                raise InvariantViolation("NoCopiesAvailable", f'No available copies of "{book.title}".')
            if not user.can_borrow:
                raise InvariantViolation("BorrowLimitReached", f"{user.name} has reached the borrowing limit.")
            if self._find_loan(user_email, isbn) is not None or user.holds(isbn):
                raise ConflictError("DuplicateLoan", f'{user.name} already borrowed "{book.title}".')

            borrow_date = datetime.now()
            book.borrow()
            user.add_borrowed_book(isbn, book.title, borrow_date)
            loan = Loan(user_email=user_email, isbn=isbn, borrow_date=borrow_date)
            self._loans.append(loan)
            self._emit(events.LOAN_CREATED, user_email=user_email, isbn=isbn, book_title=book.title, loan=loan)
        logger.info(f"Loan created: {user_email} borrowed {isbn}")
        return loan

    def return_book(self, user_email: str, isbn: str) -> Loan:
        with self._lock:
            user = self._require_user(user_email)
            book = self._require_book(isbn)
            loan = self._find_loan(user_email, isbn)
            if loan is None:
                raise NotFoundError("LoanNotFound", f'{user.name} did not borrow "{book.title}".')
            if not user.holds(isbn):
                raise NotFoundError("BookNotBorrowed", f"ISBN {isbn} is not among {user.name}'s borrowed books.")
            if book.borrowed_copies <= 0:
                raise InvariantViolation("NoCopiesBorrowed", f'No borrowed copies of "{book.title}" to return.')

            book.return_copy()
            user.remove_borrowed_book(isbn)
            self._loans.remove(loan)
            self._emit(events.LOAN_RETURNED, user_email=user_email, isbn=isbn, book_title=book.title, loan=loan)
        logger.info(f"Loan returned: {user_email} returned {isbn}")
        return loan

    def list_loans(self) -> List[Loan]:
        with self._lock:
            return list(self._loans)

    def get_user_loans(self, user_email: str) -> List[Loan]:
        return [loan for loan in self.list_loans() if loan.user_email == user_email]

    def get_overdue_loans(self, days: float, now: Optional[datetime] = None) -> List[Loan]:
        """Loans strictly older than ``days``."""
        now = now or datetime.now()
        return [loan for loan in self.list_loans() if loan.is_overdue(days, now)]

    # ------------------------- Reports ------------------------- #
    def get_popular_books(self, limit: int = 5) -> List[Book]:
        # sorted() is stable, also with reverse=True
        return sorted(self.list_books(), key=lambda b: b.borrowed_copies, reverse=True)[:limit]

    def get_active_users(self, limit: int = 5) -> List[User]:
        return sorted(self.list_users(), key=lambda u: len(u.borrow_history), reverse=True)[:limit]

    def generate_report(self) -> str:
        with self._lock:
            stats = self.statistics
            popular = "\n".join(f"• {b.title} (Borrowed: {b.borrowed_copies})" for b in self.get_popular_books(5))
            active = "\n".join(f"• {u.name} (Borrowed: {len(u.borrow_history)})" for u in self.get_active_users(5))
        return (
            f"Library: {stats['name']}\n"
            f"Total Books: {stats['total_books']}\n"
            f"Available Books: {stats['available_books']}\n"
            f"Total Users: {stats['total_users']}\n"
            f"Active Loans: {stats['active_loans']}\n"
            f"\n"
            f"Top 5 Popular Books:\n{popular}\n"
            f"\n"
            f"Top 5 Active Users:\n{active}"
        )

    # ------------------------- Events ------------------------- #
    def on(self, event_name: str, handler: Callable[[Dict[str, Any]], None]) -> Subscription:
        return self.events.subscribe(event_name, handler)

    def off(self, subscription: Subscription) -> bool:
        return self.events.unsubscribe(subscription)

    def get_event_history(self, limit: int = 10) -> List[Event]:
        return self.events.history(limit)

    def get_event_stats(self) -> Dict[str, Any]:
        return self.events.stats()

    def _emit(self, event_name: str, **data: Any) -> Event:
        data["timestamp"] = datetime.now()
        return self.events.emit(event_name, data)

    # ------------------------- Bulk load & snapshots ------------------------- #
    def initialize_from_data(self, books_data: Iterable[Any], users_data: Iterable[Any]) -> ImportSummary:
        """Best-effort import: every item is attempted on its own and failures are only counted."""
        summary = ImportSummary()
        for index, item in enumerate(books_data):
            try:
                self.add_book(item)
                summary.added_books += 1
            except LibraryError as e:
                summary.failed_books += 1
                summary.errors.append(ImportFailure("book", index, _item_key(item, "isbn"), e.code, e.message))
        for index, item in enumerate(users_data):
            try:
                self.register_user(item)
                summary.added_users += 1
            except LibraryError as e:
                summary.failed_users += 1
                summary.errors.append(ImportFailure("user", index, _item_key(item, "email"), e.code, e.message))
        logger.info(f"Import finished: {summary.added_books} books, {summary.added_users} users added; "
                    f"{summary.failed_books + summary.failed_users} failed")
        return summary

    def snapshot(self) -> Dict[str, List[dict]]:
        with self._lock:
            return {
                "books": [book.to_dict() for book in self._books.values()],
                "users": [user.to_dict() for user in self._users.values()],
                "loans": [loan.to_dict() for loan in self._loans],
            }

    def load_snapshot(self, snapshot: Mapping[str, List[dict]]) -> Dict[str, int]:
        """Replace all collections with the records of a snapshot; malformed records are skipped."""
        books: Dict[str, Book] = {}
        users: Dict[str, User] = {}
        loans: List[Loan] = []
        for record in snapshot.get("books", []):
            try:
                book = Book.from_dict(record)
                books[book.isbn] = book
            except (KeyError, TypeError, ValueError, LibraryError) as e:
                logger.warning(f"Skipping malformed book record {record!r}: {e}")
        for record in snapshot.get("users", []):
            try:
                user = User.from_dict(record, borrow_limit=self.max_books_per_user)
                users[user.email] = user
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed user record {record!r}: {e}")
        for record in snapshot.get("loans", []):
            try:
                loans.append(Loan.from_dict(record))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed loan record {record!r}: {e}")
        with self._lock:
            self._books, self._users, self._loans = books, users, loans
        return {"books": len(books), "users": len(users), "loans": len(loans)}

    async def save_with_timeout(self, data_manager: DataManager, timeout_ms: Optional[float] = None) -> SaveResult:
        """Save on a worker thread; a save that misses the deadline keeps running and may still write."""
        timeout_ms = settings.save_timeout_ms if timeout_ms is None else timeout_ms
        return await with_timeout(asyncio.to_thread(data_manager.save_library, self), timeout_ms, "saveLibrary")

    # ------------------------- Multi-source lookup ------------------------- #
    async def find_book_from_multiple_sources(self, isbn: str) -> Optional[LookupResult]:
        """Race the catalogue, the metadata cache and Open Library; first success wins."""
        cache_key = f"book:{isbn}"

        async def search_local() -> LookupResult:
            book = self.find_book_by_isbn(isbn)
            if book is None:
                raise NotFoundError("BookNotFound", "Not in local catalogue")
            return LookupResult(book, "local")

        async def search_cache() -> LookupResult:
            cached = self.cache.get(cache_key)
            if cached is None:
                raise NotFoundError("BookNotFound", "Not in cache")
            return LookupResult(self._detached_book(cached), "cache")

        async def search_api() -> LookupResult:
            if not settings.enable_remote_lookup:
                raise ExternalServiceError("RemoteLookupDisabled", "Remote lookup is disabled")
            async with self._metadata_client_factory() as client:
                metadata = await client.fetch_book(isbn)
            if metadata is None:
                raise NotFoundError("BookNotFound", "Not found by Open Library")
            data = metadata.to_book_data()
            self.cache.set(cache_key, data)
            return LookupResult(self._detached_book(data), "api")

        try:
            _, result = await first_success({
                "local": search_local(),
                "cache": search_cache(),
                "api": search_api(),
            })
        except AllSourcesFailed as e:
            logger.debug(f"Lookup for {isbn} failed: {e.errors}")
            return None
        return result

    @staticmethod
    def _detached_book(data: Mapping[str, Any]) -> Book:
        """A Book built from remote metadata; not part of the catalogue, so it holds no copies."""
        payload = BookIn.model_validate(dict(data))
        return Book(**payload.model_dump(exclude={"total_copies", "borrowed_copies"}), total_copies=0)

    # ------------------------- Utilities ------------------------- #
    def _require_book(self, isbn: str) -> Book:
        book = self._books.get(isbn)
        if book is None:
            raise NotFoundError("BookNotFound", f"Book with ISBN {isbn} not found.")
        return book

    def _require_user(self, email: str) -> User:
        user = self._users.get(email)
        if user is None:
            raise NotFoundError("UserNotFound", f"User with email {email} not found.")
        return user

    def _find_loan(self, user_email: str, isbn: str) -> Optional[Loan]:
        for loan in self._loans:
            if loan.user_email == user_email and loan.isbn == isbn:
                return loan
        return None

    @staticmethod
    def _parse(model: Type[ModelT], data: Any, code: str) -> ModelT:
        if isinstance(data, model):
            return data
        try:
            return model.model_validate(data)
        except PydanticValidationError as e:
            raise ValidationError(code, str(e)) from e

    @staticmethod
    def _changes(updates: Mapping[str, Any], allowed: set) -> Dict[str, Any]:
        changes = {key: value for key, value in updates.items() if value is not None}
        unknown = sorted(set(changes) - allowed)
        if unknown:
            raise ValidationError("UnknownField", f"Cannot update field(s): {', '.join(unknown)}")
        return changes


def _item_key(item: Any, field_name: str) -> Optional[str]:
    if isinstance(item, Mapping):
        value = item.get(field_name)
        return str(value) if value is not None else None
    return getattr(item, field_name, None)
