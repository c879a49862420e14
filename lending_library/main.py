import asyncio
import json
import logging
from functools import wraps
from pathlib import Path
from typing import Optional

import typer
from pydantic import ValidationError as PydanticValidationError

from lending_library.config import settings
from lending_library.errors import LibraryError, NotFoundError, ValidationError
from lending_library.library import Library
from lending_library.schemas import ImportFile
from lending_library.services.data_manager import DataManager
from lending_library.ui_helpers import (
    print_book_list,
    print_loan_list,
    print_stats_result,
    print_user_list,
    set_output_mode,
)
from lending_library.validators import Validator

APP_NAME = "Lending Library CLI"


class LibraryManager:
    """Loads the library snapshot for one command and saves it back afterwards."""

    data_dir: Optional[str] = None

    @classmethod
    def data_manager(cls) -> DataManager:
        return DataManager(cls.data_dir or settings.data_dir)

    @classmethod
    def load(cls) -> Library:
        lib = Library()
        lib.load_snapshot(cls.data_manager().load_library())
        return lib

    @classmethod
    def save(cls, lib: Library) -> None:
        asyncio.run(lib.save_with_timeout(cls.data_manager()))


def handle_errors(func):
    """Report domain errors as 'Error [code]: message' and exit with status 1."""
    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except LibraryError as e:
            print(f"Error [{e.code}]: {e.message}")
            raise typer.Exit(code=1)
    return wrapper


# --- Typer CLI application ---
app = typer.Typer(help=APP_NAME)


@app.callback()
def _global_options(
    output: Optional[str] = typer.Option(
        None,
        "--output",
        "-o",
        help="Output format: plain | json | rich (default: plain)",
    ),
    data_dir: Optional[str] = typer.Option(
        None,
        "--data-dir",
        help="Folder holding books.json, users.json and loans.json",
    ),
):
    """Global CLI options (output mode, data folder)."""
    if output:
        set_output_mode(output)
    LibraryManager.data_dir = data_dir


# ------------------------- Books ------------------------- #
@app.command("add-book")
@handle_errors
def cli_add_book(
    isbn: str,
    title: Optional[str] = typer.Option(None, "--title", "-t"),
    author: Optional[str] = typer.Option(None, "--author", "-a"),
    year: Optional[int] = typer.Option(None, "--year", "-y", help="Publication year"),
    copies: Optional[int] = typer.Option(None, "--copies", "-c", help="Number of copies owned (0 lists the title without lending it)"),
    genre: Optional[str] = typer.Option(None, "--genre", "-g"),
    lookup: bool = typer.Option(False, "--lookup", help="Fill missing fields from Open Library"),
):
    """Add a book by its 13-digit ISBN."""
    if not Validator.is_valid_isbn(isbn):
        raise ValidationError("InvalidISBN", f"{isbn} is not a 13-digit ISBN.")
    if year is not None and not Validator.is_valid_year(year):
        raise ValidationError("InvalidYear", f"{year} is not a valid publication year.")
    if copies is not None and copies < 0:
        raise ValidationError("InvalidCopyCount", "Total copies cannot be less than 0.")

    lib = LibraryManager.load()
    data = {"isbn": isbn, "title": title, "author": author, "publication_year": year,
            "total_copies": copies, "genre": genre}
    if lookup:
        result = asyncio.run(lib.find_book_from_multiple_sources(isbn))
        if result and result.source != "local":
            fetched = result.book.to_dict()
            for key in ("title", "author", "publication_year", "genre"):
                if data[key] is None:
                    data[key] = fetched[key]
    book = lib.add_book(data)
    LibraryManager.save(lib)
    print(f"Successfully added: {book.title} by {book.author}")


@app.command("remove-book")
@handle_errors
def cli_remove_book(isbn: str):
    """Remove a book that has no copies on loan."""
    lib = LibraryManager.load()
    lib.remove_book(isbn)
    LibraryManager.save(lib)
    print(f"Book with ISBN {isbn} has been removed.")


@app.command("update-book")
@handle_errors
def cli_update_book(
    isbn: str,
    title: Optional[str] = typer.Option(None, "--title", "-t"),
    author: Optional[str] = typer.Option(None, "--author", "-a"),
    year: Optional[int] = typer.Option(None, "--year", "-y"),
    copies: Optional[int] = typer.Option(None, "--copies", "-c"),
    genre: Optional[str] = typer.Option(None, "--genre", "-g"),
):
    """Change selected fields of a book; omitted options are left as they are."""
    lib = LibraryManager.load()
    book = lib.update_book(isbn, title=title, author=author, publication_year=year,
                           total_copies=copies, genre=genre)
    LibraryManager.save(lib)
    print(f"Updated: {book.title} by {book.author}")


@app.command("find")
@handle_errors
def cli_find(isbn: str):
    """Show the details of one book."""
    book = LibraryManager.load().find_book_by_isbn(isbn)
    if book is None:
        raise NotFoundError("BookNotFound", f"Book with ISBN {isbn} not found.")
    print("Book Found")
    print(book.formatted_info())


@app.command("list")
def cli_list(
    author: Optional[str] = typer.Option(None, "--author", "-a", help="Only books by this author"),
    genre: Optional[str] = typer.Option(None, "--genre", "-g", help="Only books of this genre"),
):
    """List the books in the catalogue."""
    lib = LibraryManager.load()
    books = lib.find_books_by_author(author) if author else lib.list_books()
    if genre:
        in_genre = {b.isbn for b in lib.find_books_by_genre(genre)}
        books = [b for b in books if b.isbn in in_genre]
    print_book_list(books)


@app.command("lookup")
@handle_errors
def cli_lookup(isbn: str):
    """Find a book in the catalogue, the cache or Open Library, whichever answers first."""
    result = asyncio.run(LibraryManager.load().find_book_from_multiple_sources(isbn))
    if result is None:
        raise NotFoundError("BookNotFound", f"No source knows ISBN {isbn}.")
    print(f"Found via {result.source}")
    print(result.book.info)


# ------------------------- Members ------------------------- #
@app.command("register")
@handle_errors
def cli_register(email: str, name: Optional[str] = typer.Option(None, "--name", "-n")):
    """Register a new member."""
    if not Validator.is_valid_email(email):
        raise ValidationError("InvalidEmail", f"{email} is not a valid email address.")
    lib = LibraryManager.load()
    user = lib.register_user({"email": email, "name": name})
    LibraryManager.save(lib)
    print(f"Registered: {user.name} <{user.email}>")


@app.command("update-user")
@handle_errors
def cli_update_user(
    email: str,
    name: Optional[str] = typer.Option(None, "--name", "-n"),
    new_email: Optional[str] = typer.Option(None, "--email", "-e"),
):
    """Rename a member or change their email."""
    if new_email is not None and not Validator.is_valid_email(new_email):
        raise ValidationError("InvalidEmail", f"{new_email} is not a valid email address.")
    lib = LibraryManager.load()
    user = lib.update_user(email, name=name, email=new_email)
    LibraryManager.save(lib)
    print(f"Updated: {user.name} <{user.email}>")


@app.command("remove-user")
@handle_errors
def cli_remove_user(email: str):
    """Remove a member who holds no books."""
    lib = LibraryManager.load()
    lib.remove_user(email)
    LibraryManager.save(lib)
    print(f"User {email} has been removed.")


@app.command("users")
def cli_users():
    """List registered members."""
    print_user_list(LibraryManager.load().list_users())


@app.command("history")
@handle_errors
def cli_history(email: str):
    """Show a member's borrowing history."""
    user = LibraryManager.load().find_user_by_email(email)
    if user is None:
        raise NotFoundError("UserNotFound", f"User with email {email} not found.")
    print(user.formatted_history())


# ------------------------- Loans ------------------------- #
@app.command("borrow")
@handle_errors
def cli_borrow(email: str, isbn: str):
    """Lend one copy of a book to a member."""
    lib = LibraryManager.load()
    lib.borrow_book(email, isbn)
    LibraryManager.save(lib)
    book = lib.find_book_by_isbn(isbn)
    print(f"{email} borrowed {book.title} ({book.available_copies} left)")


@app.command("return")
@handle_errors
def cli_return(email: str, isbn: str):
    """Take back a borrowed copy."""
    lib = LibraryManager.load()
    lib.return_book(email, isbn)
    LibraryManager.save(lib)
    book = lib.find_book_by_isbn(isbn)
    print(f"{email} returned {book.title} ({book.available_copies} available)")


@app.command("loans")
def cli_loans(
    user: Optional[str] = typer.Option(None, "--user", "-u", help="Only loans of this member"),
    overdue: Optional[float] = typer.Option(None, "--overdue", help="Only loans older than this many days"),
):
    """List active loans."""
    lib = LibraryManager.load()
    loans = lib.get_overdue_loans(overdue) if overdue is not None else lib.list_loans()
    if user:
        loans = [loan for loan in loans if loan.user_email == user]
    print_loan_list(loans)


# ------------------------- Reports ------------------------- #
@app.command("popular")
def cli_popular(limit: int = typer.Option(5, "--limit", "-l")):
    """Books with the most copies currently on loan."""
    books = LibraryManager.load().get_popular_books(limit)
    if not books:
        print("No books in library.")
        return
    for position, book in enumerate(books, 1):
        print(f"{position}. {book.title} (Borrowed: {book.borrowed_copies})")


@app.command("report")
def cli_report():
    """Print the library report."""
    print(LibraryManager.load().generate_report())


@app.command("stats")
def cli_stats():
    """Show library statistics."""
    print_stats_result(LibraryManager.load().statistics)


# ------------------------- Data ------------------------- #
@app.command("import")
@handle_errors
def cli_import(file_path: Path):
    """Import books and users from a JSON file with "books" and "users" arrays."""
    if not file_path.exists():
        raise NotFoundError("FileNotFound", f"File not found: {file_path}")
    try:
        with open(file_path, "r", encoding="utf-8") as f:
            payload = ImportFile.model_validate(json.load(f))
    except json.JSONDecodeError as e:
        raise ValidationError("InvalidImportFile", f"{file_path} is not valid JSON: {e}") from e
    except PydanticValidationError as e:
        raise ValidationError("InvalidImportFile", str(e)) from e

    lib = LibraryManager.load()
    summary = lib.initialize_from_data(payload.books, payload.users)
    LibraryManager.save(lib)
    print(f"Imported {summary.added_books} book(s) and {summary.added_users} user(s); "
          f"{summary.failed_books} book(s) and {summary.failed_users} user(s) failed")
    for failure in summary.errors:
        print(f"  ✗ {failure.kind} #{failure.index} ({failure.key or '-'}): [{failure.code}] {failure.message}")


@app.command("clear")
def cli_clear(yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation")):
    """Delete all saved library data."""
    manager = LibraryManager.data_manager()
    if not yes and not typer.confirm(f"Delete all data in {manager.data_folder}?"):
        print("Aborted.")
        return
    removed = manager.clear_all_data()
    print(f"Removed {removed} data file(s).")


def main() -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app()


if __name__ == "__main__":
    main()
