import json
import os
from typing import Any, Dict, List

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from lending_library.book import Book
from lending_library.loan import Loan
from lending_library.user import User

# Environment variable to control CLI output mode
# Allowed values: 'plain' (default), 'json', 'rich'
OUTPUT_MODE_ENV = "LIB_CLI_OUTPUT"

_console = Console()


def set_output_mode(mode: str) -> None:
    mode = (mode or "").lower().strip()
    if mode in {"plain", "json", "rich"}:
        os.environ[OUTPUT_MODE_ENV] = mode


def get_output_mode() -> str:
    return os.environ.get(OUTPUT_MODE_ENV, "plain").lower()


def print_book_list(books: List[Book]) -> None:
    """Print books in the current output mode.
    - plain: 'ISBN - Title by Author (available/total)' lines, or 'No books in library.'
    - json: JSON array of book records
    - rich: Rich table
    """
    mode = get_output_mode()

    if not books:
        print("No books in library.")
        return

    if mode == "json":
        payload = [dict(b.to_dict(), available_copies=b.available_copies) for b in books]
        print(json.dumps(payload, ensure_ascii=False))
    elif mode == "rich":
        table = Table(title="📚 Books", show_lines=True, header_style="bold cyan")
        table.add_column("ISBN", style="magenta", no_wrap=True)
        table.add_column("Title", style="white")
        table.add_column("Author", style="white")
        table.add_column("Genre", style="white")
        table.add_column("Available", justify="right")
        for b in books:
            table.add_row(b.isbn, b.title, b.author, b.genre, f"{b.available_copies}/{b.total_copies}")
        _console.print(table)
    else:
        for b in books:
            print(f"{b.isbn} - {b.title} by {b.author} ({b.available_copies}/{b.total_copies} available)")


def print_user_list(users: List[User]) -> None:
    mode = get_output_mode()

    if not users:
        print("No registered users.")
        return

    if mode == "json":
        payload = [
            {"name": u.name, "email": u.email, "borrowed": u.borrow_count, "history": len(u.borrow_history)}
            for u in users
        ]
        print(json.dumps(payload, ensure_ascii=False))
    elif mode == "rich":
        table = Table(title="👥 Members", header_style="bold cyan")
        table.add_column("Email", style="magenta", no_wrap=True)
        table.add_column("Name")
        table.add_column("Borrowed", justify="right")
        table.add_column("History", justify="right")
        for u in users:
            table.add_row(u.email, u.name, str(u.borrow_count), str(len(u.borrow_history)))
        _console.print(table)
    else:
        for u in users:
            print(f"{u.email} - {u.name} ({u.borrow_count} borrowed, {len(u.borrow_history)} total)")


def print_loan_list(loans: List[Loan]) -> None:
    mode = get_output_mode()

    if not loans:
        print("No active loans.")
        return

    if mode == "json":
        print(json.dumps([loan.to_dict() for loan in loans], ensure_ascii=False))
    elif mode == "rich":
        table = Table(title="📖 Loans", header_style="bold cyan")
        table.add_column("User", style="magenta")
        table.add_column("ISBN")
        table.add_column("Borrowed on")
        table.add_column("Days", justify="right")
        for loan in loans:
            table.add_row(loan.user_email, loan.isbn, loan.borrow_date.strftime("%d-%m-%Y"),
                          f"{loan.age_in_days():.0f}")
        _console.print(table)
    else:
        for loan in loans:
            print(f"{loan.user_email} - {loan.isbn} (since {loan.borrow_date.strftime('%d-%m-%Y')})")


def print_stats_result(stats: Dict[str, Any]) -> None:
    """Print library statistics in the current output mode."""
    mode = get_output_mode()

    if not stats:
        print("No statistics available.")
        return

    labels = [
        ("total_books", "Total Books"),
        ("available_books", "Available Books"),
        ("total_users", "Total Users"),
        ("active_loans", "Active Loans"),
    ]

    if mode == "json":
        print(json.dumps(stats, ensure_ascii=False, default=str))
    elif mode == "rich":
        content = "\n".join(f"[bold]{label}:[/] {stats.get(key, 0)}" for key, label in labels)
        _console.print(Panel.fit(content, title=f"📊 {stats.get('name', 'Stats')}", border_style="blue"))
    else:
        for key, label in labels:
            print(f"{label}: {stats.get(key, 0)}")
