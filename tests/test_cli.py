import json

import pytest
from typer.testing import CliRunner

from lending_library.main import app

runner = CliRunner()

PRIDE = "9780141439518"


@pytest.fixture
def cli(data_dir):
    def invoke(*args, **kwargs):
        return runner.invoke(app, ["--data-dir", str(data_dir), *args], **kwargs)
    return invoke


@pytest.fixture
def stocked_cli(cli):
    cli("add-book", PRIDE, "--title", "Pride and Prejudice", "--author", "Jane Austen",
        "--year", "1813", "--copies", "2", "--genre", "Romance")
    cli("register", "jane@example.com", "--name", "Jane")
    return cli


def test_list_no_books(cli):
    result = cli("list")
    assert result.exit_code == 0
    assert "No books in library." in result.stdout


def test_add_book_success(cli):
    result = cli("add-book", PRIDE, "--title", "Pride and Prejudice", "--author", "Jane Austen")
    assert result.exit_code == 0
    assert "Successfully added: Pride and Prejudice by Jane Austen" in result.stdout

    listed = cli("list")
    assert f"{PRIDE} - Pride and Prejudice by Jane Austen (1/1 available)" in listed.stdout


def test_add_book_rejects_bad_isbn(cli):
    result = cli("add-book", "12345")
    assert result.exit_code == 1
    assert "Error [InvalidISBN]" in result.stdout


def test_add_duplicate_book(stocked_cli):
    result = stocked_cli("add-book", PRIDE)
    assert result.exit_code == 1
    assert "Error [DuplicateBook]" in result.stdout


def test_find_book(stocked_cli):
    result = stocked_cli("find", PRIDE)
    assert result.exit_code == 0
    assert "Title: Pride and Prejudice" in result.stdout
    assert "Available Copies: 2" in result.stdout

    missing = stocked_cli("find", "0000000000000")
    assert missing.exit_code == 1
    assert "Error [BookNotFound]" in missing.stdout


def test_register_rejects_bad_email(cli):
    result = cli("register", "not-an-email")
    assert result.exit_code == 1
    assert "Error [InvalidEmail]" in result.stdout


def test_borrow_return_flow(stocked_cli):
    borrowed = stocked_cli("borrow", "jane@example.com", PRIDE)
    assert borrowed.exit_code == 0
    assert "jane@example.com borrowed Pride and Prejudice (1 left)" in borrowed.stdout

    loans = stocked_cli("loans")
    assert f"jane@example.com - {PRIDE}" in loans.stdout
    assert "No active loans." in stocked_cli("loans", "--overdue", "7").stdout

    blocked = stocked_cli("remove-book", PRIDE)
    assert blocked.exit_code == 1
    assert "Error [BookHasActiveLoans]" in blocked.stdout

    returned = stocked_cli("return", "jane@example.com", PRIDE)
    assert returned.exit_code == 0
    assert "(2 available)" in returned.stdout
    assert "No active loans." in stocked_cli("loans").stdout

    history = stocked_cli("history", "jane@example.com")
    assert "• Pride and Prejudice" in history.stdout


def test_return_without_loan(stocked_cli):
    result = stocked_cli("return", "jane@example.com", PRIDE)
    assert result.exit_code == 1
    assert "Error [LoanNotFound]" in result.stdout


def test_update_and_remove(stocked_cli):
    assert stocked_cli("update-book", PRIDE, "--copies", "4").exit_code == 0
    assert "(4/4 available)" in stocked_cli("list").stdout

    assert stocked_cli("update-user", "jane@example.com", "--name", "Jane Austen").exit_code == 0
    assert "jane@example.com - Jane Austen (0 borrowed, 0 total)" in stocked_cli("users").stdout

    assert stocked_cli("remove-user", "jane@example.com").exit_code == 0
    assert "No registered users." in stocked_cli("users").stdout
    assert stocked_cli("remove-book", PRIDE).exit_code == 0
    assert "No books in library." in stocked_cli("list").stdout


def test_stats_plain_and_json(stocked_cli):
    plain = stocked_cli("stats")
    assert "Total Books: 1" in plain.stdout
    assert "Total Users: 1" in plain.stdout

    as_json = stocked_cli("--output", "json", "stats")
    assert json.loads(as_json.stdout)["available_books"] == 1


def test_list_json_output(stocked_cli):
    result = stocked_cli("--output", "json", "list")
    payload = json.loads(result.stdout)
    assert payload[0]["isbn"] == PRIDE
    assert payload[0]["available_copies"] == 2


def test_popular_and_report(stocked_cli):
    stocked_cli("borrow", "jane@example.com", PRIDE)
    assert "1. Pride and Prejudice (Borrowed: 1)" in stocked_cli("popular").stdout

    report = stocked_cli("report")
    assert "Active Loans: 1" in report.stdout
    assert "• Jane (Borrowed: 1)" in report.stdout


def test_import_file(cli, tmp_path):
    import_file = tmp_path / "seed.json"
    import_file.write_text(json.dumps({
        "books": [{"isbn": PRIDE, "title": "Pride and Prejudice"}, {"title": "No ISBN"}],
        "users": [{"email": "jane@example.com", "name": "Jane"}],
    }), encoding="utf-8")

    result = cli("import", str(import_file))
    assert result.exit_code == 0
    assert "Imported 1 book(s) and 1 user(s); 1 book(s) and 0 user(s) failed" in result.stdout
    assert "[MissingISBN]" in result.stdout
    assert "Pride and Prejudice" in cli("list").stdout


def test_import_invalid_file(cli, tmp_path):
    import_file = tmp_path / "broken.json"
    import_file.write_text("{oops", encoding="utf-8")
    result = cli("import", str(import_file))
    assert result.exit_code == 1
    assert "Error [InvalidImportFile]" in result.stdout


def test_lookup_offline_finds_local_book(stocked_cli):
    result = stocked_cli("lookup", PRIDE)
    assert result.exit_code == 0
    assert "Found via local" in result.stdout

    missing = stocked_cli("lookup", "9780000000000")
    assert missing.exit_code == 1


def test_clear_data(stocked_cli, data_dir):
    aborted = stocked_cli("clear", input="n\n")
    assert "Aborted." in aborted.stdout
    assert (data_dir / "books.json").exists()

    result = stocked_cli("clear", "--yes")
    assert "Removed 3 data file(s)." in result.stdout
    assert "No books in library." in stocked_cli("list").stdout


def test_add_book_copy_count(cli):
    result = cli("add-book", PRIDE, "--copies", "0")
    assert result.exit_code == 0
    assert "(0/0 available)" in cli("list").stdout

    negative = cli("add-book", "9780451524935", "--copies=-1")
    assert negative.exit_code == 1
    assert "Error [InvalidCopyCount]" in negative.stdout


def test_list_by_genre(stocked_cli):
    assert "Pride and Prejudice" in stocked_cli("list", "--genre", "romance").stdout
    assert "No books in library." in stocked_cli("list", "--genre", "Horror").stdout
    both = stocked_cli("list", "--author", "Jane Austen", "--genre", "ROMANCE")
    assert "Pride and Prejudice" in both.stdout
