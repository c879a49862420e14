from datetime import date

import pytest

from lending_library.book import Book
from lending_library.errors import InvariantViolation


def make_book(**overrides):
    data = {"title": "Dune", "author": "Frank Herbert", "isbn": "9780441013593",
            "publication_year": 1965, "total_copies": 2}
    data.update(overrides)
    return Book(**data)


def test_new_book_is_fully_available():
    book = make_book()
    assert book.borrowed_copies == 0
    assert book.available_copies == 2
    assert book.is_available
    assert book.genre == "General"


def test_borrow_and_return_adjust_counts():
    book = make_book(total_copies=1)
    book.borrow()
    assert book.available_copies == 0
    assert not book.is_available

    with pytest.raises(InvariantViolation) as exc:
        book.borrow()
    assert exc.value.code == "NoCopiesAvailable"
    assert book.borrowed_copies == 1

    book.return_copy()
    assert book.borrowed_copies == 0
    with pytest.raises(InvariantViolation) as exc:
        book.return_copy()
    assert exc.value.code == "NoCopiesBorrowed"


def test_set_copies_rejects_invalid_counts_without_writing():
    book = make_book(total_copies=3)
    book.borrow()
    book.borrow()

    with pytest.raises(InvariantViolation) as exc:
        book.set_copies(1, book.borrowed_copies)
    assert exc.value.code == "InvalidCopyCount"
    with pytest.raises(InvariantViolation):
        book.set_copies(-1, 0)

    assert (book.total_copies, book.borrowed_copies) == (3, 2)
    book.set_copies(2, 2)
    assert book.available_copies == 0


def test_constructor_rejects_borrowed_above_total():
    with pytest.raises(InvariantViolation):
        make_book(total_copies=1, borrowed_copies=2)


def test_age_and_info():
    book = make_book()
    assert book.age == date.today().year - 1965
    assert "Title: Dune" in book.info
    assert "Genre: General" in book.info
    info = book.formatted_info()
    assert "Available Copies: 2" in info
    assert "Available: Yes" in info


def test_update_details_ignores_none():
    book = make_book()
    book.update_details(title="Dune Messiah", genre=None)
    assert book.title == "Dune Messiah"
    assert book.author == "Frank Herbert"
    assert book.genre == "General"


def test_is_valid_book():
    assert Book.is_valid_book({"isbn": "9780441013593", "publication_year": 1965, "total_copies": 1})
    assert not Book.is_valid_book({"isbn": "123", "publication_year": 1965, "total_copies": 1})
    assert not Book.is_valid_book({"isbn": "9780441013593", "publication_year": 3000, "total_copies": 1})
    assert not Book.is_valid_book({"isbn": "9780441013593", "publication_year": 1965, "total_copies": 0})


def test_compare_by_year_orders_oldest_first():
    books = [make_book(publication_year=1990), make_book(publication_year=1850), make_book(publication_year=1965)]
    assert [b.publication_year for b in sorted(books, key=Book.compare_by_year)] == [1850, 1965, 1990]


def test_dict_round_trip_and_defaults():
    book = make_book(genre="Science Fiction")
    book.borrow()
    assert Book.from_dict(book.to_dict()) == book

    minimal = Book.from_dict({"isbn": "9780441013593"})
    assert minimal.title == "Unknown"
    assert minimal.author == "Unknown"
    assert minimal.publication_year == date.today().year
    assert minimal.total_copies == 1
