import pytest

from lending_library.config import settings
from lending_library.library import Library
from lending_library.ui_helpers import OUTPUT_MODE_ENV


@pytest.fixture(autouse=True)
def offline_plain_output(monkeypatch):
    # Tests never reach the real Open Library and always start in plain output mode
    monkeypatch.setattr(settings, "enable_remote_lookup", False)
    monkeypatch.setenv(OUTPUT_MODE_ENV, "plain")


@pytest.fixture
def data_dir(tmp_path):
    return tmp_path / "data"


@pytest.fixture
def lib():
    return Library("Test Library", 5)


@pytest.fixture
def stocked_lib(lib):
    lib.add_book({"isbn": "9780141439518", "title": "Pride and Prejudice", "author": "Jane Austen",
                  "publication_year": 1813, "total_copies": 2, "genre": "Romance"})
    lib.add_book({"isbn": "9780451524935", "title": "1984", "author": "George Orwell",
                  "publication_year": 1949, "total_copies": 1, "genre": "Dystopia"})
    lib.register_user({"email": "jane@example.com", "name": "Jane"})
    lib.register_user({"email": "john@example.com", "name": "John"})
    return lib
