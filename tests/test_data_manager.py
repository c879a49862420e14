import asyncio
import json
import time

import pytest

from lending_library.errors import DeadlineExceeded
from lending_library.library import Library
from lending_library.services.data_manager import DataManager


def test_save_and_load_round_trip(stocked_lib, data_dir):
    stocked_lib.borrow_book("jane@example.com", "9780141439518")
    manager = DataManager(data_dir)

    result = manager.save_library(stocked_lib)
    assert (result.books_count, result.users_count, result.loans_count) == (2, 2, 1)
    assert sorted(p.name for p in data_dir.iterdir()) == ["books.json", "loans.json", "users.json"]

    restored = Library("Restored", 5)
    restored.load_snapshot(manager.load_library())
    assert restored.snapshot() == stocked_lib.snapshot()


def test_load_missing_and_corrupt_files(data_dir):
    manager = DataManager(data_dir)
    assert manager.load_library() == {"books": [], "users": [], "loans": []}

    data_dir.mkdir()
    manager.path_for("books").write_text("{not json", encoding="utf-8")
    manager.path_for("users").write_text(json.dumps({"email": "a@b.com"}), encoding="utf-8")
    manager.path_for("loans").write_text("[]", encoding="utf-8")
    assert manager.load_library() == {"books": [], "users": [], "loans": []}


def test_clear_all_data(stocked_lib, data_dir):
    manager = DataManager(data_dir)
    assert manager.clear_all_data() == 0

    manager.save_library(stocked_lib)
    (data_dir / "notes.txt").write_text("keep me", encoding="utf-8")
    assert manager.clear_all_data() == 3
    assert [p.name for p in data_dir.iterdir()] == ["notes.txt"]


def test_save_with_timeout_returns_counts(stocked_lib, data_dir):
    result = asyncio.run(stocked_lib.save_with_timeout(DataManager(data_dir), timeout_ms=5000))
    assert result.books_count == 2
    assert (data_dir / "books.json").exists()


class SlowDataManager(DataManager):
    def save_library(self, library):
        time.sleep(0.2)
        return super().save_library(library)


def test_slow_save_times_out_but_still_writes(stocked_lib, data_dir):
    manager = SlowDataManager(data_dir)

    async def scenario():
        with pytest.raises(DeadlineExceeded) as exc:
            await stocked_lib.save_with_timeout(manager, timeout_ms=50)
        assert exc.value.label == "saveLibrary"
        assert not (data_dir / "books.json").exists()
        await asyncio.sleep(0.5)

    asyncio.run(scenario())
    assert len(json.loads((data_dir / "books.json").read_text(encoding="utf-8"))) == 2
