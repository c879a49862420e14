"""JSON snapshot storage for the library.

The three collections (books, users, loans) live in independent files under a
data folder. Each file is written atomically on its own, but there is no
transaction across the three: a crash between writes can leave them mutually
inconsistent.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Dict, List, Optional, Union

from lending_library.config import settings

if TYPE_CHECKING:
    from lending_library.library import Library

logger = logging.getLogger(__name__)

COLLECTIONS = ("books", "users", "loans")


@dataclass
class SaveResult:
    books_count: int
    users_count: int
    loans_count: int


def _load_json(path: Path) -> List[dict]:
    """Load a JSON array from ``path``; missing, corrupt or non-array files yield []."""
    if not path.exists():
        return []
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.warning(f"Could not read {path}: {e}")
        return []
    if not isinstance(data, list):
        logger.warning(f"Ignoring {path}: expected a JSON array")
        return []
    return data


def _save_json(path: Path, data: object) -> None:
    """Write data as JSON to the given file atomically."""
    tmp_path = path.with_suffix(".tmp")
    with open(tmp_path, "w", encoding="utf-8") as f:
        json.dump(data, f, ensure_ascii=False, indent=2)
    os.replace(tmp_path, path)


class DataManager:
    def __init__(self, data_folder: Optional[Union[str, Path]] = None) -> None:
        self.data_folder = Path(data_folder or settings.data_dir)

    def path_for(self, collection: str) -> Path:
        return self.data_folder / f"{collection}.json"

    def save_library(self, library: "Library") -> SaveResult:
        snapshot = library.snapshot()
        try:
            self.data_folder.mkdir(parents=True, exist_ok=True)
            for collection in COLLECTIONS:
                _save_json(self.path_for(collection), snapshot[collection])
        except Exception:
            logger.exception(f"Error while saving library to {self.data_folder}")
            raise
        result = SaveResult(
            books_count=len(snapshot["books"]),
            users_count=len(snapshot["users"]),
            loans_count=len(snapshot["loans"]),
        )
        logger.info(f"Saved {result.books_count} books, {result.users_count} users, "
                    f"{result.loans_count} loans to {self.data_folder}")
        return result

    def load_library(self) -> Dict[str, List[dict]]:
        return {collection: _load_json(self.path_for(collection)) for collection in COLLECTIONS}

    def clear_all_data(self) -> int:
        """Delete every ``.json`` file in the data folder and return how many were removed."""
        if not self.data_folder.is_dir():
            return 0
        removed = 0
        try:
            for path in self.data_folder.glob("*.json"):
                path.unlink()
                removed += 1
        except OSError as e:
            logger.error(f"Error clearing data in {self.data_folder}: {e}")
        return removed
