from __future__ import annotations

from datetime import date
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


def _drop_none(data: Any) -> Any:
    # None means "not supplied" so the field default applies
    if isinstance(data, dict):
        return {k: v for k, v in data.items() if v is not None}
    return data


class BookIn(BaseModel):
    """Payload accepted by ``Library.add_book`` and the bulk import."""

    isbn: Optional[str] = None
    title: str = "Unknown"
    author: str = "Unknown"
    publication_year: int = Field(default_factory=lambda: date.today().year)
    total_copies: int = 1
    borrowed_copies: int = 0
    genre: str = "General"

    @model_validator(mode="before")
    @classmethod
    def defaults_for_missing(cls, data: Any) -> Any:
        return _drop_none(data)

    @field_validator("isbn", mode="before")
    @classmethod
    def isbn_as_text(cls, value: Any) -> Any:
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value


class UserIn(BaseModel):
    """Payload accepted by ``Library.register_user`` and the bulk import."""

    email: Optional[str] = None
    name: str = "Anonymous"

    @model_validator(mode="before")
    @classmethod
    def defaults_for_missing(cls, data: Any) -> Any:
        return _drop_none(data)


class BookUpdate(BaseModel):
    """Fields accepted by ``Library.update_book``; unset fields are left unchanged."""

    model_config = ConfigDict(strict=True)

    title: Optional[str] = None
    author: Optional[str] = None
    genre: Optional[str] = None
    publication_year: Optional[int] = None
    total_copies: Optional[int] = None


class UserUpdate(BaseModel):
    model_config = ConfigDict(strict=True)

    name: Optional[str] = None
    email: Optional[str] = None


class ImportFile(BaseModel):
    """Top-level shape of a JSON file handed to the CLI ``import`` command."""

    books: List[Dict[str, Any]] = Field(default_factory=list)
    users: List[Dict[str, Any]] = Field(default_factory=list)
