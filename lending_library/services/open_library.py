"""Book metadata lookup against the Open Library books API."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from lending_library.config import settings
from lending_library.errors import ExternalServiceError
from lending_library.services.http_client import HTTPClient

logger = logging.getLogger(__name__)


@dataclass
class BookMetadata:
    """Bibliographic data returned by a remote source."""
    isbn: str
    title: str
    authors: List[str] = field(default_factory=list)
    publication_year: Optional[int] = None
    subjects: List[str] = field(default_factory=list)

    def to_book_data(self) -> Dict[str, Any]:
        """Shape accepted by ``Library.add_book``; absent fields fall back to its defaults."""
        return {
            "isbn": self.isbn,
            "title": self.title,
            "author": ", ".join(self.authors) if self.authors else None,
            "publication_year": self.publication_year,
            "genre": self.subjects[0] if self.subjects else None,
        }


class OpenLibraryClient:
    def __init__(self, http_client: Optional[HTTPClient] = None, base_url: Optional[str] = None,
                 retries: int = 3, backoff: float = 0.5) -> None:
        self._http = http_client or HTTPClient(timeout=settings.openlibrary_timeout)
        self.base_url = (base_url or settings.openlibrary_base_url).rstrip("/")
        self.retries = retries
        self.backoff = backoff

    async def fetch_book(self, isbn: str) -> Optional[BookMetadata]:
        """Return metadata for ``isbn`` or None when Open Library does not know it."""
        url = f"{self.base_url}/api/books"
        params = {"bibkeys": f"ISBN:{isbn}", "format": "json", "jscmd": "data"}
        try:
            resp = await self._http.get_with_retry(url, retries=self.retries, backoff=self.backoff, params=params)
        except httpx.RequestError as exc:
            raise ExternalServiceError("OpenLibraryUnreachable", "Open Library unreachable") from exc

        if resp.status_code != 200:
            logger.warning(f"Open Library returned {resp.status_code} for ISBN {isbn}")
            return None
        book_json = resp.json().get(f"ISBN:{isbn}")
        if not book_json or not book_json.get("title"):
            return None

        authors: List[str] = []
        for item in book_json.get("authors", []) or []:
            if not isinstance(item, dict):
                continue
            if item.get("name"):
                authors.append(item["name"])
            elif item.get("key"):
                name = await self._fetch_author_name(item["key"])
                if name:
                    authors.append(name)

        return BookMetadata(
            isbn=isbn,
            title=book_json["title"],
            authors=authors,
            publication_year=self._parse_year(book_json.get("publish_date")),
            subjects=[s["name"] for s in book_json.get("subjects", [])[:10] if isinstance(s, dict) and s.get("name")],
        )

    async def _fetch_author_name(self, author_key: str) -> Optional[str]:
        try:
            resp = await self._http.get_with_retry(f"{self.base_url}{author_key}.json",
                                                   retries=self.retries, backoff=self.backoff)
        except httpx.RequestError:
            return None
        if resp.status_code == 200:
            return resp.json().get("name")
        return None

    @staticmethod
    def _parse_year(publish_date: Any) -> Optional[int]:
        match = re.search(r"\d{4}", str(publish_date or ""))
        return int(match.group()) if match else None

    async def close(self) -> None:
        await self._http.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
