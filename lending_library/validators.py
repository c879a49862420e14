import re
from datetime import date
from typing import Any, Optional

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_ISBN13_RE = re.compile(r"[0-9]{13}")


class Validator:
    """Format and range checks for book and member fields.

    The Library only enforces presence and uniqueness of ISBN and email;
    callers run these checks before add/register when they want format
    validation as well.
    """

    @staticmethod
    def normalize_isbn(raw: Optional[str]) -> str:
        if raw is None:
            return ""
        return re.sub(r"[^0-9Xx]", "", str(raw)).upper()

    @staticmethod
    def is_valid_isbn(isbn: Any) -> bool:
        if isbn is None:
            return False
        return bool(_ISBN13_RE.fullmatch(str(isbn)))

    @staticmethod
    def is_valid_email(email: Any) -> bool:
        if not isinstance(email, str):
            return False
        return bool(_EMAIL_RE.match(email))

    @staticmethod
    def is_valid_year(year: Any) -> bool:
        # bool is an int subclass but never a year
        if isinstance(year, bool) or not isinstance(year, int):
            return False
        return 1000 < year <= date.today().year

    @staticmethod
    def is_valid_page_count(pages: Any) -> bool:
        if isinstance(pages, bool) or not isinstance(pages, (int, float)):
            return False
        return pages > 0


is_valid_isbn = Validator.is_valid_isbn
is_valid_email = Validator.is_valid_email
is_valid_year = Validator.is_valid_year
is_valid_page_count = Validator.is_valid_page_count
normalize_isbn = Validator.normalize_isbn
