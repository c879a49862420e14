from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Tuple

from lending_library.date_utils import days_between, parse_datetime


@dataclass
class Loan:
    """An active borrow relationship; identified by (user_email, isbn)."""
    user_email: str
    isbn: str
    borrow_date: datetime

    @property
    def key(self) -> Tuple[str, str]:
        return (self.user_email, self.isbn)

    def age_in_days(self, now: Optional[datetime] = None) -> float:
        return days_between(self.borrow_date, now or datetime.now())

    def is_overdue(self, days: float, now: Optional[datetime] = None) -> bool:
        """True when the loan is strictly older than ``days``."""
        return self.age_in_days(now) > days

    def to_dict(self) -> dict:
        return {
            "user_email": self.user_email,
            "isbn": self.isbn,
            "borrow_date": self.borrow_date.isoformat(),
        }

    @staticmethod
    def from_dict(data: dict) -> "Loan":
        return Loan(user_email=data["user_email"], isbn=data["isbn"],
                    borrow_date=parse_datetime(data["borrow_date"]))
