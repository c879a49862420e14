"""Error taxonomy shared by the entities, the Library and the services.

Every error carries a short machine readable ``code`` (for example
``NoCopiesAvailable``) next to its human readable message, so callers can
branch on the code without parsing text.
"""

from __future__ import annotations

from typing import Dict, Optional


class LibraryError(Exception):
    """Base class for all lending library errors."""

    default_code = "LibraryError"

    def __init__(self, code: Optional[str] = None, message: Optional[str] = None) -> None:
        self.code = code or self.default_code
        self.message = message or self.code
        super().__init__(self.message)

    def __str__(self) -> str:
        return self.message


class ValidationError(LibraryError):
    """A required field is missing or malformed."""

    default_code = "InvalidData"


class ConflictError(LibraryError):
    """The operation would create a duplicate (ISBN, email or loan)."""

    default_code = "Conflict"


class NotFoundError(LibraryError):
    """Unknown ISBN, email or loan pair."""

    default_code = "NotFound"


class InvariantViolation(LibraryError):
    """The mutation would break an entity invariant."""

    default_code = "InvariantViolation"


class DeadlineExceeded(LibraryError):
    """A timed operation lost the race against its deadline."""

    default_code = "DeadlineExceeded"

    def __init__(self, label: str, timeout_ms: Optional[float] = None) -> None:
        self.label = label
        self.timeout_ms = timeout_ms
        detail = f" after {timeout_ms:g} ms" if timeout_ms is not None else ""
        super().__init__(self.default_code, f"{label} timed out{detail}")


class ExternalServiceError(LibraryError):
    """A remote metadata service could not be reached."""

    default_code = "ExternalServiceError"


class AllSourcesFailed(LibraryError):
    """No source of a first-success race produced a result."""

    default_code = "AllSourcesFailed"

    def __init__(self, errors: Dict[str, BaseException]) -> None:
        self.errors = errors
        names = ", ".join(errors) or "none"
        super().__init__(self.default_code, f"All sources failed: {names}")
