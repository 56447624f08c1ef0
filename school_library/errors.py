"""Request-rejection errors raised by the borrowing engine.

Every rejection derives from :class:`LibraryError` and carries a stable
``code`` plus the HTTP status the API layer answers with. Not-found errors
are also ``LookupError`` and input errors are also ``ValueError`` so callers
that only know the builtin hierarchy still catch them. Storage failures are
never wrapped in these classes.
"""

from __future__ import annotations

from typing import Any, Dict


class LibraryError(Exception):
    code = "library_error"
    http_status = 400

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"detail": self.message, "code": self.code}
        if self.context:
            payload["context"] = self.context
        return payload


class HasOverdueBooks(LibraryError):
    code = "has_overdue_books"


class StudentBlacklisted(LibraryError):
    code = "student_blacklisted"


class NoAvailableCopy(LibraryError):
    code = "no_available_copy"
    http_status = 409


class InvalidReason(LibraryError, ValueError):
    code = "invalid_reason"


class MissingAdmin(LibraryError, ValueError):
    code = "missing_admin"


class NotBlacklisted(LibraryError):
    code = "not_blacklisted"


class InvalidDuePeriod(LibraryError, ValueError):
    code = "invalid_due_period"
    http_status = 422


class InvalidInput(LibraryError, ValueError):
    code = "invalid_input"
    http_status = 422


class DuplicateEntry(LibraryError, ValueError):
    code = "duplicate"
    http_status = 409


class NotFound(LibraryError, LookupError):
    code = "not_found"
    http_status = 404


class StudentNotFound(NotFound):
    code = "student_not_found"


class BookNotFound(NotFound):
    code = "book_not_found"


class CopyNotFound(NotFound):
    code = "copy_not_found"


class RecordNotFound(NotFound):
    code = "record_not_found"
