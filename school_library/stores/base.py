"""Storage interface shared by the SQLite and in-memory backends.

Services never talk to a backend directly: they open a unit of work and use
the :class:`StoreSession` it yields. Everything done through one session
commits or rolls back together.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from datetime import datetime
from typing import List, Optional

from ..models import AdminAction, Book, BorrowRecord, Copy, CopyStatus, RecordStatus, Student


class IntegrityViolation(RuntimeError):
    """A write would break a storage-level uniqueness rule."""


class StoreSession(ABC):
    # --- students
    @abstractmethod
    def get_student(self, student_id: str) -> Optional[Student]: ...

    @abstractmethod
    def list_students(self, blacklisted: Optional[bool] = None) -> List[Student]: ...

    @abstractmethod
    def insert_student(self, student: Student) -> None: ...

    @abstractmethod
    def update_student_blacklist(self, student: Student) -> None:
        """Persist the blacklist and unblacklist fields of ``student``."""

    # --- books and copies
    @abstractmethod
    def get_book(self, book_id: str) -> Optional[Book]: ...

    @abstractmethod
    def list_books(self) -> List[Book]: ...

    @abstractmethod
    def insert_book(self, book: Book) -> None: ...

    @abstractmethod
    def get_copy(self, copy_id: str) -> Optional[Copy]: ...

    @abstractmethod
    def get_copy_by_code(self, catalog_code: str) -> Optional[Copy]: ...

    @abstractmethod
    def list_copies(self, book_id: Optional[str] = None, status: Optional[CopyStatus] = None) -> List[Copy]: ...

    @abstractmethod
    def insert_copy(self, copy: Copy) -> None: ...

    @abstractmethod
    def compare_and_set_copy_status(
        self, copy_id: str, expected: CopyStatus, new: CopyStatus, now: datetime
    ) -> bool:
        """Set the status only if it currently equals ``expected``; report success."""

    # --- borrow records
    @abstractmethod
    def get_record(self, record_id: str) -> Optional[BorrowRecord]: ...

    @abstractmethod
    def find_open_record_for_copy(self, copy_id: str) -> Optional[BorrowRecord]: ...

    @abstractmethod
    def list_records(
        self, status: Optional[RecordStatus] = None, student_id: Optional[str] = None
    ) -> List[BorrowRecord]:
        """Records newest first, optionally filtered."""

    @abstractmethod
    def count_past_due_borrowed(self, student_id: str, now: datetime) -> int:
        """Records of the student still ``borrowed`` whose due date is before ``now``."""

    @abstractmethod
    def insert_record(self, record: BorrowRecord) -> None: ...

    @abstractmethod
    def mark_record_returned(self, record_id: str, when: datetime) -> None: ...

    @abstractmethod
    def promote_overdue(self, cutoff: datetime, now: datetime) -> int:
        """Move ``borrowed`` records due before ``cutoff`` to ``overdue``; return how many."""

    # --- audit
    @abstractmethod
    def insert_admin_action(self, action: AdminAction) -> None: ...

    @abstractmethod
    def list_admin_actions(self, limit: int = 100) -> List[AdminAction]: ...


class LibraryStore(ABC):
    """A transactional backend. Chosen once at startup by ``create_store``."""

    name = "base"

    @abstractmethod
    def initialize(self) -> None: ...

    @abstractmethod
    def unit_of_work(self, write: bool = True) -> AbstractContextManager:
        """Context manager yielding a :class:`StoreSession` bound to one transaction."""

    def close(self) -> None:
        return None
