from __future__ import annotations

import copy as copy_module
import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Dict, Iterator, List, Optional

from ..errors import DuplicateEntry
from ..models import AdminAction, Book, BorrowRecord, Copy, CopyStatus, RecordStatus, Student
from .base import IntegrityViolation, LibraryStore, StoreSession


class _Tables:
    def __init__(self) -> None:
        self.books: Dict[str, Book] = {}
        self.copies: Dict[str, Copy] = {}
        self.students: Dict[str, Student] = {}
        self.records: Dict[str, BorrowRecord] = {}
        self.admin_actions: Dict[str, AdminAction] = {}


def _clone(obj):
    return copy_module.deepcopy(obj)


class MemorySession(StoreSession):
    """Session over the in-process tables. Objects handed out are copies."""

    def __init__(self, tables: _Tables) -> None:
        self.t = tables

    # students
    def get_student(self, student_id: str) -> Optional[Student]:
        s = self.t.students.get(student_id)
        return _clone(s) if s else None

    def list_students(self, blacklisted: Optional[bool] = None) -> List[Student]:
        items = [s for s in self.t.students.values() if blacklisted is None or s.blacklisted == blacklisted]
        return [_clone(s) for s in sorted(items, key=lambda s: s.name)]

    def insert_student(self, student: Student) -> None:
        if student.id in self.t.students:
            raise DuplicateEntry(f"Student {student.id} already exists.")
        if student.admission_number and any(
            s.admission_number == student.admission_number for s in self.t.students.values()
        ):
            raise DuplicateEntry(
                f"Student with admission number {student.admission_number} already exists."
            )
        self.t.students[student.id] = _clone(student)

    def update_student_blacklist(self, student: Student) -> None:
        stored = self.t.students.get(student.id)
        if stored is None:
            return
        stored.blacklisted = student.blacklisted
        stored.blacklist_until = student.blacklist_until
        stored.blacklist_reason = student.blacklist_reason
        stored.unblacklist_reason = student.unblacklist_reason
        stored.unblacklist_date = student.unblacklist_date
        stored.unblacklist_admin_id = student.unblacklist_admin_id
        stored.updated_at = student.updated_at

    # books and copies
    def get_book(self, book_id: str) -> Optional[Book]:
        b = self.t.books.get(book_id)
        return _clone(b) if b else None

    def list_books(self) -> List[Book]:
        return [_clone(b) for b in sorted(self.t.books.values(), key=lambda b: b.title)]

    def insert_book(self, book: Book) -> None:
        if book.id in self.t.books:
            raise DuplicateEntry(f"Book {book.id} already exists.")
        self.t.books[book.id] = _clone(book)

    def get_copy(self, copy_id: str) -> Optional[Copy]:
        c = self.t.copies.get(copy_id)
        return _clone(c) if c else None

    def get_copy_by_code(self, catalog_code: str) -> Optional[Copy]:
        for c in self.t.copies.values():
            if c.catalog_code == catalog_code:
                return _clone(c)
        return None

    def list_copies(self, book_id: Optional[str] = None, status: Optional[CopyStatus] = None) -> List[Copy]:
        items = [
            c
            for c in self.t.copies.values()
            if (book_id is None or c.book_id == book_id) and (status is None or c.status == status)
        ]
        return [_clone(c) for c in sorted(items, key=lambda c: c.catalog_code)]

    def insert_copy(self, copy: Copy) -> None:
        if copy.id in self.t.copies or any(
            c.catalog_code == copy.catalog_code for c in self.t.copies.values()
        ):
            raise DuplicateEntry(f"Copy with catalog code {copy.catalog_code} already exists.")
        self.t.copies[copy.id] = _clone(copy)

    def compare_and_set_copy_status(
        self, copy_id: str, expected: CopyStatus, new: CopyStatus, now: datetime
    ) -> bool:
        stored = self.t.copies.get(copy_id)
        if stored is None or stored.status != expected:
            return False
        stored.status = new
        stored.updated_at = now
        return True

    # records
    def get_record(self, record_id: str) -> Optional[BorrowRecord]:
        r = self.t.records.get(record_id)
        return _clone(r) if r else None

    def find_open_record_for_copy(self, copy_id: str) -> Optional[BorrowRecord]:
        for r in self.t.records.values():
            if r.copy_id == copy_id and r.is_open:
                return _clone(r)
        return None

    def list_records(
        self, status: Optional[RecordStatus] = None, student_id: Optional[str] = None
    ) -> List[BorrowRecord]:
        items = [
            r
            for r in self.t.records.values()
            if (status is None or r.status == status) and (student_id is None or r.student_id == student_id)
        ]
        return [_clone(r) for r in sorted(items, key=lambda r: r.borrow_date, reverse=True)]

    def count_past_due_borrowed(self, student_id: str, now: datetime) -> int:
        return sum(
            1
            for r in self.t.records.values()
            if r.student_id == student_id and r.status == RecordStatus.BORROWED and r.due_date < now
        )

    def insert_record(self, record: BorrowRecord) -> None:
        if record.is_open and any(
            r.copy_id == record.copy_id and r.is_open for r in self.t.records.values()
        ):
            raise IntegrityViolation(f"Copy {record.copy_id} already has an open borrow record.")
        self.t.records[record.id] = _clone(record)

    def mark_record_returned(self, record_id: str, when: datetime) -> None:
        stored = self.t.records.get(record_id)
        if stored is None:
            return
        stored.return_date = when
        stored.status = RecordStatus.RETURNED
        stored.updated_at = when

    def promote_overdue(self, cutoff: datetime, now: datetime) -> int:
        promoted = 0
        for r in self.t.records.values():
            if r.status == RecordStatus.BORROWED and r.due_date < cutoff:
                r.status = RecordStatus.OVERDUE
                r.updated_at = now
                promoted += 1
        return promoted

    # audit
    def insert_admin_action(self, action: AdminAction) -> None:
        self.t.admin_actions[action.id] = _clone(action)

    def list_admin_actions(self, limit: int = 100) -> List[AdminAction]:
        items = sorted(self.t.admin_actions.values(), key=lambda a: a.created_at, reverse=True)
        return [_clone(a) for a in items[:limit]]


class MemoryStore(LibraryStore):
    """Process-local backend for demos and tests.

    One lock serializes units of work; a snapshot taken at begin is put
    back when the unit raises.

    Every write unit deep-copies all tables, so its cost grows with the
    total row count. Use the sqlite backend for real catalogs.
    """

    name = "memory"

    def __init__(self) -> None:
        self._tables = _Tables()
        self._lock = threading.RLock()

    def initialize(self) -> None:
        return None

    @contextmanager
    def unit_of_work(self, write: bool = True) -> Iterator[MemorySession]:
        with self._lock:
            snapshot = _clone(self._tables) if write else None
            try:
                yield MemorySession(self._tables)
            except BaseException:
                if snapshot is not None:
                    # restore in place so sessions holding the tables see the rollback
                    self._tables.__dict__.update(snapshot.__dict__)
                raise
