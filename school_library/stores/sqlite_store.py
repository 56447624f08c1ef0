from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional

from .. import database
from ..errors import DuplicateEntry
from ..models import (
    AdminAction,
    Book,
    BorrowRecord,
    Copy,
    CopyStatus,
    RecordStatus,
    Student,
    to_iso,
)
from .base import LibraryStore, StoreSession


def _row_values(entity: Dict[str, Any], columns: List[str]) -> tuple:
    return tuple(entity.get(c) for c in columns)


_BOOK_COLUMNS = [
    "id", "title", "author", "category", "isbn",
    "due_period_value", "due_period_unit", "created_at", "updated_at",
]
_COPY_COLUMNS = ["id", "book_id", "catalog_code", "status", "created_at", "updated_at"]
_STUDENT_COLUMNS = [
    "id", "name", "admission_number", "student_class", "email", "phone",
    "blacklisted", "blacklist_until", "blacklist_reason",
    "unblacklist_reason", "unblacklist_date", "unblacklist_admin_id",
    "created_at", "updated_at",
]
_RECORD_COLUMNS = [
    "id", "copy_id", "student_id", "borrow_date", "due_date", "return_date", "status",
    "book_id", "book_title", "book_author", "catalog_code",
    "student_name", "student_admission_number", "student_class",
    "created_at", "updated_at",
]


def _insert_sql(table: str, columns: List[str]) -> str:
    placeholders = ", ".join("?" for _ in columns)
    return f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({placeholders})"


class SQLiteSession(StoreSession):
    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn

    # ------------------------------------------------------------ students
    def get_student(self, student_id: str) -> Optional[Student]:
        row = self.conn.execute("SELECT * FROM students WHERE id = ?", (student_id,)).fetchone()
        return Student.from_dict(dict(row)) if row else None

    def list_students(self, blacklisted: Optional[bool] = None) -> List[Student]:
        if blacklisted is None:
            rows = self.conn.execute("SELECT * FROM students ORDER BY name").fetchall()
        else:
            rows = self.conn.execute(
                "SELECT * FROM students WHERE blacklisted = ? ORDER BY name", (int(blacklisted),)
            ).fetchall()
        return [Student.from_dict(dict(r)) for r in rows]

    def insert_student(self, student: Student) -> None:
        data = student.to_dict()
        data["blacklisted"] = int(student.blacklisted)
        try:
            self.conn.execute(_insert_sql("students", _STUDENT_COLUMNS), _row_values(data, _STUDENT_COLUMNS))
        except sqlite3.IntegrityError as e:
            raise DuplicateEntry(
                f"Student with admission number {student.admission_number} already exists."
            ) from e

    def update_student_blacklist(self, student: Student) -> None:
        self.conn.execute(
            """
            UPDATE students
            SET blacklisted = ?, blacklist_until = ?, blacklist_reason = ?,
                unblacklist_reason = ?, unblacklist_date = ?, unblacklist_admin_id = ?,
                updated_at = ?
            WHERE id = ?
            """,
            (
                int(student.blacklisted),
                to_iso(student.blacklist_until),
                student.blacklist_reason,
                student.unblacklist_reason,
                to_iso(student.unblacklist_date),
                student.unblacklist_admin_id,
                to_iso(student.updated_at),
                student.id,
            ),
        )

    # ------------------------------------------------------------ books/copies
    def get_book(self, book_id: str) -> Optional[Book]:
        row = self.conn.execute("SELECT * FROM books WHERE id = ?", (book_id,)).fetchone()
        return Book.from_dict(dict(row)) if row else None

    def list_books(self) -> List[Book]:
        rows = self.conn.execute("SELECT * FROM books ORDER BY title").fetchall()
        return [Book.from_dict(dict(r)) for r in rows]

    def insert_book(self, book: Book) -> None:
        try:
            self.conn.execute(_insert_sql("books", _BOOK_COLUMNS), _row_values(book.to_dict(), _BOOK_COLUMNS))
        except sqlite3.IntegrityError as e:
            raise DuplicateEntry(f"Book {book.id} already exists.") from e

    def get_copy(self, copy_id: str) -> Optional[Copy]:
        row = self.conn.execute("SELECT * FROM book_copies WHERE id = ?", (copy_id,)).fetchone()
        return Copy.from_dict(dict(row)) if row else None

    def get_copy_by_code(self, catalog_code: str) -> Optional[Copy]:
        row = self.conn.execute(
            "SELECT * FROM book_copies WHERE catalog_code = ?", (catalog_code,)
        ).fetchone()
        return Copy.from_dict(dict(row)) if row else None

    def list_copies(self, book_id: Optional[str] = None, status: Optional[CopyStatus] = None) -> List[Copy]:
        query = "SELECT * FROM book_copies WHERE 1 = 1"
        params: List[Any] = []
        if book_id is not None:
            query += " AND book_id = ?"
            params.append(book_id)
        if status is not None:
            query += " AND status = ?"
            params.append(status.value)
        query += " ORDER BY catalog_code"
        return [Copy.from_dict(dict(r)) for r in self.conn.execute(query, params).fetchall()]

    def insert_copy(self, copy: Copy) -> None:
        try:
            self.conn.execute(_insert_sql("book_copies", _COPY_COLUMNS), _row_values(copy.to_dict(), _COPY_COLUMNS))
        except sqlite3.IntegrityError as e:
            raise DuplicateEntry(f"Copy with catalog code {copy.catalog_code} already exists.") from e

    def compare_and_set_copy_status(
        self, copy_id: str, expected: CopyStatus, new: CopyStatus, now: datetime
    ) -> bool:
        cursor = self.conn.execute(
            "UPDATE book_copies SET status = ?, updated_at = ? WHERE id = ? AND status = ?",
            (new.value, to_iso(now), copy_id, expected.value),
        )
        return cursor.rowcount == 1

    # ------------------------------------------------------------ records
    def get_record(self, record_id: str) -> Optional[BorrowRecord]:
        row = self.conn.execute("SELECT * FROM borrow_records WHERE id = ?", (record_id,)).fetchone()
        return BorrowRecord.from_dict(dict(row)) if row else None

    def find_open_record_for_copy(self, copy_id: str) -> Optional[BorrowRecord]:
        row = self.conn.execute(
            "SELECT * FROM borrow_records WHERE copy_id = ? AND status IN ('borrowed', 'overdue')",
            (copy_id,),
        ).fetchone()
        return BorrowRecord.from_dict(dict(row)) if row else None

    def list_records(
        self, status: Optional[RecordStatus] = None, student_id: Optional[str] = None
    ) -> List[BorrowRecord]:
        query = "SELECT * FROM borrow_records WHERE 1 = 1"
        params: List[Any] = []
        if status is not None:
            query += " AND status = ?"
            params.append(status.value)
        if student_id is not None:
            query += " AND student_id = ?"
            params.append(student_id)
        query += " ORDER BY borrow_date DESC"
        return [BorrowRecord.from_dict(dict(r)) for r in self.conn.execute(query, params).fetchall()]

    def count_past_due_borrowed(self, student_id: str, now: datetime) -> int:
        row = self.conn.execute(
            """
            SELECT COUNT(*) FROM borrow_records
            WHERE student_id = ? AND status = 'borrowed' AND due_date < ?
            """,
            (student_id, to_iso(now)),
        ).fetchone()
        return int(row[0])

    def insert_record(self, record: BorrowRecord) -> None:
        self.conn.execute(_insert_sql("borrow_records", _RECORD_COLUMNS), _row_values(record.to_dict(), _RECORD_COLUMNS))

    def mark_record_returned(self, record_id: str, when: datetime) -> None:
        self.conn.execute(
            "UPDATE borrow_records SET return_date = ?, status = 'returned', updated_at = ? WHERE id = ?",
            (to_iso(when), to_iso(when), record_id),
        )

    def promote_overdue(self, cutoff: datetime, now: datetime) -> int:
        cursor = self.conn.execute(
            """
            UPDATE borrow_records
            SET status = 'overdue', updated_at = ?
            WHERE status = 'borrowed' AND due_date < ?
            """,
            (to_iso(now), to_iso(cutoff)),
        )
        return cursor.rowcount

    # ------------------------------------------------------------ audit
    def insert_admin_action(self, action: AdminAction) -> None:
        self.conn.execute(
            """
            INSERT INTO admin_actions (id, admin_id, action_type, target_type, target_id, action_details, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                action.id,
                action.admin_id,
                action.action_type,
                action.target_type,
                action.target_id,
                json.dumps(action.details, ensure_ascii=False, default=str),
                to_iso(action.created_at),
            ),
        )

    def list_admin_actions(self, limit: int = 100) -> List[AdminAction]:
        rows = self.conn.execute(
            "SELECT * FROM admin_actions ORDER BY created_at DESC LIMIT ?", (limit,)
        ).fetchall()
        actions = []
        for row in rows:
            data = dict(row)
            details = data.pop("action_details", None)
            data["details"] = json.loads(details) if details else {}
            actions.append(AdminAction.from_dict(data))
        return actions


class SQLiteStore(LibraryStore):
    name = "sqlite"

    def __init__(self, db_file: Optional[str] = None) -> None:
        self.db_file = db_file or database.DATABASE_FILE

    def initialize(self) -> None:
        database.initialize_database(self.db_file)

    @contextmanager
    def unit_of_work(self, write: bool = True) -> Iterator[SQLiteSession]:
        with database.unit_of_work(self.db_file, write=write) as conn:
            yield SQLiteSession(conn)
