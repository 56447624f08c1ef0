import os
import sqlite3
from contextlib import contextmanager
from typing import Iterator, Optional

from dotenv import load_dotenv

# Load .env before reading LIBRARY_DB_FILE (database may be imported before config).
load_dotenv()

DATABASE_FILE = os.environ.get("LIBRARY_DB_FILE", "school_library.db")

SCHEMA = """
CREATE TABLE IF NOT EXISTS books (
    id TEXT PRIMARY KEY,
    title TEXT NOT NULL,
    author TEXT NOT NULL,
    category TEXT,
    isbn TEXT,
    due_period_value INTEGER NOT NULL DEFAULT 24,
    due_period_unit TEXT NOT NULL DEFAULT 'hours',
    created_at TEXT,
    updated_at TEXT
);

CREATE TABLE IF NOT EXISTS book_copies (
    id TEXT PRIMARY KEY,
    book_id TEXT NOT NULL,
    catalog_code TEXT NOT NULL UNIQUE,
    status TEXT NOT NULL DEFAULT 'available' CHECK (status IN ('available', 'borrowed')),
    created_at TEXT,
    updated_at TEXT,
    FOREIGN KEY (book_id) REFERENCES books(id)
);

CREATE TABLE IF NOT EXISTS students (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    admission_number TEXT UNIQUE,
    student_class TEXT,
    email TEXT,
    phone TEXT,
    blacklisted INTEGER NOT NULL DEFAULT 0,
    blacklist_until TEXT,
    blacklist_reason TEXT,
    unblacklist_reason TEXT,
    unblacklist_date TEXT,
    unblacklist_admin_id TEXT,
    created_at TEXT,
    updated_at TEXT
);

CREATE TABLE IF NOT EXISTS borrow_records (
    id TEXT PRIMARY KEY,
    copy_id TEXT NOT NULL,
    student_id TEXT NOT NULL,
    borrow_date TEXT NOT NULL,
    due_date TEXT NOT NULL,
    return_date TEXT,
    status TEXT NOT NULL DEFAULT 'borrowed' CHECK (status IN ('borrowed', 'overdue', 'returned')),
    book_id TEXT,
    book_title TEXT,
    book_author TEXT,
    catalog_code TEXT,
    student_name TEXT,
    student_admission_number TEXT,
    student_class TEXT,
    created_at TEXT,
    updated_at TEXT,
    FOREIGN KEY (copy_id) REFERENCES book_copies(id),
    FOREIGN KEY (student_id) REFERENCES students(id)
);

CREATE TABLE IF NOT EXISTS admin_actions (
    id TEXT PRIMARY KEY,
    admin_id TEXT NOT NULL,
    action_type TEXT NOT NULL,
    target_type TEXT NOT NULL,
    target_id TEXT NOT NULL,
    action_details TEXT,
    created_at TEXT
);

CREATE INDEX IF NOT EXISTS idx_copies_book_status ON book_copies(book_id, status);
CREATE INDEX IF NOT EXISTS idx_students_blacklisted ON students(blacklisted);
CREATE INDEX IF NOT EXISTS idx_borrow_student_status ON borrow_records(student_id, status);
CREATE INDEX IF NOT EXISTS idx_borrow_status_due ON borrow_records(status, due_date);
CREATE INDEX IF NOT EXISTS idx_borrow_borrow_date ON borrow_records(borrow_date);
CREATE INDEX IF NOT EXISTS idx_admin_actions_created_at ON admin_actions(created_at);

-- At most one open loan per physical copy.
CREATE UNIQUE INDEX IF NOT EXISTS idx_borrow_open_copy
    ON borrow_records(copy_id) WHERE status IN ('borrowed', 'overdue');
"""


def get_db_connection(db_file: Optional[str] = None) -> sqlite3.Connection:
    """Open a connection in autocommit mode; transactions are begun explicitly."""
    path = db_file or DATABASE_FILE
    conn = sqlite3.connect(path, timeout=30, isolation_level=None, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys=ON;")
    if path != ":memory:":
        # WAL lets readers proceed while a borrow holds the write lock
        conn.execute("PRAGMA journal_mode=WAL;")
        conn.execute("PRAGMA synchronous=NORMAL;")
    return conn


@contextmanager
def unit_of_work(db_file: Optional[str] = None, write: bool = True) -> Iterator[sqlite3.Connection]:
    """Run the enclosed statements as one transaction.

    Write units start with ``BEGIN IMMEDIATE`` so the writer lock is taken
    before anything is read; two borrows therefore never observe the same
    copy as available. Commits on normal exit, rolls back on any exception
    and re-raises it.
    """
    conn = get_db_connection(db_file)
    try:
        conn.execute("BEGIN IMMEDIATE" if write else "BEGIN")
        try:
            yield conn
        except BaseException:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise
        conn.execute("COMMIT")
    finally:
        conn.close()


def create_tables(db_file: Optional[str] = None) -> None:
    """Create the tables and indexes if they do not exist yet."""
    conn = get_db_connection(db_file)
    try:
        conn.executescript(SCHEMA)
    finally:
        conn.close()


def initialize_database(db_file: Optional[str] = None) -> None:
    create_tables(db_file)
