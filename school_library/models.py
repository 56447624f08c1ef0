"""Entities of the borrowing ledger.

Books own Copies; a BorrowRecord ties one Copy to one Student for one loan.
Records are never deleted. Datetimes are timezone-aware UTC throughout; the
storage backends serialize them as ISO-8601 strings.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


def to_iso(value: Optional[datetime]) -> Optional[str]:
    """Serialize a datetime as a fixed-width UTC ISO string (sortable as text)."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def parse_dt(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        dt = datetime.fromisoformat(str(value))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


class CopyStatus(str, Enum):
    AVAILABLE = "available"
    BORROWED = "borrowed"


class RecordStatus(str, Enum):
    BORROWED = "borrowed"
    OVERDUE = "overdue"
    RETURNED = "returned"

    @property
    def is_open(self) -> bool:
        return self in (RecordStatus.BORROWED, RecordStatus.OVERDUE)


class DueUnit(str, Enum):
    HOURS = "hours"
    DAYS = "days"
    WEEKS = "weeks"
    MONTHS = "months"
    YEARS = "years"

    @classmethod
    def parse(cls, raw: Any) -> Optional["DueUnit"]:
        """Return the unit for ``raw`` or None when it is missing/unknown."""
        if isinstance(raw, DueUnit):
            return raw
        if raw is None:
            return None
        try:
            return cls(str(raw).strip().lower())
        except ValueError:
            return None


class SeverityTier(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class _Entity:
    """to_dict/from_dict shared by the dataclasses below."""

    _datetime_fields: tuple = ()
    _enum_fields: Dict[str, type] = {}

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        for f in fields(self):  # type: ignore[arg-type]
            value = getattr(self, f.name)
            if isinstance(value, datetime):
                value = to_iso(value)
            elif isinstance(value, Enum):
                value = value.value
            out[f.name] = value
        return out

    @classmethod
    def from_dict(cls, data: Dict[str, Any]):
        known = {f.name for f in fields(cls)}  # type: ignore[arg-type]
        kwargs = {k: v for k, v in data.items() if k in known}
        for name in cls._datetime_fields:
            if name in kwargs:
                kwargs[name] = parse_dt(kwargs[name])
        for name, enum_type in cls._enum_fields.items():
            if kwargs.get(name) is not None:
                kwargs[name] = enum_type(kwargs[name])
        if "blacklisted" in kwargs:
            kwargs["blacklisted"] = bool(kwargs["blacklisted"])
        return cls(**kwargs)


@dataclass
class Book(_Entity):
    id: str
    title: str
    author: str
    category: Optional[str] = None
    isbn: Optional[str] = None
    due_period_value: int = 24
    due_period_unit: str = DueUnit.HOURS.value
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    _datetime_fields = ("created_at", "updated_at")


@dataclass
class Copy(_Entity):
    id: str
    book_id: str
    catalog_code: str
    status: CopyStatus = CopyStatus.AVAILABLE
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    _datetime_fields = ("created_at", "updated_at")
    _enum_fields = {"status": CopyStatus}


@dataclass
class Student(_Entity):
    id: str
    name: str
    admission_number: Optional[str] = None
    student_class: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    blacklisted: bool = False
    blacklist_until: Optional[datetime] = None
    blacklist_reason: Optional[str] = None
    unblacklist_reason: Optional[str] = None
    unblacklist_date: Optional[datetime] = None
    unblacklist_admin_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    _datetime_fields = ("blacklist_until", "unblacklist_date", "created_at", "updated_at")

    def is_blacklisted_at(self, now: datetime) -> bool:
        """True while the flag is set and the expiry is absent or still ahead."""
        if not self.blacklisted:
            return False
        return self.blacklist_until is None or self.blacklist_until > now

    def apply_blacklist(self, until: datetime, reason: str, now: datetime) -> None:
        self.blacklisted = True
        self.blacklist_until = until
        self.blacklist_reason = reason
        self.updated_at = now

    def clear_blacklist(self, reason: str, admin_id: Optional[str], now: datetime) -> None:
        # flag, expiry and reason always go together
        self.blacklisted = False
        self.blacklist_until = None
        self.blacklist_reason = None
        self.unblacklist_reason = reason
        self.unblacklist_date = now
        self.unblacklist_admin_id = admin_id
        self.updated_at = now


@dataclass
class BorrowRecord(_Entity):
    id: str
    copy_id: str
    student_id: str
    borrow_date: datetime
    due_date: datetime
    return_date: Optional[datetime] = None
    status: RecordStatus = RecordStatus.BORROWED
    # snapshot taken when the loan is created
    book_id: Optional[str] = None
    book_title: Optional[str] = None
    book_author: Optional[str] = None
    catalog_code: Optional[str] = None
    student_name: Optional[str] = None
    student_admission_number: Optional[str] = None
    student_class: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    _datetime_fields = ("borrow_date", "due_date", "return_date", "created_at", "updated_at")
    _enum_fields = {"status": RecordStatus}

    @property
    def is_open(self) -> bool:
        return self.status.is_open


@dataclass
class AdminAction(_Entity):
    id: str
    admin_id: str
    action_type: str
    target_type: str
    target_id: str
    details: Dict[str, Any] = field(default_factory=dict)
    created_at: Optional[datetime] = None

    _datetime_fields = ("created_at",)
