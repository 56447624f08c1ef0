"""School Library - Services Package

Borrowing lifecycle and blacklist enforcement:
- Copy allocation
- Borrow/return transactions
- Overdue sweep and severity classification
- Blacklist reconciliation
- Admin action audit log
"""

from .allocator import CopyAllocator
from .audit import AuditLogWriter, AuditSink, NullAuditLogWriter
from .blacklist import BlacklistReconciler
from .borrowing import BorrowTransactionManager
from .overdue import OverdueSweeper, SeverityAssessment, SweepSummary, classify_severity

__all__ = [
    "AuditLogWriter",
    "AuditSink",
    "BlacklistReconciler",
    "BorrowTransactionManager",
    "CopyAllocator",
    "NullAuditLogWriter",
    "OverdueSweeper",
    "SeverityAssessment",
    "SweepSummary",
    "classify_severity",
]
