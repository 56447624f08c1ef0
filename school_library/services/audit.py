from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, Optional

from ..models import AdminAction, new_id, utcnow
from ..stores.base import LibraryStore

logger = logging.getLogger(__name__)


class AuditSink(ABC):
    """Destination for admin action entries."""

    @abstractmethod
    def record(
        self,
        admin_id: str,
        action_type: str,
        target_type: str,
        target_id: str,
        details: Optional[Dict[str, Any]] = None,
        now: Optional[datetime] = None,
    ) -> None: ...


class AuditLogWriter(AuditSink):
    """Appends AdminAction entries in their own transaction.

    Writes may fail; callers catch and log the failure so the action being
    audited still stands.
    """

    def __init__(self, store: LibraryStore) -> None:
        self.store = store

    def record(
        self,
        admin_id: str,
        action_type: str,
        target_type: str,
        target_id: str,
        details: Optional[Dict[str, Any]] = None,
        now: Optional[datetime] = None,
    ) -> None:
        action = AdminAction(
            id=new_id(),
            admin_id=admin_id,
            action_type=action_type,
            target_type=target_type,
            target_id=target_id,
            details=dict(details or {}),
            created_at=now or utcnow(),
        )
        with self.store.unit_of_work() as session:
            session.insert_admin_action(action)
        logger.info("Admin action logged: %s %s %s by %s", action_type, target_type, target_id, admin_id)


class NullAuditLogWriter(AuditSink):
    """Discards every entry."""

    def record(
        self,
        admin_id: str,
        action_type: str,
        target_type: str,
        target_id: str,
        details: Optional[Dict[str, Any]] = None,
        now: Optional[datetime] = None,
    ) -> None:
        return None
