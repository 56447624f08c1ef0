from __future__ import annotations

import logging
from datetime import datetime

from ..errors import CopyNotFound, NoAvailableCopy
from ..models import Copy, CopyStatus
from ..stores.base import StoreSession

logger = logging.getLogger(__name__)


class CopyAllocator:
    """Claims and frees physical copies inside the caller's unit of work.

    The copy status is the only allocation signal. Claiming is a
    compare-and-set from ``available`` to ``borrowed``; the caller's
    transaction makes it atomic with the borrow record insert.
    """

    def allocate(self, session: StoreSession, book_id: str, now: datetime) -> Copy:
        """Claim any available copy of ``book_id``."""
        for candidate in session.list_copies(book_id=book_id, status=CopyStatus.AVAILABLE):
            if session.compare_and_set_copy_status(candidate.id, CopyStatus.AVAILABLE, CopyStatus.BORROWED, now):
                candidate.status = CopyStatus.BORROWED
                candidate.updated_at = now
                return candidate
        raise NoAvailableCopy(f"No available copy of book {book_id}.", book_id=book_id)

    def allocate_copy(self, session: StoreSession, copy_id: str, now: datetime) -> Copy:
        """Claim one specific copy, e.g. the one scanned at the desk."""
        copy = session.get_copy(copy_id)
        if copy is None:
            raise CopyNotFound(f"Book copy {copy_id} not found.", copy_id=copy_id)
        if not session.compare_and_set_copy_status(copy_id, CopyStatus.AVAILABLE, CopyStatus.BORROWED, now):
            raise NoAvailableCopy(
                f"Book copy {copy.catalog_code} is not available for borrowing.", copy_id=copy_id
            )
        copy.status = CopyStatus.BORROWED
        copy.updated_at = now
        return copy

    def release(self, session: StoreSession, copy_id: str, now: datetime) -> bool:
        """Mark the copy available again. Already-available copies are left alone."""
        released = session.compare_and_set_copy_status(copy_id, CopyStatus.BORROWED, CopyStatus.AVAILABLE, now)
        if not released:
            logger.debug("Copy %s was not borrowed; release is a no-op", copy_id)
        return released
