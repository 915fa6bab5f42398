"""
Read-side answer to "does this visitor have a pending deletion?".

The projection owns no state: every call reads the ledger directly. The
batch path exists for list views and degrades per visitor instead of
failing the whole call, because its consumer only greys out buttons.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from frontdesk.models.domain import DeletionRequest, EditRequest, Visitor
from frontdesk.models.enums import RequestStatus
from frontdesk.services.errors import NotFoundError

logger = logging.getLogger(__name__)


@dataclass
class DeletionStatus:
    has_pending_deletion: bool = False
    deletion_request: Optional[DeletionRequest] = None
    all_requests: List[DeletionRequest] = field(default_factory=list)

    @classmethod
    def for_request(cls, request: Optional[DeletionRequest]) -> "DeletionStatus":
        return cls(has_pending_deletion=request is not None, deletion_request=request)


class StatusProjection:
    """Pending-request lookups over the ledger tables."""

    def __init__(self, db: Session):
        self.db = db

    def pending_deletion(self, visitor_id: int) -> Optional[DeletionRequest]:
        return self.db.query(DeletionRequest).filter(
            DeletionRequest.visitor_id == visitor_id,
            DeletionRequest.status == RequestStatus.PENDING
        ).first()

    def pending_edit(self, visitor_id: int) -> Optional[EditRequest]:
        return self.db.query(EditRequest).filter(
            EditRequest.visitor_id == visitor_id,
            EditRequest.status == RequestStatus.PENDING
        ).first()

    def request_history(self, visitor_id: int) -> List[DeletionRequest]:
        """All deletion requests ever filed for the visitor, newest first."""
        return self.db.query(DeletionRequest).filter(
            DeletionRequest.visitor_id == visitor_id
        ).order_by(DeletionRequest.created_at.desc(), DeletionRequest.id.desc()).all()

    def get_status(self, visitor_id: int) -> DeletionStatus:
        """
        Status of a single visitor.

        Raises NotFoundError if the visitor does not exist. Soft-deleted
        visitors still resolve.
        """
        exists = self.db.query(Visitor.id).filter(Visitor.id == visitor_id).first()
        if not exists:
            raise NotFoundError(f"Visitor {visitor_id} not found")

        history = self.request_history(visitor_id)
        pending = next((r for r in history if r.status == RequestStatus.PENDING), None)
        return DeletionStatus(
            has_pending_deletion=pending is not None,
            deletion_request=pending,
            all_requests=history
        )

    def get_status_batch(self, visitor_ids: Iterable[int]) -> Dict[int, DeletionStatus]:
        """
        Status for many visitors at once.

        One query answers the whole batch. If it fails, each visitor is looked
        up on its own and any visitor whose lookup also fails is reported as
        having no pending deletion. Unknown ids are reported the same way.
        The result is a snapshot keyed by visitor id, with no ordering.
        """
        ids = list(dict.fromkeys(visitor_ids))

        try:
            pending = self._pending_deletions_for(ids)
        except Exception:
            logger.warning(
                "Batched deletion status query failed; checking %d visitors individually",
                len(ids),
                exc_info=True
            )
            self.db.rollback()
            return {visitor_id: self._status_or_default(visitor_id) for visitor_id in ids}

        return {visitor_id: DeletionStatus.for_request(pending.get(visitor_id)) for visitor_id in ids}

    def _pending_deletions_for(self, visitor_ids: List[int]) -> Dict[int, DeletionRequest]:
        if not visitor_ids:
            return {}
        rows = self.db.query(DeletionRequest).filter(
            DeletionRequest.visitor_id.in_(visitor_ids),
            DeletionRequest.status == RequestStatus.PENDING
        ).all()
        return {row.visitor_id: row for row in rows}

    def _status_or_default(self, visitor_id: int) -> DeletionStatus:
        try:
            return DeletionStatus.for_request(self.pending_deletion(visitor_id))
        except Exception:
            logger.warning(
                "Deletion status lookup failed for visitor %s; reporting no pending deletion",
                visitor_id,
                exc_info=True
            )
            self.db.rollback()
            return DeletionStatus()
