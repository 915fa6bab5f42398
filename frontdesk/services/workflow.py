"""
Approval workflow for visitor edit and deletion requests.

This is the core enforcement mechanism - every request transition MUST go
through here. A request moves pending -> approved or pending -> rejected
exactly once, and approval applies its side effect in the same transaction
as the state change.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from frontdesk.config import settings
from frontdesk.models.audit import AuditEventType, record_event
from frontdesk.models.domain import DeletionRequest, EditHistoryEntry, EditRequest, Visitor
from frontdesk.models.enums import RequestStatus, RequestType
from frontdesk.services.actor import Actor, can_delete_directly
from frontdesk.services.errors import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from frontdesk.services.fields import apply_fields, diff_fields, normalize_fields, snapshot
from frontdesk.services.status import StatusProjection

logger = logging.getLogger(__name__)

REQUEST_MODELS = {
    RequestType.DELETION: DeletionRequest,
    RequestType.EDIT: EditRequest,
}

VISITOR_DELETED_NOTE = "Visitor record was deleted"


@dataclass
class DeleteOutcome:
    """Result of a delete call: either the record is gone or a request was filed."""
    visitor: Visitor
    deletion_request: Optional[DeletionRequest] = None

    @property
    def deleted(self) -> bool:
        return self.deletion_request is None


class ApprovalWorkflow:
    """Creates, approves and rejects change requests against visitor records."""

    def __init__(self, db: Session):
        self.db = db
        self.status = StatusProjection(db)

    # ------------------------------------------------------------------
    # Ledger: filing requests
    # ------------------------------------------------------------------

    def create_deletion_request(self, visitor_id: int, actor: Actor, reason: Optional[str]) -> DeletionRequest:
        """
        File a pending deletion request.

        Refusals:
        - ValidationError if the reason is blank or too short
        - NotFoundError if the visitor does not exist
        - ConflictError if the visitor is already deleted or already has a
          pending deletion request
        """
        reason = self._validate_reason(reason)
        visitor = self._get_visitor(visitor_id)

        if visitor.is_deleted:
            raise ConflictError(f"Visitor {visitor_id} is already deleted")
        if self.status.pending_deletion(visitor.id):
            raise ConflictError(f"There is already a pending deletion request for visitor {visitor_id}")

        request = DeletionRequest(
            visitor_id=visitor.id,
            requested_by_user_id=actor.id,
            requested_by_name=actor.name,
            requested_by_role=actor.role.value,
            reason=reason,
            status=RequestStatus.PENDING
        )
        self._insert_pending(request, RequestType.DELETION, visitor)

        record_event(
            self.db,
            AuditEventType.DELETION_REQUEST_CREATED,
            "DeletionRequest",
            request.id,
            user_id=actor.id,
            payload={"visitor_id": visitor.id, "visitor_name": visitor.full_name, "reason": reason}
        )
        self.db.commit()
        self.db.refresh(request)

        logger.info("Deletion request %s filed for visitor %s by user %s", request.id, visitor.id, actor.id)
        return request

    def create_edit_request(
        self,
        visitor_id: int,
        actor: Actor,
        reason: Optional[str],
        proposed_fields: Mapping[str, Any]
    ) -> EditRequest:
        """
        File a pending edit request.

        Refusals:
        - ValidationError for a bad reason, unknown fields, or a proposal that
          changes nothing
        - NotFoundError if the visitor does not exist
        - ConflictError if the visitor is deleted, has a pending deletion
          request, or already has a pending edit request
        """
        reason = self._validate_reason(reason)
        proposed = normalize_fields(proposed_fields)
        visitor = self._get_visitor(visitor_id)

        if visitor.is_deleted:
            raise ConflictError(f"Visitor {visitor_id} is deleted and can no longer be edited")
        if self.status.pending_deletion(visitor.id):
            raise ConflictError(
                f"Visitor {visitor_id} has a pending deletion request; edits are blocked until it is resolved"
            )
        if self.status.pending_edit(visitor.id):
            raise ConflictError(f"There is already a pending edit request for visitor {visitor_id}")

        changes, _ = diff_fields(visitor, proposed)
        if not changes:
            raise ValidationError("Proposed values match the current record")

        request = EditRequest(
            visitor_id=visitor.id,
            requested_by_user_id=actor.id,
            requested_by_name=actor.name,
            requested_by_role=actor.role.value,
            reason=reason,
            proposed_data=proposed,
            original_data=snapshot(visitor, proposed),
            status=RequestStatus.PENDING
        )
        self._insert_pending(request, RequestType.EDIT, visitor)

        record_event(
            self.db,
            AuditEventType.EDIT_REQUEST_CREATED,
            "EditRequest",
            request.id,
            user_id=actor.id,
            payload={"visitor_id": visitor.id, "fields": sorted(proposed), "reason": reason}
        )
        self.db.commit()
        self.db.refresh(request)

        logger.info("Edit request %s filed for visitor %s by user %s", request.id, visitor.id, actor.id)
        return request

    # ------------------------------------------------------------------
    # Engine: resolving requests
    # ------------------------------------------------------------------

    def approve(self, request_type: RequestType, request_id: int, actor: Actor) -> Visitor:
        if request_type == RequestType.DELETION:
            return self.approve_deletion(request_id, actor)
        return self.approve_edit(request_id, actor)

    def approve_deletion(self, request_id: int, actor: Actor) -> Visitor:
        """
        Approve a deletion request and soft-delete its visitor.

        The visitor's deleted_at, the request's terminal state and the closing
        of any pending edit request on the same visitor commit together or not
        at all.
        """
        self._require_admin(actor)
        request = self._load_pending(DeletionRequest, request_id)
        visitor = request.visitor

        if visitor.is_deleted:
            raise InvalidStateError(
                f"Visitor {visitor.id} is already deleted; deletion request {request_id} cannot be applied"
            )

        try:
            now = self._claim(DeletionRequest, request_id, actor, RequestStatus.APPROVED)

            visitor.deleted_at = now
            visitor.deleted_by_user_id = actor.id
            visitor.updated_at = now
            closed = self._close_pending(EditRequest, visitor.id, actor, VISITOR_DELETED_NOTE)

            record_event(
                self.db,
                AuditEventType.DELETION_REQUEST_APPROVED,
                "DeletionRequest",
                request_id,
                user_id=actor.id,
                payload={
                    "visitor_id": visitor.id,
                    "visitor_name": visitor.full_name,
                    "closed_edit_requests": closed
                }
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(visitor)
        logger.info("Deletion request %s approved by user %s; visitor %s deleted", request_id, actor.id, visitor.id)
        return visitor

    def approve_edit(self, request_id: int, actor: Actor) -> Visitor:
        """
        Approve an edit request and write the proposed values onto the visitor.

        History records only the fields whose value differs at approval time;
        if nothing differs no history entry is written.
        """
        self._require_admin(actor)
        request = self._load_pending(EditRequest, request_id)
        visitor = request.visitor

        if visitor.is_deleted:
            raise InvalidStateError(f"Visitor {visitor.id} has been deleted; edit request {request_id} cannot be applied")

        try:
            now = self._claim(EditRequest, request_id, actor, RequestStatus.APPROVED)

            changes, original = diff_fields(visitor, request.proposed_data)
            if changes:
                apply_fields(visitor, changes)
                visitor.updated_at = now
                self.db.add(EditHistoryEntry(
                    visitor_id=visitor.id,
                    edit_request_id=request_id,
                    user_id=request.requested_by_user_id,
                    user_name=request.requested_by_name,
                    user_role=request.requested_by_role,
                    changes=changes,
                    original=original,
                    timestamp=now
                ))

            record_event(
                self.db,
                AuditEventType.EDIT_REQUEST_APPROVED,
                "EditRequest",
                request_id,
                user_id=actor.id,
                payload={"visitor_id": visitor.id, "changed_fields": sorted(changes)}
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(visitor)
        logger.info("Edit request %s approved by user %s; visitor %s updated", request_id, actor.id, visitor.id)
        return visitor

    def reject(
        self,
        request_type: RequestType,
        request_id: int,
        actor: Actor,
        rejection_reason: Optional[str] = None
    ):
        """Reject a pending request. The visitor record is not touched."""
        self._require_admin(actor)
        rejection_reason = self._validate_rejection_reason(rejection_reason)

        model = REQUEST_MODELS[request_type]
        request = self._load_pending(model, request_id)

        try:
            self._claim(model, request_id, actor, RequestStatus.REJECTED, rejection_reason=rejection_reason)
            event_type = (
                AuditEventType.DELETION_REQUEST_REJECTED
                if request_type == RequestType.DELETION
                else AuditEventType.EDIT_REQUEST_REJECTED
            )
            record_event(
                self.db,
                event_type,
                model.__name__,
                request_id,
                user_id=actor.id,
                payload={
                    "visitor_id": request.visitor_id,
                    "rejection_reason": rejection_reason,
                    "rejected_by": actor.name,
                    "rejected_by_role": actor.role.value
                }
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(request)
        logger.info("%s request %s rejected by user %s", request_type.value.capitalize(), request_id, actor.id)
        return request

    # ------------------------------------------------------------------
    # Direct delete
    # ------------------------------------------------------------------

    def delete_visitor(self, visitor_id: int, actor: Actor, reason: Optional[str] = None) -> DeleteOutcome:
        """
        Delete a visitor, or file a deletion request when the actor may not.

        Owners and admins delete immediately with no request row; pending
        requests on the record are closed as rejected. Anyone else must give
        a reason, which files a deletion request instead.
        """
        visitor = self._get_visitor(visitor_id)
        if visitor.is_deleted:
            raise ConflictError(f"Visitor {visitor_id} is already deleted")

        if not can_delete_directly(actor, visitor):
            if reason is None or not reason.strip():
                raise PermissionDeniedError(
                    "You can only delete visitors that you created; "
                    "submit a deletion request with a reason instead"
                )
            request = self.create_deletion_request(visitor_id, actor, reason)
            return DeleteOutcome(visitor=visitor, deletion_request=request)

        try:
            now = datetime.utcnow()
            visitor.deleted_at = now
            visitor.deleted_by_user_id = actor.id
            visitor.updated_at = now
            closed = (
                self._close_pending(DeletionRequest, visitor.id, actor, VISITOR_DELETED_NOTE)
                + self._close_pending(EditRequest, visitor.id, actor, VISITOR_DELETED_NOTE)
            )
            record_event(
                self.db,
                AuditEventType.VISITOR_DELETED_DIRECTLY,
                "Visitor",
                visitor.id,
                user_id=actor.id,
                payload={"reason": reason, "closed_requests": closed, "as_owner": not actor.is_admin}
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(visitor)
        logger.info("Visitor %s deleted directly by user %s", visitor.id, actor.id)
        return DeleteOutcome(visitor=visitor)

    # ------------------------------------------------------------------
    # Ledger reads
    # ------------------------------------------------------------------

    def get_request(self, request_type: RequestType, request_id: int, actor: Actor):
        self._require_admin(actor)
        model = REQUEST_MODELS[request_type]
        request = self.db.query(model).filter(model.id == request_id).first()
        if not request:
            raise NotFoundError(f"{request_type.value.capitalize()} request {request_id} not found")
        return request

    def list_requests(
        self,
        request_type: RequestType,
        actor: Actor,
        status: Optional[RequestStatus] = None
    ) -> List[Any]:
        """Requests of one type, newest first. Admin only."""
        self._require_admin(actor)
        model = REQUEST_MODELS[request_type]
        query = self.db.query(model)
        if status is not None:
            query = query.filter(model.status == status)
        return query.order_by(model.created_at.desc(), model.id.desc()).all()

    def request_stats(self) -> Dict[str, Dict[str, int]]:
        """Counts per request type and state, plus visitor totals."""
        stats = {}
        for request_type, model in REQUEST_MODELS.items():
            counts = {s.value: 0 for s in RequestStatus}
            rows = self.db.query(model.status, func.count(model.id)).group_by(model.status).all()
            for state, count in rows:
                counts[RequestStatus(state).value] = count
            counts["total"] = sum(counts.values())
            stats[request_type.value] = counts

        total = self.db.query(func.count(Visitor.id)).scalar()
        deleted = self.db.query(func.count(Visitor.id)).filter(Visitor.deleted_at.isnot(None)).scalar()
        stats["visitors"] = {"total": total, "active": total - deleted, "deleted": deleted}
        return stats

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _validate_reason(self, reason: Optional[str]) -> str:
        if reason is None or not reason.strip():
            raise ValidationError("A reason is required")
        reason = reason.strip()
        if len(reason) < settings.MIN_REASON_LENGTH:
            raise ValidationError(f"Reason must be at least {settings.MIN_REASON_LENGTH} characters")
        return reason

    def _validate_rejection_reason(self, rejection_reason: Optional[str]) -> Optional[str]:
        if rejection_reason is None or not rejection_reason.strip():
            return None
        rejection_reason = rejection_reason.strip()
        if len(rejection_reason) < settings.MIN_REJECTION_REASON_LENGTH:
            raise ValidationError(
                f"Rejection reason must be at least {settings.MIN_REJECTION_REASON_LENGTH} characters if provided"
            )
        return rejection_reason

    def _require_admin(self, actor: Actor) -> None:
        if not actor.is_admin:
            raise PermissionDeniedError("Only an admin can review change requests")

    def _get_visitor(self, visitor_id: int) -> Visitor:
        visitor = self.db.query(Visitor).filter(Visitor.id == visitor_id).first()
        if not visitor:
            raise NotFoundError(f"Visitor {visitor_id} not found")
        return visitor

    def _load_pending(self, model, request_id: int):
        request = self.db.query(model).filter(model.id == request_id).first()
        if not request:
            raise NotFoundError(f"{model.__name__} {request_id} not found")
        if request.status.is_terminal:
            raise InvalidStateError(f"{model.__name__} {request_id} is already {request.status.value}")
        return request

    def _insert_pending(self, request, request_type: RequestType, visitor: Visitor) -> None:
        """
        Insert a pending row, turning a lost race on the single-pending index
        into ConflictError.
        """
        self.db.add(request)
        try:
            self.db.flush()
        except IntegrityError:
            self.db.rollback()
            raise ConflictError(
                f"There is already a pending {request_type.value} request for visitor {visitor.id}"
            )

    def _claim(
        self,
        model,
        request_id: int,
        actor: Actor,
        new_status: RequestStatus,
        rejection_reason: Optional[str] = None
    ) -> datetime:
        """
        Compare-and-swap the request out of pending.

        Only one caller can win; a concurrent resolver sees zero rows updated
        and gets InvalidStateError.
        """
        now = datetime.utcnow()
        values = {
            model.status: new_status,
            model.resolved_by_user_id: actor.id,
            model.resolved_at: now,
            model.updated_at: now,
        }
        if rejection_reason is not None:
            values[model.rejection_reason] = rejection_reason

        updated = self.db.query(model).filter(
            model.id == request_id,
            model.status == RequestStatus.PENDING
        ).update(values, synchronize_session=False)

        if updated != 1:
            raise InvalidStateError(f"{model.__name__} {request_id} is no longer pending")
        return now

    def _close_pending(self, model, visitor_id: int, actor: Actor, note: str) -> int:
        now = datetime.utcnow()
        return self.db.query(model).filter(
            model.visitor_id == visitor_id,
            model.status == RequestStatus.PENDING
        ).update({
            model.status: RequestStatus.REJECTED,
            model.resolved_by_user_id: actor.id,
            model.resolved_at: now,
            model.updated_at: now,
            model.rejection_reason: note,
        }, synchronize_session=False)
