"""Visitor record lifecycle: check-in, checkout, direct edits, listing and restore."""
import logging
from datetime import datetime
from typing import Any, List, Mapping, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from frontdesk.models.audit import AuditEventType, record_event
from frontdesk.models.domain import EditHistoryEntry, Visitor
from frontdesk.services.actor import Actor, can_edit_directly
from frontdesk.services.errors import ConflictError, NotFoundError, PermissionDeniedError, ValidationError
from frontdesk.services.fields import (
    DOCUMENT_FIELDS,
    apply_fields,
    diff_fields,
    normalize_fields,
)
from frontdesk.services.status import StatusProjection

logger = logging.getLogger(__name__)


class VisitorService:
    """Operations on visitor records that do not need admin approval."""

    def __init__(self, db: Session):
        self.db = db
        self.status = StatusProjection(db)

    def check_in(self, data: Mapping[str, Any], actor: Actor) -> Visitor:
        """Register a new visitor owned by the actor."""
        fields = normalize_fields(data)
        if not fields.get("full_name"):
            raise ValidationError("Field 'full_name' is required")

        visitor = Visitor(input_by_user_id=actor.id, check_in_time=datetime.utcnow())
        apply_fields(visitor, fields)
        self.db.add(visitor)
        self.db.flush()

        record_event(
            self.db,
            AuditEventType.VISITOR_CHECKED_IN,
            "Visitor",
            visitor.id,
            user_id=actor.id,
            payload={"full_name": visitor.full_name}
        )
        self.db.commit()
        self.db.refresh(visitor)

        logger.info("Visitor %s checked in by user %s", visitor.id, actor.id)
        return visitor

    def check_out(self, visitor_id: int, actor: Actor, documents: Optional[Mapping[str, Any]] = None) -> Visitor:
        """
        Record a checkout, optionally completing the document request fields.

        check_out_time is set once; a second checkout is a ConflictError.
        """
        visitor = self.get_visitor(visitor_id)
        if visitor.is_deleted:
            raise ConflictError(f"Visitor {visitor_id} is deleted")
        if visitor.is_checked_out:
            raise ConflictError(f"Visitor {visitor_id} has already checked out")

        documents = dict(documents or {})
        not_documents = sorted(set(documents) - set(DOCUMENT_FIELDS))
        if not_documents:
            raise ValidationError(f"Only document fields can be set at checkout: {', '.join(not_documents)}")

        now = datetime.utcnow()
        visitor.check_out_time = now
        visitor.checkout_by_user_id = actor.id
        visitor.updated_at = now
        if documents:
            apply_fields(visitor, normalize_fields(documents))

        record_event(
            self.db,
            AuditEventType.VISITOR_CHECKED_OUT,
            "Visitor",
            visitor.id,
            user_id=actor.id,
            payload={"document_fields": sorted(documents)}
        )
        self.db.commit()
        self.db.refresh(visitor)
        return visitor

    def get_visitor(self, visitor_id: int) -> Visitor:
        """Fetch a visitor by id, soft-deleted or not."""
        visitor = self.db.query(Visitor).filter(Visitor.id == visitor_id).first()
        if not visitor:
            raise NotFoundError(f"Visitor {visitor_id} not found")
        return visitor

    def list_visitors(
        self,
        actor: Actor,
        include_deleted: bool = False,
        search: Optional[str] = None,
        checked_in_only: bool = False,
        limit: int = 100,
        offset: int = 0
    ) -> List[Visitor]:
        """
        List visitors, newest check-in first.

        Soft-deleted records are hidden unless an admin asks for them.
        """
        if include_deleted and not actor.is_admin:
            raise PermissionDeniedError("Only an admin can list deleted visitors")

        query = self.db.query(Visitor)
        if not include_deleted:
            query = query.filter(Visitor.deleted_at.is_(None))
        if checked_in_only:
            query = query.filter(Visitor.check_out_time.is_(None))
        if search:
            pattern = f"%{search}%"
            # purpose is stored encoded, so LIKE still matches custom text
            query = query.filter(or_(
                Visitor.full_name.ilike(pattern),
                Visitor.institution.ilike(pattern),
                Visitor.phone_number.ilike(pattern),
                Visitor.purpose.ilike(pattern)
            ))
        return query.order_by(Visitor.check_in_time.desc(), Visitor.id.desc()).offset(offset).limit(limit).all()

    def edit_visitor(self, visitor_id: int, actor: Actor, data: Mapping[str, Any]) -> Visitor:
        """
        Apply an edit directly. Only the owner or an admin may do this;
        everyone else files an edit request.
        """
        proposed = normalize_fields(data)
        visitor = self.get_visitor(visitor_id)

        if visitor.is_deleted:
            raise ConflictError(f"Visitor {visitor_id} is deleted and can no longer be edited")
        if not can_edit_directly(actor, visitor):
            raise PermissionDeniedError(
                "You can only edit visitors that you created; submit an edit request instead"
            )
        if self.status.pending_deletion(visitor.id):
            raise ConflictError(
                f"Visitor {visitor_id} has a pending deletion request; edits are blocked until it is resolved"
            )

        changes, original = diff_fields(visitor, proposed)
        if not changes:
            return visitor

        now = datetime.utcnow()
        apply_fields(visitor, changes)
        visitor.updated_at = now
        self.db.add(EditHistoryEntry(
            visitor_id=visitor.id,
            user_id=actor.id,
            user_name=actor.name,
            user_role=actor.role.value,
            changes=changes,
            original=original,
            timestamp=now
        ))
        record_event(
            self.db,
            AuditEventType.VISITOR_EDITED_DIRECTLY,
            "Visitor",
            visitor.id,
            user_id=actor.id,
            payload={"changed_fields": sorted(changes)}
        )
        self.db.commit()
        self.db.refresh(visitor)

        logger.info("Visitor %s edited directly by user %s (%s)", visitor.id, actor.id, ", ".join(sorted(changes)))
        return visitor

    def get_edit_history(self, visitor_id: int, limit: int = 50, offset: int = 0) -> List[EditHistoryEntry]:
        self.get_visitor(visitor_id)
        return self.db.query(EditHistoryEntry).filter(
            EditHistoryEntry.visitor_id == visitor_id
        ).order_by(
            EditHistoryEntry.timestamp.desc(), EditHistoryEntry.id.desc()
        ).offset(offset).limit(limit).all()

    def restore_visitor(self, visitor_id: int, actor: Actor) -> Visitor:
        """Undo a soft delete. Admin only."""
        if not actor.is_admin:
            raise PermissionDeniedError("Only an admin can restore deleted visitors")

        visitor = self.get_visitor(visitor_id)
        if not visitor.is_deleted:
            raise ConflictError(f"Visitor {visitor_id} is not deleted")

        deleted_at = visitor.deleted_at
        visitor.deleted_at = None
        visitor.deleted_by_user_id = None
        visitor.updated_at = datetime.utcnow()
        record_event(
            self.db,
            AuditEventType.VISITOR_RESTORED,
            "Visitor",
            visitor.id,
            user_id=actor.id,
            payload={"deleted_at": deleted_at.isoformat()}
        )
        self.db.commit()
        self.db.refresh(visitor)

        logger.info("Visitor %s restored by user %s", visitor.id, actor.id)
        return visitor

