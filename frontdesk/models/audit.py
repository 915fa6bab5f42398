"""
Internal audit logging model - NOT a user-facing domain object.

This model exists to provide immutable, append-only audit trails
for every request, resolution and direct delete. It is not exposed in
user-facing APIs.
"""
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import Column, String, Integer, DateTime, JSON
from sqlalchemy.orm import Session

from frontdesk.database import Base


class AuditEvent(Base):
    """
    Immutable audit event for reconstructing who did what to a visitor record.

    Invariants:
    - Once written, never edited or deleted
    - Append-only
    - Written in the same transaction as the action it records
    """
    __tablename__ = "audit_events"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    event_type = Column(String, nullable=False, index=True)  # e.g., "deletion_request_approved"
    entity_type = Column(String, nullable=False)  # e.g., "DeletionRequest", "Visitor"
    entity_id = Column(String, nullable=False, index=True)
    user_id = Column(String, nullable=True)  # Nullable for system events
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    payload_json = Column(JSON, nullable=True)  # Minimal contextual data


# Event type constants for consistency
class AuditEventType:
    """Enumeration of audit event types."""
    # Deletion request lifecycle
    DELETION_REQUEST_CREATED = "deletion_request_created"
    DELETION_REQUEST_APPROVED = "deletion_request_approved"
    DELETION_REQUEST_REJECTED = "deletion_request_rejected"

    # Edit request lifecycle
    EDIT_REQUEST_CREATED = "edit_request_created"
    EDIT_REQUEST_APPROVED = "edit_request_approved"
    EDIT_REQUEST_REJECTED = "edit_request_rejected"

    # Direct actions by owners and admins
    VISITOR_CHECKED_IN = "visitor_checked_in"
    VISITOR_CHECKED_OUT = "visitor_checked_out"
    VISITOR_EDITED_DIRECTLY = "visitor_edited_directly"
    VISITOR_DELETED_DIRECTLY = "visitor_deleted_directly"
    VISITOR_RESTORED = "visitor_restored"


def record_event(
    db: Session,
    event_type: str,
    entity_type: str,
    entity_id: Any,
    user_id: Optional[Any] = None,
    payload: Optional[Dict[str, Any]] = None
) -> AuditEvent:
    """Stage an audit event on the session; the caller owns the commit."""
    event = AuditEvent(
        event_type=event_type,
        entity_type=entity_type,
        entity_id=str(entity_id),
        user_id=str(user_id) if user_id is not None else None,
        payload_json=payload,
    )
    db.add(event)
    return event
