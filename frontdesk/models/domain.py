"""Domain models - visitors, their edit history, and the change requests filed against them."""
from datetime import datetime

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Text,
    text,
)
from sqlalchemy.orm import relationship

from frontdesk.database import Base
from frontdesk.models.choices import ChoiceType
from frontdesk.models.enums import RequestStatus, UserRole


def _enum_values(enum_cls):
    # Persist the lowercase values ("pending"), not the member names
    return [member.value for member in enum_cls]


def RequestStatusColumn():
    return Column(
        SQLEnum(RequestStatus, name="request_status", values_callable=_enum_values),
        nullable=False,
        default=RequestStatus.PENDING,
        index=True,
    )


PENDING_ONLY = text("status = 'pending'")


class User(Base):
    """
    Staff member known to the front desk.

    Accounts are provisioned by the surrounding system; this table is the
    lookup used to resolve who is calling and what they may do.
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True, unique=True)
    role = Column(
        SQLEnum(UserRole, name="user_role", values_callable=_enum_values),
        nullable=False,
        default=UserRole.RECEPTIONIST,
    )
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)


class Visitor(Base):
    """
    A visitor checked in at the front desk.

    Invariants:
    - check_in_time is set at creation; check_out_time is set at most once
    - deleted_at set means soft-deleted: still addressable by id, hidden from
      default listings, and closed to further edits and requests
    """
    __tablename__ = "visitors"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Identity
    full_name = Column(String(255), nullable=False)
    phone_number = Column(String(50), nullable=True)
    email = Column(String(255), nullable=True)
    institution = Column(String(255), nullable=True)
    address = Column(Text, nullable=True)
    id_type = Column(String(50), nullable=True)
    id_number = Column(String(100), nullable=True)

    # Visit details
    purpose = Column(ChoiceType, nullable=True)
    person_to_meet = Column(ChoiceType, nullable=True)
    unit = Column(ChoiceType, nullable=True)
    notes = Column(Text, nullable=True)

    # Document request metadata, usually completed at checkout
    document_type = Column(String(100), nullable=True)
    document_name = Column(String(255), nullable=True)
    document_number = Column(String(100), nullable=True)
    document_details = Column(Text, nullable=True)
    document_status = Column(String(50), nullable=True)

    # Ownership
    input_by_user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    checkout_by_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    deleted_by_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    # Timestamps
    check_in_time = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    check_out_time = Column(DateTime, nullable=True)
    deleted_at = Column(DateTime, nullable=True, index=True)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    deletion_requests = relationship("DeletionRequest", back_populates="visitor", cascade="all, delete-orphan")
    edit_requests = relationship("EditRequest", back_populates="visitor", cascade="all, delete-orphan")

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    @property
    def is_checked_out(self) -> bool:
        return self.check_out_time is not None


class EditHistoryEntry(Base):
    """
    One applied edit of a visitor record.

    Invariants:
    - Append-only; never updated or deleted while the visitor exists
    - changes and original hold exactly the same keys: the fields that changed
    """
    __tablename__ = "visitor_edit_history"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    visitor_id = Column(Integer, ForeignKey("visitors.id"), nullable=False, index=True)
    edit_request_id = Column(Integer, ForeignKey("edit_requests.id"), nullable=True)

    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    user_name = Column(String(255), nullable=False)
    user_role = Column(String(50), nullable=True)

    changes = Column(JSON, nullable=False)
    original = Column(JSON, nullable=False)
    timestamp = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)


class DeletionRequest(Base):
    """
    A staff member's request to soft-delete someone else's visitor record.

    Invariants:
    - At most one pending request per visitor (partial unique index below)
    - pending -> approved | rejected, exactly once; terminal rows never change
    """
    __tablename__ = "deletion_requests"
    __table_args__ = (
        Index(
            "uq_deletion_requests_visitor_pending",
            "visitor_id",
            unique=True,
            sqlite_where=PENDING_ONLY,
            postgresql_where=PENDING_ONLY,
        ),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    visitor_id = Column(Integer, ForeignKey("visitors.id"), nullable=False, index=True)

    requested_by_user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    requested_by_name = Column(String(255), nullable=False)
    requested_by_role = Column(String(50), nullable=False)
    reason = Column(Text, nullable=False)

    status = RequestStatusColumn()

    # Set on the terminal transition
    resolved_by_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    resolved_at = Column(DateTime, nullable=True)
    rejection_reason = Column(Text, nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    visitor = relationship("Visitor", back_populates="deletion_requests")


class EditRequest(Base):
    """
    A staff member's proposed change to someone else's visitor record.

    proposed_data holds the new values in stored form; original_data is a
    snapshot of the same fields when the request was filed. The diff recorded
    in history is computed against the record at approval time.

    Invariants: same single-pending and exactly-once rules as DeletionRequest.
    """
    __tablename__ = "edit_requests"
    __table_args__ = (
        Index(
            "uq_edit_requests_visitor_pending",
            "visitor_id",
            unique=True,
            sqlite_where=PENDING_ONLY,
            postgresql_where=PENDING_ONLY,
        ),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    visitor_id = Column(Integer, ForeignKey("visitors.id"), nullable=False, index=True)

    requested_by_user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    requested_by_name = Column(String(255), nullable=False)
    requested_by_role = Column(String(50), nullable=False)
    reason = Column(Text, nullable=False)

    proposed_data = Column(JSON, nullable=False)
    original_data = Column(JSON, nullable=False)

    status = RequestStatusColumn()

    resolved_by_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    resolved_at = Column(DateTime, nullable=True)
    rejection_reason = Column(Text, nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    visitor = relationship("Visitor", back_populates="edit_requests")
