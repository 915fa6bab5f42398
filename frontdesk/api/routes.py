"""API routes for visitor records and the edit/deletion approval workflow."""
from typing import Dict, List, Optional, Union

from fastapi import APIRouter, Body, Depends, Query, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from frontdesk.api.deps import get_current_actor, require_admin
from frontdesk.api.schemas import (
    BatchStatusRequest,
    CheckoutData,
    DeletionRequestCreate,
    DeletionRequestResponse,
    DeletionStatusResponse,
    DirectDeleteBody,
    DirectDeleteResponse,
    EditHistoryResponse,
    EditRequestCreate,
    EditRequestResponse,
    ErrorResponse,
    RejectBody,
    UserCreate,
    UserResponse,
    VisitorCreate,
    VisitorFields,
    VisitorResponse,
)
from frontdesk.config import settings
from frontdesk.database import get_db
from frontdesk.models.domain import User
from frontdesk.models.enums import RequestStatus, RequestType
from frontdesk.services.actor import Actor
from frontdesk.services.errors import ConflictError, ValidationError
from frontdesk.services.status import DeletionStatus, StatusProjection
from frontdesk.services.visitors import VisitorService
from frontdesk.services.workflow import ApprovalWorkflow

router = APIRouter()

REFUSALS = {
    400: {"model": ErrorResponse, "description": "Invalid input"},
    403: {"model": ErrorResponse, "description": "Role or ownership check failed"},
    404: {"model": ErrorResponse, "description": "Visitor or request not found"},
    409: {"model": ErrorResponse, "description": "Conflicting or non-pending state"},
}


def _status_payload(deletion_status: DeletionStatus) -> dict:
    return {
        "hasPendingDeletion": deletion_status.has_pending_deletion,
        "deletionRequest": deletion_status.deletion_request,
        "allRequests": deletion_status.all_requests,
    }


# User endpoints
@router.get("/users/me", response_model=UserResponse)
def read_current_user(actor: Actor = Depends(get_current_actor), db: Session = Depends(get_db)):
    """The user behind the X-User-Id header."""
    return db.query(User).filter(User.id == actor.id).first()


@router.post("/users", response_model=UserResponse, status_code=status.HTTP_201_CREATED, responses=REFUSALS)
def create_user(user_data: UserCreate, actor: Actor = Depends(require_admin), db: Session = Depends(get_db)):
    """Register a staff member. Admin only."""
    user = User(name=user_data.name, email=user_data.email, role=user_data.role)
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError(f"A user with email {user_data.email} already exists")
    db.refresh(user)
    return user


# Visitor endpoints
@router.post("/visitors", response_model=VisitorResponse, status_code=status.HTTP_201_CREATED, responses=REFUSALS)
def check_in_visitor(visitor_data: VisitorCreate, actor: Actor = Depends(get_current_actor), db: Session = Depends(get_db)):
    """Check a visitor in. The caller becomes the record's owner."""
    return VisitorService(db).check_in(visitor_data.model_dump(exclude_unset=True), actor)


@router.get("/visitors", response_model=List[VisitorResponse], responses=REFUSALS)
def list_visitors(
    include_deleted: bool = False,
    checked_in_only: bool = False,
    search: Optional[str] = None,
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    """List visitors. Deleted records are hidden unless an admin asks for them."""
    return VisitorService(db).list_visitors(
        actor,
        include_deleted=include_deleted,
        search=search,
        checked_in_only=checked_in_only,
        limit=limit,
        offset=offset
    )


@router.get("/visitors/{visitor_id}", response_model=VisitorResponse, responses=REFUSALS)
def get_visitor(visitor_id: int, actor: Actor = Depends(get_current_actor), db: Session = Depends(get_db)):
    """Get a specific visitor, including soft-deleted ones."""
    return VisitorService(db).get_visitor(visitor_id)


@router.put("/visitors/{visitor_id}", response_model=VisitorResponse, responses=REFUSALS)
def edit_visitor(
    visitor_id: int,
    visitor_data: VisitorFields,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    """
    Edit a visitor directly.
    Only the record's owner or an admin may do this; others must file an edit request.
    """
    return VisitorService(db).edit_visitor(visitor_id, actor, visitor_data.model_dump(exclude_unset=True))


@router.patch("/visitors/{visitor_id}/checkout", response_model=VisitorResponse, responses=REFUSALS)
def check_out_visitor(
    visitor_id: int,
    checkout_data: Optional[CheckoutData] = Body(None),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    """Check a visitor out, optionally filling in the document request."""
    documents = checkout_data.model_dump(exclude_unset=True) if checkout_data else None
    return VisitorService(db).check_out(visitor_id, actor, documents)


@router.delete("/visitors/{visitor_id}", response_model=DirectDeleteResponse, responses=REFUSALS)
def delete_visitor(
    visitor_id: int,
    delete_data: Optional[DirectDeleteBody] = Body(None),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    """
    Delete a visitor.

    Owners and admins delete immediately. Anyone else who supplies a reason
    files a deletion request instead; without a reason they are refused.
    """
    reason = delete_data.reason if delete_data else None
    outcome = ApprovalWorkflow(db).delete_visitor(visitor_id, actor, reason)
    return {
        "deleted": outcome.deleted,
        "visitor": outcome.visitor,
        "deletion_request": outcome.deletion_request,
    }


@router.patch("/visitors/{visitor_id}/restore", response_model=VisitorResponse, responses=REFUSALS)
def restore_visitor(visitor_id: int, actor: Actor = Depends(get_current_actor), db: Session = Depends(get_db)):
    """Undo a soft delete. Admin only."""
    return VisitorService(db).restore_visitor(visitor_id, actor)


@router.get("/visitors/{visitor_id}/edit-history", response_model=List[EditHistoryResponse], responses=REFUSALS)
def get_edit_history(
    visitor_id: int,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    """Applied edits of a visitor, newest first."""
    return VisitorService(db).get_edit_history(visitor_id, limit=limit, offset=offset)


# Request ledger endpoints
@router.post("/visitor-management/deletion-request", response_model=DeletionRequestResponse, responses=REFUSALS)
def create_deletion_request(
    request_data: DeletionRequestCreate,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    """
    File a deletion request for admin review.

    WILL REFUSE if:
    - The reason is shorter than the configured minimum
    - The visitor already has a pending deletion request or is already deleted
    """
    return ApprovalWorkflow(db).create_deletion_request(request_data.visitor_id, actor, request_data.reason)


@router.post("/visitor-management/edit-request", response_model=EditRequestResponse, responses=REFUSALS)
def create_edit_request(
    request_data: EditRequestCreate,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    """
    File an edit request for admin review.

    WILL REFUSE if:
    - The reason is too short or the edit touches unknown fields
    - The visitor already has a pending edit, has a pending deletion, or is deleted
    """
    return ApprovalWorkflow(db).create_edit_request(
        request_data.visitor_id,
        actor,
        request_data.reason,
        request_data.edit_data
    )


@router.post("/visitor-management/approve-deletion/{request_id}", response_model=VisitorResponse, responses=REFUSALS)
def approve_deletion(request_id: int, actor: Actor = Depends(get_current_actor), db: Session = Depends(get_db)):
    """Approve a deletion request; the visitor is soft-deleted in the same transaction."""
    return ApprovalWorkflow(db).approve_deletion(request_id, actor)


@router.post("/visitor-management/approve-edit/{request_id}", response_model=VisitorResponse, responses=REFUSALS)
def approve_edit(request_id: int, actor: Actor = Depends(get_current_actor), db: Session = Depends(get_db)):
    """Approve an edit request; the proposed values are applied and recorded in history."""
    return ApprovalWorkflow(db).approve_edit(request_id, actor)


@router.post(
    "/visitor-management/reject/{request_type}/{request_id}",
    response_model=Union[EditRequestResponse, DeletionRequestResponse],
    responses=REFUSALS
)
def reject_request(
    request_type: RequestType,
    request_id: int,
    reject_data: Optional[RejectBody] = Body(None),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    """Reject a pending request. The visitor record is left untouched."""
    rejection_reason = reject_data.rejection_reason if reject_data else None
    return ApprovalWorkflow(db).reject(request_type, request_id, actor, rejection_reason)


@router.get("/visitor-management/deletion-requests", response_model=List[DeletionRequestResponse], responses=REFUSALS)
def list_deletion_requests(
    request_status: Optional[RequestStatus] = Query(None, alias="status"),
    actor: Actor = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """List deletion requests, newest first. Admin only."""
    return ApprovalWorkflow(db).list_requests(RequestType.DELETION, actor, status=request_status)


@router.get("/visitor-management/deletion-requests/{request_id}", response_model=DeletionRequestResponse, responses=REFUSALS)
def get_deletion_request(request_id: int, actor: Actor = Depends(require_admin), db: Session = Depends(get_db)):
    return ApprovalWorkflow(db).get_request(RequestType.DELETION, request_id, actor)


@router.get("/visitor-management/edit-requests", response_model=List[EditRequestResponse], responses=REFUSALS)
def list_edit_requests(
    request_status: Optional[RequestStatus] = Query(None, alias="status"),
    actor: Actor = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """List edit requests, newest first. Admin only."""
    return ApprovalWorkflow(db).list_requests(RequestType.EDIT, actor, status=request_status)


@router.get("/visitor-management/edit-requests/{request_id}", response_model=EditRequestResponse, responses=REFUSALS)
def get_edit_request(request_id: int, actor: Actor = Depends(require_admin), db: Session = Depends(get_db)):
    return ApprovalWorkflow(db).get_request(RequestType.EDIT, request_id, actor)


# Status projection endpoints
@router.get(
    "/visitor-management/deletion-requests/visitor/{visitor_id}/status",
    response_model=DeletionStatusResponse,
    responses=REFUSALS
)
def get_deletion_status(visitor_id: int, actor: Actor = Depends(get_current_actor), db: Session = Depends(get_db)):
    """Whether the visitor has a pending deletion request, plus its request history."""
    return _status_payload(StatusProjection(db).get_status(visitor_id))


@router.post(
    "/visitor-management/batch-status-check",
    response_model=Dict[int, DeletionStatusResponse],
    responses=REFUSALS
)
def batch_status_check(
    batch_data: BatchStatusRequest,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    """
    Deletion status for many visitors at once.
    Never fails as a whole: visitors whose lookup fails report no pending deletion.
    """
    if not batch_data.visitor_ids:
        raise ValidationError("visitorIds must be a non-empty array")
    if len(batch_data.visitor_ids) > settings.BATCH_STATUS_MAX_IDS:
        raise ValidationError(f"Maximum {settings.BATCH_STATUS_MAX_IDS} visitor IDs allowed per request")

    statuses = StatusProjection(db).get_status_batch(batch_data.visitor_ids)
    return {visitor_id: _status_payload(s) for visitor_id, s in statuses.items()}


@router.get("/visitor-management/stats")
def get_stats(actor: Actor = Depends(get_current_actor), db: Session = Depends(get_db)):
    """Request counts per type and state, plus visitor totals."""
    return ApprovalWorkflow(db).request_stats()
