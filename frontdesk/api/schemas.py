"""Pydantic schemas for request/response validation."""
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field

from frontdesk.models.choices import Choice
from frontdesk.models.enums import RequestStatus, UserRole

# Dropdown fields accept the tagged form or the legacy "Other: <text>" string
ChoiceInput = Union[Choice, str]


# User schemas
class UserCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    email: Optional[str] = None
    role: UserRole = UserRole.RECEPTIONIST


class UserResponse(BaseModel):
    id: int
    name: str
    email: Optional[str]
    role: UserRole
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True


# Visitor schemas
class VisitorFields(BaseModel):
    """Every editable visitor field; unset fields are left alone."""
    full_name: Optional[str] = None
    phone_number: Optional[str] = None
    email: Optional[str] = None
    institution: Optional[str] = None
    address: Optional[str] = None
    id_type: Optional[str] = None
    id_number: Optional[str] = None
    purpose: Optional[ChoiceInput] = None
    person_to_meet: Optional[ChoiceInput] = None
    unit: Optional[ChoiceInput] = None
    notes: Optional[str] = None
    document_type: Optional[str] = None
    document_name: Optional[str] = None
    document_number: Optional[str] = None
    document_details: Optional[str] = None
    document_status: Optional[str] = None

    class Config:
        extra = "forbid"


class VisitorCreate(VisitorFields):
    full_name: str = Field(..., min_length=1, max_length=255)


class CheckoutData(BaseModel):
    document_type: Optional[str] = None
    document_name: Optional[str] = None
    document_number: Optional[str] = None
    document_details: Optional[str] = None
    document_status: Optional[str] = None

    class Config:
        extra = "forbid"


class VisitorResponse(BaseModel):
    id: int
    full_name: str
    phone_number: Optional[str]
    email: Optional[str]
    institution: Optional[str]
    address: Optional[str]
    id_type: Optional[str]
    id_number: Optional[str]
    purpose: Optional[Choice]
    person_to_meet: Optional[Choice]
    unit: Optional[Choice]
    notes: Optional[str]
    document_type: Optional[str]
    document_name: Optional[str]
    document_number: Optional[str]
    document_details: Optional[str]
    document_status: Optional[str]
    input_by_user_id: int
    checkout_by_user_id: Optional[int]
    deleted_by_user_id: Optional[int]
    check_in_time: datetime
    check_out_time: Optional[datetime]
    deleted_at: Optional[datetime]
    updated_at: datetime

    class Config:
        from_attributes = True


class EditHistoryResponse(BaseModel):
    id: int
    visitor_id: int
    edit_request_id: Optional[int]
    user_id: Optional[int]
    user_name: str
    user_role: Optional[str]
    changes: Dict[str, Any]
    original: Dict[str, Any]
    timestamp: datetime

    class Config:
        from_attributes = True


class DirectDeleteBody(BaseModel):
    reason: Optional[str] = None


# Request ledger schemas
class DeletionRequestCreate(BaseModel):
    visitor_id: int = Field(..., ge=1)
    reason: str


class EditRequestCreate(BaseModel):
    visitor_id: int = Field(..., ge=1)
    reason: str
    edit_data: Dict[str, Any]


class RejectBody(BaseModel):
    rejection_reason: Optional[str] = None


class DeletionRequestResponse(BaseModel):
    id: int
    visitor_id: int
    requested_by_user_id: int
    requested_by_name: str
    requested_by_role: str
    reason: str
    status: RequestStatus
    resolved_by_user_id: Optional[int]
    resolved_at: Optional[datetime]
    rejection_reason: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True


class EditRequestResponse(DeletionRequestResponse):
    proposed_data: Dict[str, Any]
    original_data: Dict[str, Any]


class DirectDeleteResponse(BaseModel):
    """Either the visitor was deleted, or a deletion request was filed for it."""
    deleted: bool
    visitor: VisitorResponse
    deletion_request: Optional[DeletionRequestResponse] = None


# Status projection schemas (camelCase on the wire for list views)
class DeletionStatusResponse(BaseModel):
    has_pending_deletion: bool = Field(..., alias="hasPendingDeletion")
    deletion_request: Optional[DeletionRequestResponse] = Field(None, alias="deletionRequest")
    all_requests: List[DeletionRequestResponse] = Field(default_factory=list, alias="allRequests")

    class Config:
        from_attributes = True
        populate_by_name = True


class BatchStatusRequest(BaseModel):
    visitor_ids: List[int] = Field(..., alias="visitorIds")

    class Config:
        populate_by_name = True


# Error response
class ErrorDetail(BaseModel):
    kind: str
    message: str


class ErrorResponse(BaseModel):
    """Body of every refused workflow call."""
    error: ErrorDetail
