"""Enums for the front desk - these define the valid values for states and roles."""
from enum import Enum


class RequestStatus(str, Enum):
    """The three states an edit or deletion request can be in. No other states are allowed."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"

    @property
    def is_terminal(self) -> bool:
        return self is not RequestStatus.PENDING


class RequestType(str, Enum):
    """Kinds of change request a staff member can file against a visitor record."""
    EDIT = "edit"
    DELETION = "deletion"


class UserRole(str, Enum):
    """Roles known to the front desk."""
    ADMIN = "Admin"
    MANAGER = "Manager"
    RECEPTIONIST = "Receptionist"


# Roles allowed to resolve requests and to delete or edit any record
ADMIN_ROLES = frozenset({UserRole.ADMIN, UserRole.MANAGER})


class ChoiceKind(str, Enum):
    """Whether a dropdown value came from the configured list or was typed in."""
    PREDEFINED = "predefined"
    CUSTOM = "custom"
