"""The identity every workflow call is made on behalf of."""
from dataclasses import dataclass

from frontdesk.models.enums import ADMIN_ROLES, UserRole


@dataclass(frozen=True)
class Actor:
    id: int
    name: str
    role: UserRole

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES

    @classmethod
    def from_user(cls, user) -> "Actor":
        return cls(id=user.id, name=user.name, role=UserRole(user.role))


def can_delete_directly(actor: Actor, visitor) -> bool:
    """Admins may delete any record, and staff may delete the records they created."""
    return actor.is_admin or visitor.input_by_user_id == actor.id


def can_edit_directly(actor: Actor, visitor) -> bool:
    """Same rule as deletion: everyone else goes through an edit request."""
    return actor.is_admin or visitor.input_by_user_id == actor.id
