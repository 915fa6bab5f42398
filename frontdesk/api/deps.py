"""Request-scoped dependencies: who is calling."""
from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from frontdesk.database import get_db
from frontdesk.models.domain import User
from frontdesk.services.actor import Actor
from frontdesk.services.errors import PermissionDeniedError


def get_current_actor(
    x_user_id: Optional[str] = Header(None),
    db: Session = Depends(get_db)
) -> Actor:
    """
    Resolve the caller from the X-User-Id header.

    Authentication happens upstream; this only maps an already-authenticated
    id onto an active user. A missing, malformed or unknown id is a 401.
    """
    if x_user_id is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing X-User-Id header")
    try:
        user_id = int(x_user_id)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Malformed X-User-Id header")

    user = db.query(User).filter(User.id == user_id).first()
    if not user or not user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unknown or inactive user")
    return Actor.from_user(user)


def require_admin(actor: Actor = Depends(get_current_actor)) -> Actor:
    if not actor.is_admin:
        raise PermissionDeniedError("Admin role required")
    return actor
