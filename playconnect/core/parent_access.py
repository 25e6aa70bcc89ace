from fastapi import HTTPException
from sqlalchemy.orm import Session

from playconnect.config import settings
from playconnect.models.parent import Parent


def get_current_parent(db: Session, parent_uuid: str) -> Parent:
    """
    The token's subject is the parent UUID.
    A signed-in user who has not called POST /parents yet has no parent row.
    """
    parent = (
        db.query(Parent)
        .filter(Parent.uuid == parent_uuid, Parent.is_active.is_(True))
        .first()
    )
    if not parent:
        raise HTTPException(status_code=400, detail="User has no parent account")
    return parent


def require_admin(parent: Parent) -> None:
    if parent.uuid not in settings.ADMIN_PARENT_UUIDS:
        raise HTTPException(status_code=403, detail="Admin access required")
