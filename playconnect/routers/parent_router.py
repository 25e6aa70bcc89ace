from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from playconnect.auth.supabase_auth import get_current_user
from playconnect.core.identity import IdentityStore
from playconnect.core.parent_access import get_current_parent
from playconnect.core.registration import register_parent
from playconnect.database import get_db, transaction
from playconnect.schemas.parent_schema import (
    ChildCreate,
    ChildOut,
    ParentCreate,
    ParentOut,
    ParentRegisteredOut,
)

router = APIRouter(tags=["Parents"])


# --------------------------------------------------
# REGISTER PARENT (merges skeleton placeholders)
# --------------------------------------------------
@router.post("/parents", response_model=ParentRegisteredOut, status_code=201)
def create_parent(
    payload: ParentCreate,
    db: Session = Depends(get_db),
    current_user: dict = Depends(get_current_user),
):
    parent, merged = register_parent(
        db,
        parent_uuid=current_user["sub"],
        display_name=payload.display_name,
        email=payload.email or current_user.get("email"),
        phone=payload.phone,
    )
    db.refresh(parent)

    return {
        "parent": parent,
        "children_created": len(merged.children_created),
        "requests_converted": len(merged.requests_converted),
    }


# --------------------------------------------------
# ME
# --------------------------------------------------
@router.get("/parents/me", response_model=ParentOut)
def get_me(
    db: Session = Depends(get_db),
    current_user: dict = Depends(get_current_user),
):
    return get_current_parent(db, current_user["sub"])


# --------------------------------------------------
# ADD CHILD
# --------------------------------------------------
@router.post("/children", response_model=ChildOut, status_code=201)
def create_child(
    payload: ChildCreate,
    db: Session = Depends(get_db),
    current_user: dict = Depends(get_current_user),
):
    parent = get_current_parent(db, current_user["sub"])

    with transaction(db):
        child = IdentityStore(db).create_child(parent, payload.name, payload.birth_year)

    db.refresh(child)
    return child
