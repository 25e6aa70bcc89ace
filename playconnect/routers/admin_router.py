from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from playconnect.auth.supabase_auth import get_current_user
from playconnect.core.maintenance import reconcile_pending_invitations
from playconnect.core.parent_access import get_current_parent, require_admin
from playconnect.database import get_db
from playconnect.schemas.invitation_schema import ReconcileOut

router = APIRouter(prefix="/admin", tags=["Admin"])


@router.post("/pending-invitations/reconcile", response_model=ReconcileOut)
def reconcile(
    db: Session = Depends(get_db),
    current_user: dict = Depends(get_current_user),
):
    me = get_current_parent(db, current_user["sub"])
    require_admin(me)
    return reconcile_pending_invitations(db)
