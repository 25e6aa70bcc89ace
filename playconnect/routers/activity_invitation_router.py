from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from playconnect.auth.supabase_auth import get_current_user
from playconnect.core.invitations import ActivityInvitationService
from playconnect.core.parent_access import get_current_parent
from playconnect.database import get_db
from playconnect.routers.activity_router import build_invitation_out
from playconnect.schemas.invitation_schema import InvitationOut, InvitationRespond

router = APIRouter(prefix="/activity-invitations", tags=["Activity Invitations"])


# --------------------------------------------------
# RECEIVED
# --------------------------------------------------
@router.get("", response_model=list[InvitationOut])
def received_invitations(
    include_viewed: bool = False,
    db: Session = Depends(get_db),
    current_user: dict = Depends(get_current_user),
):
    me = get_current_parent(db, current_user["sub"])
    invitations = ActivityInvitationService(db).received(me, include_viewed=include_viewed)
    return [build_invitation_out(i) for i in invitations]


# --------------------------------------------------
# RESPOND (no connection is created here)
# --------------------------------------------------
@router.post("/{invitation_uuid}/respond", response_model=InvitationOut)
def respond_to_invitation(
    invitation_uuid: str,
    payload: InvitationRespond,
    db: Session = Depends(get_db),
    current_user: dict = Depends(get_current_user),
):
    me = get_current_parent(db, current_user["sub"])
    invitation = ActivityInvitationService(db).respond(invitation_uuid, payload.action, me)
    return build_invitation_out(invitation)


# --------------------------------------------------
# VIEWED FLAGS
# --------------------------------------------------
@router.post("/{invitation_uuid}/view", response_model=InvitationOut)
def mark_viewed(
    invitation_uuid: str,
    db: Session = Depends(get_db),
    current_user: dict = Depends(get_current_user),
):
    me = get_current_parent(db, current_user["sub"])
    invitation = ActivityInvitationService(db).mark_viewed(invitation_uuid, me)
    return build_invitation_out(invitation)


@router.post("/{invitation_uuid}/mark-status-viewed", response_model=InvitationOut)
def mark_status_viewed(
    invitation_uuid: str,
    db: Session = Depends(get_db),
    current_user: dict = Depends(get_current_user),
):
    me = get_current_parent(db, current_user["sub"])
    invitation = ActivityInvitationService(db).mark_status_viewed(invitation_uuid, me)
    return build_invitation_out(invitation)
