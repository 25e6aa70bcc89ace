from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from playconnect.auth.supabase_auth import get_current_user
from playconnect.core.invitations import ActivityInvitationService
from playconnect.core.parent_access import get_current_parent
from playconnect.core.participants import ParticipantStatusResolver
from playconnect.database import get_db
from playconnect.models.activity_invitation import ActivityInvitation
from playconnect.models.pending_activity_invitation import PendingActivityInvitation
from playconnect.schemas.invitation_schema import (
    InvitationCreate,
    InvitationOut,
    ParticipantsOut,
    PendingInvitationCreate,
    PendingInvitationsOut,
)

router = APIRouter(prefix="/activities", tags=["Activities"])


def build_invitation_out(invitation: ActivityInvitation):
    activity = invitation.activity
    return {
        "uuid": invitation.uuid,
        "activity_uuid": activity.uuid,
        "activity_name": activity.name,
        "host_child_name": activity.host_child.name,
        "inviter_parent_uuid": invitation.inviter_parent.uuid,
        "invited_child_uuid": invitation.invited_child.uuid,
        "invited_child_name": invitation.invited_child.name,
        "status": invitation.status,
        "message": invitation.message,
        "viewed_at": invitation.viewed_at,
        "status_viewed_at": invitation.status_viewed_at,
        "created_at": invitation.created_at,
    }


def build_pending_out(row: PendingActivityInvitation):
    return {
        "uuid": row.uuid,
        "pending_connection_key": row.pending_connection_key,
        "target_kind": row.target_kind,
        "target_uuid": row.target_uuid,
        "message": row.message,
        "created_at": row.created_at,
    }


# --------------------------------------------------
# PENDING INVITATIONS (not connected yet)
# --------------------------------------------------
@router.post(
    "/{activity_uuid}/pending-invitations",
    response_model=PendingInvitationsOut,
    status_code=201,
)
def add_pending_invitations(
    activity_uuid: str,
    payload: PendingInvitationCreate,
    db: Session = Depends(get_db),
    current_user: dict = Depends(get_current_user),
):
    me = get_current_parent(db, current_user["sub"])
    result = ActivityInvitationService(db).add_pending(
        activity_uuid, me, payload.pending_connection_keys, payload.message
    )
    for row in result.pending:
        db.refresh(row)

    return {
        "pending": [build_pending_out(r) for r in result.pending],
        "invitations": [build_invitation_out(i) for i in result.invitations],
    }


# --------------------------------------------------
# DIRECT INVITE
# --------------------------------------------------
@router.post("/{activity_uuid}/invite", response_model=InvitationOut, status_code=201)
def invite_child(
    activity_uuid: str,
    payload: InvitationCreate,
    db: Session = Depends(get_db),
    current_user: dict = Depends(get_current_user),
):
    me = get_current_parent(db, current_user["sub"])
    invitation = ActivityInvitationService(db).invite(
        activity_uuid,
        me,
        child_uuid=payload.child_uuid,
        message=payload.message,
        parent_uuid=payload.parent_uuid,
    )
    return build_invitation_out(invitation)


@router.delete("/{activity_uuid}/invitations/{invitation_uuid}", response_model=InvitationOut)
def withdraw_invitation(
    activity_uuid: str,
    invitation_uuid: str,
    db: Session = Depends(get_db),
    current_user: dict = Depends(get_current_user),
):
    me = get_current_parent(db, current_user["sub"])
    invitation = ActivityInvitationService(db).withdraw(activity_uuid, invitation_uuid, me)
    return build_invitation_out(invitation)


# --------------------------------------------------
# PARTICIPANTS (host view)
# --------------------------------------------------
@router.get("/{activity_uuid}/participants", response_model=ParticipantsOut)
def get_participants(
    activity_uuid: str,
    db: Session = Depends(get_db),
    current_user: dict = Depends(get_current_user),
):
    me = get_current_parent(db, current_user["sub"])
    activity = ActivityInvitationService(db).hosted_activity(activity_uuid, me)

    return {
        "activity_uuid": activity.uuid,
        "participants": ParticipantStatusResolver(db).resolve(activity),
    }
