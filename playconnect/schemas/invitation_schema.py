from pydantic import BaseModel, Field, model_validator
from typing import Optional, List, Literal
from datetime import datetime


# --------------------------------------------------
# PENDING (deferred) INVITATIONS
# --------------------------------------------------
class PendingInvitationCreate(BaseModel):
    # "pending-{parent_uuid}" or "pending-child-{child_uuid}"
    pending_connection_keys: List[str] = Field(min_length=1)
    message: Optional[str] = None


class PendingInvitationOut(BaseModel):
    uuid: str
    pending_connection_key: str
    target_kind: str
    target_uuid: str
    message: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


# --------------------------------------------------
# DIRECT INVITATIONS
# --------------------------------------------------
class InvitationCreate(BaseModel):
    # exactly one; a parent UUID stands for that parent's only child
    child_uuid: Optional[str] = None
    parent_uuid: Optional[str] = None
    message: Optional[str] = None

    @model_validator(mode="after")
    def one_target(self):
        if bool(self.child_uuid) == bool(self.parent_uuid):
            raise ValueError("Give exactly one of child_uuid or parent_uuid")
        return self


class InvitationRespond(BaseModel):
    action: Literal["accept", "reject"]


class InvitationOut(BaseModel):
    uuid: str
    activity_uuid: str
    activity_name: str
    host_child_name: str
    inviter_parent_uuid: str
    invited_child_uuid: str
    invited_child_name: str
    status: str
    message: Optional[str] = None
    viewed_at: Optional[datetime] = None
    status_viewed_at: Optional[datetime] = None
    created_at: datetime


class PendingInvitationsOut(BaseModel):
    pending: List[PendingInvitationOut]
    # created at once for invitees who were already connected
    invitations: List[InvitationOut]


# --------------------------------------------------
# PARTICIPANTS
# --------------------------------------------------
class ParticipantOut(BaseModel):
    status: Literal["invited", "accepted", "declined", "pending_connection", "connected"]
    invitation_type: Literal["sent", "pending"]
    invitation_uuid: str
    target_kind: str
    child_uuid: Optional[str] = None
    child_name: Optional[str] = None
    parent_uuid: Optional[str] = None
    parent_name: Optional[str] = None

    class Config:
        from_attributes = True


class ParticipantsOut(BaseModel):
    activity_uuid: str
    participants: List[ParticipantOut]


# --------------------------------------------------
# MAINTENANCE
# --------------------------------------------------
class ReconcileOut(BaseModel):
    scanned: int
    removed_already_invited: int
    removed_host_family: int
    unresolvable: int

    class Config:
        from_attributes = True
