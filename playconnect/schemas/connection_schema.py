from pydantic import BaseModel
from typing import Optional, List, Literal
from datetime import datetime


# --------------------------------------------------
# CHILD PREVIEW (used in requests and connections)
# --------------------------------------------------
class ChildPreview(BaseModel):
    uuid: str
    name: str
    parent_uuid: str
    parent_name: str


# --------------------------------------------------
# CREATE REQUEST
# --------------------------------------------------
class ConnectionRequestCreate(BaseModel):
    requester_child_uuid: str

    # One of these identifies the other family
    target_parent_uuid: Optional[str] = None
    target_contact: Optional[str] = None
    target_contact_type: Optional[Literal["email", "phone"]] = None

    # Omit when the target parent has a single child
    target_child_uuid: Optional[str] = None
    # Needed when the contact has no account yet
    target_child_name: Optional[str] = None
    target_child_birth_year: Optional[int] = None

    message: Optional[str] = None


class ConnectionRespond(BaseModel):
    action: Literal["accept", "reject"]


# --------------------------------------------------
# REQUEST OUT
# --------------------------------------------------
class ConnectionRequestOut(BaseModel):
    uuid: str
    status: str
    message: Optional[str] = None
    requester_child: ChildPreview
    target_child: ChildPreview
    created_at: datetime
    responded_at: Optional[datetime] = None


# --------------------------------------------------
# CONNECTION OUT
# --------------------------------------------------
class ConnectionOut(BaseModel):
    uuid: str
    status: str
    my_child: ChildPreview
    other_child: ChildPreview
    created_at: datetime


class RespondOut(BaseModel):
    request_uuid: str
    status: str
    connection: Optional[ConnectionOut] = None


# --------------------------------------------------
# SKELETON
# --------------------------------------------------
class SkeletonRequestCreate(BaseModel):
    requester_child_uuid: str
    contact_method: str
    contact_type: Optional[Literal["email", "phone"]] = None
    target_child_name: str
    target_child_birth_year: Optional[int] = None
    message: Optional[str] = None


class SkeletonChildOut(BaseModel):
    uuid: str
    name: str
    birth_year: Optional[int] = None
    is_merged: bool

    class Config:
        from_attributes = True


class SkeletonAccountOut(BaseModel):
    uuid: str
    contact_method: str
    contact_type: str
    is_merged: bool
    merged_at: Optional[datetime] = None
    children: List[SkeletonChildOut] = []

    class Config:
        from_attributes = True


class SkeletonRequestOut(BaseModel):
    uuid: str
    skeleton_account: SkeletonAccountOut
    skeleton_child: SkeletonChildOut
    message: Optional[str] = None
    is_converted: bool


# --------------------------------------------------
# SUBMIT RESULT (real request or skeleton placeholder)
# --------------------------------------------------
class ConnectionSubmitOut(BaseModel):
    kind: Literal["request", "skeleton"]
    request: Optional[ConnectionRequestOut] = None
    skeleton_request: Optional[SkeletonRequestOut] = None
