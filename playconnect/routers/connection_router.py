from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from playconnect.auth.supabase_auth import get_current_user
from playconnect.core.connection_requests import ConnectionRequestService
from playconnect.core.connections import active_connections_for_parent, remove_connection
from playconnect.core.errors import IdentityResolutionFailure
from playconnect.core.identity import IdentityStore
from playconnect.core.parent_access import get_current_parent
from playconnect.core.skeleton_registry import SkeletonRegistry
from playconnect.database import get_db
from playconnect.models.child import Child
from playconnect.models.connection import Connection
from playconnect.models.connection_request import ConnectionRequest
from playconnect.models.parent import Parent
from playconnect.schemas.connection_schema import (
    ConnectionOut,
    ConnectionRequestCreate,
    ConnectionRequestOut,
    ConnectionRespond,
    ConnectionSubmitOut,
    RespondOut,
    SkeletonAccountOut,
    SkeletonRequestCreate,
    SkeletonRequestOut,
)

router = APIRouter(prefix="/connections", tags=["Connections"])


# --------------------------------------------------
# SERIALISERS (MUST BE ABOVE ROUTES)
# --------------------------------------------------
def child_preview(child: Child):
    return {
        "uuid": child.uuid,
        "name": child.name,
        "parent_uuid": child.parent.uuid,
        "parent_name": child.parent.display_name,
    }


def build_request_out(request: ConnectionRequest):
    return {
        "uuid": request.uuid,
        "status": request.status,
        "message": request.message,
        "requester_child": child_preview(request.requester_child),
        "target_child": child_preview(request.target_child),
        "created_at": request.created_at,
        "responded_at": request.responded_at,
    }


def build_connection_out(conn: Connection, me: Parent):
    # viewer-specific: "my" side is whichever child belongs to the caller
    mine = conn.child_a if conn.child_a.parent_id == me.id else conn.child_b
    return {
        "uuid": conn.uuid,
        "status": conn.status,
        "my_child": child_preview(mine),
        "other_child": child_preview(conn.other_child(mine.id)),
        "created_at": conn.created_at,
    }


def build_skeleton_request_out(result):
    return {
        "uuid": result.request.uuid,
        "skeleton_account": result.skeleton_account,
        "skeleton_child": result.skeleton_child,
        "message": result.request.message,
        "is_converted": result.request.is_converted,
    }


# --------------------------------------------------
# REQUEST CONNECTION
# --------------------------------------------------
@router.post("/request", response_model=ConnectionSubmitOut, status_code=201)
def request_connection(
    payload: ConnectionRequestCreate,
    db: Session = Depends(get_db),
    current_user: dict = Depends(get_current_user),
):
    me = get_current_parent(db, current_user["sub"])
    identity = IdentityStore(db)

    if payload.target_parent_uuid:
        target_parent = identity.parent_by_uuid(payload.target_parent_uuid)
    elif payload.target_contact:
        target_parent = identity.find_parent_by_contact(
            payload.target_contact, payload.target_contact_type
        )
    else:
        raise IdentityResolutionFailure("Give a target parent UUID or a contact")

    # ----------------------------------------------
    # Unknown contact → skeleton placeholder
    # ----------------------------------------------
    if target_parent is None:
        if not payload.target_child_name:
            raise IdentityResolutionFailure(
                "No account uses this contact; give target_child_name to invite them"
            )

        result = SkeletonRegistry(db).create_skeleton_request(
            requester=me,
            requester_child_uuid=payload.requester_child_uuid,
            contact_method=payload.target_contact,
            contact_type=payload.target_contact_type,
            target_child_name=payload.target_child_name,
            target_child_birth_year=payload.target_child_birth_year,
            message=payload.message,
        )
        return {"kind": "skeleton", "skeleton_request": build_skeleton_request_out(result)}

    request = ConnectionRequestService(db).submit_request(
        requester=me,
        requester_child_uuid=payload.requester_child_uuid,
        target_parent=target_parent,
        target_child_uuid=payload.target_child_uuid,
        message=payload.message,
    )
    db.refresh(request)
    return {"kind": "request", "request": build_request_out(request)}


# --------------------------------------------------
# RESPOND (accept / reject)
# --------------------------------------------------
@router.post("/respond/{request_uuid}", response_model=RespondOut)
def respond_to_request(
    request_uuid: str,
    payload: ConnectionRespond,
    db: Session = Depends(get_db),
    current_user: dict = Depends(get_current_user),
):
    me = get_current_parent(db, current_user["sub"])
    service = ConnectionRequestService(db)

    conn = service.respond(request_uuid, payload.action, me)
    request = service.get_request(request_uuid)

    return {
        "request_uuid": request.uuid,
        "status": request.status,
        "connection": build_connection_out(conn, me) if conn else None,
    }


# --------------------------------------------------
# CANCEL (sender only)
# --------------------------------------------------
@router.post("/requests/{request_uuid}/cancel", response_model=ConnectionRequestOut)
def cancel_request(
    request_uuid: str,
    db: Session = Depends(get_db),
    current_user: dict = Depends(get_current_user),
):
    me = get_current_parent(db, current_user["sub"])
    request = ConnectionRequestService(db).cancel(request_uuid, me)
    return build_request_out(request)


# --------------------------------------------------
# PENDING LISTS
# --------------------------------------------------
@router.get("/requests", response_model=list[ConnectionRequestOut])
def incoming_requests(
    db: Session = Depends(get_db),
    current_user: dict = Depends(get_current_user),
):
    me = get_current_parent(db, current_user["sub"])
    return [build_request_out(r) for r in ConnectionRequestService(db).incoming(me)]


@router.get("/sent-requests", response_model=list[ConnectionRequestOut])
def sent_requests(
    db: Session = Depends(get_db),
    current_user: dict = Depends(get_current_user),
):
    me = get_current_parent(db, current_user["sub"])
    return [build_request_out(r) for r in ConnectionRequestService(db).outgoing(me)]


# --------------------------------------------------
# SKELETON (contact without an account)
# --------------------------------------------------
@router.post("/skeleton", response_model=SkeletonRequestOut, status_code=201)
def create_skeleton_request(
    payload: SkeletonRequestCreate,
    db: Session = Depends(get_db),
    current_user: dict = Depends(get_current_user),
):
    me = get_current_parent(db, current_user["sub"])

    result = SkeletonRegistry(db).create_skeleton_request(
        requester=me,
        requester_child_uuid=payload.requester_child_uuid,
        contact_method=payload.contact_method,
        contact_type=payload.contact_type,
        target_child_name=payload.target_child_name,
        target_child_birth_year=payload.target_child_birth_year,
        message=payload.message,
    )
    return build_skeleton_request_out(result)


@router.get("/skeleton-accounts", response_model=list[SkeletonAccountOut])
def my_skeleton_accounts(
    db: Session = Depends(get_db),
    current_user: dict = Depends(get_current_user),
):
    me = get_current_parent(db, current_user["sub"])
    return SkeletonRegistry(db).accounts_created_by(me)


# --------------------------------------------------
# ACTIVE CONNECTIONS
# --------------------------------------------------
@router.get("", response_model=list[ConnectionOut])
def my_connections(
    db: Session = Depends(get_db),
    current_user: dict = Depends(get_current_user),
):
    me = get_current_parent(db, current_user["sub"])
    return [build_connection_out(c, me) for c in active_connections_for_parent(db, me)]


@router.delete("/{connection_uuid}", response_model=ConnectionOut)
def delete_connection(
    connection_uuid: str,
    db: Session = Depends(get_db),
    current_user: dict = Depends(get_current_user),
):
    me = get_current_parent(db, current_user["sub"])
    conn = remove_connection(db, connection_uuid, me)
    return build_connection_out(conn, me)
