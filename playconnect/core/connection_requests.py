import logging
from datetime import datetime, timezone

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from playconnect.core.connections import active_connection, find_pair
from playconnect.core.errors import (
    AlreadyConnected,
    AlreadyResolved,
    ChildNotFound,
    DuplicatePendingRequest,
    IdentityResolutionFailure,
    InvalidState,
    NotAuthorised,
    RequestNotFound,
    SelfConnection,
)
from playconnect.core.identity import IdentityStore
from playconnect.core.locks import pair_key, pair_lock
from playconnect.core.propagation import NotificationPropagator
from playconnect.database import transaction
from playconnect.models.child import Child
from playconnect.models.connection import Connection
from playconnect.models.connection_request import ConnectionRequest
from playconnect.models.parent import Parent

logger = logging.getLogger(__name__)

ACTIONS = {"accept": "accepted", "reject": "rejected"}


class ConnectionRequestService:
    def __init__(self, db: Session):
        self.db = db
        self.identity = IdentityStore(db)

    # --------------------------------------------------
    # SUBMIT
    # --------------------------------------------------
    def submit_request(
        self,
        requester: Parent,
        requester_child_uuid: str,
        target_parent: Parent,
        target_child_uuid: str | None = None,
        message: str | None = None,
    ) -> ConnectionRequest:
        requester_child = self.identity.owned_child(requester, requester_child_uuid)

        if target_parent.id == requester.id:
            raise SelfConnection("Cannot send a connection request to yourself")

        target_child = self._resolve_target_child(target_parent, target_child_uuid)

        with transaction(self.db):
            return self.create_pending(requester_child, target_child, message)

    def create_pending(
        self,
        requester_child: Child,
        target_child: Child,
        message: str | None,
    ) -> ConnectionRequest:
        """Add a pending request to the current transaction."""
        if requester_child.parent_id == target_child.parent_id:
            raise SelfConnection("Cannot send a connection request to yourself")

        if active_connection(self.db, requester_child.id, target_child.id):
            raise AlreadyConnected("These children are already connected")

        existing = (
            self.db.query(ConnectionRequest)
            .filter(
                ConnectionRequest.requester_child_id == requester_child.id,
                ConnectionRequest.target_child_id == target_child.id,
                ConnectionRequest.status == "pending",
            )
            .first()
        )
        if existing:
            raise DuplicatePendingRequest("Request already sent")

        request = ConnectionRequest(
            requester_parent_id=requester_child.parent_id,
            requester_child_id=requester_child.id,
            target_parent_id=target_child.parent_id,
            target_child_id=target_child.id,
            message=message,
            status="pending",
        )
        self.db.add(request)
        try:
            self.db.flush()
        except IntegrityError:
            # Lost a race with an identical request
            raise DuplicatePendingRequest("Request already sent")

        logger.info(
            f"📨 Connection request {request.uuid}: child {requester_child.uuid} → child {target_child.uuid}"
        )
        return request

    def _resolve_target_child(self, target_parent: Parent, target_child_uuid: str | None) -> Child:
        if target_child_uuid:
            child = self.identity.child_by_uuid(target_child_uuid)
            if child.parent_id != target_parent.id:
                raise ChildNotFound("Target child does not belong to the target parent")
            return child

        children = list(target_parent.children)
        if len(children) == 1:
            return children[0]

        raise IdentityResolutionFailure(
            "Target parent has "
            + ("no children" if not children else f"{len(children)} children")
            + "; choose a target child"
        )

    # --------------------------------------------------
    # RESPOND
    # --------------------------------------------------
    def respond(self, request_uuid: str, action: str, responder: Parent) -> Connection | None:
        """
        Accept or reject a pending request.

        Accepting marks the request, creates (or re-activates) the pair's
        connection and runs invitation propagation, all in one transaction
        under the pair lock. Repeating the same answer is a silent success;
        accepting twice never propagates twice.
        """
        if action not in ACTIONS:
            raise InvalidState(f"Unknown action {action!r}")

        request = self.get_request(request_uuid)
        if request.target_parent_id != responder.id:
            raise NotAuthorised("Not authorised")

        with pair_lock(self.db, request.requester_child_id, request.target_child_id):
            with transaction(self.db):
                self.db.refresh(request, with_for_update=True)
                wanted = ACTIONS[action]

                if request.status != "pending":
                    return self._replay(request, wanted)

                request.status = wanted
                request.responded_at = datetime.now(timezone.utc)

                if wanted == "rejected":
                    logger.info(f"🙅 Connection request {request.uuid} rejected")
                    return None

                connection, activated = self._activate_connection(request)
                if activated:
                    NotificationPropagator(self.db).on_connection_activated(connection)

        logger.info(f"🤝 Connection request {request.uuid} accepted → connection {connection.uuid}")
        return connection

    def _replay(self, request: ConnectionRequest, wanted: str) -> Connection | None:
        if request.status == wanted:
            logger.info(f"ℹ️ Connection request {request.uuid} already {wanted}")
            if wanted == "accepted":
                return find_pair(self.db, request.requester_child_id, request.target_child_id)
            return None

        if request.status == "accepted":
            raise AlreadyResolved("Connection request was already accepted")

        raise InvalidState(f"Connection request was already {request.status}")

    def _activate_connection(self, request: ConnectionRequest) -> tuple[Connection, bool]:
        """
        Returns the pair's connection and whether this call activated it.

        A connection that is already active means another request for the
        same pair won; nothing is propagated a second time.
        """
        conn = find_pair(self.db, request.requester_child_id, request.target_child_id)

        if conn is not None and conn.status == "active":
            logger.info(f"ℹ️ Connection {conn.uuid} already active")
            return conn, False

        if conn is not None:
            conn.status = "active"
            conn.removed_at = None
            conn.source_request_id = request.id
            self.db.flush()
            return conn, True

        low, high = pair_key(request.requester_child_id, request.target_child_id)
        conn = Connection(
            child_a_id=low,
            child_b_id=high,
            status="active",
            source_request_id=request.id,
        )
        self.db.add(conn)
        self.db.flush()
        return conn, True

    # --------------------------------------------------
    # CANCEL
    # --------------------------------------------------
    def cancel(self, request_uuid: str, requester: Parent) -> ConnectionRequest:
        request = self.get_request(request_uuid)
        if request.requester_parent_id != requester.id:
            raise NotAuthorised("Only the sender can cancel this request")

        with transaction(self.db):
            self.db.refresh(request, with_for_update=True)
            if request.status != "pending":
                return request
            request.status = "rejected"
            request.responded_at = datetime.now(timezone.utc)

        logger.info(f"🗑️ Connection request {request.uuid} cancelled")
        return request

    # --------------------------------------------------
    # LISTS
    # --------------------------------------------------
    def incoming(self, parent: Parent) -> list[ConnectionRequest]:
        return (
            self.db.query(ConnectionRequest)
            .filter(
                ConnectionRequest.target_parent_id == parent.id,
                ConnectionRequest.status == "pending",
            )
            .order_by(ConnectionRequest.created_at.desc())
            .all()
        )

    def outgoing(self, parent: Parent) -> list[ConnectionRequest]:
        return (
            self.db.query(ConnectionRequest)
            .filter(
                ConnectionRequest.requester_parent_id == parent.id,
                ConnectionRequest.status == "pending",
            )
            .order_by(ConnectionRequest.created_at.desc())
            .all()
        )

    def get_request(self, request_uuid: str) -> ConnectionRequest:
        request = (
            self.db.query(ConnectionRequest)
            .filter(ConnectionRequest.uuid == request_uuid)
            .first()
        )
        if not request:
            raise RequestNotFound("Connection request not found")
        return request
