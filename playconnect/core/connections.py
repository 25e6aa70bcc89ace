import logging
from datetime import datetime, timezone

from sqlalchemy import or_
from sqlalchemy.orm import Session

from playconnect.core.errors import ConnectionNotFound, NotAuthorised
from playconnect.core.locks import pair_key, pair_lock
from playconnect.database import transaction
from playconnect.models.child import Child
from playconnect.models.connection import Connection
from playconnect.models.parent import Parent

logger = logging.getLogger(__name__)


def find_pair(db: Session, child_a_id: int, child_b_id: int) -> Connection | None:
    """The pair's row in any status."""
    low, high = pair_key(child_a_id, child_b_id)
    return (
        db.query(Connection)
        .filter(Connection.child_a_id == low, Connection.child_b_id == high)
        .populate_existing()
        .first()
    )


def active_connection(db: Session, child_a_id: int, child_b_id: int) -> Connection | None:
    # status is checked explicitly: a removed row is not a connection
    conn = find_pair(db, child_a_id, child_b_id)
    if conn is not None and conn.status == "active":
        return conn
    return None


def is_connected(db: Session, child_a_id: int, child_b_id: int) -> bool:
    return active_connection(db, child_a_id, child_b_id) is not None


def connected_to_any(db: Session, child_id: int, other_child_ids: list[int]) -> bool:
    if not other_child_ids:
        return False
    return any(is_connected(db, child_id, other) for other in other_child_ids if other != child_id)


def active_connections_for_parent(db: Session, parent: Parent) -> list[Connection]:
    child_ids = [c.id for c in parent.children]
    if not child_ids:
        return []

    return (
        db.query(Connection)
        .filter(
            Connection.status == "active",
            or_(
                Connection.child_a_id.in_(child_ids),
                Connection.child_b_id.in_(child_ids),
            ),
        )
        .order_by(Connection.created_at.desc())
        .all()
    )


def connection_by_uuid(db: Session, connection_uuid: str) -> Connection:
    conn = db.query(Connection).filter(Connection.uuid == connection_uuid).first()
    if not conn:
        raise ConnectionNotFound(f"Connection {connection_uuid} not found")
    return conn


def remove_connection(db: Session, connection_uuid: str, parent: Parent) -> Connection:
    """
    Soft-delete an active connection. Either side's parent may remove it.

    Removing an already removed connection is a no-op.
    """
    conn = connection_by_uuid(db, connection_uuid)

    owners = {
        child.parent_id
        for child in db.query(Child).filter(Child.id.in_([conn.child_a_id, conn.child_b_id]))
    }
    if parent.id not in owners:
        raise NotAuthorised("Not authorised")

    with pair_lock(db, conn.child_a_id, conn.child_b_id):
        with transaction(db):
            db.refresh(conn)
            if conn.status != "active":
                logger.info(f"ℹ️ Connection {conn.uuid} already removed")
                return conn

            conn.status = "removed"
            conn.removed_at = datetime.now(timezone.utc)

    logger.info(f"🔌 Connection {conn.uuid} removed by parent {parent.uuid}")
    return conn
