"""
Ledger of activity invitations waiting for a connection.

A host can pick invitees who are not connected yet: a parent or child whose
connection request is still pending, or a skeleton contact with no account.
Each pick becomes one row here, keyed by a canonical ``PendingTarget``. The
row is deleted in the same transaction that turns it into a real
ActivityInvitation.
"""

import logging
import uuid as uuid_lib
from dataclasses import dataclass
from enum import Enum

from sqlalchemy.orm import Session

from playconnect.core.activities import ActivityRef
from playconnect.core.errors import IdentityResolutionFailure, SelfConnection
from playconnect.models.activity import Activity
from playconnect.models.child import Child
from playconnect.models.connection import Connection
from playconnect.models.parent import Parent
from playconnect.models.pending_activity_invitation import PendingActivityInvitation
from playconnect.models.skeleton_account import SkeletonAccount
from playconnect.models.skeleton_child import SkeletonChild

logger = logging.getLogger(__name__)

CHILD_PREFIX = "pending-child-"
PARENT_PREFIX = "pending-"


# --------------------------------------------------
# PENDING TARGET
# --------------------------------------------------
class TargetShape(str, Enum):
    BY_PARENT = "by_parent"
    BY_CHILD = "by_child"


@dataclass(frozen=True)
class PendingTarget:
    shape: TargetShape
    uuid: str

    @classmethod
    def by_parent(cls, parent_uuid: str) -> "PendingTarget":
        return cls(TargetShape.BY_PARENT, parent_uuid)

    @classmethod
    def by_child(cls, child_uuid: str) -> "PendingTarget":
        return cls(TargetShape.BY_CHILD, child_uuid)

    @classmethod
    def parse(cls, key: str) -> "PendingTarget":
        if key.startswith(CHILD_PREFIX):
            shape, raw = TargetShape.BY_CHILD, key[len(CHILD_PREFIX):]
        elif key.startswith(PARENT_PREFIX):
            shape, raw = TargetShape.BY_PARENT, key[len(PARENT_PREFIX):]
        else:
            raise IdentityResolutionFailure(f"Unrecognised pending key: {key!r}")

        try:
            value = str(uuid_lib.UUID(raw))
        except ValueError:
            raise IdentityResolutionFailure(f"Pending key does not hold a UUID: {key!r}")

        return cls(shape, value)

    @property
    def key(self) -> str:
        if self.shape is TargetShape.BY_CHILD:
            return f"{CHILD_PREFIX}{self.uuid}"
        return f"{PARENT_PREFIX}{self.uuid}"


@dataclass
class ResolvedTarget:
    target: PendingTarget
    # parent | child | skeleton_account | skeleton_child
    kind: str
    parent: Parent | None = None
    child: Child | None = None
    skeleton_account: SkeletonAccount | None = None
    skeleton_child: SkeletonChild | None = None


# --------------------------------------------------
# RESOLUTION EVENTS
# --------------------------------------------------
@dataclass(frozen=True)
class ConnectionActivated:
    connection: Connection


@dataclass(frozen=True)
class SkeletonChildMerged:
    skeleton_child: SkeletonChild
    child: Child


@dataclass(frozen=True)
class SkeletonAccountMerged:
    skeleton_account: SkeletonAccount
    parent: Parent


@dataclass
class PendingMatch:
    pending: PendingActivityInvitation
    # The real child the row now points at, when known
    invitee: Child | None


class PendingInvitationLedger:
    def __init__(self, db: Session):
        self.db = db

    # --------------------------------------------------
    # RESOLUTION
    # --------------------------------------------------
    def resolve(self, target: PendingTarget) -> ResolvedTarget:
        if target.shape is TargetShape.BY_CHILD:
            child = self.db.query(Child).filter(Child.uuid == target.uuid).first()
            if child:
                return ResolvedTarget(target, "child", parent=child.parent, child=child)

            skeleton_child = (
                self.db.query(SkeletonChild)
                .filter(SkeletonChild.uuid == target.uuid)
                .first()
            )
            if skeleton_child and not skeleton_child.is_merged:
                return ResolvedTarget(
                    target,
                    "skeleton_child",
                    skeleton_account=skeleton_child.skeleton_account,
                    skeleton_child=skeleton_child,
                )
            if skeleton_child and skeleton_child.merged_with is not None:
                real = skeleton_child.merged_with
                return ResolvedTarget(
                    PendingTarget.by_child(real.uuid), "child", parent=real.parent, child=real
                )
        else:
            parent = self.db.query(Parent).filter(Parent.uuid == target.uuid).first()
            if parent:
                return ResolvedTarget(target, "parent", parent=parent)

            account = (
                self.db.query(SkeletonAccount)
                .filter(SkeletonAccount.uuid == target.uuid)
                .first()
            )
            if account and not account.is_merged:
                return ResolvedTarget(target, "skeleton_account", skeleton_account=account)
            if account and account.merged_with is not None:
                return ResolvedTarget(
                    PendingTarget.by_parent(account.merged_with.uuid),
                    "parent",
                    parent=account.merged_with,
                )

        raise IdentityResolutionFailure(
            f"Pending key {target.key} matches neither an account nor a skeleton contact"
        )

    def canonicalize(self, resolved: ResolvedTarget) -> ResolvedTarget:
        """
        Prefer the child form whenever the child is knowable.

        A parent (or skeleton account) with exactly one child is always
        written as that child, so one invitee never ends up under two keys.
        """
        if resolved.kind == "parent":
            children = list(resolved.parent.children)
            if len(children) == 1:
                child = children[0]
                return ResolvedTarget(
                    PendingTarget.by_child(child.uuid), "child", parent=resolved.parent, child=child
                )

        if resolved.kind == "skeleton_account":
            open_children = [c for c in resolved.skeleton_account.children if not c.is_merged]
            if len(open_children) == 1:
                sc = open_children[0]
                return ResolvedTarget(
                    PendingTarget.by_child(sc.uuid),
                    "skeleton_child",
                    skeleton_account=resolved.skeleton_account,
                    skeleton_child=sc,
                )

        return resolved

    # --------------------------------------------------
    # WRITES
    # --------------------------------------------------
    def add_pending(
        self,
        activity: ActivityRef,
        pending_key: str,
        message: str | None = None,
    ) -> PendingActivityInvitation:
        """
        Record one pending invitee for an activity. Flushes, does not commit.

        Returns the row now standing for the invitee, which may be an
        existing one when the key (or a more specific key for the same
        invitee) is already present.
        """
        resolved = self.canonicalize(self.resolve(PendingTarget.parse(pending_key)))

        if resolved.parent is not None and resolved.parent.id == activity.host_parent_id:
            raise SelfConnection("A host cannot invite their own family")

        key = resolved.target.key
        rows = self.rows_for_activity(activity.id)

        for row in rows:
            if row.pending_connection_key == key:
                logger.info(f"ℹ️ Pending key {key} already on activity {activity.uuid}")
                return row

        if resolved.target.shape is TargetShape.BY_PARENT:
            owner_uuid = resolved.target.uuid
            for row in rows:
                if row.target_kind in ("child", "skeleton_child") and self._owner_uuid(row) == owner_uuid:
                    logger.info(
                        f"ℹ️ Skipping {key}: activity {activity.uuid} already targets a child of it"
                    )
                    return row
        else:
            owner_uuid = (
                resolved.parent.uuid if resolved.kind == "child" else resolved.skeleton_account.uuid
            )
            for row in rows:
                if row.target_kind in ("parent", "skeleton_account") and row.target_uuid == owner_uuid:
                    logger.info(f"🔁 Replacing {row.pending_connection_key} with {key}")
                    self.db.delete(row)

        pending = PendingActivityInvitation(
            activity_id=activity.id,
            pending_connection_key=key,
            target_kind=resolved.kind,
            target_uuid=resolved.target.uuid,
            message=message,
        )
        self.db.add(pending)
        self.db.flush()

        logger.info(f"📝 Pending invitation {key} recorded for activity {activity.uuid}")
        return pending

    def consume(self, pending: PendingActivityInvitation) -> None:
        """Delete a converted row. Runs inside the caller's transaction."""
        self.db.delete(pending)
        self.db.flush()

    def rekey(self, pending: PendingActivityInvitation, resolved: ResolvedTarget) -> PendingActivityInvitation:
        """Point a row at a newly resolved identity, folding it into an existing row if needed."""
        key = resolved.target.key
        existing = (
            self.db.query(PendingActivityInvitation)
            .filter(
                PendingActivityInvitation.activity_id == pending.activity_id,
                PendingActivityInvitation.pending_connection_key == key,
                PendingActivityInvitation.id != pending.id,
            )
            .first()
        )
        if existing:
            self.consume(pending)
            return existing

        pending.pending_connection_key = key
        pending.target_kind = resolved.kind
        pending.target_uuid = resolved.target.uuid
        self.db.flush()
        return pending

    # --------------------------------------------------
    # READS
    # --------------------------------------------------
    def rows_for_activity(self, activity_id: int) -> list[PendingActivityInvitation]:
        return (
            self.db.query(PendingActivityInvitation)
            .filter(PendingActivityInvitation.activity_id == activity_id)
            .order_by(PendingActivityInvitation.created_at, PendingActivityInvitation.id)
            .all()
        )

    def rows_for_keys(
        self,
        keys: list[str],
        host_parent_id: int | None = None,
    ) -> list[PendingActivityInvitation]:
        query = self.db.query(PendingActivityInvitation).filter(
            PendingActivityInvitation.pending_connection_key.in_(keys)
        )
        if host_parent_id is not None:
            query = query.join(Activity, Activity.id == PendingActivityInvitation.activity_id).filter(
                Activity.host_parent_id == host_parent_id
            )
        return query.order_by(PendingActivityInvitation.id).all()

    def find_matching(self, event) -> list[PendingMatch]:
        if isinstance(event, ConnectionActivated):
            conn = event.connection
            matches = []
            for invitee, host in ((conn.child_a, conn.child_b), (conn.child_b, conn.child_a)):
                keys = [
                    PendingTarget.by_child(invitee.uuid).key,
                    PendingTarget.by_parent(invitee.parent.uuid).key,
                ]
                matches.extend(
                    PendingMatch(row, invitee)
                    for row in self.rows_for_keys(keys, host_parent_id=host.parent_id)
                )
            return matches

        if isinstance(event, SkeletonChildMerged):
            key = PendingTarget.by_child(event.skeleton_child.uuid).key
            return [PendingMatch(row, event.child) for row in self.rows_for_keys([key])]

        if isinstance(event, SkeletonAccountMerged):
            key = PendingTarget.by_parent(event.skeleton_account.uuid).key
            return [PendingMatch(row, None) for row in self.rows_for_keys([key])]

        raise TypeError(f"Unsupported resolution event: {event!r}")

    def _owner_uuid(self, row: PendingActivityInvitation) -> str | None:
        if row.target_kind == "child":
            child = self.db.query(Child).filter(Child.uuid == row.target_uuid).first()
            return child.parent.uuid if child else None
        if row.target_kind == "skeleton_child":
            sc = self.db.query(SkeletonChild).filter(SkeletonChild.uuid == row.target_uuid).first()
            return sc.skeleton_account.uuid if sc else None
        return None
