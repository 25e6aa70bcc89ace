import logging
from dataclasses import dataclass, field
from datetime import date, timedelta

from sqlalchemy import or_
from sqlalchemy.orm import Session

from playconnect.config import settings
from playconnect.core.connections import connected_to_any
from playconnect.core.pending_invitations import (
    ConnectionActivated,
    PendingInvitationLedger,
    PendingTarget,
    ResolvedTarget,
    SkeletonAccountMerged,
    SkeletonChildMerged,
)
from playconnect.models.activity import Activity
from playconnect.models.activity_invitation import ActivityInvitation
from playconnect.models.child import Child
from playconnect.models.connection import Connection
from playconnect.models.parent import Parent
from playconnect.models.skeleton_account import SkeletonAccount
from playconnect.models.skeleton_child import SkeletonChild

logger = logging.getLogger(__name__)


def default_invitation_message(activity: Activity) -> str:
    host_name = activity.host_child.name if activity.host_child else "Your child"
    return f"{host_name} would like to invite your child to join: {activity.name}"


def welcome_message(activity: Activity) -> str:
    return f"Welcome to our connection! {default_invitation_message(activity)}"


def live_invitation(db: Session, activity_id: int, child_id: int) -> ActivityInvitation | None:
    return (
        db.query(ActivityInvitation)
        .filter(
            ActivityInvitation.activity_id == activity_id,
            ActivityInvitation.invited_child_id == child_id,
            ActivityInvitation.status != "withdrawn",
        )
        .first()
    )


@dataclass
class PropagationResult:
    invitations_created: list[ActivityInvitation] = field(default_factory=list)
    pending_consumed: int = 0
    pending_rekeyed: int = 0
    duplicates_skipped: int = 0


class NotificationPropagator:
    """
    Turns ledger rows into real invitations as identities resolve.

    Never commits: every hook runs inside the transaction of the transition
    that fired it (accepting a request, merging a skeleton account).
    """

    def __init__(self, db: Session):
        self.db = db
        self.ledger = PendingInvitationLedger(db)

    # --------------------------------------------------
    # CONNECTION BECAME ACTIVE
    # --------------------------------------------------
    def on_connection_activated(self, connection: Connection) -> PropagationResult:
        result = PropagationResult()

        for match in self.ledger.find_matching(ConnectionActivated(connection)):
            self.convert(match.pending, match.invitee, result)

        # Unsolicited invitations only; explicit ledger rows above ignore the flag
        for invitee, host in (
            (connection.child_a, connection.child_b),
            (connection.child_b, connection.child_a),
        ):
            self._auto_notify(host.parent_id, invitee, result)

        logger.info(
            f"🔔 Connection {connection.uuid} propagated: "
            f"{len(result.invitations_created)} invitation(s), "
            f"{result.pending_consumed} pending row(s) consumed, "
            f"{result.duplicates_skipped} duplicate(s) skipped"
        )
        return result

    # --------------------------------------------------
    # SKELETON IDENTITIES BECAME REAL
    # --------------------------------------------------
    def on_skeleton_child_merged(self, skeleton_child: SkeletonChild, child: Child) -> PropagationResult:
        """
        Move rows keyed to the skeleton child onto the real child.

        The child was created by the merge and has no connection yet, so the
        rows stay pending until the converted request is accepted.
        """
        result = PropagationResult()
        resolved = ResolvedTarget(
            PendingTarget.by_child(child.uuid), "child", parent=child.parent, child=child
        )

        for match in self.ledger.find_matching(SkeletonChildMerged(skeleton_child, child)):
            self.ledger.rekey(match.pending, resolved)
            result.pending_rekeyed += 1

        if result.pending_rekeyed:
            logger.info(
                f"🔁 Re-keyed {result.pending_rekeyed} pending row(s) from skeleton child "
                f"{skeleton_child.uuid} to child {child.uuid}"
            )
        return result

    def on_skeleton_account_merged(self, account: SkeletonAccount, parent: Parent) -> PropagationResult:
        result = PropagationResult()
        resolved = self.ledger.canonicalize(
            ResolvedTarget(PendingTarget.by_parent(parent.uuid), "parent", parent=parent)
        )

        for match in self.ledger.find_matching(SkeletonAccountMerged(account, parent)):
            self.ledger.rekey(match.pending, resolved)
            result.pending_rekeyed += 1

        return result

    # --------------------------------------------------
    # ROW RECORDED FOR AN ALREADY CONNECTED INVITEE
    # --------------------------------------------------
    def convert_if_connected(self, pending, host_parent_id: int) -> PropagationResult:
        """
        Convert a new ledger row at once when its invitee is already actively
        connected to the host's family. No later activation would reach it.
        """
        result = PropagationResult()

        if pending.target_kind == "child":
            candidates = self.db.query(Child).filter(Child.uuid == pending.target_uuid).all()
        elif pending.target_kind == "parent":
            candidates = (
                self.db.query(Child)
                .join(Parent, Parent.id == Child.parent_id)
                .filter(Parent.uuid == pending.target_uuid)
                .order_by(Child.id)
                .all()
            )
        else:
            # skeleton targets cannot be connected
            return result

        host_child_ids = [
            row.id for row in self.db.query(Child.id).filter(Child.parent_id == host_parent_id).all()
        ]
        for invitee in candidates:
            if connected_to_any(self.db, invitee.id, host_child_ids):
                logger.info(
                    f"🔗 Child {invitee.uuid} is already connected; "
                    f"converting {pending.pending_connection_key} now"
                )
                self.convert(pending, invitee, result)
                break

        return result

    # --------------------------------------------------
    # INTERNALS
    # --------------------------------------------------
    def convert(self, pending, invitee: Child, result: PropagationResult) -> None:
        activity = pending.activity

        existing = live_invitation(self.db, activity.id, invitee.id)
        if existing:
            logger.warning(
                f"⚠️ Activity {activity.uuid} already invites child {invitee.uuid}; "
                f"consuming {pending.pending_connection_key} without a new invitation"
            )
            result.duplicates_skipped += 1
        else:
            invitation = ActivityInvitation(
                activity_id=activity.id,
                inviter_parent_id=activity.host_parent_id,
                invited_parent_id=invitee.parent_id,
                invited_child_id=invitee.id,
                status="pending",
                message=pending.message or default_invitation_message(activity),
            )
            self.db.add(invitation)
            # Invitation must hit the database before its ledger row goes away
            self.db.flush()
            result.invitations_created.append(invitation)

        self.ledger.consume(pending)
        result.pending_consumed += 1

    def _auto_notify(self, host_parent_id: int, invitee: Child, result: PropagationResult) -> None:
        today = date.today()
        horizon = today + timedelta(days=settings.AUTO_NOTIFY_WINDOW_DAYS)

        activities = (
            self.db.query(Activity)
            .filter(
                Activity.host_parent_id == host_parent_id,
                Activity.auto_notify_new_connections.is_(True),
                or_(
                    Activity.start_date.is_(None),
                    Activity.start_date.between(today, horizon),
                ),
            )
            .order_by(Activity.id)
            .all()
        )

        for activity in activities:
            if live_invitation(self.db, activity.id, invitee.id):
                continue

            invitation = ActivityInvitation(
                activity_id=activity.id,
                inviter_parent_id=activity.host_parent_id,
                invited_parent_id=invitee.parent_id,
                invited_child_id=invitee.id,
                status="pending",
                message=welcome_message(activity),
            )
            self.db.add(invitation)
            self.db.flush()
            result.invitations_created.append(invitation)
            logger.info(f"📧 Auto-notify: invited child {invitee.uuid} to activity {activity.uuid}")
