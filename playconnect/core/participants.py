import logging
from dataclasses import dataclass

from sqlalchemy.orm import Session

from playconnect.core.activities import ActivityRef
from playconnect.core.connections import connected_to_any, is_connected
from playconnect.core.errors import IdentityResolutionFailure
from playconnect.core.pending_invitations import PendingInvitationLedger, PendingTarget
from playconnect.models.activity_invitation import ActivityInvitation

logger = logging.getLogger(__name__)

INVITATION_STATUS = {
    "pending": "invited",
    "accepted": "accepted",
    "rejected": "declined",
}


@dataclass
class ParticipantEntry:
    # invited | accepted | declined | pending_connection | connected
    status: str
    # sent | pending
    invitation_type: str
    invitation_uuid: str
    # child | parent | skeleton_child | skeleton_account
    target_kind: str
    child_uuid: str | None = None
    child_name: str | None = None
    parent_uuid: str | None = None
    parent_name: str | None = None


class ParticipantStatusResolver:
    """
    Renders who an activity's host has reached, one entry per invitee.

    Real invitations win over ledger rows for the same child, and a
    parent-keyed ledger row is hidden once any of that parent's children is
    listed. "connected" always comes from an active Connection row.
    """

    def __init__(self, db: Session):
        self.db = db
        self.ledger = PendingInvitationLedger(db)

    def resolve(self, activity: ActivityRef) -> list[ParticipantEntry]:
        entries: list[ParticipantEntry] = []
        seen_children: set[str] = set()
        seen_parents: set[str] = set()

        # --------------------------------------------------
        # Real invitations
        # --------------------------------------------------
        invitations = (
            self.db.query(ActivityInvitation)
            .filter(
                ActivityInvitation.activity_id == activity.id,
                ActivityInvitation.status != "withdrawn",
            )
            .order_by(ActivityInvitation.created_at, ActivityInvitation.id)
            .all()
        )
        for invitation in invitations:
            child = invitation.invited_child
            if child.uuid in seen_children:
                continue
            seen_children.add(child.uuid)
            seen_parents.add(invitation.invited_parent.uuid)
            entries.append(
                ParticipantEntry(
                    status=INVITATION_STATUS[invitation.status],
                    invitation_type="sent",
                    invitation_uuid=invitation.uuid,
                    target_kind="child",
                    child_uuid=child.uuid,
                    child_name=child.name,
                    parent_uuid=invitation.invited_parent.uuid,
                    parent_name=invitation.invited_parent.display_name,
                )
            )

        # --------------------------------------------------
        # Ledger rows: child-shaped first so parent rows can be hidden
        # --------------------------------------------------
        resolved_rows = []
        for row in self.ledger.rows_for_activity(activity.id):
            try:
                resolved = self.ledger.resolve(PendingTarget.parse(row.pending_connection_key))
            except IdentityResolutionFailure as e:
                logger.warning(f"⚠️ Pending row {row.uuid} on activity {activity.uuid} is unresolvable: {e.detail}")
                continue
            resolved_rows.append((row, resolved))

        child_rows = [(r, t) for r, t in resolved_rows if t.kind in ("child", "skeleton_child")]
        parent_rows = [(r, t) for r, t in resolved_rows if t.kind in ("parent", "skeleton_account")]

        for row, resolved in child_rows:
            if resolved.kind == "child":
                child = resolved.child
                if child.uuid in seen_children:
                    continue
                seen_children.add(child.uuid)
                seen_parents.add(child.parent.uuid)
                connected = is_connected(self.db, activity.host_child_id, child.id)
                entries.append(
                    ParticipantEntry(
                        status="connected" if connected else "pending_connection",
                        invitation_type="pending",
                        invitation_uuid=row.uuid,
                        target_kind="child",
                        child_uuid=child.uuid,
                        child_name=child.name,
                        parent_uuid=child.parent.uuid,
                        parent_name=child.parent.display_name,
                    )
                )
            else:
                skeleton_child = resolved.skeleton_child
                if skeleton_child.uuid in seen_children:
                    continue
                seen_children.add(skeleton_child.uuid)
                seen_parents.add(resolved.skeleton_account.uuid)
                entries.append(
                    ParticipantEntry(
                        status="pending_connection",
                        invitation_type="pending",
                        invitation_uuid=row.uuid,
                        target_kind="skeleton_child",
                        child_uuid=skeleton_child.uuid,
                        child_name=skeleton_child.name,
                        parent_uuid=resolved.skeleton_account.uuid,
                    )
                )

        for row, resolved in parent_rows:
            if resolved.kind == "parent":
                parent = resolved.parent
                if parent.uuid in seen_parents:
                    continue
                seen_parents.add(parent.uuid)
                connected = connected_to_any(
                    self.db, activity.host_child_id, [c.id for c in parent.children]
                )
                entries.append(
                    ParticipantEntry(
                        status="connected" if connected else "pending_connection",
                        invitation_type="pending",
                        invitation_uuid=row.uuid,
                        target_kind="parent",
                        parent_uuid=parent.uuid,
                        parent_name=parent.display_name,
                    )
                )
            else:
                account = resolved.skeleton_account
                if account.uuid in seen_parents:
                    continue
                seen_parents.add(account.uuid)
                entries.append(
                    ParticipantEntry(
                        status="pending_connection",
                        invitation_type="pending",
                        invitation_uuid=row.uuid,
                        target_kind="skeleton_account",
                        parent_uuid=account.uuid,
                    )
                )

        return entries
