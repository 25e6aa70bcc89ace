import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy import inspect
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from playconnect.core.activities import ActivityDirectory, ActivityRef
from playconnect.core.errors import (
    DuplicateInvitation,
    IdentityResolutionFailure,
    InvalidState,
    InvitationNotFound,
    NotAuthorised,
    SelfConnection,
)
from playconnect.core.identity import IdentityStore
from playconnect.core.pending_invitations import PendingInvitationLedger, PendingTarget
from playconnect.core.propagation import (
    NotificationPropagator,
    default_invitation_message,
    live_invitation,
)
from playconnect.database import transaction
from playconnect.models.activity import Activity
from playconnect.models.activity_invitation import ActivityInvitation
from playconnect.models.parent import Parent
from playconnect.models.pending_activity_invitation import PendingActivityInvitation

logger = logging.getLogger(__name__)

RESPONSES = {"accept": "accepted", "reject": "rejected"}


@dataclass
class PendingAddResult:
    # Rows still waiting for a connection
    pending: list[PendingActivityInvitation] = field(default_factory=list)
    # Invitations created because the invitee was already connected
    invitations: list[ActivityInvitation] = field(default_factory=list)


class ActivityInvitationService:
    """
    Host-side and invitee-side handling of real activity invitations.

    Accepting an invitation only changes the invitation; connections are
    created by connection requests alone.
    """

    def __init__(self, db: Session):
        self.db = db
        self.activities = ActivityDirectory(db)
        self.identity = IdentityStore(db)
        self.ledger = PendingInvitationLedger(db)
        self.propagator = NotificationPropagator(db)

    # --------------------------------------------------
    # HOST
    # --------------------------------------------------
    def hosted_activity(self, activity_uuid: str, host: Parent) -> ActivityRef:
        activity = self.activities.get_activity(activity_uuid)
        if activity.host_parent_id != host.id:
            raise NotAuthorised("Not authorised to invite to this activity")
        return activity

    def add_pending(
        self,
        activity_uuid: str,
        host: Parent,
        pending_keys: list[str],
        message: str | None = None,
    ) -> PendingAddResult:
        """
        Record ledger rows for an activity in one transaction.

        A row whose invitee is already connected to the host's family is
        turned into an invitation straight away instead of being left to wait.
        """
        activity = self.hosted_activity(activity_uuid, host)
        result = PendingAddResult()

        with transaction(self.db):
            rows = []
            for key in pending_keys:
                row = self.ledger.add_pending(activity, key, message)
                if row not in rows:
                    rows.append(row)

            for row in rows:
                # a later child key may have replaced an earlier parent row
                if inspect(row).was_deleted:
                    continue
                converted = self.propagator.convert_if_connected(row, activity.host_parent_id)
                if converted.pending_consumed:
                    result.invitations.extend(converted.invitations_created)
                else:
                    result.pending.append(row)

        return result

    def invite(
        self,
        activity_uuid: str,
        host: Parent,
        child_uuid: str | None = None,
        message: str | None = None,
        parent_uuid: str | None = None,
    ) -> ActivityInvitation:
        activity = self.hosted_activity(activity_uuid, host)
        child = self._invited_child(child_uuid, parent_uuid)

        if child.parent_id == host.id:
            raise SelfConnection("A host cannot invite their own family")

        with transaction(self.db):
            if live_invitation(self.db, activity.id, child.id):
                raise DuplicateInvitation("Child is already invited to this activity")

            # A direct invitation supersedes any deferred one for the same family
            keys = [
                PendingTarget.by_child(child.uuid).key,
                PendingTarget.by_parent(child.parent.uuid).key,
            ]
            for row in self.ledger.rows_for_keys(keys):
                if row.activity_id == activity.id:
                    logger.info(f"🧹 Dropping {row.pending_connection_key} from activity {activity.uuid}")
                    self.ledger.consume(row)

            activity_row = self.db.query(Activity).filter(Activity.id == activity.id).first()
            invitation = ActivityInvitation(
                activity_id=activity.id,
                inviter_parent_id=host.id,
                invited_parent_id=child.parent_id,
                invited_child_id=child.id,
                status="pending",
                message=message or default_invitation_message(activity_row),
            )
            self.db.add(invitation)
            try:
                self.db.flush()
            except IntegrityError:
                raise DuplicateInvitation("Child is already invited to this activity")

        logger.info(f"📧 Activity {activity.uuid}: invited child {child.uuid}")
        return invitation

    def _invited_child(self, child_uuid: str | None, parent_uuid: str | None):
        if child_uuid:
            return self.identity.child_by_uuid(child_uuid)
        if not parent_uuid:
            raise IdentityResolutionFailure("Give a child UUID or a parent UUID")

        parent = self.identity.parent_by_uuid(parent_uuid)
        children = list(parent.children)
        if len(children) == 1:
            return children[0]

        raise IdentityResolutionFailure(
            "Invited parent has "
            + ("no children" if not children else f"{len(children)} children")
            + "; choose a child"
        )

    def withdraw(self, activity_uuid: str, invitation_uuid: str, host: Parent) -> ActivityInvitation:
        activity = self.hosted_activity(activity_uuid, host)
        invitation = self._get(invitation_uuid)
        if invitation.activity_id != activity.id:
            raise InvitationNotFound("Invitation not found for this activity")

        with transaction(self.db):
            if invitation.status == "withdrawn":
                return invitation
            invitation.status = "withdrawn"

        logger.info(f"↩️ Invitation {invitation.uuid} withdrawn")
        return invitation

    def mark_status_viewed(self, invitation_uuid: str, host: Parent) -> ActivityInvitation:
        invitation = self._get(invitation_uuid)
        if invitation.inviter_parent_id != host.id:
            raise NotAuthorised("You can only mark your own invitations as viewed")

        with transaction(self.db):
            if invitation.status_viewed_at is None:
                invitation.status_viewed_at = datetime.now(timezone.utc)
        return invitation

    # --------------------------------------------------
    # INVITEE
    # --------------------------------------------------
    def received(self, parent: Parent, include_viewed: bool = False) -> list[ActivityInvitation]:
        query = self.db.query(ActivityInvitation).filter(
            ActivityInvitation.invited_parent_id == parent.id,
            ActivityInvitation.status == "pending",
        )
        if not include_viewed:
            query = query.filter(ActivityInvitation.viewed_at.is_(None))
        return query.order_by(ActivityInvitation.created_at.desc()).all()

    def respond(self, invitation_uuid: str, action: str, parent: Parent) -> ActivityInvitation:
        """
        Accept or decline. An accepted invitation may still be declined;
        a declined or withdrawn one is final.
        """
        if action not in RESPONSES:
            raise InvalidState(f"Unknown action {action!r}")

        invitation = self._get(invitation_uuid)
        if invitation.invited_parent_id != parent.id:
            raise NotAuthorised("Not authorised")

        wanted = RESPONSES[action]
        with transaction(self.db):
            self.db.refresh(invitation, with_for_update=True)

            if invitation.status == wanted:
                logger.info(f"ℹ️ Invitation {invitation.uuid} already {wanted}")
                return invitation
            if invitation.status in ("rejected", "withdrawn"):
                raise InvalidState(f"Invitation was already {invitation.status}")

            invitation.status = wanted
            # Host has a new status change to see
            invitation.status_viewed_at = None

        logger.info(f"✉️ Invitation {invitation.uuid} {wanted}")
        return invitation

    def mark_viewed(self, invitation_uuid: str, parent: Parent) -> ActivityInvitation:
        invitation = self._get(invitation_uuid)
        if invitation.invited_parent_id != parent.id:
            raise InvitationNotFound("Activity invitation not found")

        with transaction(self.db):
            if invitation.viewed_at is None:
                invitation.viewed_at = datetime.now(timezone.utc)
        return invitation

    def _get(self, invitation_uuid: str) -> ActivityInvitation:
        invitation = (
            self.db.query(ActivityInvitation)
            .filter(ActivityInvitation.uuid == invitation_uuid)
            .first()
        )
        if not invitation:
            raise InvitationNotFound("Activity invitation not found")
        return invitation
