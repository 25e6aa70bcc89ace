import logging
from dataclasses import dataclass

from sqlalchemy.orm import Session

from playconnect.core.errors import IdentityResolutionFailure
from playconnect.core.pending_invitations import PendingInvitationLedger, PendingTarget
from playconnect.core.propagation import live_invitation
from playconnect.database import transaction
from playconnect.models.pending_activity_invitation import PendingActivityInvitation

logger = logging.getLogger(__name__)


@dataclass
class ReconcileReport:
    scanned: int = 0
    removed_already_invited: int = 0
    removed_host_family: int = 0
    unresolvable: int = 0


def reconcile_pending_invitations(db: Session) -> ReconcileReport:
    """
    Operator cleanup for ledger rows that can no longer become invitations.

    Removes rows whose child already holds a live invitation for the
    activity and rows that now point at the host's own family. Rows that
    no longer resolve are counted and left for manual review.
    """
    report = ReconcileReport()
    ledger = PendingInvitationLedger(db)

    with transaction(db):
        rows = db.query(PendingActivityInvitation).order_by(PendingActivityInvitation.id).all()
        for row in rows:
            report.scanned += 1
            try:
                resolved = ledger.resolve(PendingTarget.parse(row.pending_connection_key))
            except IdentityResolutionFailure:
                logger.error(f"❌ Pending row {row.uuid} ({row.pending_connection_key}) is unresolvable")
                report.unresolvable += 1
                continue

            activity = row.activity
            if resolved.parent is not None and resolved.parent.id == activity.host_parent_id:
                ledger.consume(row)
                report.removed_host_family += 1
                continue

            if resolved.kind == "child" and live_invitation(db, activity.id, resolved.child.id):
                ledger.consume(row)
                report.removed_already_invited += 1

    logger.info(
        f"🧹 Reconciled {report.scanned} pending row(s): "
        f"{report.removed_already_invited} already invited, "
        f"{report.removed_host_family} host family, "
        f"{report.unresolvable} unresolvable"
    )
    return report
