import logging

from sqlalchemy.orm import Session

from playconnect.core.identity import IdentityStore
from playconnect.core.skeleton_merge import MergeResult, SkeletonMergeEngine
from playconnect.database import transaction
from playconnect.models.parent import Parent

logger = logging.getLogger(__name__)


def register_parent(
    db: Session,
    parent_uuid: str,
    display_name: str,
    email: str | None = None,
    phone: str | None = None,
) -> tuple[Parent, MergeResult]:
    """Create the parent row for an authenticated subject, then merge placeholders."""
    with transaction(db):
        parent = IdentityStore(db).create_parent(
            display_name=display_name,
            email=email,
            phone=phone,
            parent_uuid=parent_uuid,
        )

    return parent, on_parent_registered(db, parent)


def on_parent_registered(db: Session, parent: Parent) -> MergeResult:
    """
    Registration hook. Safe to call more than once for the same parent.

    The parent row is already committed; each skeleton account merges in
    its own transaction, so one bad account does not undo the others
    merged before it.
    """
    logger.info(f"🎉 Parent {parent.uuid} registered, checking skeleton accounts")
    return SkeletonMergeEngine(db).merge_on_registration(parent)
