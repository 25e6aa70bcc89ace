import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy import or_
from sqlalchemy.orm import Session

from playconnect.core.errors import ConsistencyViolation
from playconnect.core.locks import skeleton_account_lock
from playconnect.core.propagation import NotificationPropagator
from playconnect.database import transaction
from playconnect.models.child import Child
from playconnect.models.connection_request import ConnectionRequest
from playconnect.models.parent import Parent
from playconnect.models.skeleton_account import SkeletonAccount
from playconnect.models.skeleton_child import SkeletonChild
from playconnect.models.skeleton_connection_request import SkeletonConnectionRequest

logger = logging.getLogger(__name__)


@dataclass
class MergeResult:
    children_created: list[Child] = field(default_factory=list)
    requests_converted: list[ConnectionRequest] = field(default_factory=list)
    accounts_merged: list[SkeletonAccount] = field(default_factory=list)


class SkeletonMergeEngine:
    """
    Converts a registering parent's skeleton placeholders into real rows.

    Runs once per registration, one transaction per skeleton account. The
    merged/converted flags are re-read under the account lock, so calling it
    again for the same parent is a no-op.
    """

    def __init__(self, db: Session):
        self.db = db

    def merge_on_registration(self, parent: Parent) -> MergeResult:
        result = MergeResult()

        for account_id in self._candidate_account_ids(parent):
            with skeleton_account_lock(self.db, account_id):
                with transaction(self.db):
                    self._merge_account(account_id, parent, result)

        if result.accounts_merged:
            logger.info(
                f"🧬 Merged {len(result.accounts_merged)} skeleton account(s) into parent {parent.uuid}: "
                f"{len(result.children_created)} child(ren), "
                f"{len(result.requests_converted)} request(s)"
            )
        return result

    def _candidate_account_ids(self, parent: Parent) -> list[int]:
        clauses = [
            (SkeletonAccount.contact_type == kind) & (SkeletonAccount.contact_method == method)
            for kind, method in parent.contact_methods()
        ]
        if not clauses:
            return []

        rows = (
            self.db.query(SkeletonAccount.id)
            .filter(SkeletonAccount.is_merged.is_(False), or_(*clauses))
            .order_by(SkeletonAccount.id)
            .all()
        )
        return [row.id for row in rows]

    def _merge_account(self, account_id: int, parent: Parent, result: MergeResult) -> None:
        account = (
            self.db.query(SkeletonAccount)
            .filter(SkeletonAccount.id == account_id)
            .populate_existing()
            .first()
        )
        if account is None or account.is_merged:
            logger.info(f"ℹ️ Skeleton account {account_id} already merged")
            return

        propagator = NotificationPropagator(self.db)

        # 1. Real children for every open skeleton child
        skeleton_children = (
            self.db.query(SkeletonChild)
            .filter(
                SkeletonChild.skeleton_account_id == account.id,
                SkeletonChild.is_merged.is_(False),
            )
            .order_by(SkeletonChild.id)
            .all()
        )

        real_by_skeleton_id: dict[int, Child] = {}
        for skeleton_child in skeleton_children:
            child = Child(
                parent_id=parent.id,
                name=skeleton_child.name,
                birth_year=skeleton_child.birth_year,
            )
            self.db.add(child)
            self.db.flush()

            skeleton_child.is_merged = True
            skeleton_child.merged_with_child_id = child.id
            real_by_skeleton_id[skeleton_child.id] = child
            result.children_created.append(child)

            propagator.on_skeleton_child_merged(skeleton_child, child)

        self.db.expire(parent, ["children"])

        # 2. Real pending requests for every unconverted skeleton request
        skeleton_requests = (
            self.db.query(SkeletonConnectionRequest)
            .filter(
                SkeletonConnectionRequest.skeleton_account_id == account.id,
                SkeletonConnectionRequest.is_converted.is_(False),
            )
            .order_by(SkeletonConnectionRequest.id)
            .all()
        )

        for skeleton_request in skeleton_requests:
            child = real_by_skeleton_id.get(skeleton_request.skeleton_child_id)
            if child is None:
                logger.error(
                    f"❌ Skeleton request {skeleton_request.uuid} points at skeleton child "
                    f"{skeleton_request.skeleton_child_id}, which is not an open child of "
                    f"skeleton account {account.uuid}"
                )
                raise ConsistencyViolation(
                    f"Skeleton request {skeleton_request.uuid} has no unmerged skeleton child"
                )

            if skeleton_request.requester_parent_id == parent.id:
                raise ConsistencyViolation(
                    f"Skeleton request {skeleton_request.uuid} would connect parent {parent.uuid} to itself"
                )

            request = ConnectionRequest(
                requester_parent_id=skeleton_request.requester_parent_id,
                requester_child_id=skeleton_request.requester_child_id,
                target_parent_id=parent.id,
                target_child_id=child.id,
                message=skeleton_request.message,
                status="pending",
            )
            self.db.add(request)
            self.db.flush()

            skeleton_request.is_converted = True
            skeleton_request.converted_to_request_id = request.id
            result.requests_converted.append(request)

        # 3. Close the placeholder
        account.is_merged = True
        account.merged_with_parent_id = parent.id
        account.merged_at = datetime.now(timezone.utc)
        self.db.flush()

        propagator.on_skeleton_account_merged(account, parent)
        result.accounts_merged.append(account)
