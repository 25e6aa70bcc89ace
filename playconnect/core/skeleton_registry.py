import logging
from dataclasses import dataclass

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from playconnect.core.errors import (
    ChildNotFound,
    ContactAlreadyRegistered,
    DuplicatePendingRequest,
    SelfConnection,
    SkeletonNotFound,
)
from playconnect.core.identity import IdentityStore, normalize_contact
from playconnect.database import transaction
from playconnect.models.child import Child
from playconnect.models.parent import Parent
from playconnect.models.skeleton_account import SkeletonAccount
from playconnect.models.skeleton_child import SkeletonChild
from playconnect.models.skeleton_connection_request import SkeletonConnectionRequest

logger = logging.getLogger(__name__)


@dataclass
class SkeletonRequestResult:
    skeleton_account: SkeletonAccount
    skeleton_child: SkeletonChild
    request: SkeletonConnectionRequest


class SkeletonRegistry:
    """
    Placeholder parents, children and requests for contacts with no account.

    Rows are owned by the requester until the contact registers and
    ``SkeletonMergeEngine`` turns them into real ones.
    """

    def __init__(self, db: Session):
        self.db = db
        self.identity = IdentityStore(db)

    def find_or_create_skeleton(
        self,
        contact_method: str,
        contact_type: str,
        created_by: Parent,
    ) -> SkeletonAccount:
        method, kind = normalize_contact(contact_method, contact_type)

        account = self._open_account(method, kind)
        if account:
            return account

        account = SkeletonAccount(
            contact_method=method,
            contact_type=kind,
            created_by_parent_id=created_by.id,
        )
        self.db.add(account)
        try:
            with self.db.begin_nested():
                self.db.flush()
        except IntegrityError:
            # Another requester created the placeholder first
            account = self._open_account(method, kind)
            if account is None:
                raise
            return account

        logger.info(f"🦴 Skeleton account {account.uuid} created for {kind}")
        return account

    def register_skeleton_child(
        self,
        skeleton_account_id: int,
        name: str,
        birth_year: int | None = None,
    ) -> SkeletonChild:
        account = self.db.query(SkeletonAccount).filter(SkeletonAccount.id == skeleton_account_id).first()
        if not account:
            raise SkeletonNotFound("Skeleton account not found")

        name = name.strip()
        existing = (
            self.db.query(SkeletonChild)
            .filter(
                SkeletonChild.skeleton_account_id == account.id,
                SkeletonChild.is_merged.is_(False),
                func.lower(SkeletonChild.name) == name.lower(),
            )
            .first()
        )
        if existing:
            if existing.birth_year is None and birth_year is not None:
                existing.birth_year = birth_year
            return existing

        child = SkeletonChild(
            skeleton_account_id=account.id,
            name=name,
            birth_year=birth_year,
        )
        self.db.add(child)
        self.db.flush()
        return child

    def register_skeleton_connection_request(
        self,
        skeleton_child_id: int,
        requester_child_id: int,
        message: str | None = None,
    ) -> SkeletonConnectionRequest:
        skeleton_child = self.db.query(SkeletonChild).filter(SkeletonChild.id == skeleton_child_id).first()
        if not skeleton_child:
            raise SkeletonNotFound("Skeleton child not found")

        requester_child = self.db.query(Child).filter(Child.id == requester_child_id).first()
        if not requester_child:
            raise ChildNotFound("Requester child not found")

        duplicate = (
            self.db.query(SkeletonConnectionRequest)
            .filter(
                SkeletonConnectionRequest.skeleton_child_id == skeleton_child.id,
                SkeletonConnectionRequest.requester_child_id == requester_child.id,
                SkeletonConnectionRequest.is_converted.is_(False),
            )
            .first()
        )
        if duplicate:
            raise DuplicatePendingRequest("Request already sent")

        request = SkeletonConnectionRequest(
            skeleton_account_id=skeleton_child.skeleton_account_id,
            skeleton_child_id=skeleton_child.id,
            requester_parent_id=requester_child.parent_id,
            requester_child_id=requester_child.id,
            message=message,
        )
        self.db.add(request)
        self.db.flush()
        return request

    def create_skeleton_request(
        self,
        requester: Parent,
        requester_child_uuid: str,
        contact_method: str,
        contact_type: str,
        target_child_name: str,
        target_child_birth_year: int | None = None,
        message: str | None = None,
    ) -> SkeletonRequestResult:
        """Everything ``POST /connections/skeleton`` needs, in one transaction."""
        requester_child = self.identity.owned_child(requester, requester_child_uuid)
        method, kind = normalize_contact(contact_method, contact_type)

        own_contact = requester.email if kind == "email" else requester.phone
        if own_contact == method:
            raise SelfConnection("Cannot send a connection request to yourself")

        if self.identity.find_parent_by_contact(method, kind):
            raise ContactAlreadyRegistered(
                "This contact already has an account; send a normal connection request"
            )

        with transaction(self.db):
            account = self.find_or_create_skeleton(method, kind, requester)
            skeleton_child = self.register_skeleton_child(
                account.id, target_child_name, target_child_birth_year
            )
            request = self.register_skeleton_connection_request(
                skeleton_child.id, requester_child.id, message
            )

        logger.info(
            f"🦴 Skeleton request {request.uuid}: child {requester_child.uuid} → "
            f"skeleton child {skeleton_child.uuid}"
        )
        return SkeletonRequestResult(account, skeleton_child, request)

    def accounts_created_by(self, parent: Parent) -> list[SkeletonAccount]:
        """Placeholders this parent has sent requests to, merged ones included."""
        account_ids = select(SkeletonConnectionRequest.skeleton_account_id).where(
            SkeletonConnectionRequest.requester_parent_id == parent.id
        )
        return (
            self.db.query(SkeletonAccount)
            .filter(SkeletonAccount.id.in_(account_ids))
            .order_by(SkeletonAccount.created_at)
            .all()
        )

    def _open_account(self, method: str, kind: str) -> SkeletonAccount | None:
        return (
            self.db.query(SkeletonAccount)
            .filter(
                SkeletonAccount.contact_method == method,
                SkeletonAccount.contact_type == kind,
                SkeletonAccount.is_merged.is_(False),
            )
            .first()
        )
