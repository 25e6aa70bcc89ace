import logging
import re

from sqlalchemy.orm import Session

from playconnect.core.errors import (
    ChildNotFound,
    Conflict,
    IdentityResolutionFailure,
    NotAuthorised,
    ParentNotFound,
)
from playconnect.models.child import Child
from playconnect.models.parent import Parent

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
MIN_PHONE_DIGITS = 7


# --------------------------------------------------
# CONTACT NORMALISATION
# --------------------------------------------------
def normalize_email(value: str) -> str:
    return value.strip().lower()


def normalize_phone(value: str) -> str:
    return re.sub(r"\D", "", value)


def detect_contact_type(value: str) -> str:
    return "email" if "@" in value else "phone"


def normalize_contact(contact_method: str, contact_type: str | None = None) -> tuple[str, str]:
    """
    Canonical (method, type) pair used for every contact lookup.

    E-mail is compared case-insensitively, phone numbers by digits only.
    """
    contact_type = contact_type or detect_contact_type(contact_method)

    if contact_type == "email":
        method = normalize_email(contact_method)
        if not EMAIL_RE.match(method):
            raise IdentityResolutionFailure(f"Invalid email address: {contact_method!r}")
        return method, "email"

    if contact_type == "phone":
        method = normalize_phone(contact_method)
        if len(method) < MIN_PHONE_DIGITS:
            raise IdentityResolutionFailure(f"Invalid phone number: {contact_method!r}")
        return method, "phone"

    raise IdentityResolutionFailure(f"Unknown contact type: {contact_type!r}")


class IdentityStore:
    """Canonical parent and child records."""

    def __init__(self, db: Session):
        self.db = db

    # --------------------------------------------------
    # LOOKUPS
    # --------------------------------------------------
    def parent_by_uuid(self, parent_uuid: str) -> Parent:
        parent = self.db.query(Parent).filter(Parent.uuid == parent_uuid).first()
        if not parent:
            raise ParentNotFound(f"Parent {parent_uuid} not found")
        return parent

    def child_by_uuid(self, child_uuid: str) -> Child:
        child = self.db.query(Child).filter(Child.uuid == child_uuid).first()
        if not child:
            raise ChildNotFound(f"Child {child_uuid} not found")
        return child

    def owned_child(self, parent: Parent, child_uuid: str) -> Child:
        child = self.child_by_uuid(child_uuid)
        if child.parent_id != parent.id:
            raise NotAuthorised("Child does not belong to this parent")
        return child

    def find_parent_by_contact(self, contact: str, contact_type: str | None = None) -> Parent | None:
        method, kind = normalize_contact(contact, contact_type)
        column = Parent.email if kind == "email" else Parent.phone
        return (
            self.db.query(Parent)
            .filter(column == method, Parent.is_active.is_(True))
            .first()
        )

    # --------------------------------------------------
    # WRITES
    # --------------------------------------------------
    def create_parent(
        self,
        display_name: str,
        email: str | None = None,
        phone: str | None = None,
        parent_uuid: str | None = None,
    ) -> Parent:
        """Adds the parent to the session; the caller commits."""
        if not email and not phone:
            raise IdentityResolutionFailure("A parent needs an email or a phone number")

        email = normalize_contact(email, "email")[0] if email else None
        phone = normalize_contact(phone, "phone")[0] if phone else None

        clash = self.db.query(Parent).filter(
            ((Parent.email == email) & (Parent.email.isnot(None)))
            | ((Parent.phone == phone) & (Parent.phone.isnot(None)))
        ).first()
        if clash:
            raise Conflict("A parent with this email or phone already exists")

        parent = Parent(display_name=display_name, email=email, phone=phone)
        if parent_uuid:
            if self.db.query(Parent).filter(Parent.uuid == parent_uuid).first():
                raise Conflict("Parent already registered")
            parent.uuid = parent_uuid

        self.db.add(parent)
        self.db.flush()
        logger.info(f"👤 Created parent {parent.uuid}")
        return parent

    def create_child(self, parent: Parent, name: str, birth_year: int | None = None) -> Child:
        child = Child(parent_id=parent.id, name=name.strip(), birth_year=birth_year)
        self.db.add(child)
        self.db.flush()
        return child

