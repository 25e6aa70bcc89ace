import uuid

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from playconnect.database import Base


class Parent(Base):
    __tablename__ = "parents"

    id = Column(Integer, primary_key=True, index=True)
    uuid = Column(
        String(36),
        unique=True,
        index=True,
        nullable=False,
        default=lambda: str(uuid.uuid4()),
    )

    # ------------------------------------
    # Contact methods (normalised on write)
    # ------------------------------------
    # lower-cased e-mail
    email = Column(String, unique=True, index=True, nullable=True)
    # digits only
    phone = Column(String, unique=True, index=True, nullable=True)

    display_name = Column(String, nullable=False)

    # Parents are never deleted, only deactivated
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    children = relationship(
        "Child",
        back_populates="parent",
        order_by="Child.id",
    )

    __table_args__ = (
        CheckConstraint(
            "email IS NOT NULL OR phone IS NOT NULL",
            name="ck_parents_contact_present",
        ),
    )

    def contact_methods(self) -> list[tuple[str, str]]:
        methods = []
        if self.email:
            methods.append(("email", self.email))
        if self.phone:
            methods.append(("phone", self.phone))
        return methods
