import uuid

from sqlalchemy import (
    Column,
    Integer,
    String,
    DateTime,
    ForeignKey,
    Index,
    text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from playconnect.database import Base


class ActivityInvitation(Base):
    __tablename__ = "activity_invitations"

    id = Column(Integer, primary_key=True, index=True)
    uuid = Column(
        String(36),
        unique=True,
        index=True,
        nullable=False,
        default=lambda: str(uuid.uuid4()),
    )

    activity_id = Column(
        Integer,
        ForeignKey("activities.id"),
        nullable=False,
        index=True,
    )
    inviter_parent_id = Column(
        Integer,
        ForeignKey("parents.id"),
        nullable=False,
    )
    invited_parent_id = Column(
        Integer,
        ForeignKey("parents.id"),
        nullable=False,
        index=True,
    )
    invited_child_id = Column(
        Integer,
        ForeignKey("children.id"),
        nullable=False,
    )

    # pending | accepted | rejected | withdrawn
    status = Column(String, nullable=False, default="pending")
    message = Column(String, nullable=True)

    # When the invited parent first opened it
    viewed_at = Column(DateTime(timezone=True), nullable=True)
    # When the host acknowledged the latest status change
    status_viewed_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    activity = relationship("Activity")
    inviter_parent = relationship("Parent", foreign_keys=[inviter_parent_id])
    invited_parent = relationship("Parent", foreign_keys=[invited_parent_id])
    invited_child = relationship("Child", foreign_keys=[invited_child_id])

    __table_args__ = (
        # At most one live invitation per (activity, child)
        Index(
            "uq_activity_invitations_live_child",
            "activity_id",
            "invited_child_id",
            unique=True,
            postgresql_where=text("status != 'withdrawn'"),
            sqlite_where=text("status != 'withdrawn'"),
        ),
    )
