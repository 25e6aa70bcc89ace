import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from playconnect.database import Base


class PendingActivityInvitation(Base):
    """
    An invitation the host asked for before the invitee was connected.

    Written once by the host, deleted once when it becomes a real
    ActivityInvitation.
    """

    __tablename__ = "pending_activity_invitations"

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

    # Canonical key: pending-child-{uuid} or pending-{uuid}
    pending_connection_key = Column(String, nullable=False, index=True)

    # parent | child | skeleton_account | skeleton_child, resolved at write time
    target_kind = Column(String, nullable=False)
    target_uuid = Column(String(36), nullable=False, index=True)

    message = Column(String, nullable=True)

    created_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    activity = relationship("Activity")

    __table_args__ = (
        UniqueConstraint(
            "activity_id",
            "pending_connection_key",
            name="uq_pending_activity_invitations_key",
        ),
    )
