import uuid

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from playconnect.database import Base


class Activity(Base):
    """
    Read-side mirror of an activity owned by the activity CRUD service.

    The engine only needs the host identity and the auto-notify switch.
    """

    __tablename__ = "activities"

    id = Column(Integer, primary_key=True, index=True)
    uuid = Column(
        String(36),
        unique=True,
        index=True,
        nullable=False,
        default=lambda: str(uuid.uuid4()),
    )

    host_parent_id = Column(
        Integer,
        ForeignKey("parents.id"),
        nullable=False,
        index=True,
    )
    host_child_id = Column(
        Integer,
        ForeignKey("children.id"),
        nullable=False,
    )

    name = Column(String, nullable=False)
    start_date = Column(Date, nullable=True)

    # Invite every newly connected child to this activity
    auto_notify_new_connections = Column(Boolean, nullable=False, default=True)

    created_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    host_parent = relationship("Parent")
    host_child = relationship("Child")
