import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from playconnect.database import Base


class SkeletonConnectionRequest(Base):
    """A connection request whose target child only exists as a skeleton."""

    __tablename__ = "skeleton_connection_requests"

    id = Column(Integer, primary_key=True, index=True)
    uuid = Column(
        String(36),
        unique=True,
        index=True,
        nullable=False,
        default=lambda: str(uuid.uuid4()),
    )

    skeleton_account_id = Column(
        Integer,
        ForeignKey("skeleton_accounts.id"),
        nullable=False,
        index=True,
    )
    skeleton_child_id = Column(
        Integer,
        ForeignKey("skeleton_children.id"),
        nullable=False,
    )

    requester_parent_id = Column(
        Integer,
        ForeignKey("parents.id"),
        nullable=False,
    )
    requester_child_id = Column(
        Integer,
        ForeignKey("children.id"),
        nullable=False,
    )

    message = Column(String, nullable=True)

    is_converted = Column(Boolean, nullable=False, default=False)
    converted_to_request_id = Column(
        Integer,
        ForeignKey("connection_requests.id"),
        nullable=True,
    )

    created_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    skeleton_account = relationship("SkeletonAccount")
    skeleton_child = relationship("SkeletonChild")
    requester_parent = relationship("Parent")
    requester_child = relationship("Child")
    converted_to = relationship("ConnectionRequest")
