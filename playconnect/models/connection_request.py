import uuid

from sqlalchemy import (
    Column,
    Integer,
    String,
    DateTime,
    ForeignKey,
    CheckConstraint,
    Index,
    text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from playconnect.database import Base


class ConnectionRequest(Base):
    __tablename__ = "connection_requests"

    id = Column(Integer, primary_key=True, index=True)
    uuid = Column(
        String(36),
        unique=True,
        index=True,
        nullable=False,
        default=lambda: str(uuid.uuid4()),
    )

    # ------------------------------------
    # Directed edge: requester child → target child
    # ------------------------------------
    requester_parent_id = Column(
        Integer,
        ForeignKey("parents.id"),
        nullable=False,
        index=True,
    )
    requester_child_id = Column(
        Integer,
        ForeignKey("children.id"),
        nullable=False,
    )
    target_parent_id = Column(
        Integer,
        ForeignKey("parents.id"),
        nullable=False,
        index=True,
    )
    target_child_id = Column(
        Integer,
        ForeignKey("children.id"),
        nullable=False,
    )

    # pending | accepted | rejected
    status = Column(
        String,
        nullable=False,
        default="pending",
        index=True,
    )

    message = Column(String, nullable=True)

    # ------------------------------------
    # Timestamps
    # ------------------------------------
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
    responded_at = Column(
        DateTime(timezone=True),
        nullable=True,
    )

    requester_parent = relationship("Parent", foreign_keys=[requester_parent_id])
    requester_child = relationship("Child", foreign_keys=[requester_child_id])
    target_parent = relationship("Parent", foreign_keys=[target_parent_id])
    target_child = relationship("Child", foreign_keys=[target_child_id])

    __table_args__ = (
        CheckConstraint(
            "requester_parent_id != target_parent_id",
            name="ck_connection_requests_not_self",
        ),
        # One outstanding pending request per ordered child pair
        Index(
            "uq_connection_requests_pending_pair",
            "requester_child_id",
            "target_child_id",
            unique=True,
            postgresql_where=text("status = 'pending'"),
            sqlite_where=text("status = 'pending'"),
        ),
        Index(
            "ix_connection_requests_target_status",
            "target_parent_id",
            "status",
        ),
    )
