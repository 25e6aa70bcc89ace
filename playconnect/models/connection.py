import uuid

from sqlalchemy import (
    Column,
    Integer,
    String,
    DateTime,
    ForeignKey,
    CheckConstraint,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from playconnect.database import Base


class Connection(Base):
    __tablename__ = "connections"

    id = Column(Integer, primary_key=True, index=True)
    uuid = Column(
        String(36),
        unique=True,
        index=True,
        nullable=False,
        default=lambda: str(uuid.uuid4()),
    )

    # ------------------------------------
    # Undirected pair, stored with child_a_id < child_b_id
    # ------------------------------------
    child_a_id = Column(
        Integer,
        ForeignKey("children.id"),
        nullable=False,
        index=True,
    )
    child_b_id = Column(
        Integer,
        ForeignKey("children.id"),
        nullable=False,
        index=True,
    )

    # active | removed (soft delete)
    status = Column(
        String,
        nullable=False,
        default="active",
        index=True,
    )

    # The accepted request that produced (or last re-activated) this row
    source_request_id = Column(
        Integer,
        ForeignKey("connection_requests.id"),
        nullable=False,
    )

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
    removed_at = Column(
        DateTime(timezone=True),
        nullable=True,
    )

    child_a = relationship("Child", foreign_keys=[child_a_id])
    child_b = relationship("Child", foreign_keys=[child_b_id])
    source_request = relationship("ConnectionRequest")

    __table_args__ = (
        CheckConstraint(
            "child_a_id < child_b_id",
            name="ck_connections_ordered_pair",
        ),
        UniqueConstraint(
            "child_a_id",
            "child_b_id",
            name="uq_connections_pair",
        ),
    )

    def other_child(self, child_id: int):
        return self.child_b if child_id == self.child_a_id else self.child_a
