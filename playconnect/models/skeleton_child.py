import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from playconnect.database import Base


class SkeletonChild(Base):
    __tablename__ = "skeleton_children"

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

    name = Column(String, nullable=False)
    birth_year = Column(Integer, nullable=True)

    is_merged = Column(Boolean, nullable=False, default=False)
    merged_with_child_id = Column(
        Integer,
        ForeignKey("children.id"),
        nullable=True,
    )

    created_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    skeleton_account = relationship("SkeletonAccount", back_populates="children")
    merged_with = relationship("Child")
