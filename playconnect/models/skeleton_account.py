import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, String, text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from playconnect.database import Base


class SkeletonAccount(Base):
    """Placeholder for a parent who has been invited but has no account yet."""

    __tablename__ = "skeleton_accounts"

    id = Column(Integer, primary_key=True, index=True)
    uuid = Column(
        String(36),
        unique=True,
        index=True,
        nullable=False,
        default=lambda: str(uuid.uuid4()),
    )

    # normalised: lower-case e-mail or digits-only phone
    contact_method = Column(String, nullable=False, index=True)
    # email | phone
    contact_type = Column(String, nullable=False)

    created_by_parent_id = Column(
        Integer,
        ForeignKey("parents.id"),
        nullable=False,
    )

    is_merged = Column(Boolean, nullable=False, default=False)
    merged_with_parent_id = Column(
        Integer,
        ForeignKey("parents.id"),
        nullable=True,
    )
    merged_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    children = relationship(
        "SkeletonChild",
        back_populates="skeleton_account",
        order_by="SkeletonChild.id",
    )
    created_by = relationship("Parent", foreign_keys=[created_by_parent_id])
    merged_with = relationship("Parent", foreign_keys=[merged_with_parent_id])

    __table_args__ = (
        # Many requesters share one open placeholder per contact
        Index(
            "uq_skeleton_accounts_open_contact",
            "contact_method",
            "contact_type",
            unique=True,
            postgresql_where=text("is_merged = false"),
            sqlite_where=text("is_merged = 0"),
        ),
    )
