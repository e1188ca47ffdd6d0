"""MetrcTag: local bookkeeping for METRC regulatory tags.

State machine (forward only):

    available → assigned → used
    available → voided

A tag is never returned to ``available``. ``superseded`` marks a ``used``
tag that was retired by a reassignment rather than by its plant reaching
a terminal status.
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from growtrack.database import Base, enum_column


class TagStatus(str, enum.Enum):
    AVAILABLE = "available"
    ASSIGNED = "assigned"
    USED = "used"
    VOIDED = "voided"


class TagType(str, enum.Enum):
    PLANT = "plant"
    PACKAGE = "package"


class MetrcTag(Base):
    __tablename__ = "metrc_tags"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    facility_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("facilities.id"), nullable=False, index=True
    )
    tag: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    tag_type: Mapped[TagType] = mapped_column(enum_column(TagType), default=TagType.PLANT)
    status: Mapped[TagStatus] = mapped_column(
        enum_column(TagStatus), default=TagStatus.AVAILABLE, index=True
    )

    # Set when status is assigned or used
    plant_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("plants.id"), index=True
    )
    assigned_by: Mapped[str | None] = mapped_column(String(36))
    assigned_at: Mapped[datetime | None] = mapped_column(DateTime)

    used_at: Mapped[datetime | None] = mapped_column(DateTime)
    superseded: Mapped[bool] = mapped_column(Boolean, default=False)

    voided_by: Mapped[str | None] = mapped_column(String(36))
    voided_at: Mapped[datetime | None] = mapped_column(DateTime)

    imported_by: Mapped[str | None] = mapped_column(String(36))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
