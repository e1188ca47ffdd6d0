"""PlantBatch: administrative grouping of plants started together.

``initial_count`` is a snapshot taken at creation and never changes.
The active count is derived from member plants on every read.
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from growtrack.database import Base, enum_column


class BatchType(str, enum.Enum):
    SEED = "seed"
    CLONE = "clone"
    TISSUE_CULTURE = "tissue_culture"


BATCH_TYPE_LABELS = {
    BatchType.SEED: "Seed",
    BatchType.CLONE: "Clone",
    BatchType.TISSUE_CULTURE: "Tissue Culture",
}


class PlantBatch(Base):
    __tablename__ = "plant_batches"
    __table_args__ = (
        CheckConstraint("initial_count >= 1", name="ck_plant_batches_initial_count"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    facility_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("facilities.id"), nullable=False, index=True
    )
    batch_uid: Mapped[str] = mapped_column(
        String(50), unique=True, nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    batch_type: Mapped[BatchType] = mapped_column(enum_column(BatchType), nullable=False)
    strain_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("strains.id"), nullable=False
    )
    initial_count: Mapped[int] = mapped_column(Integer, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text)
    created_by: Mapped[str | None] = mapped_column(String(36))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
