"""Harvest: flowering plants converted into weighed, dried, trimmed product.

Stage pipeline (each step is an explicit recording action, forward only):

    created → wet_weight_recorded → drying_started → dry_weight_recorded
            → drying_finished → trimming_started → trimming_finished
            → curing_finished

``admin_reviewed_at`` is an orthogonal flag set once after curing. A
reviewed harvest can then be closed (``curing_finished → closed``).

HarvestWeight holds the per-strain breakdown. Each weight column is
recorded at its own stage; later stages never overwrite earlier ones.
"""

import enum
import uuid
from datetime import date, datetime

from sqlalchemy import (
    Date, DateTime, Float, ForeignKey, String, Text, UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from growtrack.database import Base, enum_column


class HarvestType(str, enum.Enum):
    WHOLE_PLANT = "whole_plant"
    PARTIAL = "partial"


class HarvestStatus(str, enum.Enum):
    CREATED = "created"
    WET_WEIGHT_RECORDED = "wet_weight_recorded"
    DRYING_STARTED = "drying_started"
    DRY_WEIGHT_RECORDED = "dry_weight_recorded"
    DRYING_FINISHED = "drying_finished"
    TRIMMING_STARTED = "trimming_started"
    TRIMMING_FINISHED = "trimming_finished"
    CURING_FINISHED = "curing_finished"
    CLOSED = "closed"


HARVEST_STAGE_ORDER = list(HarvestStatus)


class Harvest(Base):
    __tablename__ = "harvests"
    __table_args__ = (
        UniqueConstraint("facility_id", "name", name="uq_harvests_facility_name"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    facility_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("facilities.id"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    harvest_type: Mapped[HarvestType] = mapped_column(
        enum_column(HarvestType), default=HarvestType.WHOLE_PLANT
    )
    harvest_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[HarvestStatus] = mapped_column(
        enum_column(HarvestStatus), default=HarvestStatus.CREATED, index=True
    )

    # ── Harvest-level weights (grams) ────────────────────────
    wet_weight_grams: Mapped[float | None] = mapped_column(Float)
    dry_weight_grams: Mapped[float | None] = mapped_column(Float)
    waste_weight_grams: Mapped[float | None] = mapped_column(Float)

    drying_room_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("rooms.id")
    )
    notes: Mapped[str | None] = mapped_column(Text)

    # ── Stage timestamps ─────────────────────────────────────
    drying_started_at: Mapped[datetime | None] = mapped_column(DateTime)
    drying_finished_at: Mapped[datetime | None] = mapped_column(DateTime)
    trimming_started_at: Mapped[datetime | None] = mapped_column(DateTime)
    trimming_finished_at: Mapped[datetime | None] = mapped_column(DateTime)
    curing_finished_at: Mapped[datetime | None] = mapped_column(DateTime)

    admin_reviewed_at: Mapped[datetime | None] = mapped_column(DateTime)
    admin_reviewed_by: Mapped[str | None] = mapped_column(String(36))
    closed_at: Mapped[datetime | None] = mapped_column(DateTime)
    closed_by: Mapped[str | None] = mapped_column(String(36))

    created_by: Mapped[str | None] = mapped_column(String(36))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )


class HarvestWeight(Base):
    """Per-strain weight breakdown within one harvest."""
    __tablename__ = "harvest_weights"
    __table_args__ = (
        UniqueConstraint("harvest_id", "strain_id", name="uq_harvest_weights_harvest_strain"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    harvest_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("harvests.id"), nullable=False, index=True
    )
    strain_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("strains.id"), nullable=False, index=True
    )
    wet_weight_grams: Mapped[float | None] = mapped_column(Float)
    dry_weight_grams: Mapped[float | None] = mapped_column(Float)
    flower_weight_grams: Mapped[float | None] = mapped_column(Float)
    shake_weight_grams: Mapped[float | None] = mapped_column(Float)
    waste_weight_grams: Mapped[float | None] = mapped_column(Float)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )
