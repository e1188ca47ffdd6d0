"""Plant, the central grow entity, and its per-plant event log.

An active plant occupies exactly one Tray slot. Once ``status`` leaves
``active`` the plant is terminal: ``tray_id`` is cleared and it no longer
counts toward any tray or room occupancy.

``metrc_label`` mirrors the tag string bound in ``metrc_tags``; the unique
constraint guarantees at most one plant references a given tag.
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from growtrack.database import Base, enum_column


class GrowthPhase(str, enum.Enum):
    IMMATURE = "immature"
    VEGETATIVE = "vegetative"
    FLOWERING = "flowering"


class PlantStatus(str, enum.Enum):
    ACTIVE = "active"
    HARVESTED = "harvested"
    DESTROYED = "destroyed"
    REMOVED = "removed"


class Plant(Base):
    __tablename__ = "plants"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    facility_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("facilities.id"), nullable=False, index=True
    )
    plant_uid: Mapped[str] = mapped_column(
        String(50), unique=True, nullable=False, index=True
    )
    strain_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("strains.id"), nullable=False, index=True
    )

    # ── State ────────────────────────────────────────────────
    growth_phase: Mapped[GrowthPhase] = mapped_column(
        enum_column(GrowthPhase), default=GrowthPhase.IMMATURE, index=True
    )
    status: Mapped[PlantStatus] = mapped_column(
        enum_column(PlantStatus), default=PlantStatus.ACTIVE, index=True
    )

    # ── Placement ────────────────────────────────────────────
    tray_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("trays.id"), index=True
    )

    # ── Links ────────────────────────────────────────────────
    plant_batch_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("plant_batches.id"), index=True
    )
    harvest_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("harvests.id"), index=True
    )
    metrc_label: Mapped[str | None] = mapped_column(String(50), unique=True)

    # ── Metadata ─────────────────────────────────────────────
    destroyed_reason: Mapped[str | None] = mapped_column(Text)
    placed_by: Mapped[str | None] = mapped_column(String(36))
    retired_at: Mapped[datetime | None] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )


class PlantEventType(str, enum.Enum):
    PLACED = "placed"
    MOVED = "moved"
    PHASE_CHANGED = "phase_changed"
    TAGGED = "tagged"
    OBSERVATION = "observation"
    DESTROYED = "destroyed"
    HARVESTED = "harvested"


class PlantEvent(Base):
    """Append-only timeline entry for one plant. Never updated or deleted."""
    __tablename__ = "plant_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    facility_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("facilities.id"), nullable=False, index=True
    )
    plant_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("plants.id"), nullable=False, index=True
    )
    event_type: Mapped[PlantEventType] = mapped_column(
        enum_column(PlantEventType), nullable=False
    )
    notes: Mapped[str | None] = mapped_column(Text)
    photo_urls: Mapped[list] = mapped_column(JSON, default=list)
    details: Mapped[dict | None] = mapped_column(JSON)
    user_id: Mapped[str | None] = mapped_column(String(36))
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False, index=True
    )
