"""AuditEvent: immutable trail of harvest- and batch-level state changes.

``event_type`` is a closed set; the shape of ``event_metadata`` for each
type is defined by the discriminated union in
``growtrack.schemas.audit``. Rows are appended, never updated or deleted.
"""

from datetime import datetime

from sqlalchemy import DateTime, Integer, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from growtrack.database import Base

TRACKABLE_HARVEST = "Harvest"
TRACKABLE_BATCH = "PlantBatch"


class AuditEvent(Base):
    __tablename__ = "audit_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    facility_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)

    # ── Target ─────────────────────────────────────────────────
    # Harvest | PlantBatch
    trackable_type: Mapped[str] = mapped_column(String(30), nullable=False, index=True)
    trackable_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)

    # ── What ───────────────────────────────────────────────────
    event_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    event_metadata: Mapped[dict] = mapped_column("metadata", JSON, default=dict)
    notes: Mapped[str | None] = mapped_column(Text)

    # ── Who ────────────────────────────────────────────────────
    user_id: Mapped[str] = mapped_column(String(36), nullable=False)
    user_name: Mapped[str] = mapped_column(String(255), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False, index=True
    )
