"""Facility → Room → Rack → Tray: the spatial containment hierarchy.

Capacity lives only on Tray. Every aggregate above it (room capacity,
active plant count, occupied zones) is computed on read by
``growtrack.services.spatial`` and never stored.
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    CheckConstraint, DateTime, ForeignKey, Integer,
    JSON, String, UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from growtrack.database import Base, enum_column


class RoomType(str, enum.Enum):
    CLONE = "clone"
    VEG = "veg"
    FLOWER = "flower"
    MOTHER = "mother"
    DRY = "dry"
    CURE = "cure"


DRYING_ROOM_TYPES = (RoomType.DRY, RoomType.CURE)


class Facility(Base):
    __tablename__ = "facilities"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    license_number: Mapped[str | None] = mapped_column(String(100))
    # Free-form floor plan metadata owned by the UI (dimensions, image, ...)
    layout: Mapped[dict | None] = mapped_column(JSON)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )


class Room(Base):
    __tablename__ = "rooms"
    __table_args__ = (
        UniqueConstraint("facility_id", "name", name="uq_rooms_facility_name"),
        CheckConstraint("floor_count >= 1", name="ck_rooms_floor_count"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    facility_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("facilities.id"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    room_type: Mapped[RoomType | None] = mapped_column(enum_column(RoomType))

    # Logical grid, advisory only (drives the UI layout, not capacity)
    rows: Mapped[int | None] = mapped_column(Integer)
    cols: Mapped[int | None] = mapped_column(Integer)
    floor_count: Mapped[int] = mapped_column(Integer, default=1)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    racks = relationship(
        "Rack",
        back_populates="room",
        lazy="selectin",
        order_by="[Rack.floor, Rack.position]",
        cascade="all, delete-orphan",
    )


class Rack(Base):
    __tablename__ = "racks"
    __table_args__ = (
        CheckConstraint("floor >= 1", name="ck_racks_floor"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    room_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("rooms.id"), nullable=False, index=True
    )
    floor: Mapped[int] = mapped_column(Integer, default=1)
    position: Mapped[int] = mapped_column(Integer, default=0)
    name: Mapped[str | None] = mapped_column(String(100))

    room = relationship("Room", back_populates="racks")
    trays = relationship(
        "Tray",
        back_populates="rack",
        lazy="selectin",
        order_by="Tray.position",
        cascade="all, delete-orphan",
    )

    @property
    def display_name(self) -> str:
        return self.name or f"Rack {self.position + 1}"


class Tray(Base):
    __tablename__ = "trays"
    __table_args__ = (
        CheckConstraint("capacity > 0", name="ck_trays_capacity_positive"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    rack_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("racks.id"), nullable=False, index=True
    )
    position: Mapped[int] = mapped_column(Integer, default=0)
    capacity: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str | None] = mapped_column(String(100))

    rack = relationship("Rack", back_populates="trays")

    @property
    def display_name(self) -> str:
        return self.name or f"Tray {self.position + 1}"
