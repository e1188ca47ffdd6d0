"""Pydantic schemas for facility, rooms, racks, and trays."""

from datetime import datetime

from pydantic import BaseModel, Field, model_validator

from growtrack.models.facility import RoomType
from growtrack.models.plant import GrowthPhase


# ── Facility ─────────────────────────────────────────────────

class FacilityUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=255)
    license_number: str | None = None
    layout: dict | None = None


class RoomStatsOut(BaseModel):
    total_capacity: int
    active_plant_count: int
    occupied_zone_count: int
    total_zone_count: int


class RoomSummary(BaseModel):
    id: str
    name: str
    room_type: RoomType | None
    rows: int | None
    cols: int | None
    floor_count: int
    stats: RoomStatsOut


class FacilityOut(BaseModel):
    id: str
    name: str
    license_number: str | None
    layout: dict | None
    rooms: list[RoomSummary] = []
    updated_at: datetime


# ── Room tree (create) ───────────────────────────────────────

class TrayCreate(BaseModel):
    position: int = Field(0, ge=0)
    capacity: int = Field(..., ge=1)
    name: str | None = Field(None, max_length=100)


class RackCreate(BaseModel):
    floor: int = Field(1, ge=1)
    position: int = Field(0, ge=0)
    name: str | None = Field(None, max_length=100)
    trays: list[TrayCreate] = []


class RoomCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    room_type: RoomType | None = None
    rows: int | None = Field(None, ge=1)
    cols: int | None = Field(None, ge=1)
    floor_count: int = Field(1, ge=1)
    racks: list[RackCreate] = []

    @model_validator(mode="after")
    def racks_within_floors(self):
        for rack in self.racks:
            if rack.floor > self.floor_count:
                raise ValueError(
                    f"Rack floor {rack.floor} exceeds floor_count {self.floor_count}"
                )
        return self


class RoomUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=100)
    room_type: RoomType | None = None
    rows: int | None = Field(None, ge=1)
    cols: int | None = Field(None, ge=1)
    floor_count: int | None = Field(None, ge=1)


class TrayUpdate(BaseModel):
    capacity: int | None = Field(None, ge=1)
    name: str | None = Field(None, max_length=100)


# ── Room tree (read) ─────────────────────────────────────────

class TrayOut(BaseModel):
    id: str
    rack_id: str
    position: int
    name: str | None
    display_name: str
    capacity: int
    occupancy: int
    can_place: bool


class RackOut(BaseModel):
    id: str
    floor: int
    position: int
    name: str | None
    display_name: str
    trays: list[TrayOut] = []


class RoomDetail(RoomSummary):
    racks: list[RackOut] = []


# ── Floor view ───────────────────────────────────────────────

class FloorPlant(BaseModel):
    id: str
    plant_uid: str
    strain_id: str
    strain_name: str | None
    growth_phase: GrowthPhase
    metrc_label: str | None


class FloorTray(TrayOut):
    plants: list[FloorPlant] = []


class FloorRack(BaseModel):
    id: str
    floor: int
    position: int
    display_name: str
    trays: list[FloorTray] = []


class FloorView(BaseModel):
    room_id: str
    room_name: str
    floor: int
    floor_count: int
    racks: list[FloorRack] = []
