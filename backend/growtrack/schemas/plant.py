"""Pydantic schemas for plants, plant events, and quick entry."""

from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from growtrack.models.plant import GrowthPhase, PlantEventType, PlantStatus


class PlantCreate(BaseModel):
    tray_id: str
    strain_id: str
    growth_phase: GrowthPhase = GrowthPhase.IMMATURE
    plant_batch_id: str | None = None


class PlantMove(BaseModel):
    tray_id: str


class PlantPhaseChange(BaseModel):
    growth_phase: GrowthPhase


class PlantTag(BaseModel):
    tag: str = Field(..., min_length=1, max_length=50)


class PlantDestroy(BaseModel):
    reason: str = Field(..., min_length=1)


class BulkPlantCreate(BaseModel):
    """Quick entry: one plant per suffix, each tagged ``prefix + suffix``."""
    tray_id: str
    strain_id: str
    prefix: str = ""
    suffixes: list[str] = Field(..., min_length=1)
    growth_phase: GrowthPhase = GrowthPhase.FLOWERING
    plant_batch_id: str | None = None

    @field_validator("suffixes", mode="before")
    @classmethod
    def _split_comma_string(cls, value):
        if isinstance(value, str):
            return [s for s in (part.strip() for part in value.split(",")) if s]
        return value


class PlantOut(BaseModel):
    id: str
    plant_uid: str
    strain_id: str
    growth_phase: GrowthPhase
    status: PlantStatus
    tray_id: str | None
    plant_batch_id: str | None
    harvest_id: str | None
    metrc_label: str | None
    destroyed_reason: str | None
    placed_by: str | None
    retired_at: datetime | None
    created_at: datetime

    model_config = {"from_attributes": True}


class PlantLocation(BaseModel):
    room_id: str
    room_name: str
    rack_id: str
    rack_name: str
    floor: int
    tray_id: str
    tray_name: str


class PlantDetail(PlantOut):
    strain_name: str | None = None
    batch_name: str | None = None
    location: PlantLocation | None = None


class PlantEventOut(BaseModel):
    id: int
    plant_id: str
    event_type: PlantEventType
    notes: str | None
    photo_urls: list[str] = []
    details: dict | None
    user_id: str | None
    created_at: datetime

    model_config = {"from_attributes": True}


class PlantFeedItem(PlantEventOut):
    plant_uid: str
    metrc_label: str | None
    strain_name: str | None
