"""Audit event payloads: one typed model per event_type.

``AuditMetadata`` is a discriminated union on ``event_type``. Services
build one of these variants and ``log_event`` stores its JSON dump; the
feed parses rows back through the same union before rendering.
"""

from datetime import datetime
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field


class HarvestCreated(BaseModel):
    event_type: Literal["harvest_created"] = "harvest_created"
    plant_count: int
    harvest_type: str
    strain_name: str | None = None
    wet_weight_grams: float | None = None


class HarvestPlantsAdded(BaseModel):
    event_type: Literal["harvest_plants_added"] = "harvest_plants_added"
    plant_count: int
    new_total: int


class HarvestWetWeightRecorded(BaseModel):
    event_type: Literal["harvest_wet_weight_recorded"] = "harvest_wet_weight_recorded"
    wet_weight_grams: float


class HarvestDryingStarted(BaseModel):
    event_type: Literal["harvest_drying_started"] = "harvest_drying_started"
    drying_room_name: str | None = None
    wet_weight_grams: float | None = None


class HarvestDryWeightRecorded(BaseModel):
    event_type: Literal["harvest_dry_weight_recorded"] = "harvest_dry_weight_recorded"
    dry_weight_grams: float


class HarvestDryingFinished(BaseModel):
    event_type: Literal["harvest_drying_finished"] = "harvest_drying_finished"
    dry_weight_grams: float | None = None
    drying_days: int | None = None


class HarvestStrainWeightRecorded(BaseModel):
    event_type: Literal["harvest_strain_weight_recorded"] = "harvest_strain_weight_recorded"
    strain_name: str | None = None
    wet_weight_grams: float | None = None
    dry_weight_grams: float | None = None
    flower_weight_grams: float | None = None
    shake_weight_grams: float | None = None
    waste_weight_grams: float | None = None


class HarvestWasteRecorded(BaseModel):
    event_type: Literal["harvest_waste_recorded"] = "harvest_waste_recorded"
    waste_weight_grams: float


class HarvestUpdated(BaseModel):
    event_type: Literal["harvest_updated"] = "harvest_updated"
    changed_fields: list[str] = []


class HarvestTrimmingStarted(BaseModel):
    event_type: Literal["harvest_trimming_started"] = "harvest_trimming_started"
    dry_weight_grams: float | None = None
    days_since_drying: int | None = None


class HarvestTrimmingFinished(BaseModel):
    event_type: Literal["harvest_trimming_finished"] = "harvest_trimming_finished"
    flower_weight_grams: float | None = None
    shake_weight_grams: float | None = None
    waste_weight_grams: float | None = None
    trimming_days: int | None = None


class HarvestCuringFinished(BaseModel):
    event_type: Literal["harvest_curing_finished"] = "harvest_curing_finished"
    curing_days: int | None = None


class HarvestAdminReviewed(BaseModel):
    event_type: Literal["harvest_admin_reviewed"] = "harvest_admin_reviewed"
    reviewed_by: str | None = None


class HarvestClosed(BaseModel):
    event_type: Literal["harvest_closed"] = "harvest_closed"
    closed_by: str | None = None
    flower_weight_grams: float | None = None


class BatchCreated(BaseModel):
    event_type: Literal["batch_created"] = "batch_created"
    batch_type: str
    initial_count: int
    strain_name: str | None = None


class NoteAdded(BaseModel):
    event_type: Literal["note_added"] = "note_added"


AuditMetadata = Annotated[
    Union[
        HarvestCreated,
        HarvestPlantsAdded,
        HarvestWetWeightRecorded,
        HarvestDryingStarted,
        HarvestDryWeightRecorded,
        HarvestDryingFinished,
        HarvestStrainWeightRecorded,
        HarvestWasteRecorded,
        HarvestUpdated,
        HarvestTrimmingStarted,
        HarvestTrimmingFinished,
        HarvestCuringFinished,
        HarvestAdminReviewed,
        HarvestClosed,
        BatchCreated,
        NoteAdded,
    ],
    Field(discriminator="event_type"),
]


AUDIT_EVENT_LABELS = {
    "harvest_created": "Harvest created",
    "harvest_plants_added": "Plants added",
    "harvest_wet_weight_recorded": "Wet weight recorded",
    "harvest_drying_started": "Drying started",
    "harvest_dry_weight_recorded": "Dry weight recorded",
    "harvest_drying_finished": "Drying finished",
    "harvest_strain_weight_recorded": "Strain weight recorded",
    "harvest_waste_recorded": "Waste recorded",
    "harvest_updated": "Harvest updated",
    "harvest_trimming_started": "Trimming started",
    "harvest_trimming_finished": "Trimming finished",
    "harvest_curing_finished": "Curing finished",
    "harvest_admin_reviewed": "Admin reviewed",
    "harvest_closed": "Harvest closed",
    "batch_created": "Batch created",
    "note_added": "Note added",
}


# ── API shapes ───────────────────────────────────────────────

class AuditEventOut(BaseModel):
    id: int
    trackable_type: str
    trackable_id: str
    trackable_name: str | None = None
    event_type: str
    label: str
    detail: str
    metadata: dict
    notes: str | None = None
    user_id: str
    user_name: str
    created_at: datetime


class NoteCreate(BaseModel):
    notes: str = Field(..., min_length=1)
