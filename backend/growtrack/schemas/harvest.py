"""Pydantic schemas for harvests and weight recording."""

from datetime import date, datetime

from pydantic import BaseModel, Field, model_validator

from growtrack.models.harvest import HarvestStatus, HarvestType
from growtrack.models.plant import PlantStatus


class HarvestCreate(BaseModel):
    plant_ids: list[str] = Field(..., min_length=1)
    harvest_type: HarvestType = HarvestType.WHOLE_PLANT
    harvest_date: date | None = None
    name: str | None = Field(None, max_length=100)
    wet_weight_grams: float | None = Field(None, gt=0)
    drying_room_id: str | None = None
    notes: str | None = None


class HarvestUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=100)
    harvest_date: date | None = None
    notes: str | None = None


class HarvestAddPlants(BaseModel):
    plant_ids: list[str] = Field(..., min_length=1)


class WeightRecord(BaseModel):
    grams: float = Field(..., gt=0)


class StartDrying(BaseModel):
    drying_room_id: str | None = None


class StrainWeightRecord(BaseModel):
    strain_id: str
    wet_weight_grams: float | None = Field(None, ge=0)
    dry_weight_grams: float | None = Field(None, ge=0)
    flower_weight_grams: float | None = Field(None, ge=0)
    shake_weight_grams: float | None = Field(None, ge=0)
    waste_weight_grams: float | None = Field(None, ge=0)

    @model_validator(mode="after")
    def at_least_one_weight(self):
        if all(v is None for v in self.weights().values()):
            raise ValueError("Provide at least one weight")
        return self

    def weights(self) -> dict[str, float | None]:
        return {
            "wet_weight_grams": self.wet_weight_grams,
            "dry_weight_grams": self.dry_weight_grams,
            "flower_weight_grams": self.flower_weight_grams,
            "shake_weight_grams": self.shake_weight_grams,
            "waste_weight_grams": self.waste_weight_grams,
        }


class HarvestWeightOut(BaseModel):
    strain_id: str
    strain_name: str | None = None
    wet_weight_grams: float | None
    dry_weight_grams: float | None
    flower_weight_grams: float | None
    shake_weight_grams: float | None
    waste_weight_grams: float | None


class HarvestStrainOut(BaseModel):
    """A strain with at least one plant in the harvest."""
    strain_id: str
    strain_name: str
    plant_count: int


class HarvestPlantOut(BaseModel):
    id: str
    plant_uid: str
    strain_id: str
    strain_name: str | None = None
    metrc_label: str | None
    status: PlantStatus


class HarvestSummary(BaseModel):
    id: str
    name: str
    harvest_type: HarvestType
    harvest_date: date
    status: HarvestStatus
    wet_weight_grams: float | None
    dry_weight_grams: float | None
    waste_weight_grams: float | None
    drying_room_id: str | None
    notes: str | None
    admin_reviewed_at: datetime | None
    closed_at: datetime | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class HarvestDetail(HarvestSummary):
    drying_room_name: str | None = None
    drying_started_at: datetime | None
    drying_finished_at: datetime | None
    trimming_started_at: datetime | None
    trimming_finished_at: datetime | None
    curing_finished_at: datetime | None
    admin_reviewed_by: str | None
    closed_by: str | None = None
    drying_days: int | None = None
    trimming_days: int | None = None
    curing_days: int | None = None
    total_days: int | None = None
    dry_weight_loss_pct: float | None = None
    flower_weight_grams: float | None = None
    shake_weight_grams: float | None = None
    strains_in_harvest: list[HarvestStrainOut] = []
    plant_count: int = 0
    plants: list[HarvestPlantOut] = []
    weights: list[HarvestWeightOut] = []


class FlowerInventoryRow(BaseModel):
    strain_id: str
    strain_name: str
    harvest_count: int
    wet_weight_grams: float
    dry_weight_grams: float
    flower_weight_grams: float
    shake_weight_grams: float
    waste_weight_grams: float
