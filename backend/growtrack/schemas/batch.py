"""Pydantic schemas for plant batches."""

from datetime import datetime

from pydantic import BaseModel, Field

from growtrack.models.plant_batch import BatchType


class PlantBatchCreate(BaseModel):
    """Create a batch.

    With ``plant_ids`` the initial count is the number of plants grouped;
    without, ``initial_count`` must be given (plants are added later at
    creation time via ``plant_batch_id``).
    """
    name: str | None = Field(None, max_length=255)
    batch_type: BatchType
    strain_id: str
    plant_ids: list[str] = []
    initial_count: int | None = Field(None, ge=1)
    notes: str | None = None


class PlantBatchOut(BaseModel):
    id: str
    batch_uid: str
    name: str
    batch_type: BatchType
    strain_id: str
    strain_name: str | None = None
    initial_count: int
    active_plant_count: int
    notes: str | None
    created_by: str | None
    created_at: datetime
