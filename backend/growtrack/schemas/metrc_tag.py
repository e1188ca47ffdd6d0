"""Pydantic schemas for the METRC tag registry."""

from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from growtrack.models.metrc_tag import TagStatus, TagType


class TagImportRequest(BaseModel):
    tags: list[str] = Field(..., min_length=1)
    tag_type: TagType = TagType.PLANT

    @field_validator("tags", mode="before")
    @classmethod
    def _split_lines(cls, value):
        # Accept a pasted block (one tag per line) as well as a list
        if isinstance(value, str):
            return [line for line in (part.strip() for part in value.splitlines()) if line]
        return value


class MetrcTagOut(BaseModel):
    id: str
    tag: str
    tag_type: TagType
    status: TagStatus
    plant_id: str | None
    assigned_by: str | None
    assigned_at: datetime | None
    used_at: datetime | None
    superseded: bool
    voided_at: datetime | None
    created_at: datetime

    model_config = {"from_attributes": True}


class TagStatsOut(BaseModel):
    available: int = 0
    assigned: int = 0
    used: int = 0
    voided: int = 0
    total: int = 0
