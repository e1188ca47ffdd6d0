"""Strain catalog router (read-only)."""

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from growtrack.auth.deps import require_facility
from growtrack.database import get_db
from growtrack.models.strain import Strain
from growtrack.models.user import User

router = APIRouter()


class StrainOut(BaseModel):
    id: str
    name: str
    category: str | None

    model_config = {"from_attributes": True}


@router.get("/", response_model=list[StrainOut])
async def list_strains(
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_facility),
):
    result = await db.execute(select(Strain).order_by(Strain.name))
    return [StrainOut.model_validate(s) for s in result.scalars().all()]
