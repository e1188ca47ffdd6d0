"""Batch router: plant batches and their notes.

Endpoints:
    GET    /api/batches                     List batches with active counts
    POST   /api/batches                     Create batch (optionally grouping plants)
    GET    /api/batches/{batch_id}          Single batch
    POST   /api/batches/{batch_id}/notes    Add a note to the batch audit trail
"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from growtrack.auth.deps import require_facility, require_writer
from growtrack.config import settings
from growtrack.database import get_db
from growtrack.models.audit_event import TRACKABLE_BATCH
from growtrack.models.user import User
from growtrack.schemas.audit import AuditEventOut, NoteCreate
from growtrack.schemas.batch import PlantBatchCreate, PlantBatchOut
from growtrack.schemas.common import PaginatedResponse
from growtrack.services import audit as audit_service
from growtrack.services import batches as batch_service

router = APIRouter()


@router.get("/", response_model=PaginatedResponse[PlantBatchOut])
async def list_batches(
    strain_id: str | None = Query(None),
    limit: int = Query(settings.default_page_size, ge=1, le=settings.max_page_size),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_facility),
):
    items, total = await batch_service.list_batches(
        db, user.facility_id, strain_id=strain_id, limit=limit, offset=offset
    )
    return PaginatedResponse(items=items, total=total, limit=limit, offset=offset)


@router.post("/", response_model=PlantBatchOut, status_code=status.HTTP_201_CREATED)
async def create_batch(
    body: PlantBatchCreate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_writer),
):
    batch = await batch_service.create_batch(db, user, body)
    return await batch_service.batch_out(db, batch)


@router.get("/{batch_id}", response_model=PlantBatchOut)
async def get_batch(
    batch_id: str,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_facility),
):
    batch = await batch_service.get_batch(db, user.facility_id, batch_id)
    return await batch_service.batch_out(db, batch)


@router.post(
    "/{batch_id}/notes", response_model=AuditEventOut, status_code=status.HTTP_201_CREATED
)
async def add_note(
    batch_id: str,
    body: NoteCreate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_writer),
):
    batch = await batch_service.get_batch(db, user.facility_id, batch_id)
    event = await audit_service.add_note(
        db, user,
        trackable_type=TRACKABLE_BATCH,
        trackable_id=batch.id,
        notes=body.notes,
    )
    return audit_service.event_out(event, batch.name)
