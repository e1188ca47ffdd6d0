"""Harvest router: creation, stage transitions, weights, review.

Endpoints:
    GET    /api/harvests                          List harvests
    POST   /api/harvests                          Harvest flowering plants
    GET    /api/harvests/flower-inventory         Per-strain totals across harvests
    GET    /api/harvests/{id}                     Detail (plants, weights, days)
    PATCH  /api/harvests/{id}                     Update name / date / notes
    POST   /api/harvests/{id}/plants              Add plants (before drying)
    POST   /api/harvests/{id}/wet-weight          created → wet_weight_recorded
    POST   /api/harvests/{id}/start-drying        → drying_started
    POST   /api/harvests/{id}/dry-weight          → dry_weight_recorded
    POST   /api/harvests/{id}/finish-drying       → drying_finished
    POST   /api/harvests/{id}/start-trimming      → trimming_started
    POST   /api/harvests/{id}/finish-trimming     → trimming_finished
    POST   /api/harvests/{id}/finish-curing       → curing_finished
    POST   /api/harvests/{id}/strain-weights      Upsert per-strain weights
    POST   /api/harvests/{id}/waste               Record harvest waste
    POST   /api/harvests/{id}/admin-review        Admin sign-off after curing
    POST   /api/harvests/{id}/close               curing_finished → closed (after review)
    POST   /api/harvests/{id}/notes               Add a note
"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from growtrack.auth.deps import require_facility, require_role, require_writer
from growtrack.config import settings
from growtrack.database import get_db
from growtrack.models.audit_event import TRACKABLE_HARVEST
from growtrack.models.harvest import HarvestStatus
from growtrack.models.user import User, UserRole
from growtrack.schemas.audit import AuditEventOut, NoteCreate
from growtrack.schemas.common import PaginatedResponse
from growtrack.schemas.harvest import (
    FlowerInventoryRow,
    HarvestAddPlants,
    HarvestCreate,
    HarvestDetail,
    HarvestSummary,
    HarvestUpdate,
    StartDrying,
    StrainWeightRecord,
    WeightRecord,
)
from growtrack.services import audit as audit_service
from growtrack.services import harvests as harvest_service

router = APIRouter()


async def _detail(db: AsyncSession, harvest) -> HarvestDetail:
    return await harvest_service.harvest_detail(db, harvest)


# ── Collection ───────────────────────────────────────────────

@router.get("/", response_model=PaginatedResponse[HarvestSummary])
async def list_harvests(
    harvest_status: HarvestStatus | None = Query(None, alias="status"),
    limit: int = Query(settings.default_page_size, ge=1, le=settings.max_page_size),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_facility),
):
    items, total = await harvest_service.list_harvests(
        db, user.facility_id, status=harvest_status, limit=limit, offset=offset
    )
    return PaginatedResponse(
        items=[HarvestSummary.model_validate(h) for h in items],
        total=total, limit=limit, offset=offset,
    )


@router.post("/", response_model=HarvestDetail, status_code=status.HTTP_201_CREATED)
async def create_harvest(
    body: HarvestCreate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_writer),
):
    harvest = await harvest_service.create_harvest(db, user, body)
    return await _detail(db, harvest)


@router.get("/flower-inventory", response_model=list[FlowerInventoryRow])
async def flower_inventory(
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_facility),
):
    return await harvest_service.flower_inventory(db, user.facility_id)


# ── Single harvest ───────────────────────────────────────────

@router.get("/{harvest_id}", response_model=HarvestDetail)
async def get_harvest(
    harvest_id: str,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_facility),
):
    harvest = await harvest_service.get_harvest(db, user.facility_id, harvest_id)
    return await _detail(db, harvest)


@router.patch("/{harvest_id}", response_model=HarvestDetail)
async def update_harvest(
    harvest_id: str,
    body: HarvestUpdate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_writer),
):
    harvest = await harvest_service.update_harvest(db, user, harvest_id, body)
    return await _detail(db, harvest)


@router.post("/{harvest_id}/plants", response_model=HarvestDetail)
async def add_plants(
    harvest_id: str,
    body: HarvestAddPlants,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_writer),
):
    harvest = await harvest_service.add_plants(db, user, harvest_id, body.plant_ids)
    return await _detail(db, harvest)


# ── Stages ───────────────────────────────────────────────────

@router.post("/{harvest_id}/wet-weight", response_model=HarvestDetail)
async def record_wet_weight(
    harvest_id: str,
    body: WeightRecord,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_writer),
):
    harvest = await harvest_service.record_wet_weight(db, user, harvest_id, body.grams)
    return await _detail(db, harvest)


@router.post("/{harvest_id}/start-drying", response_model=HarvestDetail)
async def start_drying(
    harvest_id: str,
    body: StartDrying | None = None,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_writer),
):
    room_id = body.drying_room_id if body else None
    harvest = await harvest_service.start_drying(db, user, harvest_id, room_id)
    return await _detail(db, harvest)


@router.post("/{harvest_id}/dry-weight", response_model=HarvestDetail)
async def record_dry_weight(
    harvest_id: str,
    body: WeightRecord,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_writer),
):
    harvest = await harvest_service.record_dry_weight(db, user, harvest_id, body.grams)
    return await _detail(db, harvest)


@router.post("/{harvest_id}/finish-drying", response_model=HarvestDetail)
async def finish_drying(
    harvest_id: str,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_writer),
):
    harvest = await harvest_service.finish_drying(db, user, harvest_id)
    return await _detail(db, harvest)


@router.post("/{harvest_id}/start-trimming", response_model=HarvestDetail)
async def start_trimming(
    harvest_id: str,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_writer),
):
    harvest = await harvest_service.start_trimming(db, user, harvest_id)
    return await _detail(db, harvest)


@router.post("/{harvest_id}/finish-trimming", response_model=HarvestDetail)
async def finish_trimming(
    harvest_id: str,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_writer),
):
    harvest = await harvest_service.finish_trimming(db, user, harvest_id)
    return await _detail(db, harvest)


@router.post("/{harvest_id}/finish-curing", response_model=HarvestDetail)
async def finish_curing(
    harvest_id: str,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_writer),
):
    harvest = await harvest_service.finish_curing(db, user, harvest_id)
    return await _detail(db, harvest)


# ── Weights ──────────────────────────────────────────────────

@router.post("/{harvest_id}/strain-weights", response_model=HarvestDetail)
async def record_strain_weight(
    harvest_id: str,
    body: StrainWeightRecord,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_writer),
):
    await harvest_service.record_strain_weight(db, user, harvest_id, body)
    harvest = await harvest_service.get_harvest(db, user.facility_id, harvest_id)
    return await _detail(db, harvest)


@router.post("/{harvest_id}/waste", response_model=HarvestDetail)
async def record_waste(
    harvest_id: str,
    body: WeightRecord,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_writer),
):
    harvest = await harvest_service.record_waste(db, user, harvest_id, body.grams)
    return await _detail(db, harvest)


# ── Review & notes ───────────────────────────────────────────

@router.post("/{harvest_id}/admin-review", response_model=HarvestDetail)
async def admin_review(
    harvest_id: str,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_role(UserRole.ADMIN)),
):
    harvest = await harvest_service.admin_review(db, user, harvest_id)
    return await _detail(db, harvest)


@router.post("/{harvest_id}/close", response_model=HarvestDetail)
async def close_harvest(
    harvest_id: str,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_role(UserRole.ADMIN)),
):
    harvest = await harvest_service.close_harvest(db, user, harvest_id)
    return await _detail(db, harvest)


@router.post(
    "/{harvest_id}/notes", response_model=AuditEventOut, status_code=status.HTTP_201_CREATED
)
async def add_note(
    harvest_id: str,
    body: NoteCreate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_writer),
):
    harvest = await harvest_service.get_harvest(db, user.facility_id, harvest_id)
    event = await audit_service.add_note(
        db, user,
        trackable_type=TRACKABLE_HARVEST,
        trackable_id=harvest.id,
        notes=body.notes,
    )
    return audit_service.event_out(event, harvest.name)
