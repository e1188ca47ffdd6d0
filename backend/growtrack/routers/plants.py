"""Plant router: placement, lifecycle actions, observations, feeds.

Endpoints:
    GET    /api/plants                        List plants (filters)
    POST   /api/plants                        Place a new plant into a tray
    GET    /api/plants/feed                   Facility-wide plant timeline
    GET    /api/plants/lookup?q=              Resolve by plant UID or METRC label
    POST   /api/plants/bulk                   Quick entry (create + tag per suffix)
    GET    /api/plants/{plant_id}             Plant detail with location
    POST   /api/plants/{plant_id}/move        Move to another tray
    POST   /api/plants/{plant_id}/phase       Change growth phase
    POST   /api/plants/{plant_id}/tag         Assign a METRC tag
    POST   /api/plants/{plant_id}/reassign-tag  Replace the METRC tag
    POST   /api/plants/{plant_id}/destroy     Destroy (terminal)
    GET    /api/plants/{plant_id}/events      Plant timeline
    POST   /api/plants/{plant_id}/events      Observation (notes and/or photos)
"""

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from growtrack.auth.deps import require_facility, require_writer
from growtrack.config import settings
from growtrack.database import get_db
from growtrack.models.plant import GrowthPhase, PlantStatus
from growtrack.models.user import User
from growtrack.schemas.common import BulkResultOut, PaginatedResponse
from growtrack.schemas.plant import (
    BulkPlantCreate,
    PlantCreate,
    PlantDestroy,
    PlantDetail,
    PlantEventOut,
    PlantFeedItem,
    PlantMove,
    PlantOut,
    PlantPhaseChange,
    PlantTag,
)
from growtrack.services import plants as plant_service
from growtrack.services import storage as photo_storage
from growtrack.services.storage import PhotoStorage, get_photo_storage

router = APIRouter()

PageLimit = Query(settings.default_page_size, ge=1, le=settings.max_page_size)


# ── Collection ───────────────────────────────────────────────

@router.get("/", response_model=PaginatedResponse[PlantOut])
async def list_plants(
    growth_phase: GrowthPhase | None = Query(None),
    plant_status: PlantStatus | None = Query(None, alias="status"),
    room_id: str | None = Query(None),
    tray_id: str | None = Query(None),
    strain_id: str | None = Query(None),
    plant_batch_id: str | None = Query(None),
    limit: int = PageLimit,
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_facility),
):
    items, total = await plant_service.list_plants(
        db, user.facility_id,
        growth_phase=growth_phase,
        status=plant_status,
        room_id=room_id,
        tray_id=tray_id,
        strain_id=strain_id,
        plant_batch_id=plant_batch_id,
        limit=limit,
        offset=offset,
    )
    return PaginatedResponse(
        items=[PlantOut.model_validate(p) for p in items],
        total=total, limit=limit, offset=offset,
    )


@router.post("/", response_model=PlantDetail, status_code=status.HTTP_201_CREATED)
async def create_plant(
    body: PlantCreate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_writer),
):
    plant = await plant_service.create_plant(db, user, body)
    return await plant_service.plant_detail(db, plant)


@router.get("/feed", response_model=PaginatedResponse[PlantFeedItem])
async def plant_feed(
    limit: int = PageLimit,
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_facility),
):
    items, total = await plant_service.plant_feed(
        db, user.facility_id, limit=limit, offset=offset
    )
    return PaginatedResponse(items=items, total=total, limit=limit, offset=offset)


@router.get("/lookup", response_model=PlantDetail)
async def lookup_plant(
    q: str = Query(..., min_length=1),
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_facility),
):
    plant = await plant_service.lookup_plant(db, user.facility_id, q)
    return await plant_service.plant_detail(db, plant)


@router.post("/bulk", response_model=BulkResultOut)
async def bulk_create(
    body: BulkPlantCreate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_writer),
):
    """Create one tagged plant per suffix; failures are reported per item."""
    result = await plant_service.bulk_create(db, user, body)
    return BulkResultOut.from_result(result)


# ── Single plant ─────────────────────────────────────────────

@router.get("/{plant_id}", response_model=PlantDetail)
async def get_plant(
    plant_id: str,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_facility),
):
    plant = await plant_service.get_plant(db, user.facility_id, plant_id)
    return await plant_service.plant_detail(db, plant)


@router.post("/{plant_id}/move", response_model=PlantDetail)
async def move_plant(
    plant_id: str,
    body: PlantMove,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_writer),
):
    plant = await plant_service.move_plant(db, user, plant_id, body.tray_id)
    return await plant_service.plant_detail(db, plant)


@router.post("/{plant_id}/phase", response_model=PlantDetail)
async def change_phase(
    plant_id: str,
    body: PlantPhaseChange,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_writer),
):
    plant = await plant_service.change_phase(db, user, plant_id, body.growth_phase)
    return await plant_service.plant_detail(db, plant)


@router.post("/{plant_id}/tag", response_model=PlantDetail)
async def tag_plant(
    plant_id: str,
    body: PlantTag,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_writer),
):
    plant = await plant_service.tag_plant(db, user, plant_id, body.tag)
    return await plant_service.plant_detail(db, plant)


@router.post("/{plant_id}/reassign-tag", response_model=PlantDetail)
async def reassign_tag(
    plant_id: str,
    body: PlantTag,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_writer),
):
    plant = await plant_service.reassign_plant_tag(db, user, plant_id, body.tag)
    return await plant_service.plant_detail(db, plant)


@router.post("/{plant_id}/destroy", response_model=PlantDetail)
async def destroy_plant(
    plant_id: str,
    body: PlantDestroy,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_writer),
):
    plant = await plant_service.destroy_plant(db, user, plant_id, body.reason)
    return await plant_service.plant_detail(db, plant)


# ── Observations ─────────────────────────────────────────────

@router.get("/{plant_id}/events", response_model=PaginatedResponse[PlantEventOut])
async def list_events(
    plant_id: str,
    limit: int = PageLimit,
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_facility),
):
    plant = await plant_service.get_plant(db, user.facility_id, plant_id)
    items, total = await plant_service.list_plant_events(
        db, plant, limit=limit, offset=offset
    )
    return PaginatedResponse(
        items=[PlantEventOut.model_validate(e) for e in items],
        total=total, limit=limit, offset=offset,
    )


@router.post(
    "/{plant_id}/events", response_model=PlantEventOut, status_code=status.HTTP_201_CREATED
)
async def add_observation(
    plant_id: str,
    notes: str | None = Form(None),
    photos: list[UploadFile] = File(default=[]),
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_writer),
    storage: PhotoStorage = Depends(get_photo_storage),
):
    plant = await plant_service.get_plant(db, user.facility_id, plant_id)
    uploads = await photo_storage.read_uploads(photos)
    notes = plant_service.observation_notes(notes, has_photos=bool(uploads))

    stored = await photo_storage.save_photos(storage, user.facility_id, plant.id, uploads)
    try:
        event = await plant_service.add_observation(
            db, user, plant, notes=notes, photo_urls=list(stored.values())
        )
        await db.commit()
    except Exception:
        await photo_storage.discard_photos(storage, list(stored))
        raise
    return PlantEventOut.model_validate(event)
