"""Plant lifecycle: placement, movement, phase, tagging, retirement.

Every write that changes tray occupancy locks the target tray row first
(``spatial.get_tray(..., for_update=True)``) and re-counts inside the
same transaction, so two staff racing for the last slot serialize and
the loser gets ``CapacityExceeded``.

Every state change appends a PlantEvent to the plant's timeline.
"""

import logging
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from growtrack.middleware.exceptions import (
    DuplicateRecord,
    EmptyObservation,
    GrowTrackException,
    PlantNotActive,
    PlantNotFound,
    ResourceNotFoundError,
)
from growtrack.models.facility import Rack, Room, Tray
from growtrack.models.plant import (
    GrowthPhase,
    Plant,
    PlantEvent,
    PlantEventType,
    PlantStatus,
)
from growtrack.models.plant_batch import PlantBatch
from growtrack.models.strain import Strain
from growtrack.models.user import User
from growtrack.schemas.plant import (
    BulkPlantCreate,
    PlantCreate,
    PlantDetail,
    PlantFeedItem,
    PlantLocation,
    PlantOut,
)
from growtrack.services import metrc_tags, spatial
from growtrack.utils.numbering import generate_code
from growtrack.utils.results import BulkResult

logger = logging.getLogger("growtrack.plants")


# ── Loading ──────────────────────────────────────────────────

async def get_plant(
    db: AsyncSession, facility_id: str, plant_id: str, *, for_update: bool = False
) -> Plant:
    stmt = select(Plant).where(Plant.id == plant_id, Plant.facility_id == facility_id)
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    plant = (await db.execute(stmt)).scalar_one_or_none()
    if plant is None:
        raise PlantNotFound(plant_id)
    return plant


def ensure_active(plant: Plant) -> None:
    if plant.status != PlantStatus.ACTIVE:
        raise PlantNotActive(plant.plant_uid, plant.status.value)


async def get_active_plant(db: AsyncSession, facility_id: str, plant_id: str) -> Plant:
    plant = await get_plant(db, facility_id, plant_id, for_update=True)
    ensure_active(plant)
    return plant


async def lookup_plant(db: AsyncSession, facility_id: str, identifier: str) -> Plant:
    """Resolve by plant_uid first, then by METRC label."""
    q = identifier.strip()
    for column, value in ((Plant.plant_uid, q), (Plant.metrc_label, q.upper())):
        result = await db.execute(
            select(Plant).where(column == value, Plant.facility_id == facility_id)
        )
        plant = result.scalar_one_or_none()
        if plant is not None:
            return plant
    raise PlantNotFound(identifier)


# ── Events ───────────────────────────────────────────────────

def record_event(
    db: AsyncSession,
    user: User,
    plant: Plant,
    event_type: PlantEventType,
    *,
    notes: str | None = None,
    photo_urls: list[str] | None = None,
    details: dict | None = None,
) -> PlantEvent:
    event = PlantEvent(
        facility_id=plant.facility_id,
        plant_id=plant.id,
        event_type=event_type,
        notes=notes,
        photo_urls=photo_urls or [],
        details=details,
        user_id=user.id,
    )
    db.add(event)
    return event


# ── Lifecycle ────────────────────────────────────────────────

async def _ensure_strain(db: AsyncSession, strain_id: str) -> Strain:
    strain = await db.get(Strain, strain_id)
    if strain is None:
        raise ResourceNotFoundError("Strain", strain_id)
    return strain


async def _ensure_batch(db: AsyncSession, facility_id: str, batch_id: str) -> PlantBatch:
    result = await db.execute(
        select(PlantBatch).where(
            PlantBatch.id == batch_id, PlantBatch.facility_id == facility_id
        )
    )
    batch = result.scalar_one_or_none()
    if batch is None:
        raise ResourceNotFoundError("PlantBatch", batch_id)
    return batch


async def create_plant(db: AsyncSession, user: User, body: PlantCreate) -> Plant:
    """Place a new active plant into a tray with a free slot."""
    await _ensure_strain(db, body.strain_id)
    if body.plant_batch_id:
        await _ensure_batch(db, user.facility_id, body.plant_batch_id)

    tray = await spatial.get_tray(db, user.facility_id, body.tray_id, for_update=True)
    await spatial.ensure_capacity(db, tray)

    plant = Plant(
        facility_id=user.facility_id,
        plant_uid=await generate_code(db, "plant"),
        strain_id=body.strain_id,
        growth_phase=body.growth_phase,
        status=PlantStatus.ACTIVE,
        tray_id=tray.id,
        plant_batch_id=body.plant_batch_id,
        placed_by=user.id,
    )
    db.add(plant)
    await db.flush()

    record_event(db, user, plant, PlantEventType.PLACED, details={"tray_id": tray.id})
    logger.info("Plant %s placed in %s", plant.plant_uid, tray.display_name)
    return plant


async def move_plant(db: AsyncSession, user: User, plant_id: str, tray_id: str) -> Plant:
    plant = await get_active_plant(db, user.facility_id, plant_id)
    if plant.tray_id == tray_id:
        return plant

    tray = await spatial.get_tray(db, user.facility_id, tray_id, for_update=True)
    await spatial.ensure_capacity(db, tray)

    from_tray_id = plant.tray_id
    plant.tray_id = tray.id
    await db.flush()

    record_event(
        db, user, plant, PlantEventType.MOVED,
        details={"from_tray_id": from_tray_id, "to_tray_id": tray.id},
    )
    logger.info("Plant %s moved to %s", plant.plant_uid, tray.display_name)
    return plant


async def change_phase(
    db: AsyncSession, user: User, plant_id: str, growth_phase: GrowthPhase
) -> Plant:
    """Set the growth phase. Any direction is allowed; same phase is a no-op."""
    plant = await get_active_plant(db, user.facility_id, plant_id)
    if plant.growth_phase == growth_phase:
        return plant

    previous = plant.growth_phase
    plant.growth_phase = growth_phase
    await db.flush()

    record_event(
        db, user, plant, PlantEventType.PHASE_CHANGED,
        details={"from": previous.value, "to": growth_phase.value},
    )
    return plant


async def tag_plant(db: AsyncSession, user: User, plant_id: str, tag: str) -> Plant:
    plant = await get_active_plant(db, user.facility_id, plant_id)
    row = await metrc_tags.assign_tag(db, user, tag, plant)
    record_event(db, user, plant, PlantEventType.TAGGED, details={"tag": row.tag})
    return plant


async def reassign_plant_tag(db: AsyncSession, user: User, plant_id: str, tag: str) -> Plant:
    plant = await get_active_plant(db, user.facility_id, plant_id)
    previous = plant.metrc_label
    row = await metrc_tags.reassign_tag(db, user, tag, plant)
    record_event(
        db, user, plant, PlantEventType.TAGGED,
        details={"tag": row.tag, "replaced": previous},
    )
    return plant


async def retire_plant(
    db: AsyncSession,
    user: User,
    plant: Plant,
    status: PlantStatus,
    event_type: PlantEventType,
    *,
    details: dict | None = None,
    notes: str | None = None,
) -> None:
    """Move an active plant to a terminal status, freeing its slot and consuming its tag."""
    ensure_active(plant)
    from_tray_id = plant.tray_id
    plant.status = status
    plant.tray_id = None
    plant.retired_at = datetime.utcnow()
    await metrc_tags.consume_tag(db, plant)
    record_event(
        db, user, plant, event_type,
        notes=notes,
        details={"from_tray_id": from_tray_id, **(details or {})},
    )


async def destroy_plant(db: AsyncSession, user: User, plant_id: str, reason: str) -> Plant:
    plant = await get_plant(db, user.facility_id, plant_id, for_update=True)
    await retire_plant(
        db, user, plant, PlantStatus.DESTROYED, PlantEventType.DESTROYED, notes=reason
    )
    plant.destroyed_reason = reason
    await db.flush()
    logger.info("Plant %s destroyed", plant.plant_uid)
    return plant


def observation_notes(notes: str | None, *, has_photos: bool) -> str | None:
    """Stripped notes; an observation without notes needs at least one photo."""
    notes = (notes or "").strip() or None
    if notes is None and not has_photos:
        raise EmptyObservation()
    return notes


async def add_observation(
    db: AsyncSession,
    user: User,
    plant: Plant,
    *,
    notes: str | None = None,
    photo_urls: list[str] | None = None,
) -> PlantEvent:
    notes = observation_notes(notes, has_photos=bool(photo_urls))

    event = record_event(
        db, user, plant, PlantEventType.OBSERVATION, notes=notes, photo_urls=photo_urls
    )
    await db.flush()
    return event


# ── Quick entry ──────────────────────────────────────────────

async def bulk_create(db: AsyncSession, user: User, body: BulkPlantCreate) -> BulkResult:
    """Create and tag one plant per suffix; each item stands or falls alone.

    Items run in order inside their own SAVEPOINT, so a failing item
    leaves no partial plant or tag behind and capacity is re-counted for
    every item as the tray fills. A unique-column collision with a
    concurrent writer fails only that item (``DUPLICATE_RECORD``).
    """
    result = BulkResult()
    item_body = PlantCreate(
        tray_id=body.tray_id,
        strain_id=body.strain_id,
        growth_phase=body.growth_phase,
        plant_batch_id=body.plant_batch_id,
    )

    for suffix in body.suffixes:
        raw = f"{body.prefix}{suffix}"
        try:
            tag = metrc_tags.validate_tag(raw)
            async with db.begin_nested():
                await metrc_tags.ensure_available(db, user.facility_id, tag)
                plant = await create_plant(db, user, item_body)
                await metrc_tags.assign_tag(db, user, tag, plant)
                record_event(db, user, plant, PlantEventType.TAGGED, details={"tag": tag})
                await db.flush()
        except GrowTrackException as exc:
            result.fail(raw, exc)
            continue
        except IntegrityError:
            logger.warning("Quick entry item %s lost a race on a unique column", raw)
            result.fail(raw, DuplicateRecord(raw))
            continue
        result.succeed(tag, plant.id)

    logger.info(
        "Quick entry: %d plants created, %d failed",
        len(result.succeeded), len(result.failed),
    )
    return result


# ── Queries ──────────────────────────────────────────────────

async def list_plants(
    db: AsyncSession,
    facility_id: str,
    *,
    growth_phase: GrowthPhase | None = None,
    status: PlantStatus | None = None,
    room_id: str | None = None,
    tray_id: str | None = None,
    strain_id: str | None = None,
    plant_batch_id: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Plant], int]:
    stmt = select(Plant).where(Plant.facility_id == facility_id)
    if growth_phase is not None:
        stmt = stmt.where(Plant.growth_phase == growth_phase)
    if status is not None:
        stmt = stmt.where(Plant.status == status)
    if tray_id:
        stmt = stmt.where(Plant.tray_id == tray_id)
    if strain_id:
        stmt = stmt.where(Plant.strain_id == strain_id)
    if plant_batch_id:
        stmt = stmt.where(Plant.plant_batch_id == plant_batch_id)
    if room_id:
        stmt = (
            stmt.join(Tray, Tray.id == Plant.tray_id)
            .join(Rack, Rack.id == Tray.rack_id)
            .where(Rack.room_id == room_id)
        )

    total = (await db.execute(
        select(func.count()).select_from(stmt.subquery())
    )).scalar() or 0
    result = await db.execute(
        stmt.order_by(Plant.created_at.desc(), Plant.plant_uid.desc())
        .limit(limit)
        .offset(offset)
    )
    return list(result.scalars().all()), int(total)


async def plant_detail(db: AsyncSession, plant: Plant) -> PlantDetail:
    strain = await db.get(Strain, plant.strain_id)
    batch_name = None
    if plant.plant_batch_id:
        batch = await db.get(PlantBatch, plant.plant_batch_id)
        batch_name = batch.name if batch else None

    location = None
    if plant.tray_id:
        row = (await db.execute(
            select(Tray, Rack, Room)
            .join(Rack, Rack.id == Tray.rack_id)
            .join(Room, Room.id == Rack.room_id)
            .where(Tray.id == plant.tray_id)
        )).one_or_none()
        if row is not None:
            tray, rack, room = row
            location = PlantLocation(
                room_id=room.id,
                room_name=room.name,
                rack_id=rack.id,
                rack_name=rack.display_name,
                floor=rack.floor,
                tray_id=tray.id,
                tray_name=tray.display_name,
            )

    return PlantDetail(
        **PlantOut.model_validate(plant).model_dump(),
        strain_name=strain.name if strain else None,
        batch_name=batch_name,
        location=location,
    )


async def list_plant_events(
    db: AsyncSession, plant: Plant, *, limit: int = 50, offset: int = 0
) -> tuple[list[PlantEvent], int]:
    total = (await db.execute(
        select(func.count(PlantEvent.id)).where(PlantEvent.plant_id == plant.id)
    )).scalar() or 0
    result = await db.execute(
        select(PlantEvent)
        .where(PlantEvent.plant_id == plant.id)
        .order_by(PlantEvent.created_at.desc(), PlantEvent.id.desc())
        .limit(limit)
        .offset(offset)
    )
    return list(result.scalars().all()), int(total)


async def plant_feed(
    db: AsyncSession, facility_id: str, *, limit: int = 50, offset: int = 0
) -> tuple[list[PlantFeedItem], int]:
    """Facility-wide plant timeline, most recent first."""
    total = (await db.execute(
        select(func.count(PlantEvent.id)).where(PlantEvent.facility_id == facility_id)
    )).scalar() or 0
    result = await db.execute(
        select(PlantEvent, Plant.plant_uid, Plant.metrc_label, Strain.name)
        .join(Plant, Plant.id == PlantEvent.plant_id)
        .join(Strain, Strain.id == Plant.strain_id)
        .where(PlantEvent.facility_id == facility_id)
        .order_by(PlantEvent.created_at.desc(), PlantEvent.id.desc())
        .limit(limit)
        .offset(offset)
    )
    items = []
    for event, plant_uid, metrc_label, strain_name in result.all():
        items.append(PlantFeedItem(
            id=event.id,
            plant_id=event.plant_id,
            event_type=event.event_type,
            notes=event.notes,
            photo_urls=event.photo_urls or [],
            details=event.details,
            user_id=event.user_id,
            created_at=event.created_at,
            plant_uid=plant_uid,
            metrc_label=metrc_label,
            strain_name=strain_name,
        ))
    return items, int(total)
