"""Plant batches: administrative groups of plants started together.

``initial_count`` is fixed at creation. The active count is always
counted from member plants at read time.
"""

import logging
from datetime import date

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from growtrack.middleware.exceptions import (
    BusinessLogicError,
    PlantAlreadyBatched,
    PlantNotActive,
    PlantNotFound,
    ResourceNotFoundError,
)
from growtrack.models.audit_event import TRACKABLE_BATCH
from growtrack.models.plant import Plant, PlantStatus
from growtrack.models.plant_batch import BATCH_TYPE_LABELS, PlantBatch
from growtrack.models.strain import Strain
from growtrack.models.user import User
from growtrack.schemas.audit import BatchCreated
from growtrack.schemas.batch import PlantBatchCreate, PlantBatchOut
from growtrack.services.audit import log_event
from growtrack.utils.numbering import generate_code

logger = logging.getLogger("growtrack.batches")


def default_batch_name(strain_name: str, batch_type, on: date | None = None) -> str:
    on = on or date.today()
    return f"{strain_name} {BATCH_TYPE_LABELS[batch_type]} {on.strftime('%b %Y')}"


async def get_batch(db: AsyncSession, facility_id: str, batch_id: str) -> PlantBatch:
    result = await db.execute(
        select(PlantBatch).where(
            PlantBatch.id == batch_id, PlantBatch.facility_id == facility_id
        )
    )
    batch = result.scalar_one_or_none()
    if batch is None:
        raise ResourceNotFoundError("PlantBatch", batch_id)
    return batch


async def _load_groupable_plants(
    db: AsyncSession, facility_id: str, plant_ids: list[str]
) -> list[Plant]:
    result = await db.execute(
        select(Plant)
        .where(Plant.id.in_(plant_ids), Plant.facility_id == facility_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    by_id = {p.id: p for p in result.scalars().all()}

    plants = []
    for pid in plant_ids:
        plant = by_id.get(pid)
        if plant is None:
            raise PlantNotFound(pid)
        if plant.status != PlantStatus.ACTIVE:
            raise PlantNotActive(plant.plant_uid, plant.status.value)
        if plant.plant_batch_id is not None:
            raise PlantAlreadyBatched(plant.plant_uid)
        plants.append(plant)
    return plants


async def create_batch(db: AsyncSession, user: User, body: PlantBatchCreate) -> PlantBatch:
    """Create a batch, optionally grouping existing unbatched plants into it."""
    strain = await db.get(Strain, body.strain_id)
    if strain is None:
        raise ResourceNotFoundError("Strain", body.strain_id)

    plant_ids = list(dict.fromkeys(body.plant_ids))
    plants = await _load_groupable_plants(db, user.facility_id, plant_ids) if plant_ids else []

    if plants:
        initial_count = len(plants)
    elif body.initial_count:
        initial_count = body.initial_count
    else:
        raise BusinessLogicError(
            "A batch needs plant_ids or an initial_count",
            error_code="BATCH_COUNT_REQUIRED",
        )

    batch = PlantBatch(
        facility_id=user.facility_id,
        batch_uid=await generate_code(db, "batch"),
        name=body.name or default_batch_name(strain.name, body.batch_type),
        batch_type=body.batch_type,
        strain_id=strain.id,
        initial_count=initial_count,
        notes=body.notes,
        created_by=user.id,
    )
    db.add(batch)
    await db.flush()

    for plant in plants:
        plant.plant_batch_id = batch.id

    await log_event(
        db, user,
        trackable_type=TRACKABLE_BATCH,
        trackable_id=batch.id,
        metadata=BatchCreated(
            batch_type=body.batch_type.value,
            initial_count=initial_count,
            strain_name=strain.name,
        ),
        notes=body.notes,
    )
    await db.flush()
    logger.info("Batch %s created with %d plants", batch.batch_uid, initial_count)
    return batch


# ── Derived counts ───────────────────────────────────────────

async def active_plant_counts(db: AsyncSession, batch_ids: list[str]) -> dict[str, int]:
    if not batch_ids:
        return {}
    result = await db.execute(
        select(Plant.plant_batch_id, func.count(Plant.id))
        .where(Plant.plant_batch_id.in_(batch_ids), Plant.status == PlantStatus.ACTIVE)
        .group_by(Plant.plant_batch_id)
    )
    counts = {bid: int(n) for bid, n in result.all()}
    return {bid: counts.get(bid, 0) for bid in batch_ids}


async def active_plant_count(db: AsyncSession, batch_id: str) -> int:
    return (await active_plant_counts(db, [batch_id]))[batch_id]


def _batch_out(batch: PlantBatch, strain_name: str | None, active: int) -> PlantBatchOut:
    return PlantBatchOut(
        id=batch.id,
        batch_uid=batch.batch_uid,
        name=batch.name,
        batch_type=batch.batch_type,
        strain_id=batch.strain_id,
        strain_name=strain_name,
        initial_count=batch.initial_count,
        active_plant_count=active,
        notes=batch.notes,
        created_by=batch.created_by,
        created_at=batch.created_at,
    )


async def batch_out(db: AsyncSession, batch: PlantBatch) -> PlantBatchOut:
    strain = await db.get(Strain, batch.strain_id)
    return _batch_out(
        batch, strain.name if strain else None, await active_plant_count(db, batch.id)
    )


async def list_batches(
    db: AsyncSession,
    facility_id: str,
    *,
    strain_id: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[PlantBatchOut], int]:
    filters = [PlantBatch.facility_id == facility_id]
    if strain_id:
        filters.append(PlantBatch.strain_id == strain_id)

    total = (await db.execute(
        select(func.count(PlantBatch.id)).where(*filters)
    )).scalar() or 0
    result = await db.execute(
        select(PlantBatch, Strain.name)
        .join(Strain, Strain.id == PlantBatch.strain_id)
        .where(*filters)
        .order_by(PlantBatch.created_at.desc(), PlantBatch.batch_uid.desc())
        .limit(limit)
        .offset(offset)
    )
    rows = result.all()
    counts = await active_plant_counts(db, [b.id for b, _ in rows])
    return [_batch_out(b, name, counts[b.id]) for b, name in rows], int(total)
