"""Harvest workflow: strict stage machine with per-strain weights.

    created → wet_weight_recorded → drying_started → dry_weight_recorded
            → drying_finished → trimming_started → trimming_finished
            → curing_finished → closed

Each recording action is allowed from exactly one stage and advances
to the next. Out-of-order calls raise ``HarvestStageError``. Every
transition appends an audit event with stage-specific metadata.

Creating a harvest retires its plants: status ``harvested``, tray slot
freed, METRC tag consumed.

Strain weights are only accepted for strains that have a plant in the
harvest. Closing requires an admin review first.
"""

import logging
from collections import Counter
from datetime import date, datetime

from sqlalchemy import distinct, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from growtrack.middleware.exceptions import (
    BusinessLogicError,
    HarvestStageError,
    PlantNotActive,
    PlantNotFlowering,
    PlantNotFound,
    ResourceNotFoundError,
)
from growtrack.models.audit_event import TRACKABLE_HARVEST
from growtrack.models.facility import DRYING_ROOM_TYPES, Room
from growtrack.models.harvest import (
    HARVEST_STAGE_ORDER,
    Harvest,
    HarvestStatus,
    HarvestWeight,
)
from growtrack.models.plant import (
    GrowthPhase,
    Plant,
    PlantEventType,
    PlantStatus,
)
from growtrack.models.strain import Strain
from growtrack.models.user import User
from growtrack.schemas.audit import (
    HarvestAdminReviewed,
    HarvestClosed,
    HarvestCreated,
    HarvestCuringFinished,
    HarvestDryingFinished,
    HarvestDryingStarted,
    HarvestDryWeightRecorded,
    HarvestPlantsAdded,
    HarvestStrainWeightRecorded,
    HarvestTrimmingFinished,
    HarvestTrimmingStarted,
    HarvestUpdated,
    HarvestWasteRecorded,
    HarvestWetWeightRecorded,
)
from growtrack.schemas.harvest import (
    FlowerInventoryRow,
    HarvestCreate,
    HarvestDetail,
    HarvestPlantOut,
    HarvestStrainOut,
    HarvestSummary,
    HarvestUpdate,
    HarvestWeightOut,
    StrainWeightRecord,
)
from growtrack.services.audit import log_event
from growtrack.services.plants import retire_plant

logger = logging.getLogger("growtrack.harvests")

# Earliest stage at which each strain-level weight may be recorded
STRAIN_WEIGHT_MIN_STAGE = {
    "wet_weight_grams": HarvestStatus.CREATED,
    "dry_weight_grams": HarvestStatus.DRYING_STARTED,
    "flower_weight_grams": HarvestStatus.TRIMMING_STARTED,
    "shake_weight_grams": HarvestStatus.TRIMMING_STARTED,
    "waste_weight_grams": HarvestStatus.TRIMMING_STARTED,
}

# Plants may join until drying starts
OPEN_FOR_PLANTS = (HarvestStatus.CREATED, HarvestStatus.WET_WEIGHT_RECORDED)


def _stage_index(status: HarvestStatus) -> int:
    return HARVEST_STAGE_ORDER.index(status)


def _stages_from(start: HarvestStatus, until: HarvestStatus) -> list[HarvestStatus]:
    """Stages from ``start`` up to, but excluding, ``until``."""
    return HARVEST_STAGE_ORDER[_stage_index(start):_stage_index(until)]


def _require_stage(harvest: Harvest, action: str, allowed) -> None:
    if harvest.status not in allowed:
        raise HarvestStageError(action, harvest.status.value, [s.value for s in allowed])


def _advance(
    harvest: Harvest, action: str, from_status: HarvestStatus, to_status: HarvestStatus
) -> None:
    _require_stage(harvest, action, (from_status,))
    harvest.status = to_status
    logger.info("Harvest %s: %s → %s", harvest.name, from_status.value, to_status.value)


def days_between(start: datetime | None, end: datetime | None) -> int | None:
    if start is None or end is None:
        return None
    return (end - start).days


async def _log(db: AsyncSession, user: User, harvest: Harvest, metadata, notes=None) -> None:
    await log_event(
        db, user,
        trackable_type=TRACKABLE_HARVEST,
        trackable_id=harvest.id,
        metadata=metadata,
        notes=notes,
    )


# ── Loading ──────────────────────────────────────────────────

async def get_harvest(
    db: AsyncSession, facility_id: str, harvest_id: str, *, for_update: bool = False
) -> Harvest:
    stmt = select(Harvest).where(
        Harvest.id == harvest_id, Harvest.facility_id == facility_id
    )
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    harvest = (await db.execute(stmt)).scalar_one_or_none()
    if harvest is None:
        raise ResourceNotFoundError("Harvest", harvest_id)
    return harvest


async def _load_harvestable_plants(
    db: AsyncSession, facility_id: str, plant_ids: list[str]
) -> list[Plant]:
    """Lock and validate plants: each must exist, be active and be flowering."""
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
        if plant.growth_phase != GrowthPhase.FLOWERING:
            raise PlantNotFlowering(plant.plant_uid, plant.growth_phase.value)
        plants.append(plant)
    return plants


async def _drying_room(db: AsyncSession, facility_id: str, room_id: str) -> Room:
    result = await db.execute(
        select(Room).where(Room.id == room_id, Room.facility_id == facility_id)
    )
    room = result.scalar_one_or_none()
    if room is None:
        raise ResourceNotFoundError("Room", room_id)
    if room.room_type not in DRYING_ROOM_TYPES:
        raise BusinessLogicError(
            f"Room {room.name} ({room.room_type.value}) is not a dry or cure room",
            error_code="INVALID_DRYING_ROOM",
        )
    return room


async def next_harvest_name(db: AsyncSession, facility_id: str) -> str:
    """Sequential "Harvest N" per facility, skipping names already taken."""
    count = (await db.execute(
        select(func.count(Harvest.id)).where(Harvest.facility_id == facility_id)
    )).scalar() or 0
    n = count + 1
    while True:
        name = f"Harvest {n}"
        taken = (await db.execute(
            select(Harvest.id).where(
                Harvest.facility_id == facility_id, Harvest.name == name
            )
        )).first()
        if taken is None:
            return name
        n += 1


async def _harvest_plants(
    db: AsyncSession, user: User, harvest: Harvest, plants: list[Plant]
) -> None:
    for plant in plants:
        plant.harvest_id = harvest.id
        await retire_plant(
            db, user, plant, PlantStatus.HARVESTED, PlantEventType.HARVESTED,
            details={"harvest_id": harvest.id, "harvest_name": harvest.name},
        )


async def harvest_strain_ids(db: AsyncSession, harvest_id: str) -> set[str]:
    result = await db.execute(
        select(distinct(Plant.strain_id)).where(Plant.harvest_id == harvest_id)
    )
    return set(result.scalars().all())


async def _trim_totals(db: AsyncSession, harvest_id: str):
    """Flower, shake and waste grams summed over the strain rows (None when unrecorded)."""
    return (await db.execute(
        select(
            func.sum(HarvestWeight.flower_weight_grams),
            func.sum(HarvestWeight.shake_weight_grams),
            func.sum(HarvestWeight.waste_weight_grams),
        ).where(HarvestWeight.harvest_id == harvest_id)
    )).one()


async def _dominant_strain_name(db: AsyncSession, plants: list[Plant]) -> str | None:
    if not plants:
        return None
    strain_id, _ = Counter(p.strain_id for p in plants).most_common(1)[0]
    strain = await db.get(Strain, strain_id)
    return strain.name if strain else None


# ── Creation ─────────────────────────────────────────────────

async def create_harvest(db: AsyncSession, user: User, body: HarvestCreate) -> Harvest:
    plant_ids = list(dict.fromkeys(body.plant_ids))
    plants = await _load_harvestable_plants(db, user.facility_id, plant_ids)

    drying_room_id = None
    if body.drying_room_id:
        drying_room_id = (await _drying_room(db, user.facility_id, body.drying_room_id)).id

    harvest = Harvest(
        facility_id=user.facility_id,
        name=body.name or await next_harvest_name(db, user.facility_id),
        harvest_type=body.harvest_type,
        harvest_date=body.harvest_date or date.today(),
        status=(
            HarvestStatus.WET_WEIGHT_RECORDED if body.wet_weight_grams
            else HarvestStatus.CREATED
        ),
        wet_weight_grams=body.wet_weight_grams,
        drying_room_id=drying_room_id,
        notes=body.notes,
        created_by=user.id,
    )
    db.add(harvest)
    await db.flush()

    await _harvest_plants(db, user, harvest, plants)
    await _log(db, user, harvest, HarvestCreated(
        plant_count=len(plants),
        harvest_type=body.harvest_type.value,
        strain_name=await _dominant_strain_name(db, plants),
        wet_weight_grams=body.wet_weight_grams,
    ), notes=body.notes)
    await db.flush()

    logger.info("Harvest %s created from %d plants", harvest.name, len(plants))
    return harvest


async def add_plants(
    db: AsyncSession, user: User, harvest_id: str, plant_ids: list[str]
) -> Harvest:
    harvest = await get_harvest(db, user.facility_id, harvest_id, for_update=True)
    _require_stage(harvest, "add plants", OPEN_FOR_PLANTS)

    plants = await _load_harvestable_plants(
        db, user.facility_id, list(dict.fromkeys(plant_ids))
    )
    await _harvest_plants(db, user, harvest, plants)
    await db.flush()

    new_total = await plant_count(db, harvest.id)
    await _log(db, user, harvest, HarvestPlantsAdded(
        plant_count=len(plants), new_total=new_total,
    ))
    await db.flush()
    return harvest


# ── Stage transitions ────────────────────────────────────────

async def record_wet_weight(db: AsyncSession, user: User, harvest_id: str, grams: float) -> Harvest:
    harvest = await get_harvest(db, user.facility_id, harvest_id, for_update=True)
    _advance(harvest, "record wet weight",
             HarvestStatus.CREATED, HarvestStatus.WET_WEIGHT_RECORDED)
    harvest.wet_weight_grams = grams
    await _log(db, user, harvest, HarvestWetWeightRecorded(wet_weight_grams=grams))
    await db.flush()
    return harvest


async def start_drying(
    db: AsyncSession, user: User, harvest_id: str, drying_room_id: str | None = None
) -> Harvest:
    harvest = await get_harvest(db, user.facility_id, harvest_id, for_update=True)
    _advance(harvest, "start drying",
             HarvestStatus.WET_WEIGHT_RECORDED, HarvestStatus.DRYING_STARTED)

    room_id = drying_room_id or harvest.drying_room_id
    room = await _drying_room(db, user.facility_id, room_id) if room_id else None
    harvest.drying_room_id = room.id if room else None
    harvest.drying_started_at = datetime.utcnow()

    await _log(db, user, harvest, HarvestDryingStarted(
        drying_room_name=room.name if room else None,
        wet_weight_grams=harvest.wet_weight_grams,
    ))
    await db.flush()
    return harvest


async def record_dry_weight(db: AsyncSession, user: User, harvest_id: str, grams: float) -> Harvest:
    harvest = await get_harvest(db, user.facility_id, harvest_id, for_update=True)
    _advance(harvest, "record dry weight",
             HarvestStatus.DRYING_STARTED, HarvestStatus.DRY_WEIGHT_RECORDED)
    harvest.dry_weight_grams = grams
    await _log(db, user, harvest, HarvestDryWeightRecorded(dry_weight_grams=grams))
    await db.flush()
    return harvest


async def finish_drying(db: AsyncSession, user: User, harvest_id: str) -> Harvest:
    harvest = await get_harvest(db, user.facility_id, harvest_id, for_update=True)
    _advance(harvest, "finish drying",
             HarvestStatus.DRY_WEIGHT_RECORDED, HarvestStatus.DRYING_FINISHED)
    harvest.drying_finished_at = datetime.utcnow()
    await _log(db, user, harvest, HarvestDryingFinished(
        dry_weight_grams=harvest.dry_weight_grams,
        drying_days=days_between(harvest.drying_started_at, harvest.drying_finished_at),
    ))
    await db.flush()
    return harvest


async def start_trimming(db: AsyncSession, user: User, harvest_id: str) -> Harvest:
    harvest = await get_harvest(db, user.facility_id, harvest_id, for_update=True)
    _advance(harvest, "start trimming",
             HarvestStatus.DRYING_FINISHED, HarvestStatus.TRIMMING_STARTED)
    harvest.trimming_started_at = datetime.utcnow()
    await _log(db, user, harvest, HarvestTrimmingStarted(
        dry_weight_grams=harvest.dry_weight_grams,
        days_since_drying=days_between(harvest.drying_finished_at, harvest.trimming_started_at),
    ))
    await db.flush()
    return harvest


async def finish_trimming(db: AsyncSession, user: User, harvest_id: str) -> Harvest:
    harvest = await get_harvest(db, user.facility_id, harvest_id, for_update=True)
    _advance(harvest, "finish trimming",
             HarvestStatus.TRIMMING_STARTED, HarvestStatus.TRIMMING_FINISHED)
    harvest.trimming_finished_at = datetime.utcnow()

    flower, shake, strain_waste = await _trim_totals(db, harvest.id)

    await _log(db, user, harvest, HarvestTrimmingFinished(
        flower_weight_grams=flower,
        shake_weight_grams=shake,
        waste_weight_grams=harvest.waste_weight_grams or strain_waste,
        trimming_days=days_between(harvest.trimming_started_at, harvest.trimming_finished_at),
    ))
    await db.flush()
    return harvest


async def finish_curing(db: AsyncSession, user: User, harvest_id: str) -> Harvest:
    harvest = await get_harvest(db, user.facility_id, harvest_id, for_update=True)
    _advance(harvest, "finish curing",
             HarvestStatus.TRIMMING_FINISHED, HarvestStatus.CURING_FINISHED)
    harvest.curing_finished_at = datetime.utcnow()
    await _log(db, user, harvest, HarvestCuringFinished(
        curing_days=days_between(harvest.trimming_finished_at, harvest.curing_finished_at),
    ))
    await db.flush()
    return harvest


# ── Weights ──────────────────────────────────────────────────

async def record_strain_weight(
    db: AsyncSession, user: User, harvest_id: str, body: StrainWeightRecord
) -> HarvestWeight:
    """Upsert the (harvest, strain) weight row with whichever weights were given."""
    harvest = await get_harvest(db, user.facility_id, harvest_id, for_update=True)
    given = {k: v for k, v in body.weights().items() if v is not None}

    for field in given:
        allowed = _stages_from(STRAIN_WEIGHT_MIN_STAGE[field], HarvestStatus.CURING_FINISHED)
        label = field.removesuffix("_weight_grams")
        _require_stage(harvest, f"record {label} weight", allowed)

    strain = await db.get(Strain, body.strain_id)
    if strain is None:
        raise ResourceNotFoundError("Strain", body.strain_id)
    if strain.id not in await harvest_strain_ids(db, harvest.id):
        raise BusinessLogicError(
            f"{strain.name} has no plants in harvest {harvest.name}",
            error_code="STRAIN_NOT_IN_HARVEST",
        )

    result = await db.execute(
        select(HarvestWeight)
        .where(
            HarvestWeight.harvest_id == harvest.id,
            HarvestWeight.strain_id == strain.id,
        )
        .with_for_update()
    )
    weight = result.scalar_one_or_none()
    if weight is None:
        weight = HarvestWeight(harvest_id=harvest.id, strain_id=strain.id)
        db.add(weight)

    for field, value in given.items():
        setattr(weight, field, value)

    await _log(db, user, harvest, HarvestStrainWeightRecorded(
        strain_name=strain.name, **given,
    ))
    await db.flush()
    return weight


async def record_waste(db: AsyncSession, user: User, harvest_id: str, grams: float) -> Harvest:
    harvest = await get_harvest(db, user.facility_id, harvest_id, for_update=True)
    _require_stage(
        harvest, "record waste",
        _stages_from(HarvestStatus.TRIMMING_STARTED, HarvestStatus.CURING_FINISHED),
    )
    harvest.waste_weight_grams = grams
    await _log(db, user, harvest, HarvestWasteRecorded(waste_weight_grams=grams))
    await db.flush()
    return harvest


# ── Edits & review ───────────────────────────────────────────

async def update_harvest(
    db: AsyncSession, user: User, harvest_id: str, body: HarvestUpdate
) -> Harvest:
    harvest = await get_harvest(db, user.facility_id, harvest_id, for_update=True)
    _require_stage(harvest, "edit", HARVEST_STAGE_ORDER[:-1])
    changed = []
    for field, value in body.model_dump(exclude_unset=True).items():
        if value is None and field in ("name", "harvest_date"):
            continue
        if getattr(harvest, field) != value:
            setattr(harvest, field, value)
            changed.append(field)

    if changed:
        await _log(db, user, harvest, HarvestUpdated(changed_fields=changed))
        await db.flush()
    return harvest


async def admin_review(db: AsyncSession, user: User, harvest_id: str) -> Harvest:
    harvest = await get_harvest(db, user.facility_id, harvest_id, for_update=True)
    _require_stage(harvest, "review", (HarvestStatus.CURING_FINISHED,))
    if harvest.admin_reviewed_at is not None:
        raise BusinessLogicError(
            f"Harvest {harvest.name} has already been reviewed",
            error_code="HARVEST_ALREADY_REVIEWED",
        )

    harvest.admin_reviewed_at = datetime.utcnow()
    harvest.admin_reviewed_by = user.id
    await _log(db, user, harvest, HarvestAdminReviewed(reviewed_by=user.full_name))
    await db.flush()
    logger.info("Harvest %s reviewed by %s", harvest.name, user.email)
    return harvest


async def close_harvest(db: AsyncSession, user: User, harvest_id: str) -> Harvest:
    harvest = await get_harvest(db, user.facility_id, harvest_id, for_update=True)
    _require_stage(harvest, "close", (HarvestStatus.CURING_FINISHED,))
    if harvest.admin_reviewed_at is None:
        raise BusinessLogicError(
            f"Harvest {harvest.name} must be reviewed by an admin before closing",
            error_code="HARVEST_NOT_REVIEWED",
        )

    _advance(harvest, "close", HarvestStatus.CURING_FINISHED, HarvestStatus.CLOSED)
    harvest.closed_at = datetime.utcnow()
    harvest.closed_by = user.id
    flower, _, _ = await _trim_totals(db, harvest.id)
    await _log(db, user, harvest, HarvestClosed(
        closed_by=user.full_name, flower_weight_grams=flower,
    ))
    await db.flush()
    return harvest


# ── Queries ──────────────────────────────────────────────────

async def plant_count(db: AsyncSession, harvest_id: str) -> int:
    result = await db.execute(
        select(func.count(Plant.id)).where(Plant.harvest_id == harvest_id)
    )
    return int(result.scalar() or 0)


async def list_harvests(
    db: AsyncSession,
    facility_id: str,
    *,
    status: HarvestStatus | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Harvest], int]:
    filters = [Harvest.facility_id == facility_id]
    if status is not None:
        filters.append(Harvest.status == status)

    total = (await db.execute(
        select(func.count(Harvest.id)).where(*filters)
    )).scalar() or 0
    result = await db.execute(
        select(Harvest)
        .where(*filters)
        .order_by(Harvest.harvest_date.desc(), Harvest.created_at.desc())
        .limit(limit)
        .offset(offset)
    )
    return list(result.scalars().all()), int(total)


def _sum_weights(weights: list[HarvestWeightOut], field: str) -> float | None:
    values = [getattr(w, field) for w in weights if getattr(w, field) is not None]
    return sum(values) if values else None


async def harvest_detail(db: AsyncSession, harvest: Harvest) -> HarvestDetail:
    plant_rows = (await db.execute(
        select(Plant, Strain.name)
        .join(Strain, Strain.id == Plant.strain_id)
        .where(Plant.harvest_id == harvest.id)
        .order_by(Plant.plant_uid)
    )).all()
    weight_rows = (await db.execute(
        select(HarvestWeight, Strain.name)
        .join(Strain, Strain.id == HarvestWeight.strain_id)
        .where(HarvestWeight.harvest_id == harvest.id)
        .order_by(Strain.name)
    )).all()

    drying_room_name = None
    if harvest.drying_room_id:
        room = await db.get(Room, harvest.drying_room_id)
        drying_room_name = room.name if room else None

    plants = [
        HarvestPlantOut(
            id=p.id,
            plant_uid=p.plant_uid,
            strain_id=p.strain_id,
            strain_name=name,
            metrc_label=p.metrc_label,
            status=p.status,
        )
        for p, name in plant_rows
    ]
    weights = [
        HarvestWeightOut(
            strain_id=w.strain_id,
            strain_name=name,
            wet_weight_grams=w.wet_weight_grams,
            dry_weight_grams=w.dry_weight_grams,
            flower_weight_grams=w.flower_weight_grams,
            shake_weight_grams=w.shake_weight_grams,
            waste_weight_grams=w.waste_weight_grams,
        )
        for w, name in weight_rows
    ]

    strain_counts = Counter((p.strain_id, name) for p, name in plant_rows)
    strains_in_harvest = [
        HarvestStrainOut(strain_id=sid, strain_name=name, plant_count=n)
        for (sid, name), n in sorted(strain_counts.items(), key=lambda item: item[0][1])
    ]

    wet = harvest.wet_weight_grams or _sum_weights(weights, "wet_weight_grams")
    dry = harvest.dry_weight_grams or _sum_weights(weights, "dry_weight_grams")
    loss_pct = round((wet - dry) / wet * 100, 1) if wet and dry else None

    return HarvestDetail(
        **HarvestSummary.model_validate(harvest).model_dump(),
        drying_room_name=drying_room_name,
        drying_started_at=harvest.drying_started_at,
        drying_finished_at=harvest.drying_finished_at,
        trimming_started_at=harvest.trimming_started_at,
        trimming_finished_at=harvest.trimming_finished_at,
        curing_finished_at=harvest.curing_finished_at,
        admin_reviewed_by=harvest.admin_reviewed_by,
        drying_days=days_between(harvest.drying_started_at, harvest.drying_finished_at),
        trimming_days=days_between(harvest.trimming_started_at, harvest.trimming_finished_at),
        curing_days=days_between(harvest.trimming_finished_at, harvest.curing_finished_at),
        total_days=days_between(
            harvest.created_at, harvest.curing_finished_at or datetime.utcnow()
        ),
        dry_weight_loss_pct=loss_pct,
        flower_weight_grams=_sum_weights(weights, "flower_weight_grams"),
        shake_weight_grams=_sum_weights(weights, "shake_weight_grams"),
        strains_in_harvest=strains_in_harvest,
        closed_by=harvest.closed_by,
        plant_count=len(plants),
        plants=plants,
        weights=weights,
    )


async def flower_inventory(db: AsyncSession, facility_id: str) -> list[FlowerInventoryRow]:
    """Per-strain weight totals across every harvest in the facility."""
    result = await db.execute(
        select(
            Strain.id,
            Strain.name,
            func.count(distinct(Harvest.id)),
            func.coalesce(func.sum(HarvestWeight.wet_weight_grams), 0),
            func.coalesce(func.sum(HarvestWeight.dry_weight_grams), 0),
            func.coalesce(func.sum(HarvestWeight.flower_weight_grams), 0),
            func.coalesce(func.sum(HarvestWeight.shake_weight_grams), 0),
            func.coalesce(func.sum(HarvestWeight.waste_weight_grams), 0),
        )
        .select_from(HarvestWeight)
        .join(Harvest, Harvest.id == HarvestWeight.harvest_id)
        .join(Strain, Strain.id == HarvestWeight.strain_id)
        .where(Harvest.facility_id == facility_id)
        .group_by(Strain.id, Strain.name)
        .order_by(Strain.name)
    )
    return [
        FlowerInventoryRow(
            strain_id=sid,
            strain_name=name,
            harvest_count=int(harvest_count),
            wet_weight_grams=float(wet),
            dry_weight_grams=float(dry),
            flower_weight_grams=float(flower),
            shake_weight_grams=float(shake),
            waste_weight_grams=float(waste),
        )
        for sid, name, harvest_count, wet, dry, flower, shake, waste in result.all()
    ]
