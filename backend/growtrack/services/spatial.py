"""Spatial read model: capacity and occupancy across Facility → Room → Rack → Tray.

Nothing here is cached or stored. Every figure is counted from the live
plants table, so a placement, move, or harvest is reflected on the very
next read.

Writers that change occupancy (create/move plant) call ``get_tray`` with
``for_update=True`` and then ``ensure_capacity`` inside the same
transaction; the row lock on the tray serializes concurrent writers
competing for its last slot.
"""

from dataclasses import dataclass

from sqlalchemy import distinct, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from growtrack.middleware.exceptions import (
    CapacityExceeded,
    ResourceNotFoundError,
)
from growtrack.models.facility import Rack, Room, Tray
from growtrack.models.plant import Plant, PlantStatus
from growtrack.models.strain import Strain
from growtrack.schemas.facility import (
    FloorPlant,
    FloorRack,
    FloorTray,
    FloorView,
    RackOut,
    RoomDetail,
    RoomStatsOut,
    RoomSummary,
    TrayOut,
)


@dataclass
class RoomStats:
    total_capacity: int = 0
    active_plant_count: int = 0
    occupied_zone_count: int = 0
    total_zone_count: int = 0


# ── Tray level ───────────────────────────────────────────────

def capacity_of(tray: Tray) -> int:
    return tray.capacity


async def occupancy_of(db: AsyncSession, tray_id: str) -> int:
    """Count active plants currently in a tray."""
    result = await db.execute(
        select(func.count(Plant.id)).where(
            Plant.tray_id == tray_id,
            Plant.status == PlantStatus.ACTIVE,
        )
    )
    return int(result.scalar() or 0)


async def tray_occupancy(db: AsyncSession, tray_ids: list[str]) -> dict[str, int]:
    """Return {tray_id: active_plant_count} for many trays in one query."""
    if not tray_ids:
        return {}
    result = await db.execute(
        select(Plant.tray_id, func.count(Plant.id))
        .where(Plant.tray_id.in_(tray_ids), Plant.status == PlantStatus.ACTIVE)
        .group_by(Plant.tray_id)
    )
    counts = {row[0]: int(row[1]) for row in result.all()}
    return {tid: counts.get(tid, 0) for tid in tray_ids}


async def can_place(db: AsyncSession, tray: Tray) -> bool:
    return await occupancy_of(db, tray.id) < capacity_of(tray)


async def ensure_capacity(db: AsyncSession, tray: Tray) -> int:
    """Raise CapacityExceeded if the tray has no free slot; return current occupancy."""
    occupancy = await occupancy_of(db, tray.id)
    if occupancy >= capacity_of(tray):
        raise CapacityExceeded(tray.display_name, tray.capacity, occupancy)
    return occupancy


async def get_tray(
    db: AsyncSession,
    facility_id: str,
    tray_id: str,
    *,
    for_update: bool = False,
) -> Tray:
    """Load a tray belonging to the facility, optionally row-locked."""
    stmt = (
        select(Tray)
        .join(Rack, Rack.id == Tray.rack_id)
        .join(Room, Room.id == Rack.room_id)
        .where(Tray.id == tray_id, Room.facility_id == facility_id)
    )
    if for_update:
        stmt = stmt.with_for_update(of=Tray).execution_options(populate_existing=True)
    tray = (await db.execute(stmt)).scalar_one_or_none()
    if tray is None:
        raise ResourceNotFoundError("Tray", tray_id)
    return tray


async def tray_out(db: AsyncSession, tray: Tray) -> TrayOut:
    occupancy = await occupancy_of(db, tray.id)
    return build_tray_out(tray, occupancy)


def build_tray_out(tray: Tray, occupancy: int) -> TrayOut:
    return TrayOut(
        id=tray.id,
        rack_id=tray.rack_id,
        position=tray.position,
        name=tray.name,
        display_name=tray.display_name,
        capacity=tray.capacity,
        occupancy=occupancy,
        can_place=occupancy < tray.capacity,
    )


# ── Room level ───────────────────────────────────────────────

async def room_stats(db: AsyncSession, room_id: str) -> RoomStats:
    return (await room_stats_many(db, [room_id]))[room_id]


async def room_stats_many(db: AsyncSession, room_ids: list[str]) -> dict[str, RoomStats]:
    """Aggregate capacity and occupancy for several rooms (two grouped queries)."""
    stats = {rid: RoomStats() for rid in room_ids}
    if not room_ids:
        return stats

    capacity_rows = await db.execute(
        select(
            Rack.room_id,
            func.coalesce(func.sum(Tray.capacity), 0),
            func.count(Tray.id),
        )
        .join(Tray, Tray.rack_id == Rack.id)
        .where(Rack.room_id.in_(room_ids))
        .group_by(Rack.room_id)
    )
    for room_id, total_capacity, zone_count in capacity_rows.all():
        stats[room_id].total_capacity = int(total_capacity)
        stats[room_id].total_zone_count = int(zone_count)

    occupancy_rows = await db.execute(
        select(
            Rack.room_id,
            func.count(Plant.id),
            func.count(distinct(Plant.tray_id)),
        )
        .select_from(Plant)
        .join(Tray, Tray.id == Plant.tray_id)
        .join(Rack, Rack.id == Tray.rack_id)
        .where(Rack.room_id.in_(room_ids), Plant.status == PlantStatus.ACTIVE)
        .group_by(Rack.room_id)
    )
    for room_id, plant_count, occupied in occupancy_rows.all():
        stats[room_id].active_plant_count = int(plant_count)
        stats[room_id].occupied_zone_count = int(occupied)

    return stats


async def is_room_full(db: AsyncSession, room_id: str) -> bool:
    stats = await room_stats(db, room_id)
    return stats.active_plant_count >= stats.total_capacity


def room_summary(room: Room, stats: RoomStats) -> RoomSummary:
    return RoomSummary(
        id=room.id,
        name=room.name,
        room_type=room.room_type,
        rows=room.rows,
        cols=room.cols,
        floor_count=room.floor_count,
        stats=RoomStatsOut(**vars(stats)),
    )


async def room_detail(db: AsyncSession, room: Room) -> RoomDetail:
    """Room with its full rack/tray tree and live occupancy per tray."""
    stats = await room_stats(db, room.id)
    tray_ids = [t.id for rack in room.racks for t in rack.trays]
    occupancy = await tray_occupancy(db, tray_ids)

    racks = [
        RackOut(
            id=rack.id,
            floor=rack.floor,
            position=rack.position,
            name=rack.name,
            display_name=rack.display_name,
            trays=[build_tray_out(t, occupancy[t.id]) for t in rack.trays],
        )
        for rack in room.racks
    ]
    return RoomDetail(**room_summary(room, stats).model_dump(), racks=racks)


async def floor_view(db: AsyncSession, room: Room, floor: int) -> FloorView:
    """Racks on one floor of a room, each tray with its active plants."""
    if floor < 1 or floor > room.floor_count:
        raise ResourceNotFoundError("Floor", floor)

    racks = sorted(
        (r for r in room.racks if r.floor == floor),
        key=lambda r: r.position,
    )
    tray_ids = [t.id for rack in racks for t in rack.trays]

    plants_by_tray: dict[str, list[FloorPlant]] = {tid: [] for tid in tray_ids}
    if tray_ids:
        result = await db.execute(
            select(Plant, Strain.name)
            .join(Strain, Strain.id == Plant.strain_id)
            .where(Plant.tray_id.in_(tray_ids), Plant.status == PlantStatus.ACTIVE)
            .order_by(Plant.created_at)
        )
        for plant, strain_name in result.all():
            plants_by_tray[plant.tray_id].append(FloorPlant(
                id=plant.id,
                plant_uid=plant.plant_uid,
                strain_id=plant.strain_id,
                strain_name=strain_name,
                growth_phase=plant.growth_phase,
                metrc_label=plant.metrc_label,
            ))

    floor_racks = []
    for rack in racks:
        trays = []
        for tray in rack.trays:
            plants = plants_by_tray[tray.id]
            trays.append(FloorTray(
                **build_tray_out(tray, len(plants)).model_dump(),
                plants=plants,
            ))
        floor_racks.append(FloorRack(
            id=rack.id,
            floor=rack.floor,
            position=rack.position,
            display_name=rack.display_name,
            trays=trays,
        ))

    return FloorView(
        room_id=room.id,
        room_name=room.name,
        floor=floor,
        floor_count=room.floor_count,
        racks=floor_racks,
    )
