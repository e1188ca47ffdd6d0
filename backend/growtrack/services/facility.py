"""Facility and room management.

Builds and edits the Room → Rack → Tray tree. Capacity edits never go
below what is already placed: a tray cannot shrink under its current
occupancy and a room cannot drop a floor that still holds racks.
"""

import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from growtrack.middleware.exceptions import (
    BusinessLogicError,
    CapacityExceeded,
    ResourceNotFoundError,
)
from growtrack.models.facility import Facility, Rack, Room, Tray
from growtrack.models.user import User
from growtrack.schemas.facility import (
    FacilityOut,
    FacilityUpdate,
    RackCreate,
    RoomCreate,
    RoomUpdate,
    TrayCreate,
    TrayUpdate,
)
from growtrack.services import spatial

logger = logging.getLogger("growtrack.facility")


async def get_facility(db: AsyncSession, facility_id: str) -> Facility:
    facility = await db.get(Facility, facility_id)
    if facility is None:
        raise ResourceNotFoundError("Facility", facility_id)
    return facility


async def list_rooms(db: AsyncSession, facility_id: str) -> list[Room]:
    result = await db.execute(
        select(Room).where(Room.facility_id == facility_id).order_by(Room.name)
    )
    return list(result.scalars().all())


async def facility_overview(db: AsyncSession, facility: Facility) -> FacilityOut:
    """Facility with every room and its live stats."""
    rooms = await list_rooms(db, facility.id)
    stats = await spatial.room_stats_many(db, [r.id for r in rooms])
    return FacilityOut(
        id=facility.id,
        name=facility.name,
        license_number=facility.license_number,
        layout=facility.layout,
        rooms=[spatial.room_summary(r, stats[r.id]) for r in rooms],
        updated_at=facility.updated_at,
    )


async def update_facility(
    db: AsyncSession, facility: Facility, body: FacilityUpdate
) -> Facility:
    for field, value in body.model_dump(exclude_unset=True).items():
        setattr(facility, field, value)
    await db.flush()
    return facility


# ── Rooms ────────────────────────────────────────────────────

async def get_room(db: AsyncSession, facility_id: str, room_id: str) -> Room:
    result = await db.execute(
        select(Room).where(Room.id == room_id, Room.facility_id == facility_id)
    )
    room = result.scalar_one_or_none()
    if room is None:
        raise ResourceNotFoundError("Room", room_id)
    return room


def _build_tray(body: TrayCreate) -> Tray:
    return Tray(position=body.position, capacity=body.capacity, name=body.name)


def _build_rack(body: RackCreate) -> Rack:
    return Rack(
        floor=body.floor,
        position=body.position,
        name=body.name,
        trays=[_build_tray(t) for t in body.trays],
    )


async def create_room(db: AsyncSession, user: User, body: RoomCreate) -> Room:
    """Create a room together with its whole rack/tray tree."""
    room = Room(
        facility_id=user.facility_id,
        name=body.name,
        room_type=body.room_type,
        rows=body.rows,
        cols=body.cols,
        floor_count=body.floor_count,
        racks=[_build_rack(r) for r in body.racks],
    )
    db.add(room)
    await db.flush()

    tray_count = sum(len(r.trays) for r in room.racks)
    logger.info(
        "Room %s created with %d racks, %d trays", room.name, len(room.racks), tray_count
    )
    return room


async def update_room(db: AsyncSession, room: Room, body: RoomUpdate) -> Room:
    changes = body.model_dump(exclude_unset=True)

    new_floor_count = changes.get("floor_count")
    if new_floor_count is not None:
        highest_floor = max((r.floor for r in room.racks), default=1)
        if new_floor_count < highest_floor:
            raise BusinessLogicError(
                f"Floor {highest_floor} still has racks; floor_count cannot be "
                f"reduced to {new_floor_count}",
                error_code="FLOOR_IN_USE",
            )

    for field, value in changes.items():
        setattr(room, field, value)
    await db.flush()
    return room


async def add_rack(db: AsyncSession, room: Room, body: RackCreate) -> Rack:
    if body.floor > room.floor_count:
        raise BusinessLogicError(
            f"Rack floor {body.floor} exceeds floor_count {room.floor_count}",
            error_code="FLOOR_OUT_OF_RANGE",
        )
    rack = _build_rack(body)
    room.racks.append(rack)
    await db.flush()
    return rack


async def get_rack(db: AsyncSession, facility_id: str, rack_id: str) -> Rack:
    result = await db.execute(
        select(Rack)
        .join(Room, Room.id == Rack.room_id)
        .where(Rack.id == rack_id, Room.facility_id == facility_id)
    )
    rack = result.scalar_one_or_none()
    if rack is None:
        raise ResourceNotFoundError("Rack", rack_id)
    return rack


async def add_tray(db: AsyncSession, rack: Rack, body: TrayCreate) -> Tray:
    tray = _build_tray(body)
    rack.trays.append(tray)
    await db.flush()
    return tray


async def update_tray(db: AsyncSession, facility_id: str, tray_id: str, body: TrayUpdate) -> Tray:
    """Rename a tray or change its capacity (never below current occupancy)."""
    tray = await spatial.get_tray(db, facility_id, tray_id, for_update=True)
    changes = body.model_dump(exclude_unset=True)

    new_capacity = changes.get("capacity")
    if new_capacity is not None:
        occupancy = await spatial.occupancy_of(db, tray.id)
        if new_capacity < occupancy:
            raise CapacityExceeded(tray.display_name, new_capacity, occupancy)

    for field, value in changes.items():
        setattr(tray, field, value)
    await db.flush()
    return tray


async def count_rooms(db: AsyncSession, facility_id: str) -> int:
    result = await db.execute(
        select(func.count(Room.id)).where(Room.facility_id == facility_id)
    )
    return int(result.scalar() or 0)
