"""Facility router: the Room → Rack → Tray tree and its live occupancy.

Endpoints:
    GET    /api/facility                      Facility with every room's stats
    PATCH  /api/facility                      Update facility fields
    GET    /api/rooms                         Rooms with stats
    POST   /api/rooms                         Create room with its rack/tray tree
    GET    /api/rooms/{room_id}               Room detail (racks, trays, occupancy)
    PATCH  /api/rooms/{room_id}               Update room fields
    GET    /api/rooms/{room_id}/floors/{n}    Floor view with plants per tray
    POST   /api/rooms/{room_id}/racks         Add a rack
    POST   /api/racks/{rack_id}/trays         Add a tray
    GET    /api/trays/{tray_id}               Capacity, occupancy, can_place
    PATCH  /api/trays/{tray_id}               Rename / resize a tray
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from growtrack.auth.deps import require_facility, require_writer
from growtrack.database import get_db
from growtrack.models.user import User
from growtrack.schemas.facility import (
    FacilityOut,
    FacilityUpdate,
    FloorView,
    RackCreate,
    RackOut,
    RoomCreate,
    RoomDetail,
    RoomSummary,
    RoomUpdate,
    TrayCreate,
    TrayOut,
    TrayUpdate,
)
from growtrack.services import facility as facility_service
from growtrack.services import spatial

router = APIRouter()


# ── Facility ─────────────────────────────────────────────────

@router.get("/facility", response_model=FacilityOut)
async def get_facility(
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_facility),
):
    facility = await facility_service.get_facility(db, user.facility_id)
    return await facility_service.facility_overview(db, facility)


@router.patch("/facility", response_model=FacilityOut)
async def update_facility(
    body: FacilityUpdate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_writer),
):
    facility = await facility_service.get_facility(db, user.facility_id)
    await facility_service.update_facility(db, facility, body)
    return await facility_service.facility_overview(db, facility)


# ── Rooms ────────────────────────────────────────────────────

@router.get("/rooms", response_model=list[RoomSummary])
async def list_rooms(
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_facility),
):
    rooms = await facility_service.list_rooms(db, user.facility_id)
    stats = await spatial.room_stats_many(db, [r.id for r in rooms])
    return [spatial.room_summary(r, stats[r.id]) for r in rooms]


@router.post("/rooms", response_model=RoomDetail, status_code=status.HTTP_201_CREATED)
async def create_room(
    body: RoomCreate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_writer),
):
    room = await facility_service.create_room(db, user, body)
    return await spatial.room_detail(db, room)


@router.get("/rooms/{room_id}", response_model=RoomDetail)
async def get_room(
    room_id: str,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_facility),
):
    room = await facility_service.get_room(db, user.facility_id, room_id)
    return await spatial.room_detail(db, room)


@router.patch("/rooms/{room_id}", response_model=RoomDetail)
async def update_room(
    room_id: str,
    body: RoomUpdate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_writer),
):
    room = await facility_service.get_room(db, user.facility_id, room_id)
    await facility_service.update_room(db, room, body)
    return await spatial.room_detail(db, room)


@router.get("/rooms/{room_id}/floors/{floor}", response_model=FloorView)
async def floor_view(
    room_id: str,
    floor: int,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_facility),
):
    room = await facility_service.get_room(db, user.facility_id, room_id)
    return await spatial.floor_view(db, room, floor)


@router.post(
    "/rooms/{room_id}/racks", response_model=RackOut, status_code=status.HTTP_201_CREATED
)
async def add_rack(
    room_id: str,
    body: RackCreate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_writer),
):
    room = await facility_service.get_room(db, user.facility_id, room_id)
    rack = await facility_service.add_rack(db, room, body)
    return RackOut(
        id=rack.id,
        floor=rack.floor,
        position=rack.position,
        name=rack.name,
        display_name=rack.display_name,
        trays=[spatial.build_tray_out(t, 0) for t in rack.trays],
    )


# ── Racks & trays ────────────────────────────────────────────

@router.post(
    "/racks/{rack_id}/trays", response_model=TrayOut, status_code=status.HTTP_201_CREATED
)
async def add_tray(
    rack_id: str,
    body: TrayCreate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_writer),
):
    rack = await facility_service.get_rack(db, user.facility_id, rack_id)
    tray = await facility_service.add_tray(db, rack, body)
    return await spatial.tray_out(db, tray)


@router.get("/trays/{tray_id}", response_model=TrayOut)
async def get_tray(
    tray_id: str,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_facility),
):
    tray = await spatial.get_tray(db, user.facility_id, tray_id)
    return await spatial.tray_out(db, tray)


@router.patch("/trays/{tray_id}", response_model=TrayOut)
async def update_tray(
    tray_id: str,
    body: TrayUpdate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_writer),
):
    tray = await facility_service.update_tray(db, user.facility_id, tray_id, body)
    return await spatial.tray_out(db, tray)
