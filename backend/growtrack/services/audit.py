"""Harvest/batch audit trail.

Usage:
    await log_event(
        db, user,
        trackable_type=TRACKABLE_HARVEST, trackable_id=harvest.id,
        metadata=HarvestDryingStarted(drying_room_name="Dry 1"),
    )

The row is added to the current session and committed with the
enclosing transaction. No extra flush is performed.

``format_event_detail`` is a pure function of the stored payload. Rows
whose payload no longer parses render with an empty detail line.
"""

import logging

from pydantic import TypeAdapter, ValidationError
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from growtrack.models.audit_event import (
    AuditEvent,
    TRACKABLE_BATCH,
    TRACKABLE_HARVEST,
)
from growtrack.models.harvest import Harvest
from growtrack.models.plant_batch import PlantBatch
from growtrack.models.user import User
from growtrack.schemas.audit import (
    AUDIT_EVENT_LABELS,
    AuditEventOut,
    AuditMetadata,
    BatchCreated,
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
    NoteAdded,
)

logger = logging.getLogger("growtrack.audit")

GRAMS_PER_POUND = 453.592

_metadata_adapter = TypeAdapter(AuditMetadata)


async def log_event(
    db: AsyncSession,
    user: User,
    *,
    trackable_type: str,
    trackable_id: str,
    metadata,
    notes: str | None = None,
) -> AuditEvent:
    """Append an audit event to the current DB session."""
    event = AuditEvent(
        facility_id=user.facility_id,
        trackable_type=trackable_type,
        trackable_id=trackable_id,
        event_type=metadata.event_type,
        event_metadata=metadata.model_dump(mode="json"),
        notes=notes,
        user_id=user.id,
        user_name=user.full_name,
    )
    db.add(event)
    return event


async def add_note(
    db: AsyncSession,
    user: User,
    *,
    trackable_type: str,
    trackable_id: str,
    notes: str,
) -> AuditEvent:
    event = await log_event(
        db, user,
        trackable_type=trackable_type,
        trackable_id=trackable_id,
        metadata=NoteAdded(),
        notes=notes,
    )
    await db.flush()
    return event


# ── Detail formatting ────────────────────────────────────────

def format_weight(grams: float | None) -> str:
    if grams is None:
        return ""
    return f"{grams:g}g ({grams / GRAMS_PER_POUND:.2f}lb)"


def _days(n: int | None) -> str:
    if n is None:
        return ""
    return f"{n} day" if n == 1 else f"{n} days"


def _join(*parts: str) -> str:
    return " · ".join(p for p in parts if p)


def _harvest_created(m: HarvestCreated) -> str:
    plants = f"{m.plant_count} plant" + ("" if m.plant_count == 1 else "s")
    return _join(
        plants,
        m.harvest_type.replace("_", " "),
        m.strain_name or "",
        f"wet {format_weight(m.wet_weight_grams)}" if m.wet_weight_grams else "",
    )


def _plants_added(m: HarvestPlantsAdded) -> str:
    return f"+{m.plant_count} plants ({m.new_total} total)"


def _drying_started(m: HarvestDryingStarted) -> str:
    return _join(
        f"in {m.drying_room_name}" if m.drying_room_name else "",
        f"wet {format_weight(m.wet_weight_grams)}" if m.wet_weight_grams else "",
    )


def _drying_finished(m: HarvestDryingFinished) -> str:
    return _join(
        f"dry {format_weight(m.dry_weight_grams)}" if m.dry_weight_grams else "",
        _days(m.drying_days),
    )


def _strain_weight(m: HarvestStrainWeightRecorded) -> str:
    labels = [
        ("wet", m.wet_weight_grams),
        ("dry", m.dry_weight_grams),
        ("flower", m.flower_weight_grams),
        ("shake", m.shake_weight_grams),
        ("waste", m.waste_weight_grams),
    ]
    weights = [f"{label} {format_weight(g)}" for label, g in labels if g is not None]
    return _join(m.strain_name or "", ", ".join(weights))


def _trimming_started(m: HarvestTrimmingStarted) -> str:
    return _join(
        f"dry {format_weight(m.dry_weight_grams)}" if m.dry_weight_grams else "",
        f"{_days(m.days_since_drying)} after drying" if m.days_since_drying is not None else "",
    )


def _trimming_finished(m: HarvestTrimmingFinished) -> str:
    return _join(
        f"flower {format_weight(m.flower_weight_grams)}" if m.flower_weight_grams else "",
        f"shake {format_weight(m.shake_weight_grams)}" if m.shake_weight_grams else "",
        f"waste {format_weight(m.waste_weight_grams)}" if m.waste_weight_grams else "",
        _days(m.trimming_days),
    )


def _closed(m: HarvestClosed) -> str:
    return _join(
        f"by {m.closed_by}" if m.closed_by else "",
        f"flower {format_weight(m.flower_weight_grams)}" if m.flower_weight_grams else "",
    )


def _batch_created(m: BatchCreated) -> str:
    plants = f"{m.initial_count} plant" + ("" if m.initial_count == 1 else "s")
    return _join(m.batch_type.replace("_", " "), plants, m.strain_name or "")


_FORMATTERS = {
    HarvestCreated: _harvest_created,
    HarvestPlantsAdded: _plants_added,
    HarvestWetWeightRecorded: lambda m: format_weight(m.wet_weight_grams),
    HarvestDryingStarted: _drying_started,
    HarvestDryWeightRecorded: lambda m: format_weight(m.dry_weight_grams),
    HarvestDryingFinished: _drying_finished,
    HarvestStrainWeightRecorded: _strain_weight,
    HarvestWasteRecorded: lambda m: format_weight(m.waste_weight_grams),
    HarvestUpdated: lambda m: ", ".join(m.changed_fields),
    HarvestTrimmingStarted: _trimming_started,
    HarvestTrimmingFinished: _trimming_finished,
    HarvestCuringFinished: lambda m: _days(m.curing_days),
    HarvestAdminReviewed: lambda m: f"by {m.reviewed_by}" if m.reviewed_by else "",
    HarvestClosed: _closed,
    BatchCreated: _batch_created,
    NoteAdded: lambda m: "",
}


def format_event_detail(event_type: str, metadata: dict | None) -> str:
    """Render the one-line detail for an event; unknown types render empty."""
    payload = dict(metadata or {})
    payload["event_type"] = event_type
    try:
        parsed = _metadata_adapter.validate_python(payload)
    except ValidationError:
        return ""
    return _FORMATTERS[type(parsed)](parsed)


# ── Feed ─────────────────────────────────────────────────────

async def _trackable_names(db: AsyncSession, events: list[AuditEvent]) -> dict:
    names: dict[tuple[str, str], str] = {}
    harvest_ids = {e.trackable_id for e in events if e.trackable_type == TRACKABLE_HARVEST}
    batch_ids = {e.trackable_id for e in events if e.trackable_type == TRACKABLE_BATCH}

    if harvest_ids:
        result = await db.execute(
            select(Harvest.id, Harvest.name).where(Harvest.id.in_(harvest_ids))
        )
        for hid, name in result.all():
            names[(TRACKABLE_HARVEST, hid)] = name
    if batch_ids:
        result = await db.execute(
            select(PlantBatch.id, PlantBatch.name).where(PlantBatch.id.in_(batch_ids))
        )
        for bid, name in result.all():
            names[(TRACKABLE_BATCH, bid)] = name
    return names


def event_out(event: AuditEvent, trackable_name: str | None = None) -> AuditEventOut:
    return AuditEventOut(
        id=event.id,
        trackable_type=event.trackable_type,
        trackable_id=event.trackable_id,
        trackable_name=trackable_name,
        event_type=event.event_type,
        label=AUDIT_EVENT_LABELS.get(event.event_type, event.event_type),
        detail=format_event_detail(event.event_type, event.event_metadata),
        metadata=event.event_metadata or {},
        notes=event.notes,
        user_id=event.user_id,
        user_name=event.user_name,
        created_at=event.created_at,
    )


async def list_events(
    db: AsyncSession,
    facility_id: str,
    *,
    trackable_type: str | None = None,
    trackable_id: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[AuditEventOut], int]:
    """Most-recent-first audit events, facility-wide or for one trackable."""
    filters = [AuditEvent.facility_id == facility_id]
    if trackable_type:
        filters.append(AuditEvent.trackable_type == trackable_type)
    if trackable_id:
        filters.append(AuditEvent.trackable_id == trackable_id)

    total = (await db.execute(
        select(func.count(AuditEvent.id)).where(*filters)
    )).scalar() or 0

    result = await db.execute(
        select(AuditEvent)
        .where(*filters)
        .order_by(AuditEvent.created_at.desc(), AuditEvent.id.desc())
        .limit(limit)
        .offset(offset)
    )
    events = list(result.scalars().all())
    names = await _trackable_names(db, events)

    items = [
        event_out(e, names.get((e.trackable_type, e.trackable_id)))
        for e in events
    ]
    return items, int(total)
