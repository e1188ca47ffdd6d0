"""METRC tag registry: local bookkeeping of regulatory tags.

Transitions are forward only:

    available → assigned → used
    available → voided

Every write is a compare-and-swap ``UPDATE … WHERE status = <expected>``.
A zero rowcount means another writer moved the tag first, which is
reported exactly as if the tag had already been in that state.
"""

import logging
import re
from datetime import datetime

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from growtrack.config import settings
from growtrack.middleware.exceptions import (
    InvalidTagFormat,
    PlantAlreadyTagged,
    ResourceNotFoundError,
    TagAlreadyAssigned,
    TagAlreadyExists,
    TagNotAvailable,
    TagNotFound,
)
from growtrack.models.metrc_tag import MetrcTag, TagStatus, TagType
from growtrack.models.plant import Plant
from growtrack.models.user import User
from growtrack.schemas.metrc_tag import TagStatsOut
from growtrack.utils.results import BulkResult

logger = logging.getLogger("growtrack.metrc_tags")

_TAG_RE = re.compile(settings.metrc_tag_pattern)


def normalize_tag(raw: str) -> str:
    return raw.strip().upper()


def is_valid_tag(tag: str) -> bool:
    return bool(tag) and _TAG_RE.match(tag) is not None


def validate_tag(raw: str) -> str:
    """Normalize a raw tag string, raising InvalidTagFormat if it is malformed."""
    tag = normalize_tag(raw)
    if not is_valid_tag(tag):
        raise InvalidTagFormat(raw.strip() or raw)
    return tag


async def get_tag(db: AsyncSession, facility_id: str, tag: str) -> MetrcTag:
    result = await db.execute(
        select(MetrcTag).where(MetrcTag.tag == tag, MetrcTag.facility_id == facility_id)
    )
    row = result.scalar_one_or_none()
    if row is None:
        raise TagNotFound(tag)
    return row


async def get_tag_by_id(db: AsyncSession, facility_id: str, tag_id: str) -> MetrcTag:
    result = await db.execute(
        select(MetrcTag).where(MetrcTag.id == tag_id, MetrcTag.facility_id == facility_id)
    )
    row = result.scalar_one_or_none()
    if row is None:
        raise ResourceNotFoundError("MetrcTag", tag_id)
    return row


async def ensure_available(db: AsyncSession, facility_id: str, tag: str) -> MetrcTag:
    row = await get_tag(db, facility_id, tag)
    if row.status != TagStatus.AVAILABLE:
        raise TagNotAvailable(tag, row.status.value)
    return row


# ── Import ───────────────────────────────────────────────────

async def _existing_tags(db: AsyncSession, candidates: set[str]) -> set[str]:
    if not candidates:
        return set()
    rows = await db.execute(select(MetrcTag.tag).where(MetrcTag.tag.in_(candidates)))
    return set(rows.scalars().all())


async def import_tags(
    db: AsyncSession,
    user: User,
    raw_tags: list[str],
    tag_type: TagType = TagType.PLANT,
) -> BulkResult:
    """Insert every well-formed, unseen tag as available; report the rest per item.

    Each insert runs in its own SAVEPOINT. A tag committed by a concurrent
    import after the pre-check hits the unique constraint and is reported
    as already existing without undoing the other items.
    """
    result = BulkResult()

    candidates = {normalize_tag(t) for t in raw_tags if is_valid_tag(normalize_tag(t))}
    existing = await _existing_tags(db, candidates)

    seen: set[str] = set()
    for raw in raw_tags:
        try:
            tag = validate_tag(raw)
            if tag in existing or tag in seen:
                raise TagAlreadyExists(tag)
            seen.add(tag)
            async with db.begin_nested():
                row = MetrcTag(
                    facility_id=user.facility_id,
                    tag=tag,
                    tag_type=tag_type,
                    status=TagStatus.AVAILABLE,
                    imported_by=user.id,
                )
                db.add(row)
                await db.flush()
        except (InvalidTagFormat, TagAlreadyExists) as exc:
            result.fail(raw, exc)
            continue
        except IntegrityError:
            logger.warning("METRC tag %s imported concurrently", tag)
            result.fail(raw, TagAlreadyExists(tag))
            continue
        result.succeed(tag, row.id)

    logger.info(
        "Imported %d METRC tags (%d rejected)", len(result.succeeded), len(result.failed)
    )
    return result


# ── Transitions ──────────────────────────────────────────────

async def assign_tag(db: AsyncSession, user: User, raw_tag: str, plant: Plant) -> MetrcTag:
    """available → assigned, binding the tag to the plant."""
    tag = validate_tag(raw_tag)
    if plant.metrc_label:
        raise PlantAlreadyTagged(plant.plant_uid, plant.metrc_label)

    row = await get_tag(db, user.facility_id, tag)
    now = datetime.utcnow()
    swapped = await db.execute(
        update(MetrcTag)
        .where(MetrcTag.id == row.id, MetrcTag.status == TagStatus.AVAILABLE)
        .values(
            status=TagStatus.ASSIGNED,
            plant_id=plant.id,
            assigned_by=user.id,
            assigned_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    if swapped.rowcount != 1:
        await db.refresh(row)
        raise TagNotAvailable(tag, row.status.value)

    plant.metrc_label = tag
    await db.flush()
    await db.refresh(row)
    logger.info("Tag %s assigned to plant %s", tag, plant.plant_uid)
    return row


async def consume_tag(db: AsyncSession, plant: Plant, *, superseded: bool = False) -> None:
    """assigned → used for the tag bound to a plant leaving service (or being re-tagged)."""
    if not plant.metrc_label:
        return
    await db.execute(
        update(MetrcTag)
        .where(
            MetrcTag.tag == plant.metrc_label,
            MetrcTag.plant_id == plant.id,
            MetrcTag.status == TagStatus.ASSIGNED,
        )
        .values(status=TagStatus.USED, used_at=datetime.utcnow(), superseded=superseded)
        .execution_options(synchronize_session=False)
    )


async def reassign_tag(db: AsyncSession, user: User, raw_tag: str, plant: Plant) -> MetrcTag:
    """Retire the plant's current tag as superseded and assign a new one."""
    tag = validate_tag(raw_tag)
    await ensure_available(db, user.facility_id, tag)

    old_label = plant.metrc_label
    await consume_tag(db, plant, superseded=True)
    plant.metrc_label = None
    await db.flush()

    row = await assign_tag(db, user, tag, plant)
    logger.info(
        "Plant %s re-tagged %s → %s", plant.plant_uid, old_label or "(none)", tag
    )
    return row


async def void_tag(db: AsyncSession, user: User, tag_id: str) -> MetrcTag:
    """available → voided. Anything else is rejected."""
    row = await get_tag_by_id(db, user.facility_id, tag_id)
    swapped = await db.execute(
        update(MetrcTag)
        .where(MetrcTag.id == row.id, MetrcTag.status == TagStatus.AVAILABLE)
        .values(status=TagStatus.VOIDED, voided_by=user.id, voided_at=datetime.utcnow())
        .execution_options(synchronize_session=False)
    )
    await db.refresh(row)
    if swapped.rowcount != 1:
        raise TagAlreadyAssigned(row.tag, row.status.value)

    logger.info("Tag %s voided", row.tag)
    return row


# ── Queries ──────────────────────────────────────────────────

async def list_tags(
    db: AsyncSession,
    facility_id: str,
    *,
    status: TagStatus | None = None,
    tag_type: TagType | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[MetrcTag], int]:
    filters = [MetrcTag.facility_id == facility_id]
    if status is not None:
        filters.append(MetrcTag.status == status)
    if tag_type is not None:
        filters.append(MetrcTag.tag_type == tag_type)

    total = (await db.execute(
        select(func.count(MetrcTag.id)).where(*filters)
    )).scalar() or 0
    result = await db.execute(
        select(MetrcTag).where(*filters).order_by(MetrcTag.tag).limit(limit).offset(offset)
    )
    return list(result.scalars().all()), int(total)


async def tag_stats(db: AsyncSession, facility_id: str) -> TagStatsOut:
    result = await db.execute(
        select(MetrcTag.status, func.count(MetrcTag.id))
        .where(MetrcTag.facility_id == facility_id)
        .group_by(MetrcTag.status)
    )
    counts = {status.value: int(n) for status, n in result.all()}
    return TagStatsOut(**counts, total=sum(counts.values()))
