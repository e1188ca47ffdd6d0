"""Shared sequential code generation.

Format tokens:
  {date}       → YYYYMMDD
  {seq:N}      → zero-padded sequence number, N digits, resets daily per prefix

Formats:
  plant:  PLT-{date}-{seq:4}
  batch:  PB-{date}-{seq:3}

Codes are derived from a count of existing codes sharing the prefix, so
two concurrent writers can compute the same code; the unique constraint
on the code column rejects the second one.
"""

import re
from datetime import date

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from growtrack.models.plant import Plant
from growtrack.models.plant_batch import PlantBatch

DEFAULT_FORMATS = {
    "plant": "PLT-{date}-{seq:4}",
    "batch": "PB-{date}-{seq:3}",
}

# Map entity types to the code column counted for the next sequence number
ENTITY_COLUMN_MAP = {
    "plant": Plant.plant_uid,
    "batch": PlantBatch.batch_uid,
}


def _build_prefix(fmt: str, today_str: str) -> str:
    """Return the static part of the code before {seq:N}."""
    prefix = fmt.replace("{date}", today_str)
    prefix = re.sub(r"\{seq:\d+\}.*$", "", prefix)
    return prefix


async def _count_existing(db: AsyncSession, entity: str, prefix: str) -> int:
    column = ENTITY_COLUMN_MAP[entity]
    result = await db.execute(
        select(func.count()).where(column.like(f"{prefix}%"))
    )
    return result.scalar() or 0


async def generate_code(db: AsyncSession, entity: str) -> str:
    """Generate the next sequential code for ``entity``.

    Returns e.g. "PLT-20261017-0001".
    """
    fmt = DEFAULT_FORMATS[entity]
    today_str = date.today().strftime("%Y%m%d")

    prefix = _build_prefix(fmt, today_str)
    count = await _count_existing(db, entity, prefix)
    seq_num = count + 1

    seq_match = re.search(r"\{seq:(\d+)\}", fmt)
    seq_width = int(seq_match.group(1)) if seq_match else 3

    code = fmt.replace("{date}", today_str)
    code = re.sub(r"\{seq:\d+\}", f"{seq_num:0{seq_width}d}", code)
    return code
