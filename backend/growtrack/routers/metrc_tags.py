"""METRC tag router: registry listing, import, stats, void.

Endpoints:
    GET    /api/metrc-tags                 List tags (status / tag_type filters)
    POST   /api/metrc-tags                 Import tags (alias of /import)
    GET    /api/metrc-tags/stats           Counts per status
    POST   /api/metrc-tags/import          Import tags, per-item report
    POST   /api/metrc-tags/{tag_id}/void   Void an available tag
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from growtrack.auth.deps import require_facility, require_writer
from growtrack.config import settings
from growtrack.database import get_db
from growtrack.models.metrc_tag import TagStatus, TagType
from growtrack.models.user import User
from growtrack.schemas.common import BulkResultOut, PaginatedResponse
from growtrack.schemas.metrc_tag import MetrcTagOut, TagImportRequest, TagStatsOut
from growtrack.services import metrc_tags as tag_service

router = APIRouter()


@router.get("/", response_model=PaginatedResponse[MetrcTagOut])
async def list_tags(
    tag_status: TagStatus | None = Query(None, alias="status"),
    tag_type: TagType | None = Query(None),
    limit: int = Query(settings.default_page_size, ge=1, le=settings.max_page_size),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_facility),
):
    items, total = await tag_service.list_tags(
        db, user.facility_id,
        status=tag_status, tag_type=tag_type, limit=limit, offset=offset,
    )
    return PaginatedResponse(
        items=[MetrcTagOut.model_validate(t) for t in items],
        total=total, limit=limit, offset=offset,
    )


@router.get("/stats", response_model=TagStatsOut)
async def tag_stats(
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_facility),
):
    return await tag_service.tag_stats(db, user.facility_id)


@router.post("/", response_model=BulkResultOut)
@router.post("/import", response_model=BulkResultOut)
async def import_tags(
    body: TagImportRequest,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_writer),
):
    """Valid tags are inserted as available; malformed or duplicate ones are reported."""
    result = await tag_service.import_tags(db, user, body.tags, body.tag_type)
    return BulkResultOut.from_result(result)


@router.post("/{tag_id}/void", response_model=MetrcTagOut)
async def void_tag(
    tag_id: str,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_writer),
):
    row = await tag_service.void_tag(db, user, tag_id)
    return MetrcTagOut.model_validate(row)
