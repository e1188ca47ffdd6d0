"""Audit feed router.

Endpoints:
    GET    /api/audit-events    Most-recent-first harvest/batch events,
                                facility-wide or for one trackable
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from growtrack.auth.deps import require_facility
from growtrack.config import settings
from growtrack.database import get_db
from growtrack.models.user import User
from growtrack.schemas.audit import AuditEventOut
from growtrack.schemas.common import PaginatedResponse
from growtrack.services import audit as audit_service

router = APIRouter()


@router.get("/", response_model=PaginatedResponse[AuditEventOut])
async def list_events(
    trackable_type: str | None = Query(None),
    trackable_id: str | None = Query(None),
    limit: int = Query(settings.default_page_size, ge=1, le=settings.max_page_size),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_facility),
):
    items, total = await audit_service.list_events(
        db, user.facility_id,
        trackable_type=trackable_type,
        trackable_id=trackable_id,
        limit=limit,
        offset=offset,
    )
    return PaginatedResponse(items=items, total=total, limit=limit, offset=offset)
