"""Domain exceptions and the handlers that render them.

Every error leaves the API in one shape:

    {"error": {"code": "CAPACITY_EXCEEDED", "message": "...", "details": {...}}}

Each domain failure carries its own ``error_code``.
"""

import logging
from typing import Union

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError, OperationalError
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class GrowTrackException(Exception):
    """Base exception for GrowTrack application errors."""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        error_code: str = "INTERNAL_ERROR",
        details: dict | None = None,
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details
        super().__init__(self.message)


class ResourceNotFoundError(GrowTrackException):
    """A facility-scoped resource does not exist (or belongs to another facility)."""

    def __init__(self, resource: str, identifier):
        super().__init__(
            message=f"{resource} not found: {identifier}",
            status_code=status.HTTP_404_NOT_FOUND,
            error_code="RESOURCE_NOT_FOUND",
        )


class BusinessLogicError(GrowTrackException):
    """Request is well-formed but violates a domain rule."""

    def __init__(self, message: str, error_code: str = "BUSINESS_LOGIC_ERROR"):
        super().__init__(
            message=message,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            error_code=error_code,
        )


class DuplicateRecord(GrowTrackException):
    """A unique column was written by a concurrent request first."""

    def __init__(self, item: str):
        super().__init__(
            message=f"{item} was written concurrently by another request; retry it",
            status_code=status.HTTP_409_CONFLICT,
            error_code="DUPLICATE_RECORD",
        )


# ── Spatial ──────────────────────────────────────────────────

class CapacityExceeded(GrowTrackException):
    def __init__(self, tray_name: str, capacity: int, occupancy: int):
        super().__init__(
            message=f"{tray_name} is full ({occupancy}/{capacity} plants)",
            status_code=status.HTTP_409_CONFLICT,
            error_code="CAPACITY_EXCEEDED",
            details={"capacity": capacity, "occupancy": occupancy},
        )


# ── METRC tags ───────────────────────────────────────────────

class TagNotFound(GrowTrackException):
    def __init__(self, tag: str):
        super().__init__(
            message=f"METRC tag not found: {tag}",
            status_code=status.HTTP_404_NOT_FOUND,
            error_code="TAG_NOT_FOUND",
        )


class TagNotAvailable(GrowTrackException):
    def __init__(self, tag: str, tag_status: str):
        super().__init__(
            message=f"METRC tag {tag} is not available (status: {tag_status})",
            status_code=status.HTTP_409_CONFLICT,
            error_code="TAG_NOT_AVAILABLE",
            details={"status": tag_status},
        )


class TagAlreadyAssigned(GrowTrackException):
    def __init__(self, tag: str, tag_status: str):
        super().__init__(
            message=f"METRC tag {tag} cannot be voided (status: {tag_status})",
            status_code=status.HTTP_409_CONFLICT,
            error_code="TAG_ALREADY_ASSIGNED",
            details={"status": tag_status},
        )


class TagAlreadyExists(GrowTrackException):
    def __init__(self, tag: str):
        super().__init__(
            message=f"METRC tag already imported: {tag}",
            status_code=status.HTTP_409_CONFLICT,
            error_code="TAG_ALREADY_EXISTS",
        )


class InvalidTagFormat(GrowTrackException):
    def __init__(self, tag: str):
        super().__init__(
            message=f"Invalid METRC tag format: {tag}",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            error_code="INVALID_TAG_FORMAT",
        )


# ── Plants ───────────────────────────────────────────────────

class PlantNotFound(GrowTrackException):
    def __init__(self, identifier):
        super().__init__(
            message=f"Plant not found: {identifier}",
            status_code=status.HTTP_404_NOT_FOUND,
            error_code="PLANT_NOT_FOUND",
        )


class PlantNotActive(GrowTrackException):
    def __init__(self, plant_uid: str, plant_status: str):
        super().__init__(
            message=f"Plant {plant_uid} is not active (status: {plant_status})",
            status_code=status.HTTP_409_CONFLICT,
            error_code="PLANT_NOT_ACTIVE",
            details={"status": plant_status},
        )


class PlantNotFlowering(GrowTrackException):
    def __init__(self, plant_uid: str, growth_phase: str):
        super().__init__(
            message=f"Plant {plant_uid} is not flowering (phase: {growth_phase})",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            error_code="PLANT_NOT_FLOWERING",
        )


class PlantAlreadyTagged(GrowTrackException):
    def __init__(self, plant_uid: str, metrc_label: str):
        super().__init__(
            message=f"Plant {plant_uid} already carries tag {metrc_label}; reassign instead",
            status_code=status.HTTP_409_CONFLICT,
            error_code="PLANT_ALREADY_TAGGED",
        )


class PlantAlreadyBatched(GrowTrackException):
    def __init__(self, plant_uid: str):
        super().__init__(
            message=f"Plant {plant_uid} already belongs to a batch",
            status_code=status.HTTP_409_CONFLICT,
            error_code="PLANT_ALREADY_BATCHED",
        )


class EmptyObservation(GrowTrackException):
    def __init__(self):
        super().__init__(
            message="An observation needs notes or at least one photo",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            error_code="EMPTY_OBSERVATION",
        )


# ── Harvests ─────────────────────────────────────────────────

class HarvestStageError(GrowTrackException):
    def __init__(self, action: str, current_status: str, allowed: list[str]):
        super().__init__(
            message=(
                f"Cannot {action} while harvest is '{current_status}' "
                f"(allowed from: {', '.join(allowed)})"
            ),
            status_code=status.HTTP_409_CONFLICT,
            error_code="HARVEST_STAGE_ERROR",
            details={"status": current_status, "allowed": allowed},
        )


# ── Rendering ────────────────────────────────────────────────

def error_response(
    status_code: int,
    code: str,
    message: str,
    details: dict | None = None,
    headers: dict | None = None,
) -> JSONResponse:
    body = {"code": code, "message": message}
    if details:
        body["details"] = details
    return JSONResponse(status_code=status_code, content={"error": body}, headers=headers)


def _where(request: Request) -> str:
    return f"{request.method} {request.url.path}"


async def growtrack_exception_handler(request: Request, exc: GrowTrackException) -> JSONResponse:
    """Domain rule violations, logged without a traceback."""
    logger.warning("%s → %s: %s", _where(request), exc.error_code, exc.message)
    return error_response(exc.status_code, exc.error_code, exc.message, exc.details)


async def http_exception_handler(
    request: Request, exc: Union[HTTPException, StarletteHTTPException]
) -> JSONResponse:
    """Auth failures, unknown routes and wrong methods keep their status."""
    if exc.status_code >= 500:
        logger.error("%s → HTTP %s: %s", _where(request), exc.status_code, exc.detail)
    return error_response(
        exc.status_code,
        f"HTTP_{exc.status_code}",
        str(exc.detail),
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(
    request: Request, exc: Union[RequestValidationError, ValidationError]
) -> JSONResponse:
    errors = [
        {
            "field": " -> ".join(str(part) for part in err["loc"]),
            "message": err["msg"],
            "type": err["type"],
        }
        for err in exc.errors()
    ]
    logger.warning("%s → invalid request (%d errors)", _where(request), len(errors))
    return error_response(
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "VALIDATION_ERROR",
        "Validation error",
        {"errors": errors},
    )


async def integrity_exception_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    """A constraint the services did not pre-check, usually a lost race on a unique column."""
    reason = str(getattr(exc, "orig", exc)).lower()
    logger.error("%s → integrity error: %s", _where(request), reason)
    if "unique" in reason or "duplicate" in reason:
        return error_response(
            status.HTTP_409_CONFLICT,
            "DUPLICATE_RECORD",
            "A concurrent request wrote the same record; retry the request",
        )
    return error_response(
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "INTEGRITY_ERROR",
        "Database constraint violation",
    )


async def operational_exception_handler(request: Request, exc: OperationalError) -> JSONResponse:
    logger.error("%s → database unavailable: %s", _where(request), exc)
    return error_response(
        status.HTTP_503_SERVICE_UNAVAILABLE,
        "DATABASE_UNAVAILABLE",
        "Database temporarily unavailable. Please try again.",
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("%s → unhandled %s", _where(request), type(exc).__name__)
    return error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "INTERNAL_SERVER_ERROR",
        "An unexpected error occurred. Please try again later.",
    )


def register_exception_handlers(app) -> None:
    """Install every handler on the FastAPI app."""
    handlers = {
        GrowTrackException: growtrack_exception_handler,
        HTTPException: http_exception_handler,
        StarletteHTTPException: http_exception_handler,
        RequestValidationError: validation_exception_handler,
        ValidationError: validation_exception_handler,
        IntegrityError: integrity_exception_handler,
        OperationalError: operational_exception_handler,
        Exception: unhandled_exception_handler,
    }
    for exc_class, handler in handlers.items():
        app.add_exception_handler(exc_class, handler)
