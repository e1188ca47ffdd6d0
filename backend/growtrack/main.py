import logging
import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from growtrack.config import settings
from growtrack.middleware.exceptions import register_exception_handlers
from growtrack.routers import audit_events, batches, facility, harvests, health, metrc_tags, plants, strains

logging.basicConfig(level=settings.log_level.upper())

app = FastAPI(
    title="GrowTrack",
    description="Cultivation facility, plant lifecycle and METRC tag tracking",
    version="0.1.0",
)

# ── Exception Handlers ───────────────────────────────────────
register_exception_handlers(app)

# ── Middleware ───────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Routers ──────────────────────────────────────────────────
# Public
app.include_router(health.router)

# Facility-scoped (require facility_id on the JWT user)
app.include_router(facility.router, prefix="/api", tags=["facility"])
app.include_router(plants.router, prefix="/api/plants", tags=["plants"])
app.include_router(metrc_tags.router, prefix="/api/metrc-tags", tags=["metrc-tags"])
app.include_router(batches.router, prefix="/api/batches", tags=["batches"])
app.include_router(harvests.router, prefix="/api/harvests", tags=["harvests"])
app.include_router(audit_events.router, prefix="/api/audit-events", tags=["audit"])
app.include_router(strains.router, prefix="/api/strains", tags=["strains"])

# Local observation photos
if settings.photo_storage == "local":
    os.makedirs(settings.media_root, exist_ok=True)
    app.mount(settings.media_base_url, StaticFiles(directory=settings.media_root), name="media")
