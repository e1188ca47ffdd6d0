"""Aggregate model imports so Base.metadata sees every table."""

from growtrack.models.facility import Facility, Rack, Room, RoomType, Tray  # noqa: F401
from growtrack.models.user import User, UserRole  # noqa: F401
from growtrack.models.strain import Strain  # noqa: F401
from growtrack.models.plant_batch import BatchType, PlantBatch  # noqa: F401
from growtrack.models.harvest import (  # noqa: F401
    Harvest, HarvestStatus, HarvestType, HarvestWeight,
)
from growtrack.models.plant import (  # noqa: F401
    GrowthPhase, Plant, PlantEvent, PlantEventType, PlantStatus,
)
from growtrack.models.metrc_tag import MetrcTag, TagStatus, TagType  # noqa: F401
from growtrack.models.audit_event import AuditEvent  # noqa: F401
