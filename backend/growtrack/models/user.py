import enum
import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from growtrack.database import Base, enum_column


class UserRole(str, enum.Enum):
    ADMIN = "admin"
    GROWER = "grower"
    VIEWER = "viewer"


class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    email: Mapped[str] = mapped_column(
        String(255), unique=True, nullable=False, index=True
    )
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[UserRole] = mapped_column(enum_column(UserRole), default=UserRole.GROWER)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    # Facility (tenant) this user operates in. null = not yet assigned.
    facility_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("facilities.id"), index=True
    )

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
