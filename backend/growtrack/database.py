"""Database engine, session factory, and declarative base.

All grow tables share one metadata. Tenancy is row-level: every grow
row carries a ``facility_id`` and services filter on the caller's
facility.

Session dependency for FastAPI:
  - get_db()  → one session per request, committed on success and
                rolled back on any exception
"""

from sqlalchemy import Enum as SAEnum, event
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    create_async_engine,
    async_sessionmaker,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import NullPool

from growtrack.config import settings

_engine_kwargs: dict = {"echo": settings.debug}
if settings.database_url.startswith("sqlite"):
    _engine_kwargs["poolclass"] = NullPool
else:
    _engine_kwargs.update(pool_size=20, max_overflow=10)

engine = create_async_engine(settings.database_url, **_engine_kwargs)

if settings.database_url.startswith("sqlite"):
    # pysqlite defers BEGIN until the first DML; emit it ourselves so
    # SAVEPOINTs used by bulk operations nest inside the transaction.
    @event.listens_for(engine.sync_engine, "connect")
    def _sqlite_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _sqlite_begin(conn):
        conn.exec_driver_sql("BEGIN")

async_session = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)


class Base(DeclarativeBase):
    pass


async def get_db() -> AsyncSession:
    """Yield a request-scoped session."""
    async with async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def enum_column(enum_cls: type) -> SAEnum:
    """String-backed enum column that stores member values, not names."""
    return SAEnum(
        enum_cls,
        native_enum=False,
        length=30,
        values_callable=lambda members: [m.value for m in members],
        validate_strings=True,
    )
