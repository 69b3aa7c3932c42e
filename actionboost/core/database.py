from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from actionboost.config import get_database_settings

_ASYNC_DRIVER = "postgresql+asyncpg://"
_PLAIN_SCHEMES = ("postgresql://", "postgres://")


class Base(DeclarativeBase):
  pass


_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def async_dsn(dsn: str) -> str:
  """Point a plain Postgres DSN at the asyncpg driver."""
  for scheme in _PLAIN_SCHEMES:
    if dsn.startswith(scheme):
      return _ASYNC_DRIVER + dsn[len(scheme) :]
  return dsn


def get_db_engine() -> AsyncEngine | None:
  """Create the process-wide engine on first use; ``None`` when no DSN is configured."""
  global _engine
  if _engine is None:
    settings = get_database_settings()
    if not settings.pg_dsn:
      return None
    _engine = create_async_engine(async_dsn(settings.pg_dsn), echo=settings.debug, pool_pre_ping=True, connect_args={"timeout": settings.pg_connect_timeout})
  return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession] | None:
  global _session_factory
  if _session_factory is None and (engine := get_db_engine()) is not None:
    _session_factory = async_sessionmaker(bind=engine, expire_on_commit=False, class_=AsyncSession)
  return _session_factory


async def dispose_engine() -> None:
  """Close pooled connections on shutdown."""
  global _engine, _session_factory
  if _engine is not None:
    await _engine.dispose()
  _engine = None
  _session_factory = None
