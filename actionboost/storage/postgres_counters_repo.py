"""Postgres-backed compare-and-swap counters and promo code lookups."""

from __future__ import annotations

import datetime

from sqlalchemy import delete, select, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from actionboost.core.database import get_session_factory
from actionboost.jobs.models import utc_now
from actionboost.schema.quotas import PromoCode, UsageCounter
from actionboost.storage.counters_repo import CounterRecord, CounterRepository, PromoCodeRecord, PromoCodeRepository


def _counter_to_record(row: UsageCounter) -> CounterRecord:
  return CounterRecord(key=row.key, current_value=int(row.current_value), limit=int(row.limit_value), window_ends_at=row.window_ends_at)


class PostgresCounterRepository(CounterRepository):
  """Counters stored one row per key in ``usage_counters``."""

  def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None) -> None:
    self._session_factory = session_factory or get_session_factory()
    if self._session_factory is None:
      raise RuntimeError("Database not initialized")

  async def get_counter(self, key: str) -> CounterRecord | None:
    async with self._session_factory() as session:
      row = await session.get(UsageCounter, key)
      return _counter_to_record(row) if row is not None else None

  async def ensure_counter(self, key: str, *, limit: int, window_ends_at: datetime.datetime | None = None) -> CounterRecord:
    # Concurrent first requests race on the insert; the loser's insert is a no-op.
    stmt = insert(UsageCounter).values(key=key, current_value=0, limit_value=int(limit), window_ends_at=window_ends_at, updated_at=utc_now()).on_conflict_do_nothing(index_elements=[UsageCounter.key])
    async with self._session_factory() as session:
      await session.execute(stmt)
      await session.commit()
      result = await session.execute(select(UsageCounter).where(UsageCounter.key == key).execution_options(populate_existing=True))
      return _counter_to_record(result.scalar_one())

  async def compare_and_set(self, key: str, *, expected: int, new: int) -> bool:
    """Single conditional UPDATE; ``rowcount`` tells whether this writer won."""
    stmt = update(UsageCounter).where(UsageCounter.key == key, UsageCounter.current_value == expected).values(current_value=new, updated_at=utc_now())
    async with self._session_factory() as session:
      result = await session.execute(stmt)
      await session.commit()
      return result.rowcount == 1

  async def add_to_limit(self, key: str, amount: int) -> CounterRecord:
    stmt = (
      insert(UsageCounter)
      .values(key=key, current_value=0, limit_value=int(amount), updated_at=utc_now())
      .on_conflict_do_update(index_elements=[UsageCounter.key], set_={"limit_value": UsageCounter.limit_value + int(amount), "updated_at": utc_now()})
      .returning(UsageCounter)
    )
    async with self._session_factory() as session:
      result = await session.execute(stmt)
      row = result.scalar_one()
      await session.commit()
      return _counter_to_record(row)

  async def raise_limit(self, key: str, limit: int) -> CounterRecord | None:
    stmt = update(UsageCounter).where(UsageCounter.key == key, UsageCounter.limit_value < int(limit)).values(limit_value=int(limit), updated_at=utc_now())
    async with self._session_factory() as session:
      await session.execute(stmt)
      await session.commit()
      result = await session.execute(select(UsageCounter).where(UsageCounter.key == key).execution_options(populate_existing=True))
      row = result.scalar_one_or_none()
      return _counter_to_record(row) if row is not None else None

  async def delete_expired(self, before: datetime.datetime) -> int:
    # Lifetime counters (promo codes, credits) have no window and are never deleted.
    stmt = delete(UsageCounter).where(UsageCounter.window_ends_at.is_not(None), UsageCounter.window_ends_at < before)
    async with self._session_factory() as session:
      result = await session.execute(stmt)
      await session.commit()
      return result.rowcount or 0


class PostgresPromoCodeRepository(PromoCodeRepository):
  """Read-only access to ``promo_codes``."""

  def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None) -> None:
    self._session_factory = session_factory or get_session_factory()
    if self._session_factory is None:
      raise RuntimeError("Database not initialized")

  async def get_promo_code(self, code: str) -> PromoCodeRecord | None:
    async with self._session_factory() as session:
      row = await session.get(PromoCode, code)
      if row is None:
        return None
      return PromoCodeRecord(code=row.code, credits=int(row.credits), max_uses=row.max_uses, expires_at=row.expires_at)
