"""Quota enforcement on top of durable compare-and-swap counters."""

from __future__ import annotations

import datetime
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

from actionboost.jobs.errors import ConflictError, QuotaExceededError, RateLimitedError
from actionboost.jobs.models import utc_now
from actionboost.storage.counters_repo import CounterRecord, CounterRepository

logger = logging.getLogger(__name__)

_DECREMENT_ATTEMPTS = 3


@dataclass(frozen=True)
class CounterSnapshot:
  """Counter state observed by a successful increment or a read."""

  key: str
  used: int
  limit: int
  window_ends_at: datetime.datetime | None = None

  @property
  def remaining(self) -> int:
    return max(self.limit - self.used, 0)


def window_bucket(now: datetime.datetime, window_seconds: int) -> tuple[int, datetime.datetime]:
  """Return the fixed-window bucket index for ``now`` and the moment it ends."""
  bucket = int(now.timestamp()) // window_seconds
  ends_at = datetime.datetime.fromtimestamp((bucket + 1) * window_seconds, tz=datetime.UTC)
  return bucket, ends_at


class QuotaGuard:
  """Increment-if-below-limit counters with compensating decrements.

  Every write is a conditional update on the value that was read, so
  concurrent callers on one key are linearized by the store and at most
  ``limit`` increments can ever succeed.
  """

  def __init__(self, counters: CounterRepository) -> None:
    self._counters = counters

  async def _load(self, key: str, limit: int | None, window_ends_at: datetime.datetime | None) -> tuple[CounterRecord, int]:
    if limit is None:
      record = await self._counters.get_counter(key)
      if record is None:
        raise QuotaExceededError(f"Counter {key} does not exist")
      return record, record.limit
    record = await self._counters.ensure_counter(key, limit=limit, window_ends_at=window_ends_at)
    if record.limit < limit:
      # The configured limit was raised after the row was created (e.g. a promo code's max_uses).
      record = await self._counters.raise_limit(key, limit) or record
      logger.info("Raised stored limit of %s to %d", key, record.limit)
    # A lowered configuration applies at once; the row keeps its larger limit.
    return record, min(limit, record.limit)

  async def increment(self, key: str, *, limit: int | None, window_ends_at: datetime.datetime | None = None, message: str | None = None) -> CounterSnapshot:
    """Consume one unit of ``key``.

    ``limit=None`` uses the limit already stored on the row (credits). Raises
    QuotaExceededError when the counter is full and ConflictError when a
    concurrent writer won the race but capacity may remain.
    """
    record, effective_limit = await self._load(key, limit, window_ends_at)
    if record.current_value >= effective_limit:
      raise QuotaExceededError(f"Quota exhausted for {key}", public_message=message)

    if await self._counters.compare_and_set(key, expected=record.current_value, new=record.current_value + 1):
      return CounterSnapshot(key=key, used=record.current_value + 1, limit=effective_limit, window_ends_at=record.window_ends_at)

    latest = await self._counters.get_counter(key)
    if latest is None or latest.current_value >= effective_limit:
      raise QuotaExceededError(f"Quota exhausted for {key} after a concurrent update", public_message=message)
    raise ConflictError(f"Lost compare-and-set race on {key}")

  async def decrement(self, key: str) -> bool:
    """Give back one unit of ``key``; never goes below zero."""
    for attempt in range(1, _DECREMENT_ATTEMPTS + 1):
      record = await self._counters.get_counter(key)
      if record is None or record.current_value <= 0:
        return False
      if await self._counters.compare_and_set(key, expected=record.current_value, new=record.current_value - 1):
        return True
      logger.info("Decrement of %s lost a race (attempt %d)", key, attempt)
    logger.error("Failed to decrement %s after %d attempts; counter is over-counted by one", key, _DECREMENT_ATTEMPTS)
    return False

  async def consume_with_retry(self, key: str, *, limit: int | None, window_ends_at: datetime.datetime | None = None, message: str | None = None) -> CounterSnapshot:
    """Increment, retrying exactly once after a lost race."""
    try:
      return await self.increment(key, limit=limit, window_ends_at=window_ends_at, message=message)
    except ConflictError:
      logger.info("Retrying increment of %s after a lost race", key)
      return await self.increment(key, limit=limit, window_ends_at=window_ends_at, message=message)

  @asynccontextmanager
  async def hold(self, key: str, *, limit: int | None, window_ends_at: datetime.datetime | None = None, message: str | None = None, retry: bool = True) -> AsyncIterator[CounterSnapshot]:
    """Consume one unit for the duration of the block, giving it back if the block raises."""
    if retry:
      snapshot = await self.consume_with_retry(key, limit=limit, window_ends_at=window_ends_at, message=message)
    else:
      snapshot = await self.increment(key, limit=limit, window_ends_at=window_ends_at, message=message)
    try:
      yield snapshot
    except BaseException:
      await self.decrement(key)
      raise

  async def check_rate_limit(self, scope: str, identity: str, *, limit: int, window_seconds: int, now: datetime.datetime | None = None) -> CounterSnapshot:
    """Count one request for ``identity`` in the current fixed window."""
    current = now or utc_now()
    bucket, ends_at = window_bucket(current, window_seconds)
    key = f"{scope}:{identity}:{bucket}"
    try:
      return await self.consume_with_retry(key, limit=limit, window_ends_at=ends_at)
    except QuotaExceededError as exc:
      retry_after = max(int((ends_at - current).total_seconds()), 1)
      raise RateLimitedError(f"Rate limit reached for {scope}:{identity}", retry_after_seconds=retry_after) from exc

  async def remaining(self, key: str, limit: int | None = None) -> CounterSnapshot:
    """Read-only snapshot; a missing counter has nothing used."""
    record = await self._counters.get_counter(key)
    if record is None:
      return CounterSnapshot(key=key, used=0, limit=limit or 0)
    effective_limit = record.limit if limit is None else min(limit, record.limit)
    return CounterSnapshot(key=key, used=record.current_value, limit=effective_limit, window_ends_at=record.window_ends_at)

  async def grant(self, key: str, amount: int) -> CounterSnapshot:
    """Raise the limit of ``key`` by ``amount``, creating the counter when absent."""
    if amount <= 0:
      raise ValueError("amount must be positive")
    record = await self._counters.add_to_limit(key, amount)
    logger.info("Granted %d on %s (limit now %d)", amount, key, record.limit)
    return CounterSnapshot(key=key, used=record.current_value, limit=record.limit, window_ends_at=record.window_ends_at)

  async def purge_expired(self, now: datetime.datetime | None = None) -> int:
    """Delete rate-limit rows whose window has already closed."""
    purged = await self._counters.delete_expired(now or utc_now())
    if purged:
      logger.info("Purged %d expired rate-limit counter(s)", purged)
    return purged
