"""Credit-funded job creation."""

from __future__ import annotations

import logging
from typing import Any

from actionboost.jobs.errors import InsufficientCreditsError, QuotaExceededError
from actionboost.jobs.models import JobKind, JobRecord
from actionboost.jobs.store import JobStore
from actionboost.services.quota_guard import CounterSnapshot, QuotaGuard

logger = logging.getLogger(__name__)

NO_CREDITS_MESSAGE = "No credits remaining"


def credits_key(owner: str) -> str:
  """Counter key holding the credits granted to ``owner`` (limit) and spent (value)."""
  return f"credits:{owner}"


async def create_with_credits(*, store: JobStore, quota: QuotaGuard, kind: JobKind, input: dict[str, Any], owner: str, parent: str | None = None) -> JobRecord:
  """Spend one of ``owner``'s credits on a new job.

  The limit is whatever has been granted so far; a missing counter means no
  credits. A lost race is retried once and then surfaces as a conflict.
  """
  try:
    async with quota.hold(credits_key(owner), limit=None, message=NO_CREDITS_MESSAGE):
      job = await store.create(kind, input, owner, parent)
  except InsufficientCreditsError:
    raise
  except QuotaExceededError as exc:
    raise InsufficientCreditsError(str(exc), public_message=NO_CREDITS_MESSAGE) from exc
  logger.info("Spent one credit of %s on job %s", owner, job.job_id)
  return job


async def grant_credits(quota: QuotaGuard, owner: str, amount: int) -> CounterSnapshot:
  """Add ``amount`` credits for ``owner`` (payment webhooks, promo grants)."""
  return await quota.grant(credits_key(owner), amount)


async def remaining_credits(quota: QuotaGuard, owner: str) -> int:
  return (await quota.remaining(credits_key(owner))).remaining
