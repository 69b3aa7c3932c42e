"""Promo code validation and redemption."""

from __future__ import annotations

import datetime
import logging
from typing import Any

from actionboost.jobs.errors import NotFoundError, QuotaExceededError, ValidationError
from actionboost.jobs.models import JobKind, JobRecord, utc_now
from actionboost.jobs.store import JobStore
from actionboost.services.credits import credits_key
from actionboost.services.quota_guard import QuotaGuard
from actionboost.storage.counters_repo import PromoCodeRecord, PromoCodeRepository

logger = logging.getLogger(__name__)

# Stand-in limit for codes without max_uses; the counter still records redemptions.
UNLIMITED_USES = 2**31 - 1
MAX_USES_MESSAGE = "Code has reached maximum uses"


def normalize_code(code: str) -> str:
  """Codes are stored upper-case; user input is trimmed and upper-cased to match."""
  return (code or "").upper().strip()


def promo_key(code: str) -> str:
  """Lifetime redemption counter for a normalized code."""
  return f"promo:{code}"


async def load_code(promo_repo: PromoCodeRepository, code: str, *, now: datetime.datetime | None = None) -> PromoCodeRecord:
  """Fetch a redeemable code or raise.

  Raises ``NotFoundError`` for unknown codes and ``ValidationError`` once
  ``expires_at`` has passed. Use counts are not checked here.
  """
  normalized = normalize_code(code)
  record = await promo_repo.get_promo_code(normalized) if normalized else None
  if record is None:
    raise NotFoundError(f"Unknown promo code {normalized!r}", public_message="Invalid code")
  if record.expires_at is not None and record.expires_at <= (now or utc_now()):
    raise ValidationError(f"Promo code {normalized} expired at {record.expires_at.isoformat()}", public_message="Code has expired")
  return record


async def validate_code(*, promo_repo: PromoCodeRepository, quota: QuotaGuard, code: str, now: datetime.datetime | None = None) -> dict[str, Any]:
  """Report whether ``code`` can be redeemed right now; nothing is consumed."""
  try:
    record = await load_code(promo_repo, code, now=now)
  except (NotFoundError, ValidationError) as exc:
    return {"valid": False, "credits": 0, "error": exc.public_message}
  if record.max_uses is not None:
    snapshot = await quota.remaining(promo_key(record.code), record.max_uses)
    if snapshot.used >= record.max_uses:
      return {"valid": False, "credits": 0, "error": MAX_USES_MESSAGE}
  return {"valid": True, "credits": record.credits}


async def create_with_code(*, store: JobStore, quota: QuotaGuard, promo_repo: PromoCodeRepository, code: str, kind: JobKind, input: dict[str, Any], owner: str, parent: str | None = None, now: datetime.datetime | None = None) -> JobRecord:
  """Redeem one use of ``code`` and create the job it pays for.

  The job is created while the redemption is held, so a failed create gives
  the use back and an exhausted code never produces a job.
  """
  record = await load_code(promo_repo, code, now=now)
  limit = record.max_uses if record.max_uses is not None else UNLIMITED_USES
  try:
    async with quota.hold(promo_key(record.code), limit=limit, message=MAX_USES_MESSAGE):
      job = await store.create(kind, input, owner, parent)
  except QuotaExceededError as exc:
    raise QuotaExceededError(str(exc), public_message=MAX_USES_MESSAGE) from exc

  # One credit paid for this run; the rest go to signed-in owners for later runs.
  if record.credits > 1 and owner.startswith("user:"):
    await quota.grant(credits_key(owner), record.credits - 1)
  logger.info("Redeemed promo code %s for job %s", record.code, job.job_id)
  return job
