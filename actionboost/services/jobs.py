"""Job orchestration shared by the public routes and the internal task endpoints."""

from __future__ import annotations

import datetime
import logging
from typing import Any

from fastapi import BackgroundTasks

from actionboost.config import Settings
from actionboost.jobs.errors import InvalidTransitionError, InsufficientCreditsError, ValidationError
from actionboost.jobs.models import PAID_KINDS, JobKind, JobRecord, utc_now
from actionboost.jobs.profiles import PIPELINE_ERROR_STAGE
from actionboost.jobs.store import JobStore
from actionboost.services.credits import create_with_credits
from actionboost.services.promo_codes import create_with_code
from actionboost.services.quota_guard import QuotaGuard
from actionboost.services.result_access import AccessLevel, ResultAccess, result_projection, status_projection
from actionboost.services.tasks.interface import TaskEnqueuer
from actionboost.storage.counters_repo import PromoCodeRepository
from actionboost.storage.factory import _get_jobs_repo
from actionboost.utils.emails import is_valid_email, normalize_email

logger = logging.getLogger(__name__)


async def create_paid_job(
  *,
  store: JobStore,
  quota: QuotaGuard,
  promo_repo: PromoCodeRepository,
  access: ResultAccess,
  kind: str,
  input: dict[str, Any],
  owner: str | None,
  email: str | None = None,
  parent_id: str | None = None,
  parent_token: str | None = None,
  code: str | None = None,
) -> tuple[JobRecord, str | None]:
  """Create a paid job funded by a promo code or by the owner's credits.

  Returns the job and, for anonymous owners, the access token they will need
  to poll it. Anonymous callers prove ownership of ``parent_id`` with that
  job's access token; the email they type proves nothing.
  """
  if kind not in PAID_KINDS:
    raise ValidationError(f"{kind} cannot be created here", public_message=f"Unsupported kind: {kind}")
  job_kind: JobKind = "full-plan"

  signed_in = owner is not None
  if owner is None:
    if not code:
      raise InsufficientCreditsError("Anonymous caller without a code", public_message="Sign in or use a promo code")
    if not email or not is_valid_email(email):
      raise ValidationError(public_message="Valid email is required")
    owner = f"anon:{normalize_email(email)}"

  if parent_id:
    parent = await store.get(parent_id)
    if signed_in:
      access.require_owner(parent, owner=owner)
    else:
      access.require_owner(parent, token=parent_token)

  if code:
    job = await create_with_code(store=store, quota=quota, promo_repo=promo_repo, code=code, kind=job_kind, input=input, owner=owner, parent=parent_id)
  else:
    job = await create_with_credits(store=store, quota=quota, kind=job_kind, input=input, owner=owner, parent=parent_id)

  token = access.sign_token(job.job_id) if owner.startswith("anon:") else None
  return job, token


async def job_status(*, store: JobStore, access: ResultAccess, job_id: str, owner: str | None, token: str | None, share: str | None) -> dict[str, Any]:
  """Status for an authorized caller; share slugs may read status too."""
  job = await store.get(job_id)
  access.authorize(job, owner=owner, token=token, share=share)
  return status_projection(job)


async def job_result(*, store: JobStore, access: ResultAccess, job_id: str, owner: str | None, token: str | None, share: str | None) -> dict[str, Any]:
  job = await store.get(job_id)
  level: AccessLevel = access.authorize(job, owner=owner, token=token, share=share)
  return result_projection(job, level)


async def shared_result(*, store: JobStore, slug: str) -> dict[str, Any]:
  job = await store.find_by_share_slug(slug)
  return result_projection(job, "read")


async def create_share(*, store: JobStore, access: ResultAccess, job_id: str, owner: str | None, token: str | None) -> str:
  """Return the share slug for a job, creating it on first call.

  Only owners may share. Concurrent calls agree on one slug because the
  repository only writes the slug when none is set.
  """
  job = await store.get(job_id)
  access.require_owner(job, owner=owner, token=token)
  return await store.ensure_share_slug(job_id)


async def sweep_stale_jobs(store: JobStore, settings: Settings, *, now: datetime.datetime | None = None) -> list[str]:
  """Fail open jobs with no progress for ``stale_job_seconds``."""
  cutoff = (now or utc_now()) - datetime.timedelta(seconds=settings.stale_job_seconds)
  return await store.fail_stale(cutoff)


async def mark_dispatch_failed(store: JobStore, job_id: str, exc: BaseException) -> None:
  """Close a job that could not be handed to a runner so it does not stay pending."""
  try:
    record = await store.get(job_id)
    if record.status == "pending":
      await store.transition(job_id, "failed", stage=PIPELINE_ERROR_STAGE, error={"reason": "InternalError", "message": f"Enqueue failed: {exc}"})
  except InvalidTransitionError:
    logger.info("Job %s left pending before it could be marked failed", job_id)
  except Exception:  # noqa: BLE001
    logger.error("Failed to mark job %s failed after enqueue error", job_id, exc_info=True)


def trigger_job_processing(background_tasks: BackgroundTasks, job_id: str, *, enqueuer: TaskEnqueuer, store: JobStore) -> None:
  """Schedule background processing via the configured task enqueuer."""

  async def _dispatch() -> None:
    try:
      await enqueuer.enqueue(job_id, {})
    except Exception as exc:  # noqa: BLE001
      logger.error("Failed to enqueue job %s: %s", job_id, exc, exc_info=True)
      await mark_dispatch_failed(store, job_id, exc)

  # Runs after the response is sent, so the client never waits on dispatch.
  background_tasks.add_task(_dispatch)


async def process_job_sync(job_id: str, settings: Settings) -> JobRecord | None:
  """Run a pending job immediately in this process."""
  repo = _get_jobs_repo(settings)
  store = JobStore(repo)
  try:
    from actionboost.jobs.worker import get_job_processor

    processor = get_job_processor(settings, repo)
    return await processor.run(job_id)
  except Exception as exc:
    logger.error("Job processing failed for job %s: %s", job_id, exc, exc_info=True)
    # Close the job so the client stops polling; the pipeline already handles its own failures.
    try:
      record = await store.get(job_id)
      if not record.is_terminal:
        await store.transition(job_id, "failed", stage=PIPELINE_ERROR_STAGE, error={"reason": "InternalError", "message": str(exc)})
    except Exception as update_exc:  # noqa: BLE001
      logger.error("Failed to update job status after processing error: %s", update_exc)
    return None
