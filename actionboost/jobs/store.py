"""Job state machine backed by a durable jobs repository."""

from __future__ import annotations

import datetime
import logging
from typing import Any

from actionboost.jobs.errors import InvalidTransitionError, NotFoundError
from actionboost.jobs.inputs import validate_job_input
from actionboost.jobs.models import JobKind, JobRecord, JobStatus, can_transition, is_terminal, utc_now
from actionboost.storage.jobs_repo import JobsRepository
from actionboost.utils.ids import generate_job_id, generate_slug

logger = logging.getLogger(__name__)

TIMED_OUT_STAGE = "Timed out - please try again"
_SLUG_ATTEMPTS = 3


class JobStore:
  """Single entry point for creating jobs and moving them through their lifecycle.

  The store enforces ``pending -> processing -> {complete, failed}`` (plus
  ``pending -> failed``), refuses to touch terminal jobs, and keeps
  ``output`` present exactly when a job is complete. Every status write is
  conditional on the status that was read, so two writers racing on the same
  job cannot both succeed.
  """

  def __init__(self, jobs_repo: JobsRepository) -> None:
    self._repo = jobs_repo

  async def create(self, kind: JobKind, input: dict[str, Any], owner: str, parent: str | None = None, *, job_id: str | None = None) -> JobRecord:
    """Validate ``input`` for ``kind`` and persist a pending job."""
    normalized_input = validate_job_input(kind, input)
    now = utc_now()
    record = JobRecord(job_id=job_id or generate_job_id(), kind=kind, status="pending", input=normalized_input, owner=owner, created_at=now, updated_at=now, parent_job_id=parent, stage="Queued")
    await self._repo.create_job(record)
    logger.info("Created %s job %s parent=%s", kind, record.job_id, parent)
    return record

  async def get(self, job_id: str) -> JobRecord:
    """Load a job or raise ``NotFoundError``."""
    record = await self._repo.get_job(job_id)
    if record is None:
      raise NotFoundError(f"Job {job_id} not found", public_message="Run not found")
    return record

  async def transition(self, job_id: str, new_status: JobStatus, output: dict[str, Any] | None = None, *, stage: str | None = None, error: dict[str, Any] | None = None) -> JobRecord:
    """Move a job to ``new_status``.

    Raises InvalidTransitionError for edges outside the state machine, for
    terminal jobs, for ``complete`` without output, for output on any other
    status, and when a concurrent writer changed the status first.
    """
    # Output presence is a caller contract, so reject it before touching storage.
    if new_status == "complete" and output is None:
      raise InvalidTransitionError(f"Job {job_id}: complete requires output")
    if new_status != "complete" and output is not None:
      raise InvalidTransitionError(f"Job {job_id}: output is only stored on complete")

    current = await self.get(job_id)
    if is_terminal(current.status):
      raise InvalidTransitionError(f"Job {job_id} is already {current.status}")
    if not can_transition(current.status, new_status):
      raise InvalidTransitionError(f"Job {job_id}: {current.status} -> {new_status} is not allowed")

    completed_at: datetime.datetime | None = utc_now() if is_terminal(new_status) else None
    updated = await self._repo.transition_job(job_id, expected_status=current.status, status=new_status, output=output, stage=stage, error=error, completed_at=completed_at)
    if updated is None:
      raise InvalidTransitionError(f"Job {job_id} changed status concurrently (expected {current.status})")
    logger.info("Job %s %s -> %s", job_id, current.status, new_status)
    return updated

  async def set_stage(self, job_id: str, stage: str) -> None:
    """Record a best-effort progress hint; ignored once a job is terminal."""
    try:
      await self._repo.update_stage(job_id, stage)
    except Exception:  # noqa: BLE001
      # Stage hints are advisory; never fail a pipeline because one could not be written.
      logger.warning("Failed to record stage for job %s", job_id, exc_info=True)

  async def ensure_share_slug(self, job_id: str) -> str:
    """Return the job's share slug, generating and storing one on first use."""
    record = await self.get(job_id)
    if record.share_slug:
      return record.share_slug
    for _ in range(_SLUG_ATTEMPTS):
      try:
        slug = await self._repo.set_share_slug_if_absent(job_id, generate_slug())
      except Exception as exc:  # noqa: BLE001
        # A unique-index collision on the slug itself; try a fresh one.
        logger.warning("Share slug write failed for job %s: %s", job_id, exc)
        continue
      if slug:
        return slug
    raise RuntimeError(f"Could not allocate a share slug for job {job_id}")

  async def find_by_share_slug(self, slug: str) -> JobRecord:
    """Resolve a public share slug; unknown slugs raise ``NotFoundError``."""
    record = await self._repo.get_job_by_share_slug(slug)
    if record is None:
      raise NotFoundError(f"Share slug {slug} not found", public_message="Not found")
    return record

  async def find_children(self, parent_job_id: str, statuses: tuple[JobStatus, ...]) -> list[JobRecord]:
    """Refinements of ``parent_job_id`` in the given statuses, oldest first."""
    return await self._repo.find_children(parent_job_id, statuses)

  async def find_latest_for_owner(self, owner: str, kind: JobKind) -> JobRecord | None:
    return await self._repo.find_latest_for_owner(owner, kind)

  async def fail_stale(self, updated_before: datetime.datetime, *, limit: int = 100) -> list[str]:
    """Mark open jobs untouched since ``updated_before`` as failed; return their ids."""
    failed: list[str] = []
    stale = await self._repo.find_stale(statuses=("pending", "processing"), updated_before=updated_before, limit=limit)
    for record in stale:
      try:
        await self.transition(record.job_id, "failed", stage=TIMED_OUT_STAGE, error={"reason": "TimeoutError", "message": f"No progress since {record.updated_at.isoformat()}"})
      except InvalidTransitionError:
        # The pipeline finished between the scan and the write; nothing to do.
        continue
      failed.append(record.job_id)
    if failed:
      logger.warning("Watchdog failed %d stale jobs: %s", len(failed), ", ".join(failed))
    return failed
