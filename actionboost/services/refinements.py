"""Refinement requests: bounded follow-up runs on a completed plan."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from actionboost.jobs.errors import ConflictError, QuotaExceededError, ValidationError
from actionboost.jobs.inputs import MAX_CONTEXT_LENGTH, MIN_CONTEXT_LENGTH
from actionboost.jobs.models import JobRecord
from actionboost.jobs.store import JobStore
from actionboost.services.quota_guard import QuotaGuard
from actionboost.services.result_access import ResultAccess

logger = logging.getLogger(__name__)

MAX_CHAIN_DEPTH = 10
REFINEMENT_LIMIT_MESSAGE = "Refinement limit reached"


@dataclass(frozen=True)
class RefinementResult:
  job: JobRecord
  remaining: int


def refinement_key(root_job_id: str) -> str:
  """Counter key capping free refinements of one plan."""
  return f"refinements:{root_job_id}"


async def resolve_root(store: JobStore, job: JobRecord) -> JobRecord:
  """Follow parent links to the original plan, refusing cycles and runaway chains."""
  current = job
  seen = {current.job_id}
  for _ in range(MAX_CHAIN_DEPTH):
    if not current.parent_job_id:
      return current
    if current.parent_job_id in seen:
      logger.error("Parent cycle detected at job %s", current.job_id)
      raise ValidationError(f"Parent cycle at job {current.job_id}", public_message="Invalid run history")
    current = await store.get(current.parent_job_id)
    seen.add(current.job_id)
  if current.parent_job_id:
    raise ValidationError(f"Parent chain from {job.job_id} exceeds {MAX_CHAIN_DEPTH} links", public_message="Invalid run history")
  return current


async def request_refinement(*, store: JobStore, quota: QuotaGuard, access: ResultAccess, job_id: str, context: str, owner: str | None, token: str | None, max_refinements: int) -> RefinementResult:
  """Create a pending refinement of ``job_id``'s root plan, consuming one free refinement."""
  parent = await store.get(job_id)
  access.require_owner(parent, owner=owner, token=token)
  if parent.status != "complete":
    raise ValidationError(f"Job {job_id} is {parent.status}", public_message="Can only refine completed runs")

  trimmed = (context or "").strip()
  if len(trimmed) < MIN_CONTEXT_LENGTH:
    raise ValidationError(public_message=f"Context must be at least {MIN_CONTEXT_LENGTH} characters")
  if len(trimmed) > MAX_CONTEXT_LENGTH:
    raise ValidationError(public_message=f"Context must be at most {MAX_CONTEXT_LENGTH:,} characters")

  root = await resolve_root(store, parent)
  in_flight = await store.find_children(root.job_id, ("pending", "processing"))
  if in_flight:
    raise ConflictError(f"Refinement {in_flight[0].job_id} still running for {root.job_id}", public_message="A refinement is already in progress")

  try:
    async with quota.hold(refinement_key(root.job_id), limit=max_refinements, message=REFINEMENT_LIMIT_MESSAGE) as snapshot:
      child = await store.create("refinement", {"context": trimmed, "parentJobId": root.job_id}, owner=root.owner, parent=root.job_id)
  except QuotaExceededError as exc:
    raise QuotaExceededError(str(exc), public_message=REFINEMENT_LIMIT_MESSAGE, extra={"remaining": 0}) from exc

  logger.info("Refinement %s created for root %s (%d remaining)", child.job_id, root.job_id, snapshot.remaining)
  return RefinementResult(job=child, remaining=snapshot.remaining)
