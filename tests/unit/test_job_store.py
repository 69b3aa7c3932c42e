from __future__ import annotations

import asyncio
import datetime

import pytest

from actionboost.jobs.errors import InvalidTransitionError, NotFoundError, ValidationError
from actionboost.jobs.store import TIMED_OUT_STAGE, JobStore


@pytest.mark.anyio
async def test_create_persists_pending_job_with_normalized_input(store: JobStore, plan_input) -> None:
  job = await store.create("full-plan", {**plan_input, "productDescription": "  Invoicing software  "}, "user:1")

  assert job.status == "pending"
  assert job.output is None
  assert job.input["productDescription"] == "Invoicing software"
  assert job.input["websiteUrl"] == "https://invoicely.example.com"
  assert (await store.get(job.job_id)).status == "pending"


@pytest.mark.anyio
async def test_create_rejects_invalid_input_without_writing(store: JobStore, jobs_repo) -> None:
  with pytest.raises(ValidationError):
    await store.create("headline-analysis", {"headline": "x"}, "anon:a@b.co")
  assert jobs_repo.rows == {}


@pytest.mark.anyio
async def test_get_missing_job_raises_not_found(store: JobStore) -> None:
  with pytest.raises(NotFoundError):
    await store.get("missing")


@pytest.mark.anyio
async def test_full_lifecycle_sets_output_and_completed_at(store: JobStore, plan_input, plan_output) -> None:
  job = await store.create("full-plan", plan_input, "user:1")
  await store.transition(job.job_id, "processing")
  done = await store.transition(job.job_id, "complete", plan_output)

  assert done.status == "complete"
  assert done.output == plan_output
  assert done.completed_at is not None


@pytest.mark.anyio
async def test_terminal_status_is_never_overwritten(store: JobStore, plan_input) -> None:
  job = await store.create("full-plan", plan_input, "user:1")
  await store.transition(job.job_id, "failed", stage="Pipeline error - please try again")

  with pytest.raises(InvalidTransitionError):
    await store.transition(job.job_id, "processing")
  assert (await store.get(job.job_id)).status == "failed"


@pytest.mark.anyio
async def test_output_only_travels_with_complete(store: JobStore, plan_input, plan_output) -> None:
  job = await store.create("full-plan", plan_input, "user:1")
  await store.transition(job.job_id, "processing")

  with pytest.raises(InvalidTransitionError):
    await store.transition(job.job_id, "complete")
  with pytest.raises(InvalidTransitionError):
    await store.transition(job.job_id, "failed", plan_output)
  assert (await store.get(job.job_id)).output is None


@pytest.mark.anyio
async def test_pending_cannot_jump_to_complete(store: JobStore, plan_input, plan_output) -> None:
  job = await store.create("full-plan", plan_input, "user:1")
  with pytest.raises(InvalidTransitionError):
    await store.transition(job.job_id, "complete", plan_output)


@pytest.mark.anyio
async def test_concurrent_claims_only_one_wins(store: JobStore, plan_input) -> None:
  job = await store.create("full-plan", plan_input, "user:1")

  results = await asyncio.gather(*(store.transition(job.job_id, "processing") for _ in range(5)), return_exceptions=True)

  assert sum(1 for result in results if not isinstance(result, BaseException)) == 1
  assert all(isinstance(result, InvalidTransitionError) for result in results if isinstance(result, BaseException))


@pytest.mark.anyio
async def test_set_stage_is_ignored_on_terminal_jobs(store: JobStore, plan_input) -> None:
  job = await store.create("full-plan", plan_input, "user:1")
  await store.set_stage(job.job_id, "Reading your site")
  assert (await store.get(job.job_id)).stage == "Reading your site"

  await store.transition(job.job_id, "failed", stage="Pipeline error - please try again")
  await store.set_stage(job.job_id, "Generating analysis")
  assert (await store.get(job.job_id)).stage == "Pipeline error - please try again"


@pytest.mark.anyio
async def test_share_slug_is_stable_across_concurrent_calls(store: JobStore, plan_input) -> None:
  job = await store.create("full-plan", plan_input, "user:1")

  slugs = await asyncio.gather(*(store.ensure_share_slug(job.job_id) for _ in range(4)))

  assert len(set(slugs)) == 1
  assert len(slugs[0]) == 10
  assert (await store.find_by_share_slug(slugs[0])).job_id == job.job_id


@pytest.mark.anyio
async def test_fail_stale_closes_old_open_jobs_only(store: JobStore, jobs_repo, plan_input) -> None:
  old = await store.create("full-plan", plan_input, "user:1")
  fresh = await store.create("full-plan", plan_input, "user:2")
  jobs_repo.rows[old.job_id].updated_at -= datetime.timedelta(hours=1)

  failed = await store.fail_stale(datetime.datetime.now(datetime.UTC) - datetime.timedelta(minutes=15))

  assert failed == [old.job_id]
  closed = await store.get(old.job_id)
  assert closed.status == "failed"
  assert closed.stage == TIMED_OUT_STAGE
  assert closed.error is not None and closed.error["reason"] == "TimeoutError"
  assert (await store.get(fresh.job_id)).status == "pending"
