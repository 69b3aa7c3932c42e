from __future__ import annotations

import pytest

from actionboost.jobs.errors import ForbiddenError
from actionboost.services.jobs import create_paid_job
from actionboost.services.promo_codes import promo_key


def _create(store, quota, promo_repo, access, plan_input, **kwargs):
  return create_paid_job(store=store, quota=quota, promo_repo=promo_repo, access=access, kind="full-plan", input=plan_input, **kwargs)


@pytest.mark.anyio
async def test_anonymous_caller_cannot_attach_to_a_job_by_typing_its_email(store, quota, promo_repo, access, counters_repo, jobs_repo, plan_input) -> None:
  promo_repo.add("FREE1", max_uses=10)
  victim_job, _ = await _create(store, quota, promo_repo, access, plan_input, owner=None, email="victim@example.com", code="FREE1")

  with pytest.raises(ForbiddenError):
    await _create(store, quota, promo_repo, access, plan_input, owner=None, email="victim@example.com", parent_id=victim_job.job_id, code="FREE1")

  assert list(jobs_repo.rows) == [victim_job.job_id]
  assert counters_repo.rows[promo_key("FREE1")].current_value == 1


@pytest.mark.anyio
async def test_anonymous_caller_with_a_forged_parent_token_is_rejected(store, quota, promo_repo, access, plan_input) -> None:
  promo_repo.add("FREE1", max_uses=10)
  parent, _ = await _create(store, quota, promo_repo, access, plan_input, owner=None, email="jane@example.com", code="FREE1")
  _, other_token = await _create(store, quota, promo_repo, access, plan_input, owner=None, email="mallory@example.com", code="FREE1")

  with pytest.raises(ForbiddenError):
    await _create(store, quota, promo_repo, access, plan_input, owner=None, email="jane@example.com", parent_id=parent.job_id, parent_token=other_token, code="FREE1")


@pytest.mark.anyio
async def test_anonymous_caller_with_the_parent_token_creates_a_child(store, quota, promo_repo, access, plan_input) -> None:
  promo_repo.add("FREE1", max_uses=10)
  parent, parent_token = await _create(store, quota, promo_repo, access, plan_input, owner=None, email="jane@example.com", code="FREE1")

  child, child_token = await _create(store, quota, promo_repo, access, plan_input, owner=None, email="jane@example.com", parent_id=parent.job_id, parent_token=parent_token, code="FREE1")

  assert child.parent_job_id == parent.job_id
  assert child.owner == "anon:jane@example.com"
  assert access.verify_token(child.job_id, child_token)


@pytest.mark.anyio
async def test_signed_in_owner_needs_to_own_the_parent(store, quota, promo_repo, access, counters_repo, plan_input) -> None:
  counters_repo.seed("credits:user:1", current_value=0, limit=5)
  counters_repo.seed("credits:user:2", current_value=0, limit=5)
  parent, token = await _create(store, quota, promo_repo, access, plan_input, owner="user:1")
  assert token is None

  child, _ = await _create(store, quota, promo_repo, access, plan_input, owner="user:1", parent_id=parent.job_id)
  assert child.parent_job_id == parent.job_id

  with pytest.raises(ForbiddenError):
    await _create(store, quota, promo_repo, access, plan_input, owner="user:2", parent_id=parent.job_id)
  assert counters_repo.rows["credits:user:2"].current_value == 0
