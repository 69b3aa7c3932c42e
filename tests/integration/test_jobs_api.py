"""End-to-end API flows against in-memory repositories."""

from __future__ import annotations

import datetime

import pytest

from actionboost.core.security import sign_session
from actionboost.jobs.store import JobStore
from actionboost.services.promo_codes import promo_key

SECRET = "test-session-secret-0123456789abcdef"
HEADLINE_TOOL = {"input": {"headline": "Invoices in seconds", "whatTheySell": "Invoicing software for designers"}, "email": "jane@example.com"}


def _bearer(user_id: str = "1") -> dict[str, str]:
  return {"authorization": f"Bearer {sign_session(SECRET, user_id, f'user{user_id}@example.com')}"}


async def _complete_plan(store: JobStore, plan_input, plan_output, owner: str = "user:1"):
  job = await store.create("full-plan", plan_input, owner)
  await store.transition(job.job_id, "processing")
  return await store.transition(job.job_id, "complete", plan_output)


@pytest.mark.anyio
async def test_health_sets_request_id_and_no_store(async_client) -> None:
  response = await async_client.get("/health")
  assert response.status_code == 200
  assert response.json()["status"] == "ok"
  assert response.headers["x-request-id"]
  assert response.headers["cache-control"] == "no-store"


@pytest.mark.anyio
async def test_free_tool_flow(async_client, enqueuer) -> None:
  created = await async_client.post("/v1/tools/headline-analysis", json=HEADLINE_TOOL)
  assert created.status_code == 200
  body = created.json()
  job_id, token, slug = body["jobId"], body["accessToken"], body["slug"]
  assert enqueuer.enqueued == [job_id]

  status = await async_client.get(f"/v1/jobs/{job_id}/status", params={"token": token})
  assert status.status_code == 200
  assert status.json() == {"status": "pending", "stage": "Queued", "pollIntervalMs": 2000, "maxPolls": 100}

  result = await async_client.get(f"/v1/jobs/{job_id}", params={"token": token})
  assert result.json()["input"]["headline"] == "Invoices in seconds"
  assert "output" not in result.json()

  shared = await async_client.get(f"/v1/shares/{slug}")
  assert shared.status_code == 200
  assert shared.json()["id"] == job_id
  assert "input" not in shared.json()


@pytest.mark.anyio
async def test_mismatched_token_is_forbidden(async_client, access) -> None:
  created = (await async_client.post("/v1/tools/headline-analysis", json=HEADLINE_TOOL)).json()

  response = await async_client.get(f"/v1/jobs/{created['jobId']}/status", params={"token": access.sign_token("some-other-job")})

  assert response.status_code == 403
  body = response.json()
  assert body["error"] == "Access denied"
  assert body["requestId"] == response.headers["x-request-id"]


@pytest.mark.anyio
async def test_unknown_job_and_slug_return_404(async_client) -> None:
  assert (await async_client.get("/v1/jobs/missing/status")).json()["error"] == "Run not found"
  assert (await async_client.get("/v1/shares/nothing0000")).status_code == 404


@pytest.mark.anyio
async def test_repeat_free_tool_submission_returns_existing_slug(async_client) -> None:
  first = (await async_client.post("/v1/tools/headline-analysis", json=HEADLINE_TOOL)).json()

  response = await async_client.post("/v1/tools/headline-analysis", json={**HEADLINE_TOOL, "email": "JANE+again@example.com"})

  assert response.status_code == 409
  assert response.json()["existingSlug"] == first["slug"]


@pytest.mark.anyio
async def test_ip_rate_limit_returns_retry_after(async_client) -> None:
  headers = {"x-forwarded-for": "198.51.100.23, 10.0.0.1"}
  for index in range(5):
    response = await async_client.post("/v1/tools/headline-analysis", json={**HEADLINE_TOOL, "email": f"user{index}@example.com"}, headers=headers)
    assert response.status_code == 200

  limited = await async_client.post("/v1/tools/headline-analysis", json={**HEADLINE_TOOL, "email": "user9@example.com"}, headers=headers)

  assert limited.status_code == 429
  assert int(limited.headers["retry-after"]) >= 1
  assert limited.json()["error"] == "Too many requests. Please try again tomorrow."


@pytest.mark.anyio
async def test_rotating_forwarded_header_does_not_reset_the_ip_limit(async_client) -> None:
  for index in range(5):
    response = await async_client.post("/v1/tools/headline-analysis", json={**HEADLINE_TOOL, "email": f"user{index}@example.com"}, headers={"x-forwarded-for": f"203.0.113.{index}"})
    assert response.status_code == 200

  limited = await async_client.post("/v1/tools/headline-analysis", json={**HEADLINE_TOOL, "email": "user9@example.com"}, headers={"x-forwarded-for": "203.0.113.99"})

  assert limited.status_code == 429


@pytest.mark.anyio
async def test_honeypot_submission_is_not_dispatched(async_client, enqueuer, jobs_repo) -> None:
  response = await async_client.post("/v1/tools/headline-analysis", json={**HEADLINE_TOOL, "website": "http://spam.example"})
  assert response.status_code == 200
  assert enqueuer.enqueued == []
  assert jobs_repo.rows == {}


@pytest.mark.anyio
async def test_request_validation_uses_detail_shape(async_client) -> None:
  response = await async_client.post("/v1/tools/headline-analysis", json={"input": {}})
  assert response.status_code == 422
  body = response.json()
  assert isinstance(body["detail"], list)
  assert "requestId" in body


@pytest.mark.anyio
async def test_enqueue_failure_closes_the_job(async_client, enqueuer, jobs_repo) -> None:
  enqueuer.fail_with = RuntimeError("queue unavailable")

  response = await async_client.post("/v1/tools/headline-analysis", json=HEADLINE_TOOL)

  assert response.status_code == 200
  job = jobs_repo.rows[response.json()["jobId"]]
  assert job.status == "failed"
  assert job.error["reason"] == "InternalError"


@pytest.mark.anyio
async def test_paid_job_with_promo_code(async_client, promo_repo, counters_repo, enqueuer, plan_input) -> None:
  promo_repo.add("WELCOME5", max_uses=5)

  response = await async_client.post("/v1/jobs", json={"kind": "full-plan", "input": plan_input, "email": "jane@example.com", "code": "welcome5"})

  assert response.status_code == 200
  body = response.json()
  assert body["accessToken"]
  assert enqueuer.enqueued == [body["jobId"]]
  assert counters_repo.rows[promo_key("WELCOME5")].current_value == 1


@pytest.mark.anyio
async def test_anonymous_child_job_requires_the_parent_access_token(async_client, promo_repo, jobs_repo, plan_input) -> None:
  promo_repo.add("WELCOME5", max_uses=5)
  parent = (await async_client.post("/v1/jobs", json={"kind": "full-plan", "input": plan_input, "email": "jane@example.com", "code": "WELCOME5"})).json()
  child = {"kind": "full-plan", "input": plan_input, "email": "jane@example.com", "code": "WELCOME5", "parentId": parent["jobId"]}

  refused = await async_client.post("/v1/jobs", json=child)
  assert refused.status_code == 403
  assert len(jobs_repo.rows) == 1

  accepted = await async_client.post("/v1/jobs", json={**child, "parentToken": parent["accessToken"]})
  assert accepted.status_code == 200
  assert jobs_repo.rows[accepted.json()["jobId"]].parent_job_id == parent["jobId"]


@pytest.mark.anyio
async def test_exhausted_promo_code_creates_nothing(async_client, promo_repo, counters_repo, jobs_repo, plan_input) -> None:
  promo_repo.add("WELCOME5", max_uses=5)
  counters_repo.seed(promo_key("WELCOME5"), current_value=5, limit=5)

  response = await async_client.post("/v1/jobs", json={"kind": "full-plan", "input": plan_input, "email": "jane@example.com", "code": "WELCOME5"})

  assert response.status_code == 429
  assert response.json()["error"] == "Code has reached maximum uses"
  assert jobs_repo.rows == {}


@pytest.mark.anyio
async def test_paid_job_without_payment_is_refused(async_client, plan_input) -> None:
  anonymous = await async_client.post("/v1/jobs", json={"kind": "full-plan", "input": plan_input})
  assert anonymous.status_code == 402

  signed_in = await async_client.post("/v1/jobs", json={"kind": "full-plan", "input": plan_input}, headers=_bearer())
  assert signed_in.status_code == 402
  assert signed_in.json()["error"] == "No credits remaining"


@pytest.mark.anyio
async def test_signed_in_user_spends_credit(async_client, quota, plan_input) -> None:
  await quota.grant("credits:user:1", 1)

  response = await async_client.post("/v1/jobs", json={"kind": "full-plan", "input": plan_input}, headers=_bearer())

  assert response.status_code == 200
  assert "accessToken" not in response.json()
  status = await async_client.get(f"/v1/jobs/{response.json()['jobId']}/status", headers=_bearer())
  assert status.status_code == 200
  assert (await async_client.get(f"/v1/jobs/{response.json()['jobId']}/status", headers=_bearer("2"))).status_code == 403


@pytest.mark.anyio
async def test_refine_flow(async_client, store, enqueuer, plan_input, plan_output) -> None:
  root = await _complete_plan(store, plan_input, plan_output)

  response = await async_client.post(f"/v1/jobs/{root.job_id}/refine", json={"context": "We launched a referral program"}, headers=_bearer())
  assert response.status_code == 200
  assert response.json()["remaining"] == 1
  assert enqueuer.enqueued == [response.json()["newJobId"]]

  again = await async_client.post(f"/v1/jobs/{root.job_id}/refine", json={"context": "And a free tier too"}, headers=_bearer())
  assert again.status_code == 409

  forbidden = await async_client.post(f"/v1/jobs/{root.job_id}/refine", json={"context": "Not my plan at all"}, headers=_bearer("2"))
  assert forbidden.status_code == 403


@pytest.mark.anyio
async def test_share_requires_owner_and_is_stable(async_client, store, plan_input, plan_output) -> None:
  root = await _complete_plan(store, plan_input, plan_output)

  first = await async_client.post(f"/v1/jobs/{root.job_id}/share", headers=_bearer())
  second = await async_client.post(f"/v1/jobs/{root.job_id}/share", headers=_bearer())
  assert first.json()["slug"] == second.json()["slug"]
  assert (await async_client.post(f"/v1/jobs/{root.job_id}/share", headers=_bearer("2"))).status_code == 403

  shared = (await async_client.get(f"/v1/shares/{first.json()['slug']}")).json()
  assert shared["output"] == plan_output


@pytest.mark.anyio
async def test_validate_code_endpoint(async_client, promo_repo) -> None:
  promo_repo.add("WELCOME5", credits=1, max_uses=5)
  assert (await async_client.post("/v1/codes/validate", json={"code": "welcome5"})).json() == {"valid": True, "credits": 1}
  assert (await async_client.post("/v1/codes/validate", json={"code": "nope"})).json() == {"valid": False, "credits": 0, "error": "Invalid code"}


@pytest.mark.anyio
async def test_sweep_endpoint_fails_stale_jobs(async_client, store, jobs_repo, counters_repo, plan_input) -> None:
  job = await store.create("full-plan", plan_input, "user:1")
  jobs_repo.rows[job.job_id].updated_at -= datetime.timedelta(hours=2)
  yesterday = datetime.datetime.now(datetime.UTC) - datetime.timedelta(days=1)
  await counters_repo.ensure_counter("ip:198.51.100.23:1", limit=5, window_ends_at=yesterday)
  counters_repo.seed("promo:WELCOME5", current_value=2, limit=5)

  response = await async_client.post("/internal/tasks/sweep-stale", headers={"authorization": "Bearer test-task-secret"})

  assert response.status_code == 200
  assert response.json() == {"failedJobIds": [job.job_id], "purgedCounters": 1}
  assert jobs_repo.rows[job.job_id].status == "failed"
  assert list(counters_repo.rows) == ["promo:WELCOME5"]
