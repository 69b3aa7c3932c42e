"""Shared fixtures: in-memory repositories and an ASGI client with overridden dependencies."""

from __future__ import annotations

import asyncio
import copy
import datetime
import os
from collections.abc import Iterable
from dataclasses import replace
from typing import Any

os.environ.setdefault("ACTIONBOOST_ENV", "test")
os.environ.setdefault("ACTIONBOOST_SESSION_SECRET", "test-session-secret-0123456789abcdef")
os.environ.setdefault("ACTIONBOOST_TASK_SECRET", "test-task-secret")

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from actionboost.api.deps import get_counters_repo, get_enqueuer, get_jobs_repo, get_promo_repo  # noqa: E402
from actionboost.jobs.models import TERMINAL_STATUSES, JobKind, JobRecord, JobStatus, utc_now  # noqa: E402
from actionboost.jobs.store import JobStore  # noqa: E402
from actionboost.services.quota_guard import QuotaGuard  # noqa: E402
from actionboost.services.result_access import ResultAccess  # noqa: E402
from actionboost.storage.counters_repo import CounterRecord, PromoCodeRecord  # noqa: E402

TEST_SECRET = os.environ["ACTIONBOOST_SESSION_SECRET"]


class InMemoryJobsRepository:
  """Jobs repository with the same conditional-write semantics as Postgres."""

  def __init__(self) -> None:
    self.rows: dict[str, JobRecord] = {}

  async def create_job(self, record: JobRecord) -> None:
    await asyncio.sleep(0)
    if record.job_id in self.rows:
      raise ValueError(f"duplicate job {record.job_id}")
    self.rows[record.job_id] = copy.deepcopy(record)

  async def get_job(self, job_id: str) -> JobRecord | None:
    await asyncio.sleep(0)
    row = self.rows.get(job_id)
    return copy.deepcopy(row) if row is not None else None

  async def transition_job(self, job_id: str, *, expected_status: JobStatus, status: JobStatus, output: dict[str, Any] | None = None, stage: str | None = None, error: dict[str, Any] | None = None, completed_at: datetime.datetime | None = None) -> JobRecord | None:
    await asyncio.sleep(0)
    row = self.rows.get(job_id)
    if row is None or row.status != expected_status:
      return None
    row.status = status
    row.output = output
    row.updated_at = utc_now()
    if stage is not None:
      row.stage = stage
    if error is not None:
      row.error = error
    if completed_at is not None:
      row.completed_at = completed_at
    return copy.deepcopy(row)

  async def update_stage(self, job_id: str, stage: str) -> None:
    await asyncio.sleep(0)
    row = self.rows.get(job_id)
    if row is not None and row.status not in TERMINAL_STATUSES:
      row.stage = stage
      row.updated_at = utc_now()

  async def set_share_slug_if_absent(self, job_id: str, slug: str) -> str | None:
    await asyncio.sleep(0)
    row = self.rows.get(job_id)
    if row is None:
      return None
    if row.share_slug is None:
      row.share_slug = slug
    return row.share_slug

  async def get_job_by_share_slug(self, slug: str) -> JobRecord | None:
    await asyncio.sleep(0)
    for row in self.rows.values():
      if row.share_slug == slug:
        return copy.deepcopy(row)
    return None

  async def find_children(self, parent_job_id: str, statuses: Iterable[JobStatus]) -> list[JobRecord]:
    await asyncio.sleep(0)
    wanted = set(statuses)
    children = [row for row in self.rows.values() if row.parent_job_id == parent_job_id and row.status in wanted]
    return [copy.deepcopy(row) for row in sorted(children, key=lambda row: row.created_at)]

  async def find_latest_for_owner(self, owner: str, kind: JobKind) -> JobRecord | None:
    await asyncio.sleep(0)
    matches = [row for row in self.rows.values() if row.owner == owner and row.kind == kind]
    if not matches:
      return None
    return copy.deepcopy(max(matches, key=lambda row: row.created_at))

  async def find_stale(self, *, statuses: Iterable[JobStatus], updated_before: datetime.datetime, limit: int = 100) -> list[JobRecord]:
    await asyncio.sleep(0)
    wanted = set(statuses)
    stale = [row for row in self.rows.values() if row.status in wanted and row.updated_at < updated_before]
    return [copy.deepcopy(row) for row in sorted(stale, key=lambda row: row.updated_at)[:limit]]


class InMemoryCounterRepository:
  """Counter rows with a conditional update and the table's check constraints."""

  def __init__(self) -> None:
    self.rows: dict[str, CounterRecord] = {}

  def seed(self, key: str, *, current_value: int, limit: int) -> None:
    self.rows[key] = CounterRecord(key=key, current_value=current_value, limit=limit)

  async def get_counter(self, key: str) -> CounterRecord | None:
    await asyncio.sleep(0)
    return self.rows.get(key)

  async def ensure_counter(self, key: str, *, limit: int, window_ends_at: datetime.datetime | None = None) -> CounterRecord:
    await asyncio.sleep(0)
    if key not in self.rows:
      self.rows[key] = CounterRecord(key=key, current_value=0, limit=limit, window_ends_at=window_ends_at)
    return self.rows[key]

  async def compare_and_set(self, key: str, *, expected: int, new: int) -> bool:
    await asyncio.sleep(0)
    row = self.rows.get(key)
    if row is None or row.current_value != expected:
      return False
    if new < 0 or new > row.limit:
      raise ValueError(f"check constraint violated for {key}")
    self.rows[key] = replace(row, current_value=new)
    return True

  async def add_to_limit(self, key: str, amount: int) -> CounterRecord:
    await asyncio.sleep(0)
    row = self.rows.get(key)
    self.rows[key] = CounterRecord(key=key, current_value=0, limit=amount) if row is None else replace(row, limit=row.limit + amount)
    return self.rows[key]

  async def raise_limit(self, key: str, limit: int) -> CounterRecord | None:
    await asyncio.sleep(0)
    row = self.rows.get(key)
    if row is not None and row.limit < limit:
      self.rows[key] = replace(row, limit=limit)
    return self.rows.get(key)

  async def delete_expired(self, before: datetime.datetime) -> int:
    await asyncio.sleep(0)
    expired = [key for key, row in self.rows.items() if row.window_ends_at is not None and row.window_ends_at < before]
    for key in expired:
      del self.rows[key]
    return len(expired)


class InMemoryPromoCodeRepository:
  def __init__(self) -> None:
    self.codes: dict[str, PromoCodeRecord] = {}

  def add(self, code: str, *, credits: int = 1, max_uses: int | None = None, expires_at: datetime.datetime | None = None) -> PromoCodeRecord:
    record = PromoCodeRecord(code=code, credits=credits, max_uses=max_uses, expires_at=expires_at)
    self.codes[code] = record
    return record

  async def get_promo_code(self, code: str) -> PromoCodeRecord | None:
    await asyncio.sleep(0)
    return self.codes.get(code)


class RecordingEnqueuer:
  """Collects dispatched job ids instead of running them."""

  def __init__(self) -> None:
    self.enqueued: list[str] = []
    self.fail_with: Exception | None = None

  async def enqueue(self, job_id: str, payload: dict) -> None:
    if self.fail_with is not None:
      raise self.fail_with
    self.enqueued.append(job_id)


@pytest.fixture
def anyio_backend() -> str:
  return "asyncio"


@pytest.fixture
def jobs_repo() -> InMemoryJobsRepository:
  return InMemoryJobsRepository()


@pytest.fixture
def counters_repo() -> InMemoryCounterRepository:
  return InMemoryCounterRepository()


@pytest.fixture
def promo_repo() -> InMemoryPromoCodeRepository:
  return InMemoryPromoCodeRepository()


@pytest.fixture
def enqueuer() -> RecordingEnqueuer:
  return RecordingEnqueuer()


@pytest.fixture
def store(jobs_repo: InMemoryJobsRepository) -> JobStore:
  return JobStore(jobs_repo)


@pytest.fixture
def quota(counters_repo: InMemoryCounterRepository) -> QuotaGuard:
  return QuotaGuard(counters_repo)


@pytest.fixture
def access() -> ResultAccess:
  return ResultAccess(TEST_SECRET)


@pytest.fixture
def plan_input() -> dict[str, Any]:
  return {"productDescription": "Invoicing software for freelance designers", "currentTraction": "40 paying users, $1.2k MRR", "focusArea": "acquisition", "websiteUrl": "invoicely.example.com"}


@pytest.fixture
def plan_output() -> dict[str, Any]:
  factor = {"score": 8, "reason": "Strong signal"}
  return {
    "summary": "Lean into design communities.",
    "topPriorities": [{"rank": 1, "title": "Dribbble outreach", "iceScore": 24, "impact": factor, "confidence": factor, "ease": factor, "description": "Post case studies weekly."}],
    "thisWeek": {"days": [{"day": 1, "action": "Draft case study", "timeEstimate": "2h", "successMetric": "Published"}]},
    "roadmapWeeks": [{"week": 1, "theme": "Proof", "tasks": ["Collect testimonials"]}],
    "metrics": [{"name": "Signups", "target": "50/week", "category": "acquisition"}],
    "competitors": [{"name": "FreshBooks", "traffic": "", "positioning": "SMB accounting"}],
  }


@pytest.fixture
async def async_client(jobs_repo: InMemoryJobsRepository, counters_repo: InMemoryCounterRepository, promo_repo: InMemoryPromoCodeRepository, enqueuer: RecordingEnqueuer):
  from actionboost.main import app

  app.dependency_overrides[get_jobs_repo] = lambda: jobs_repo
  app.dependency_overrides[get_counters_repo] = lambda: counters_repo
  app.dependency_overrides[get_promo_repo] = lambda: promo_repo
  app.dependency_overrides[get_enqueuer] = lambda: enqueuer
  async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
    yield client
  app.dependency_overrides.clear()
