"""Postgres-backed repository for analysis jobs using SQLAlchemy."""

from __future__ import annotations

import datetime
from collections.abc import Iterable
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from actionboost.core.database import get_session_factory
from actionboost.jobs.models import JobKind, JobRecord, JobStatus, TERMINAL_STATUSES, utc_now
from actionboost.schema.jobs import Job
from actionboost.storage.jobs_repo import JobsRepository


class PostgresJobsRepository(JobsRepository):
  """Persist jobs to Postgres using SQLAlchemy."""

  def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None) -> None:
    self._session_factory = session_factory or get_session_factory()
    if self._session_factory is None:
      raise RuntimeError("Database not initialized")

  async def create_job(self, record: JobRecord) -> None:
    async with self._session_factory() as session:
      job = Job(
        job_id=record.job_id,
        kind=record.kind,
        status=record.status,
        input_json=record.input,
        output_json=record.output,
        owner=record.owner,
        parent_job_id=record.parent_job_id,
        stage=record.stage,
        error_json=record.error,
        share_slug=record.share_slug,
        created_at=record.created_at,
        updated_at=record.updated_at,
        completed_at=record.completed_at,
      )
      session.add(job)
      await session.commit()

  async def get_job(self, job_id: str) -> JobRecord | None:
    async with self._session_factory() as session:
      row = await session.get(Job, job_id)
      if row is None:
        return None
      return self._model_to_record(row)

  async def transition_job(
    self,
    job_id: str,
    *,
    expected_status: JobStatus,
    status: JobStatus,
    output: dict[str, Any] | None = None,
    stage: str | None = None,
    error: dict[str, Any] | None = None,
    completed_at: datetime.datetime | None = None,
  ) -> JobRecord | None:
    values: dict[str, Any] = {"status": status, "output_json": output, "updated_at": utc_now()}
    if stage is not None:
      values["stage"] = stage
    if error is not None:
      values["error_json"] = error
    if completed_at is not None:
      values["completed_at"] = completed_at
    # Guard on the status we read so concurrent writers cannot both win the same edge.
    stmt = update(Job).where(Job.job_id == job_id, Job.status == expected_status).values(**values).returning(Job)
    async with self._session_factory() as session:
      result = await session.execute(stmt)
      row = result.scalar_one_or_none()
      await session.commit()
      if row is None:
        return None
      return self._model_to_record(row)

  async def update_stage(self, job_id: str, stage: str) -> None:
    stmt = update(Job).where(Job.job_id == job_id, Job.status.not_in(TERMINAL_STATUSES)).values(stage=stage, updated_at=utc_now())
    async with self._session_factory() as session:
      await session.execute(stmt)
      await session.commit()

  async def set_share_slug_if_absent(self, job_id: str, slug: str) -> str | None:
    async with self._session_factory() as session:
      await session.execute(update(Job).where(Job.job_id == job_id, Job.share_slug.is_(None)).values(share_slug=slug))
      await session.commit()
      # Re-read so a concurrent winner's slug is returned instead of ours.
      result = await session.execute(select(Job.share_slug).where(Job.job_id == job_id))
      return result.scalar_one_or_none()

  async def get_job_by_share_slug(self, slug: str) -> JobRecord | None:
    async with self._session_factory() as session:
      result = await session.execute(select(Job).where(Job.share_slug == slug))
      row = result.scalar_one_or_none()
      return self._model_to_record(row) if row is not None else None

  async def find_children(self, parent_job_id: str, statuses: Iterable[JobStatus]) -> list[JobRecord]:
    stmt = select(Job).where(Job.parent_job_id == parent_job_id, Job.status.in_(list(statuses))).order_by(Job.created_at.asc())
    async with self._session_factory() as session:
      result = await session.execute(stmt)
      return [self._model_to_record(row) for row in result.scalars().all()]

  async def find_latest_for_owner(self, owner: str, kind: JobKind) -> JobRecord | None:
    stmt = select(Job).where(Job.owner == owner, Job.kind == kind).order_by(Job.created_at.desc()).limit(1)
    async with self._session_factory() as session:
      result = await session.execute(stmt)
      row = result.scalar_one_or_none()
      return self._model_to_record(row) if row is not None else None

  async def find_stale(self, *, statuses: Iterable[JobStatus], updated_before: datetime.datetime, limit: int = 100) -> list[JobRecord]:
    stmt = select(Job).where(Job.status.in_(list(statuses)), Job.updated_at < updated_before).order_by(Job.updated_at.asc()).limit(limit)
    async with self._session_factory() as session:
      result = await session.execute(stmt)
      return [self._model_to_record(row) for row in result.scalars().all()]

  def _model_to_record(self, model: Job) -> JobRecord:
    return JobRecord(
      job_id=model.job_id,
      kind=model.kind,  # type: ignore[arg-type]
      status=model.status,  # type: ignore[arg-type]
      input=dict(model.input_json or {}),
      owner=model.owner,
      created_at=model.created_at,
      updated_at=model.updated_at,
      parent_job_id=model.parent_job_id,
      output=model.output_json,
      stage=model.stage,
      error=model.error_json,
      share_slug=model.share_slug,
      completed_at=model.completed_at,
    )
