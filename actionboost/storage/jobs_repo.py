"""Storage interfaces for analysis jobs."""

from __future__ import annotations

import datetime
from collections.abc import Iterable
from typing import Any, Protocol

from actionboost.jobs.models import JobKind, JobRecord, JobStatus


class JobsRepository(Protocol):
  """Repository contract for job persistence."""

  async def create_job(self, record: JobRecord) -> None:
    """Persist an initial job record."""

  async def get_job(self, job_id: str) -> JobRecord | None:
    """Fetch a job by identifier."""

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
    """Write a status change only if the row still holds ``expected_status``.

    Returns the updated record, or None when the conditional write matched no row.
    """

  async def update_stage(self, job_id: str, stage: str) -> None:
    """Set the progress hint on a non-terminal job."""

  async def set_share_slug_if_absent(self, job_id: str, slug: str) -> str | None:
    """Store ``slug`` unless one exists; return the slug the job ends up with."""

  async def get_job_by_share_slug(self, slug: str) -> JobRecord | None:
    """Resolve a share slug to its job."""

  async def find_children(self, parent_job_id: str, statuses: Iterable[JobStatus]) -> list[JobRecord]:
    """Return child jobs of ``parent_job_id`` in any of ``statuses``."""

  async def find_latest_for_owner(self, owner: str, kind: JobKind) -> JobRecord | None:
    """Return the newest job of ``kind`` created by ``owner``."""

  async def find_stale(self, *, statuses: Iterable[JobStatus], updated_before: datetime.datetime, limit: int = 100) -> list[JobRecord]:
    """Return open jobs that have not been touched since ``updated_before``."""
