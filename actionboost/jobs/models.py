"""Domain models for asynchronous analysis jobs."""

from __future__ import annotations

import datetime
from dataclasses import dataclass
from typing import Any, Final, Literal, get_args

JobStatus = Literal["pending", "processing", "complete", "failed"]
JobKind = Literal["full-plan", "refinement", "free-audit", "marketing-audit", "landing-page-roast", "target-audience", "headline-analysis"]

JOB_KINDS: Final[tuple[str, ...]] = get_args(JobKind)
FREE_TOOL_KINDS: Final[frozenset[str]] = frozenset({"free-audit", "marketing-audit", "landing-page-roast", "target-audience", "headline-analysis"})
PAID_KINDS: Final[frozenset[str]] = frozenset({"full-plan"})

TERMINAL_STATUSES: Final[frozenset[str]] = frozenset({"complete", "failed"})
# pending -> failed covers dispatch failures and jobs rejected by the source guard before work starts.
ALLOWED_TRANSITIONS: Final[dict[str, frozenset[str]]] = {
  "pending": frozenset({"processing", "failed"}),
  "processing": frozenset({"complete", "failed"}),
  "complete": frozenset(),
  "failed": frozenset(),
}


def utc_now() -> datetime.datetime:
  """Return timezone-aware current UTC time."""
  return datetime.datetime.now(datetime.UTC)


def is_terminal(status: str) -> bool:
  """True for statuses a job never leaves (``complete`` and ``failed``)."""
  return status in TERMINAL_STATUSES


def can_transition(current: str, new: str) -> bool:
  """Return True when ``current -> new`` is an edge of the job state machine."""
  return new in ALLOWED_TRANSITIONS.get(current, frozenset())


@dataclass
class JobRecord:
  """Represents one persisted analysis job."""

  job_id: str
  kind: JobKind
  status: JobStatus
  input: dict[str, Any]
  owner: str
  created_at: datetime.datetime
  updated_at: datetime.datetime
  parent_job_id: str | None = None
  output: dict[str, Any] | None = None
  stage: str | None = None
  error: dict[str, Any] | None = None
  share_slug: str | None = None
  completed_at: datetime.datetime | None = None

  @property
  def is_terminal(self) -> bool:
    """Whether the job has finished, successfully or not."""
    return is_terminal(self.status)
