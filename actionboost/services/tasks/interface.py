from __future__ import annotations

from typing import Protocol


class TaskEnqueuer(Protocol):
  """Interface for scheduling background job processing."""

  async def enqueue(self, job_id: str, payload: dict) -> None:
    """Schedule the job for processing."""
    ...
