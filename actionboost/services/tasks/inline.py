from __future__ import annotations

import asyncio
import logging

from actionboost.config import Settings
from actionboost.services.tasks.interface import TaskEnqueuer

logger = logging.getLogger(__name__)

# The event loop only keeps weak references to tasks; hold them until they finish.
_RUNNING_TASKS: set[asyncio.Task[None]] = set()


class InlineEnqueuer(TaskEnqueuer):
  """Runs jobs as asyncio tasks in the current process."""

  def __init__(self, settings: Settings) -> None:
    self.settings = settings

  async def enqueue(self, job_id: str, payload: dict) -> None:
    from actionboost.services.jobs import process_job_sync

    async def _run() -> None:
      await process_job_sync(job_id, self.settings)

    task = asyncio.create_task(_run(), name=f"job-{job_id}")
    _RUNNING_TASKS.add(task)
    task.add_done_callback(_RUNNING_TASKS.discard)
    logger.info("Scheduled job %s inline", job_id)


async def drain_running_tasks(timeout: float) -> None:
  """Wait for in-flight inline jobs, up to ``timeout`` seconds."""
  if not _RUNNING_TASKS:
    return
  _done, pending = await asyncio.wait(set(_RUNNING_TASKS), timeout=timeout)
  if pending:
    logger.warning("%d inline job(s) still running at shutdown; the watchdog will fail them", len(pending))
