from __future__ import annotations

import logging
import secrets
from typing import Annotated

from fastapi import APIRouter, BackgroundTasks, Depends, Header, HTTPException, status

from actionboost.api.deps import get_job_store, get_quota_guard
from actionboost.api.models import SweepResponse, TaskPayload
from actionboost.config import Settings, get_settings
from actionboost.jobs.store import JobStore
from actionboost.services.jobs import process_job_sync, sweep_stale_jobs
from actionboost.services.quota_guard import QuotaGuard

router = APIRouter(prefix="/tasks", tags=["tasks"])
logger = logging.getLogger(__name__)


def require_task_secret(settings: Annotated[Settings, Depends(get_settings)], authorization: Annotated[str | None, Header()] = None) -> None:
  """Internal endpoints are deny-by-default: no configured secret means no access."""
  if not settings.task_secret:
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Task authentication is not configured.")
  if not secrets.compare_digest((authorization or "").encode("utf-8"), f"Bearer {settings.task_secret}".encode("utf-8")):
    logger.warning("Unauthorized access attempt to an internal task endpoint")
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid task secret.")


@router.post("/process-job", status_code=status.HTTP_200_OK, dependencies=[Depends(require_task_secret)])
async def process_job_task(payload: TaskPayload, background_tasks: BackgroundTasks, settings: Annotated[Settings, Depends(get_settings)]) -> dict[str, str]:
  """Accept the task quickly and run the job after the response is sent."""
  logger.info("Received task for job %s", payload.job_id)
  background_tasks.add_task(process_job_sync, payload.job_id, settings)
  return {"status": "accepted"}


@router.post("/sweep-stale", response_model=SweepResponse, dependencies=[Depends(require_task_secret)])
async def sweep_stale_task(settings: Annotated[Settings, Depends(get_settings)], store: Annotated[JobStore, Depends(get_job_store)], quota: Annotated[QuotaGuard, Depends(get_quota_guard)]) -> SweepResponse:
  """Fail open jobs that stopped making progress and drop expired rate-limit rows."""
  failed = await sweep_stale_jobs(store, settings)
  purged = await quota.purge_expired()
  return SweepResponse(failed_job_ids=failed, purged_counters=purged)
