import logging
from typing import Annotated, Any

from fastapi import APIRouter, BackgroundTasks, Depends, Query

from actionboost.api.deps import get_enqueuer, get_job_store, get_promo_repo, get_quota_guard, get_result_access
from actionboost.api.models import JobCreateRequest, JobCreateResponse, JobResultResponse, JobStatusResponse, RefineRequest, RefineResponse, ShareResponse
from actionboost.config import Settings, get_settings
from actionboost.core.security import get_optional_owner
from actionboost.jobs.store import JobStore
from actionboost.services import jobs as job_service
from actionboost.services.quota_guard import QuotaGuard
from actionboost.services.refinements import request_refinement
from actionboost.services.result_access import ResultAccess
from actionboost.services.tasks.interface import TaskEnqueuer
from actionboost.storage.counters_repo import PromoCodeRepository

router = APIRouter()
logger = logging.getLogger("actionboost.api.routes.jobs")


@router.post("", response_model=JobCreateResponse, response_model_exclude_none=True)
async def create_job(
  request: JobCreateRequest,
  background_tasks: BackgroundTasks,
  store: Annotated[JobStore, Depends(get_job_store)],
  quota: Annotated[QuotaGuard, Depends(get_quota_guard)],
  promo_repo: Annotated[PromoCodeRepository, Depends(get_promo_repo)],
  access: Annotated[ResultAccess, Depends(get_result_access)],
  enqueuer: Annotated[TaskEnqueuer, Depends(get_enqueuer)],
  owner: Annotated[str | None, Depends(get_optional_owner)],
) -> JobCreateResponse:
  """Create a paid analysis job funded by credits or a promo code."""
  job, token = await job_service.create_paid_job(store=store, quota=quota, promo_repo=promo_repo, access=access, kind=request.kind, input=request.input, owner=owner, email=request.email, parent_id=request.parent_id, parent_token=request.parent_token, code=request.code)
  job_service.trigger_job_processing(background_tasks, job.job_id, enqueuer=enqueuer, store=store)
  return JobCreateResponse(job_id=job.job_id, access_token=token)


@router.get("/{job_id}/status", response_model=JobStatusResponse, response_model_exclude_none=True)
async def get_job_status(
  job_id: str,
  store: Annotated[JobStore, Depends(get_job_store)],
  access: Annotated[ResultAccess, Depends(get_result_access)],
  owner: Annotated[str | None, Depends(get_optional_owner)],
  token: Annotated[str | None, Query()] = None,
  share: Annotated[str | None, Query()] = None,
) -> dict[str, Any]:
  """Cheap polling view: status plus a progress hint."""
  return await job_service.job_status(store=store, access=access, job_id=job_id, owner=owner, token=token, share=share)


@router.get("/{job_id}", response_model=JobResultResponse, response_model_exclude_none=True)
async def get_job(
  job_id: str,
  store: Annotated[JobStore, Depends(get_job_store)],
  access: Annotated[ResultAccess, Depends(get_result_access)],
  owner: Annotated[str | None, Depends(get_optional_owner)],
  token: Annotated[str | None, Query()] = None,
  share: Annotated[str | None, Query()] = None,
) -> dict[str, Any]:
  """Fetch the job and, once complete, its output."""
  return await job_service.job_result(store=store, access=access, job_id=job_id, owner=owner, token=token, share=share)


@router.post("/{job_id}/share", response_model=ShareResponse)
async def share_job(
  job_id: str,
  store: Annotated[JobStore, Depends(get_job_store)],
  access: Annotated[ResultAccess, Depends(get_result_access)],
  owner: Annotated[str | None, Depends(get_optional_owner)],
  token: Annotated[str | None, Query()] = None,
) -> ShareResponse:
  """Return the job's stable share slug, creating it on first call."""
  slug = await job_service.create_share(store=store, access=access, job_id=job_id, owner=owner, token=token)
  return ShareResponse(slug=slug)


@router.post("/{job_id}/refine", response_model=RefineResponse)
async def refine_job(
  job_id: str,
  payload: RefineRequest,
  background_tasks: BackgroundTasks,
  settings: Annotated[Settings, Depends(get_settings)],
  store: Annotated[JobStore, Depends(get_job_store)],
  quota: Annotated[QuotaGuard, Depends(get_quota_guard)],
  access: Annotated[ResultAccess, Depends(get_result_access)],
  enqueuer: Annotated[TaskEnqueuer, Depends(get_enqueuer)],
  owner: Annotated[str | None, Depends(get_optional_owner)],
  token: Annotated[str | None, Query()] = None,
) -> RefineResponse:
  """Queue a refinement of a completed plan."""
  result = await request_refinement(store=store, quota=quota, access=access, job_id=job_id, context=payload.context, owner=owner, token=token, max_refinements=settings.max_free_refinements)
  # Dispatch only after the refinement counter and child job are both durable.
  job_service.trigger_job_processing(background_tasks, result.job.job_id, enqueuer=enqueuer, store=store)
  return RefineResponse(new_job_id=result.job.job_id, remaining=result.remaining)
