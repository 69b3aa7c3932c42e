import logging
from typing import Annotated

from fastapi import APIRouter, BackgroundTasks, Depends

from actionboost.api.deps import get_client_ip, get_enqueuer, get_job_store, get_quota_guard, get_result_access
from actionboost.api.models import FreeToolRequest, FreeToolResponse
from actionboost.config import Settings, get_settings
from actionboost.jobs.store import JobStore
from actionboost.services import jobs as job_service
from actionboost.services.free_tools import create_free_tool_job
from actionboost.services.quota_guard import QuotaGuard
from actionboost.services.result_access import ResultAccess
from actionboost.services.tasks.interface import TaskEnqueuer

router = APIRouter()
logger = logging.getLogger("actionboost.api.routes.tools")


@router.post("/{kind}", response_model=FreeToolResponse)
async def run_free_tool(
  kind: str,
  request: FreeToolRequest,
  background_tasks: BackgroundTasks,
  settings: Annotated[Settings, Depends(get_settings)],
  store: Annotated[JobStore, Depends(get_job_store)],
  quota: Annotated[QuotaGuard, Depends(get_quota_guard)],
  access: Annotated[ResultAccess, Depends(get_result_access)],
  enqueuer: Annotated[TaskEnqueuer, Depends(get_enqueuer)],
  client_ip: Annotated[str, Depends(get_client_ip)],
) -> FreeToolResponse:
  """Submit a free tool run; results are fetched with the returned token or slug."""
  result = await create_free_tool_job(
    store=store,
    quota=quota,
    access=access,
    kind=kind,
    input=request.input,
    email=request.email,
    client_ip=client_ip,
    ip_limit=settings.ip_rate_limit,
    ip_window_seconds=settings.ip_rate_window_seconds,
    honeypot=request.website,
  )
  if result.created:
    job_service.trigger_job_processing(background_tasks, result.job_id, enqueuer=enqueuer, store=store)
  return FreeToolResponse(job_id=result.job_id, slug=result.slug, access_token=result.access_token)
