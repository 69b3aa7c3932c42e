from typing import Annotated, Any

from fastapi import APIRouter, Depends

from actionboost.api.deps import get_job_store
from actionboost.api.models import JobResultResponse
from actionboost.jobs.store import JobStore
from actionboost.services import jobs as job_service

router = APIRouter()


@router.get("/{slug}", response_model=JobResultResponse, response_model_exclude_none=True)
async def get_shared_job(slug: str, store: Annotated[JobStore, Depends(get_job_store)]) -> dict[str, Any]:
  """Read-only view of a shared job."""
  return await job_service.shared_result(store=store, slug=slug)
