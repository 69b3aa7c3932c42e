"""Shared FastAPI dependencies; tests override the repository providers."""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request

from actionboost.config import Settings, get_settings
from actionboost.jobs.store import JobStore
from actionboost.services.quota_guard import QuotaGuard
from actionboost.services.result_access import ResultAccess
from actionboost.services.tasks.factory import get_task_enqueuer
from actionboost.services.tasks.interface import TaskEnqueuer
from actionboost.storage.counters_repo import CounterRepository, PromoCodeRepository
from actionboost.storage.factory import _get_counters_repo, _get_jobs_repo, _get_promo_repo
from actionboost.storage.jobs_repo import JobsRepository


def get_jobs_repo(settings: Annotated[Settings, Depends(get_settings)]) -> JobsRepository:
  return _get_jobs_repo(settings)


def get_counters_repo(settings: Annotated[Settings, Depends(get_settings)]) -> CounterRepository:
  return _get_counters_repo(settings)


def get_promo_repo(settings: Annotated[Settings, Depends(get_settings)]) -> PromoCodeRepository:
  return _get_promo_repo(settings)


def get_job_store(repo: Annotated[JobsRepository, Depends(get_jobs_repo)]) -> JobStore:
  return JobStore(repo)


def get_quota_guard(counters: Annotated[CounterRepository, Depends(get_counters_repo)]) -> QuotaGuard:
  return QuotaGuard(counters)


def get_result_access(settings: Annotated[Settings, Depends(get_settings)]) -> ResultAccess:
  return ResultAccess(settings.session_secret)


def get_enqueuer(settings: Annotated[Settings, Depends(get_settings)]) -> TaskEnqueuer:
  return get_task_enqueuer(settings)


def get_client_ip(request: Request, settings: Annotated[Settings, Depends(get_settings)]) -> str:
  """Client address used for rate limiting.

  X-Forwarded-For is client-controlled except for the entries our own proxies
  append, so only the entry added by the outermost trusted proxy is used. With
  no trusted proxies the header is ignored and the socket peer wins.
  """
  hops = settings.trusted_proxy_hops
  if hops:
    forwarded = [part.strip() for part in request.headers.get("x-forwarded-for", "").split(",") if part.strip()]
    if len(forwarded) >= hops:
      return forwarded[-hops]
  if request.client is not None:
    return request.client.host
  return "unknown"
