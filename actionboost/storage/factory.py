"""Repository factories used by services and FastAPI dependencies."""

from __future__ import annotations

from functools import lru_cache

from actionboost.config import Settings
from actionboost.storage.counters_repo import CounterRepository, PromoCodeRepository
from actionboost.storage.jobs_repo import JobsRepository
from actionboost.storage.postgres_counters_repo import PostgresCounterRepository, PostgresPromoCodeRepository
from actionboost.storage.postgres_jobs_repo import PostgresJobsRepository


def _require_dsn(settings: Settings) -> None:
  """Fail fast with a config error instead of a connection error."""
  if not settings.pg_dsn:
    raise RuntimeError("ACTIONBOOST_PG_DSN is required for job persistence.")


@lru_cache(maxsize=1)
def _jobs_repo_singleton() -> PostgresJobsRepository:
  return PostgresJobsRepository()


@lru_cache(maxsize=1)
def _counters_repo_singleton() -> PostgresCounterRepository:
  return PostgresCounterRepository()


@lru_cache(maxsize=1)
def _promo_repo_singleton() -> PostgresPromoCodeRepository:
  return PostgresPromoCodeRepository()


def _get_jobs_repo(settings: Settings) -> JobsRepository:
  """Return the configured jobs repository."""
  _require_dsn(settings)
  return _jobs_repo_singleton()


def _get_counters_repo(settings: Settings) -> CounterRepository:
  """Return the configured counter repository."""
  _require_dsn(settings)
  return _counters_repo_singleton()


def _get_promo_repo(settings: Settings) -> PromoCodeRepository:
  """Return the configured promo code repository."""
  _require_dsn(settings)
  return _promo_repo_singleton()
