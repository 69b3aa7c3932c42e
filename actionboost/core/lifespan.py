import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from actionboost.config import Settings
from actionboost.core.database import dispose_engine
from actionboost.core.logging import _initialize_logging
from actionboost.jobs.store import JobStore
from actionboost.jobs.worker import close_job_processor
from actionboost.services.jobs import sweep_stale_jobs
from actionboost.services.quota_guard import QuotaGuard
from actionboost.services.tasks.inline import drain_running_tasks
from actionboost.storage.factory import _get_counters_repo, _get_jobs_repo

_SHUTDOWN_DRAIN_SECONDS = 10.0


async def _watchdog_loop(settings: Settings, logger: logging.Logger) -> None:
  """Periodically fail jobs that stopped making progress and purge expired rate-limit rows."""
  store = JobStore(_get_jobs_repo(settings))
  quota = QuotaGuard(_get_counters_repo(settings))
  while True:
    await asyncio.sleep(settings.watchdog_interval_seconds)
    try:
      failed = await sweep_stale_jobs(store, settings)
      if failed:
        logger.info("Watchdog closed %d stale job(s)", len(failed))
      await quota.purge_expired()
    except Exception:  # noqa: BLE001
      logger.error("Watchdog sweep failed", exc_info=True)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
  """Set up logging and the optional watchdog; release the engine on shutdown."""
  from actionboost.config import get_settings

  settings = get_settings()
  logger = logging.getLogger("actionboost.core.lifespan")

  try:
    _initialize_logging(settings)
    logger.info("Startup complete - logging verified.")
  except Exception:
    logger.warning("Initial logging setup failed; continuing with default handlers.", exc_info=True)

  watchdog: asyncio.Task[None] | None = None
  if settings.watchdog_interval_seconds > 0 and settings.pg_dsn:
    watchdog = asyncio.create_task(_watchdog_loop(settings, logger), name="job-watchdog")
    logger.info("Watchdog running every %ss (stale after %ss)", settings.watchdog_interval_seconds, settings.stale_job_seconds)

  yield

  if watchdog is not None:
    watchdog.cancel()
    with contextlib.suppress(asyncio.CancelledError):
      await watchdog
  await drain_running_tasks(_SHUTDOWN_DRAIN_SECONDS)
  await close_job_processor()
  await dispose_engine()
