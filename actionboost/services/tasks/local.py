from __future__ import annotations

import logging
from urllib.parse import urlparse

import httpx

from actionboost.config import Settings
from actionboost.services.tasks.interface import TaskEnqueuer

logger = logging.getLogger(__name__)

PROCESS_JOB_PATH = "/internal/tasks/process-job"
_LOOPBACK_HOSTS = frozenset({"localhost", "127.0.0.1", "::1", "0.0.0.0"})
_DISPATCH_TIMEOUT_SECONDS = 30.0


class LocalHttpEnqueuer(TaskEnqueuer):
  """Hands jobs to a worker process through the authenticated internal task endpoint.

  A loopback ``base_url`` is served in-process through ``httpx.ASGITransport`` so a
  single dev server can dispatch to itself without a network hop.
  """

  def __init__(self, settings: Settings) -> None:
    if settings.base_url and not settings.task_secret:
      raise RuntimeError("ACTIONBOOST_TASK_SECRET is required for local-http dispatch.")
    self.settings = settings

  def _client(self, base_url: str) -> httpx.AsyncClient:
    # Proxy variables from the environment are ignored for internal dispatch.
    if (urlparse(base_url).hostname or "").lower() in _LOOPBACK_HOSTS:
      from actionboost.main import app

      return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url=base_url, trust_env=False)
    return httpx.AsyncClient(trust_env=False)

  async def enqueue(self, job_id: str, payload: dict) -> None:
    base_url = self.settings.base_url
    if not base_url:
      raise RuntimeError("ACTIONBOOST_BASE_URL is required for local-http dispatch.")
    target = base_url.rstrip("/") + PROCESS_JOB_PATH
    headers = {"authorization": f"Bearer {self.settings.task_secret}"}

    async with self._client(base_url) as client:
      try:
        response = await client.post(target, json={"jobId": job_id, **payload}, headers=headers, timeout=_DISPATCH_TIMEOUT_SECONDS)
        response.raise_for_status()
      except httpx.HTTPError as exc:
        logger.error("Dispatch of job %s to %s failed: %s", job_id, target, exc)
        raise
    logger.info("Dispatched job %s to %s", job_id, target)
