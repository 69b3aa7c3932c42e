from __future__ import annotations

from dataclasses import replace
from unittest.mock import AsyncMock, Mock, patch

import pytest

from actionboost.config import get_settings
from actionboost.services.tasks.factory import get_task_enqueuer
from actionboost.services.tasks.inline import InlineEnqueuer
from actionboost.services.tasks.local import LocalHttpEnqueuer


@pytest.mark.anyio
async def test_local_task_dispatch() -> None:
  """The local enqueuer posts the job id to the internal endpoint with the task secret."""
  settings = replace(get_settings(), task_service_provider="local-http", base_url="https://engine.example.com/", task_secret="test-task-secret")

  with patch("actionboost.services.tasks.local.httpx.AsyncClient") as mock_client_cls:
    mock_client = AsyncMock()
    mock_client_cls.return_value.__aenter__.return_value = mock_client
    mock_response = Mock()
    mock_response.raise_for_status = Mock()
    mock_client.post.return_value = mock_response

    enqueuer = get_task_enqueuer(settings)
    assert isinstance(enqueuer, LocalHttpEnqueuer)
    await enqueuer.enqueue("job-123", {})

  args, kwargs = mock_client.post.call_args
  assert args[0] == "https://engine.example.com/internal/tasks/process-job"
  assert kwargs["json"] == {"jobId": "job-123"}
  assert kwargs["headers"] == {"authorization": "Bearer test-task-secret"}


@pytest.mark.anyio
async def test_local_dispatch_requires_base_url() -> None:
  settings = replace(get_settings(), task_service_provider="local-http", base_url=None)
  with pytest.raises(RuntimeError):
    await LocalHttpEnqueuer(settings).enqueue("job-123", {})


def test_inline_is_the_default_provider() -> None:
  assert isinstance(get_task_enqueuer(replace(get_settings(), task_service_provider="inline")), InlineEnqueuer)


@pytest.mark.anyio
async def test_task_handler_endpoint(async_client) -> None:
  """The handler acknowledges and runs the job after responding."""
  with patch("actionboost.api.routes.tasks.process_job_sync", new_callable=AsyncMock) as mock_process:
    response = await async_client.post("/internal/tasks/process-job", json={"jobId": "job-abc"}, headers={"authorization": "Bearer test-task-secret"})

  assert response.status_code == 200
  assert response.json() == {"status": "accepted"}
  mock_process.assert_called_once()
  args, _ = mock_process.call_args
  assert args[0] == "job-abc"


@pytest.mark.anyio
@pytest.mark.parametrize("headers", [{}, {"authorization": "Bearer wrong"}, {"authorization": "test-task-secret"}])
async def test_task_endpoints_reject_missing_or_wrong_secret(async_client, headers) -> None:
  with patch("actionboost.api.routes.tasks.process_job_sync", new_callable=AsyncMock) as mock_process:
    response = await async_client.post("/internal/tasks/process-job", json={"jobId": "job-abc"}, headers=headers)
  assert response.status_code == 403
  mock_process.assert_not_called()
  assert (await async_client.post("/internal/tasks/sweep-stale", headers=headers)).status_code == 403
