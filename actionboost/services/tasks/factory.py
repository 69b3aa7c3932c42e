from __future__ import annotations

from actionboost.config import Settings
from actionboost.services.tasks.inline import InlineEnqueuer
from actionboost.services.tasks.interface import TaskEnqueuer
from actionboost.services.tasks.local import LocalHttpEnqueuer


def get_task_enqueuer(settings: Settings) -> TaskEnqueuer:
  """Factory to get the configured task enqueuer."""
  if settings.task_service_provider == "local-http":
    return LocalHttpEnqueuer(settings)
  return InlineEnqueuer(settings)
