"""Dependency-injected job handler dispatch helpers."""

from __future__ import annotations

from typing import Any, Protocol

from actionboost.jobs.models import JobRecord


class JobHandler(Protocol):
  """Produces the validated output for one processing job."""

  async def process(self, job: JobRecord) -> dict[str, Any]:
    """Run the kind-specific stages and return the output payload."""


class JobHandlerRegistry:
  """Registry mapping job kinds to handlers."""

  def __init__(self, handlers: dict[str, JobHandler]) -> None:
    self._handlers = handlers

  def resolve(self, kind: str) -> JobHandler:
    """Resolve the handler for a job kind."""
    handler = self._handlers.get(kind)
    if handler is None:
      raise ValueError(f"Unsupported job kind: {kind}")
    return handler
