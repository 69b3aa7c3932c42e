"""Single-shot generation for a job."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

from actionboost.ai.prompts import build_system_prompt, build_user_content
from actionboost.ai.providers.base import AIModel, ChatRequest
from actionboost.evidence.research import ResearchBundle
from actionboost.evidence.retriever import EvidenceBundle
from actionboost.jobs.errors import UpstreamError
from actionboost.jobs.models import JobRecord
from actionboost.jobs.profiles import get_profile

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GenerationResult:
  raw_text: str
  model: str
  usage: dict[str, int] | None = None


class Generator:
  """Build the chat request for a job and run exactly one completion.

  There is no retry here. A provider failure, a timeout or an empty reply
  raises ``UpstreamError`` and the caller decides what happens to the job.
  """

  def __init__(self, model: AIModel, *, timeout_seconds: float = 120.0, temperature: float = 0.7) -> None:
    self._model = model
    self._timeout = timeout_seconds
    self._temperature = temperature

  async def generate(self, job: JobRecord, evidence: EvidenceBundle | None = None, *, parent_output: dict[str, Any] | None = None, prior_contexts: list[str] | None = None, research: ResearchBundle | None = None) -> GenerationResult:
    profile = get_profile(job.kind)
    request = ChatRequest(
      system=build_system_prompt(job.kind),
      user_content=build_user_content(job.kind, job.input, evidence, parent_output=parent_output, prior_contexts=prior_contexts, research=research),
      max_tokens=profile.max_tokens,
      temperature=self._temperature,
    )

    try:
      response = await asyncio.wait_for(self._model.complete(request), timeout=self._timeout)
    except asyncio.TimeoutError as exc:
      raise UpstreamError(f"Generation timed out after {self._timeout:g}s") from exc
    except UpstreamError:
      raise
    except Exception as exc:  # noqa: BLE001
      raise UpstreamError(f"Generation failed: {exc}") from exc

    if not response.content or not response.content.strip():
      raise UpstreamError("Model returned empty content")

    logger.info("Generated %s output for job %s with %s (%d chars) usage=%s", job.kind, job.job_id, response.model, len(response.content), response.usage)
    return GenerationResult(raw_text=response.content, model=response.model, usage=response.usage)

  async def aclose(self) -> None:
    """Release the model client's connection pool."""
    await self._model.aclose()
