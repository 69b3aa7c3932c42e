"""Background processor for pending analysis jobs."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any

from tavily import TavilyClient

from actionboost.ai.generator import Generator
from actionboost.ai.providers.openai import OpenAIProvider
from actionboost.ai.validator import validate
from actionboost.config import Settings
from actionboost.evidence.providers import ScrapingDogScraper, ScreenshotServiceClient, TavilyExtractor, TavilySearcher
from actionboost.evidence.research import MarketResearcher, ResearchBundle
from actionboost.evidence.retriever import EvidenceBundle, EvidenceRetriever
from actionboost.evidence.source_guard import SourceGuard
from actionboost.jobs.dispatch import JobHandler, JobHandlerRegistry
from actionboost.jobs.errors import AnalysisError, InvalidTransitionError, UnsafeTargetError, ValidationError
from actionboost.jobs.models import JOB_KINDS, JobRecord
from actionboost.jobs.profiles import INVALID_URL_STAGE, get_profile
from actionboost.jobs.store import JobStore
from actionboost.storage.jobs_repo import JobsRepository

logger = logging.getLogger(__name__)

STAGE_STARTING = "Starting analysis"
STAGE_EVIDENCE = "Reading your site"
STAGE_RESEARCH = "Researching your market"
STAGE_GENERATING = "Generating analysis"
STAGE_VALIDATING = "Checking results"
STAGE_COMPLETE = "Complete"


class _MethodHandler:
  """Adapter that exposes processor coroutine methods as registry handlers."""

  def __init__(self, method: Callable[[JobRecord], Awaitable[dict[str, Any]]]) -> None:
    self._method = method

  async def process(self, job: JobRecord) -> dict[str, Any]:
    return await self._method(job)


class JobProcessor:
  """Runs one job from ``pending`` to a terminal status.

  Stages run strictly in order: source guard, evidence, generation,
  validation. Evidence problems degrade the run; everything else that goes
  wrong fails it with a public stage message and an internal ``{reason,
  message}`` record.
  """

  def __init__(self, *, store: JobStore, source_guard: SourceGuard, retriever: EvidenceRetriever, generator: Generator, researcher: MarketResearcher | None = None, registry: JobHandlerRegistry | None = None) -> None:
    self._store = store
    self._guard = source_guard
    self._retriever = retriever
    self._generator = generator
    self._researcher = researcher
    self._registry = registry or self._build_default_registry()

  def _build_default_registry(self) -> JobHandlerRegistry:
    analysis = _MethodHandler(self._process_analysis)
    handlers: dict[str, JobHandler] = {kind: analysis for kind in JOB_KINDS if kind != "refinement"}
    handlers["refinement"] = _MethodHandler(self._process_refinement)
    return JobHandlerRegistry(handlers)

  async def run(self, job_id: str) -> JobRecord | None:
    """Process the job if it is still pending; otherwise leave it alone."""
    job = await self._store.get(job_id)
    if job.status != "pending":
      logger.info("Skipping job %s in status %s", job_id, job.status)
      return job

    profile = get_profile(job.kind)
    url = self._target_url(job)
    if url is not None:
      # Reject obviously internal targets before the job is ever marked as running.
      try:
        self._guard.check_static(url)
      except UnsafeTargetError as exc:
        return await self._fail(job, exc, stage=INVALID_URL_STAGE)

    try:
      job = await self._store.transition(job_id, "processing", stage=STAGE_STARTING)
    except InvalidTransitionError:
      logger.info("Job %s was claimed by another runner", job_id)
      return None

    try:
      handler = self._registry.resolve(job.kind)
      output = await handler.process(job)
    except UnsafeTargetError as exc:
      return await self._fail(job, exc, stage=INVALID_URL_STAGE)
    except AnalysisError as exc:
      return await self._fail(job, exc, stage=profile.failure_stage)
    except Exception as exc:  # noqa: BLE001
      return await self._fail(job, exc, stage=profile.failure_stage)

    try:
      return await self._store.transition(job_id, "complete", output, stage=STAGE_COMPLETE)
    except InvalidTransitionError:
      # The watchdog got there first; its failure stands.
      logger.warning("Job %s finished after it was already closed", job_id)
      return None

  def _target_url(self, job: JobRecord) -> str | None:
    """URL the job analyses, if its kind has one."""
    profile = get_profile(job.kind)
    if profile.url_field is None:
      return None
    value = job.input.get(profile.url_field)
    return str(value) if value else None

  async def _process_analysis(self, job: JobRecord) -> dict[str, Any]:
    """Guard, retrieve evidence, research when the profile asks for it, then generate and validate."""
    profile = get_profile(job.kind)
    evidence: EvidenceBundle | None = None
    url = self._target_url(job)
    if profile.evidence is not None and url is not None:
      await self._store.set_stage(job.job_id, STAGE_EVIDENCE)
      await self._guard.check(url)
      evidence = await self._retriever.retrieve(url, profile.evidence)
    elif profile.url_required:
      raise ValidationError(f"Job {job.job_id} has no {profile.url_field}")

    research: ResearchBundle | None = None
    if profile.research and self._researcher is not None:
      await self._store.set_stage(job.job_id, STAGE_RESEARCH)
      research = await self._researcher.research(job.input)

    await self._store.set_stage(job.job_id, STAGE_GENERATING)
    result = await self._generator.generate(job, evidence, research=research)
    await self._store.set_stage(job.job_id, STAGE_VALIDATING)
    return validate(job.kind, result.raw_text)

  async def _process_refinement(self, job: JobRecord) -> dict[str, Any]:
    if not job.parent_job_id:
      raise ValidationError(f"Refinement {job.job_id} has no parent")
    root = await self._store.get(job.parent_job_id)
    if root.status != "complete" or root.output is None:
      raise ValidationError(f"Refinement parent {root.job_id} is not complete")

    # Refine the latest version of the plan and remind the model what was already asked for.
    earlier = [child for child in await self._store.find_children(root.job_id, ("complete",)) if child.job_id != job.job_id]
    current_output = earlier[-1].output if earlier and earlier[-1].output else root.output
    prior_contexts = [str(child.input.get("context", "")) for child in earlier if child.input.get("context")]

    await self._store.set_stage(job.job_id, STAGE_GENERATING)
    result = await self._generator.generate(job, parent_output=current_output, prior_contexts=prior_contexts)
    await self._store.set_stage(job.job_id, STAGE_VALIDATING)
    return validate(job.kind, result.raw_text)

  async def aclose(self) -> None:
    await self._generator.aclose()

  async def _fail(self, job: JobRecord, exc: BaseException, *, stage: str) -> JobRecord | None:
    """Close the job as failed; the public stage hides the internal reason."""
    reason = exc.reason if isinstance(exc, AnalysisError) else "InternalError"
    logger.error("Job %s (%s) failed with %s: %s", job.job_id, job.kind, reason, exc, exc_info=exc)
    try:
      return await self._store.transition(job.job_id, "failed", stage=stage, error={"reason": reason, "message": str(exc)})
    except InvalidTransitionError:
      logger.warning("Job %s could not be marked failed; it is already closed", job.job_id)
      return None


_processor: JobProcessor | None = None


def build_job_processor(settings: Settings, jobs_repo: JobsRepository) -> JobProcessor:
  """Wire a processor from settings with the configured providers."""
  guard = SourceGuard(resolve_dns=settings.source_guard_resolve_dns)
  tavily = TavilyClient(api_key=settings.tavily_api_key) if settings.tavily_api_key else None
  primary = TavilyExtractor(settings.tavily_api_key, client=tavily) if tavily is not None else None
  researcher = MarketResearcher(TavilySearcher(settings.tavily_api_key, client=tavily) if tavily is not None else None)
  fallback = ScrapingDogScraper(settings.scrapingdog_api_key) if settings.scrapingdog_api_key else None
  screenshots = None
  if settings.screenshot_service_url and settings.screenshot_api_key:
    screenshots = ScreenshotServiceClient(settings.screenshot_service_url, settings.screenshot_api_key)
  retriever = EvidenceRetriever(source_guard=guard, primary=primary, fallback=fallback, screenshots=screenshots, screenshot_max_bytes=settings.screenshot_max_bytes)
  model = OpenAIProvider(settings.openai_api_key, settings.openai_base_url).get_model(settings.generation_model)
  generator = Generator(model, timeout_seconds=settings.generation_timeout_seconds)
  return JobProcessor(store=JobStore(jobs_repo), source_guard=guard, retriever=retriever, generator=generator, researcher=researcher)


def get_job_processor(settings: Settings, jobs_repo: JobsRepository) -> JobProcessor:
  """Return the process-wide processor, building it on first use.

  Provider clients hold connection pools, so they are created once and
  released by ``close_job_processor`` at shutdown.
  """
  global _processor
  if _processor is None:
    _processor = build_job_processor(settings, jobs_repo)
    logger.info("Job processor ready (model=%s)", settings.generation_model)
  return _processor


async def close_job_processor() -> None:
  """Release the shared processor's provider clients; the next job builds a fresh one."""
  global _processor
  processor, _processor = _processor, None
  if processor is not None:
    await processor.aclose()
