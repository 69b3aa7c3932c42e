"""Evidence retrieval with a primary extractor, a challenge-aware fallback and screenshots."""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass, field
from typing import Literal

from actionboost.evidence.providers import ContentExtractor, ScreenshotCapturer
from actionboost.evidence.source_guard import SourceGuard
from actionboost.evidence.text import is_usable_fallback_text, looks_like_challenge, truncate_text
from actionboost.jobs.errors import UpstreamError

logger = logging.getLogger(__name__)

EvidenceProvider = Literal["primary", "fallback", "none"]


@dataclass(frozen=True)
class EvidenceProfile:
  """Per-kind retrieval budget."""

  text_cap: int
  timeout_seconds: float
  screenshot_size: tuple[int, int] | None = None


@dataclass
class EvidenceBundle:
  """Retrieved material for one job, already clamped to its budgets."""

  source_url: str
  extracted_text: str = ""
  screenshot: str | None = None
  provider: EvidenceProvider = "none"
  truncated: bool = False
  screenshot_truncated: bool = False
  notes: list[str] = field(default_factory=list)

  @property
  def has_text(self) -> bool:
    return bool(self.extracted_text)


class EvidenceRetriever:
  """Gather page text and an optional screenshot for a URL.

  Retrieval never fails a job on its own: provider errors, timeouts and bot
  walls degrade the bundle and are recorded in ``notes``. Only the source
  guard rejection propagates.
  """

  def __init__(self, *, source_guard: SourceGuard, primary: ContentExtractor | None, fallback: ContentExtractor | None = None, screenshots: ScreenshotCapturer | None = None, screenshot_max_bytes: int = 4 * 1024 * 1024) -> None:
    self._guard = source_guard
    self._primary = primary
    self._fallback = fallback
    self._screenshots = screenshots
    self._screenshot_max_bytes = screenshot_max_bytes

  async def retrieve(self, url: str, profile: EvidenceProfile) -> EvidenceBundle:
    # Gate before any provider sees the URL.
    await self._guard.check(url)
    bundle = EvidenceBundle(source_url=url)

    text, provider = await self._retrieve_text(url, profile, bundle.notes)
    if text:
      bundle.extracted_text, bundle.truncated = truncate_text(text, profile.text_cap)
      bundle.provider = provider
    else:
      bundle.notes.append("Page content unavailable")

    if profile.screenshot_size is not None:
      await self._attach_screenshot(url, profile, bundle)

    logger.info("Evidence for %s: provider=%s chars=%d truncated=%s screenshot=%s", url, bundle.provider, len(bundle.extracted_text), bundle.truncated, bundle.screenshot is not None)
    return bundle

  async def _retrieve_text(self, url: str, profile: EvidenceProfile, notes: list[str]) -> tuple[str, EvidenceProvider]:
    text = ""
    if self._primary is None:
      notes.append("Primary extractor not configured")
    else:
      try:
        text = await self._primary.extract(url, timeout=profile.timeout_seconds)
      except UpstreamError as exc:
        logger.warning("Primary extraction failed for %s: %s", url, exc)
        notes.append("Primary extractor failed")

    if not looks_like_challenge(text):
      return text, "primary"

    if text:
      logger.info("Primary extractor returned a challenge page for %s", url)
      notes.append("Primary extractor returned a bot challenge")
    if self._fallback is None:
      return "", "none"

    # One fallback hop only; its own failure leaves the job text-less.
    try:
      fallback_text = await self._fallback.extract(url, timeout=max(profile.timeout_seconds, 30.0))
    except UpstreamError as exc:
      logger.warning("Fallback scrape failed for %s: %s", url, exc)
      notes.append("Fallback scraper failed")
      return "", "none"
    if not is_usable_fallback_text(fallback_text):
      notes.append("Fallback scraper returned no usable content")
      return "", "none"
    return fallback_text, "fallback"

  async def _attach_screenshot(self, url: str, profile: EvidenceProfile, bundle: EvidenceBundle) -> None:
    """Capture a screenshot when the profile asks for one.

    Oversized images are dropped with a note instead of being sent to the model.
    """
    if self._screenshots is None or profile.screenshot_size is None:
      bundle.notes.append("Screenshot service not configured")
      return
    width, height = profile.screenshot_size
    try:
      image = await self._screenshots.capture(url, width=width, height=height, timeout=profile.timeout_seconds)
    except UpstreamError as exc:
      logger.warning("Screenshot failed for %s: %s", url, exc)
      bundle.notes.append("Screenshot failed")
      return
    if not image:
      bundle.notes.append("Screenshot empty")
      return
    # A cut image does not decode, so oversized captures are dropped whole.
    if len(image) > self._screenshot_max_bytes:
      logger.warning("Screenshot for %s exceeds %d bytes (%d); dropping", url, self._screenshot_max_bytes, len(image))
      bundle.screenshot_truncated = True
      bundle.notes.append("Screenshot exceeded size cap")
      return
    bundle.screenshot = base64.b64encode(image).decode("ascii")
