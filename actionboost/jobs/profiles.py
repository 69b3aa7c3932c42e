"""Per-kind pipeline settings: evidence budgets, generation limits and stage copy."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Final

from actionboost.evidence.retriever import EvidenceProfile

PIPELINE_ERROR_STAGE = "Pipeline error - please try again"
REFINEMENT_ERROR_STAGE = "Refinement error - please try again"
INVALID_URL_STAGE = "Invalid URL - please check the address"


@dataclass(frozen=True)
class KindProfile:
  """How the pipeline treats one job kind."""

  kind: str
  max_tokens: int
  url_field: str | None = None
  url_required: bool = False
  evidence: EvidenceProfile | None = None
  # Run web research (competitors, market, tactics) before generation.
  research: bool = False
  failure_stage: str = PIPELINE_ERROR_STAGE


KIND_PROFILES: Final[dict[str, KindProfile]] = {
  "landing-page-roast": KindProfile(kind="landing-page-roast", max_tokens=2500, url_field="url", url_required=True, evidence=EvidenceProfile(text_cap=8000, timeout_seconds=30.0, screenshot_size=(1280, 2400))),
  "marketing-audit": KindProfile(kind="marketing-audit", max_tokens=1500, url_field="url", url_required=True, evidence=EvidenceProfile(text_cap=5000, timeout_seconds=20.0)),
  "free-audit": KindProfile(kind="free-audit", max_tokens=2500, url_field="websiteUrl", evidence=EvidenceProfile(text_cap=4000, timeout_seconds=20.0, screenshot_size=(1280, 800))),
  "full-plan": KindProfile(kind="full-plan", max_tokens=4000, url_field="websiteUrl", evidence=EvidenceProfile(text_cap=8000, timeout_seconds=30.0), research=True),
  "refinement": KindProfile(kind="refinement", max_tokens=4000, failure_stage=REFINEMENT_ERROR_STAGE),
  "target-audience": KindProfile(kind="target-audience", max_tokens=2500),
  "headline-analysis": KindProfile(kind="headline-analysis", max_tokens=1500),
}


def get_profile(kind: str) -> KindProfile:
  """Look up the pipeline profile for ``kind``.

  Unknown kinds raise ``ValueError``; job kinds are checked at creation, so
  hitting this means a stored row carries a kind this build does not know.
  """
  profile = KIND_PROFILES.get(kind)
  if profile is None:
    raise ValueError(f"Unsupported job kind: {kind}")
  return profile
