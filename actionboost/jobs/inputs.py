"""Kind-specific input shape checks applied before a job is persisted."""

from __future__ import annotations

from typing import Any, Literal
from urllib.parse import urlparse

import pydantic
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from actionboost.jobs.errors import ValidationError

FocusArea = Literal["acquisition", "activation", "retention", "referral", "monetization", "custom"]

MAX_TOTAL_PLAN_CHARS = 25000
MIN_CONTEXT_LENGTH = 10
MAX_CONTEXT_LENGTH = 10000


def normalize_site_url(raw: str) -> str:
  """Return an absolute http(s) URL, adding https:// when the scheme is missing."""
  candidate = raw.strip()
  if not candidate.lower().startswith(("http://", "https://")):
    candidate = f"https://{candidate}"
  parsed = urlparse(candidate)
  if parsed.scheme not in {"http", "https"} or not parsed.hostname:
    raise ValueError("Invalid URL format")
  if "." not in parsed.hostname:
    raise ValueError("Please enter a full website URL")
  return candidate


class _JobInput(BaseModel):
  model_config = ConfigDict(extra="forbid", populate_by_name=True, str_strip_whitespace=True, alias_generator=to_camel)


class PlanInput(_JobInput):
  """Business context for the full plan and the free audit."""

  product_description: str = Field(min_length=1, max_length=5000)
  current_traction: str = Field(min_length=1, max_length=2000)
  focus_area: FocusArea
  custom_focus_area: str | None = Field(default=None, max_length=500)
  what_you_tried: str | None = Field(default=None, max_length=2000)
  whats_working: str | None = Field(default=None, max_length=2000)
  competitor_urls: list[str] = Field(default_factory=list, max_length=3)
  website_url: str | None = Field(default=None, max_length=500)
  analytics_summary: str | None = Field(default=None, max_length=2000)
  constraints: str | None = Field(default=None, max_length=1000)

  @field_validator("website_url")
  @classmethod
  def _normalize_website(cls, value: str | None) -> str | None:
    if not value:
      return None
    return normalize_site_url(value)

  @field_validator("competitor_urls")
  @classmethod
  def _drop_blank_competitors(cls, value: list[str]) -> list[str]:
    return [item.strip() for item in value if item and item.strip()]

  @model_validator(mode="after")
  def _check_total_size(self) -> PlanInput:
    # Keep the combined prompt payload bounded regardless of per-field limits.
    total = sum(len(text) for text in (self.product_description, self.current_traction, self.what_you_tried or "", self.whats_working or "", self.analytics_summary or "", self.constraints or ""))
    if total > MAX_TOTAL_PLAN_CHARS:
      raise ValueError(f"Total content exceeds {MAX_TOTAL_PLAN_CHARS:,} characters")
    if self.focus_area == "custom" and not self.custom_focus_area:
      raise ValueError("customFocusArea is required when focusArea is custom")
    return self


class RefinementInput(_JobInput):
  """Additional context a user supplies to refine a completed plan."""

  context: str = Field(min_length=MIN_CONTEXT_LENGTH, max_length=MAX_CONTEXT_LENGTH)
  parent_job_id: str = Field(min_length=1)


class MarketingAuditInput(_JobInput):
  url: str = Field(min_length=4, max_length=500)
  business_description: str = Field(min_length=10, max_length=500)

  @field_validator("url")
  @classmethod
  def _normalize_url(cls, value: str) -> str:
    return normalize_site_url(value)


class LandingPageRoastInput(_JobInput):
  url: str = Field(min_length=4, max_length=500)
  business_description: str | None = Field(default=None, max_length=500)

  @field_validator("url")
  @classmethod
  def _normalize_url(cls, value: str) -> str:
    return normalize_site_url(value)


class TargetAudienceInput(_JobInput):
  business_name: str = Field(min_length=2, max_length=100)
  what_they_sell: str = Field(min_length=10, max_length=500)
  target_customer: str | None = Field(default=None, max_length=500)


class HeadlineAnalysisInput(_JobInput):
  headline: str = Field(min_length=3, max_length=300)
  what_they_sell: str | None = Field(default=None, max_length=500)
  who_its_for: str | None = Field(default=None, max_length=300)


INPUT_MODELS: dict[str, type[_JobInput]] = {
  "full-plan": PlanInput,
  "free-audit": PlanInput,
  "refinement": RefinementInput,
  "marketing-audit": MarketingAuditInput,
  "landing-page-roast": LandingPageRoastInput,
  "target-audience": TargetAudienceInput,
  "headline-analysis": HeadlineAnalysisInput,
}


def _first_error_message(exc: pydantic.ValidationError) -> str:
  error = exc.errors()[0]
  location = ".".join(str(part) for part in error.get("loc", ()) if part != "__root__")
  message = str(error.get("msg", "Invalid input")).removeprefix("Value error, ")
  return f"{location}: {message}" if location else message


def validate_job_input(kind: str, payload: Any) -> dict[str, Any]:
  """Validate ``payload`` for ``kind`` and return the normalized camelCase dict."""
  model = INPUT_MODELS.get(kind)
  if model is None:
    raise ValidationError(f"Unsupported job kind: {kind}")
  if not isinstance(payload, dict):
    raise ValidationError("input must be a JSON object")
  try:
    parsed = model.model_validate(payload)
  except pydantic.ValidationError as exc:
    raise ValidationError(_first_error_message(exc)) from exc
  return parsed.model_dump(by_alias=True, exclude_none=True)
