"""Pydantic models for the JSON object each job kind must return."""

from __future__ import annotations

from typing import Annotated, Final, Literal

from pydantic import BaseModel, ConfigDict, Field, StringConstraints
from pydantic.alias_generators import to_camel

Text = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]
# Strict numbers: a JSON boolean is never a score.
Score = Annotated[float, Field(strict=True, ge=0, le=100)]
IceFactorScore = Annotated[float, Field(strict=True, ge=0, le=10)]
TextList = Annotated[list[Text], Field(min_length=1)]


class AnalysisOutput(BaseModel):
  """Base for model output: camelCase keys, unknown keys kept, no NaN or Infinity."""

  model_config = ConfigDict(extra="allow", allow_inf_nan=False, alias_generator=to_camel)


# landing-page-roast


class RoastScores(AnalysisOutput):
  overall: Score
  # "copy" would shadow BaseModel.copy.
  copy_score: Score = Field(alias="copy")
  design: Score
  conversion: Score
  trust: Score


class Roast(AnalysisOutput):
  category: Literal["copy", "design", "conversion", "trust"]
  severity: Literal["critical", "major", "minor"]
  roast: Text
  fix: Text


class LandingPageRoast(AnalysisOutput):
  verdict: Text
  scores: RoastScores
  roasts: list[Roast] = Field(min_length=2, max_length=8)
  wins: list[Text] = Field(max_length=5)


# marketing-audit


class AuditFinding(AnalysisOutput):
  category: Literal["clarity", "customer-focus", "proof", "friction"]
  title: Text
  detail: Text
  recommendation: Text


class MarketingAudit(AnalysisOutput):
  silent_killer: Text
  summary: Text
  findings: list[AuditFinding] = Field(min_length=1, max_length=10)


# target-audience


class Demographics(AnalysisOutput):
  age_range: Text
  income: Text
  location: Text
  job_titles: TextList


class Channel(AnalysisOutput):
  platform: Text
  detail: Text


class PrimaryAudience(AnalysisOutput):
  headline: Text
  demographics: Demographics
  psychographics: Text
  pain_points: TextList
  buying_triggers: TextList
  objections: TextList
  where_to_find: list[Channel] = Field(min_length=1)
  day_in_the_life: Text


class MessagingGuide(AnalysisOutput):
  hook_examples: TextList
  tone_advice: Text
  words_to_use: TextList
  words_to_avoid: TextList


class TargetAudience(AnalysisOutput):
  primary_audience: PrimaryAudience
  messaging_guide: MessagingGuide
  competitor_insight: Text


# headline-analysis


class HeadlineScores(AnalysisOutput):
  clarity: Score
  specificity: Score
  differentiation: Score
  customer_focus: Score


class HeadlineNotes(AnalysisOutput):
  clarity: Text
  specificity: Text
  differentiation: Text
  customer_focus: Text


class HeadlineRewrite(AnalysisOutput):
  headline: Text
  why: Text


class HeadlineAnalysis(AnalysisOutput):
  overall: Score
  scores: HeadlineScores
  verdict: Text
  analysis: HeadlineNotes
  rewrites: list[HeadlineRewrite] = Field(min_length=1, max_length=5)


# free-audit


class BriefScores(AnalysisOutput):
  overall: Score
  clarity: Score
  visibility: Score
  proof: Score
  advantage: Score


class Positioning(AnalysisOutput):
  summary: Text
  verdict: Text


class Discovery(AnalysisOutput):
  title: Text
  insight: Text
  action: Text


class FreeAudit(AnalysisOutput):
  brief_scores: BriefScores
  positioning: Positioning
  discoveries: list[Discovery] = Field(min_length=1, max_length=5)


# full-plan and refinement


class IceFactor(AnalysisOutput):
  score: IceFactorScore
  reason: Text


class Priority(AnalysisOutput):
  """One ICE-scored initiative; ``iceScore`` is the sum of the three factors."""

  rank: Annotated[int, Field(strict=True, ge=1)]
  title: Text
  ice_score: Annotated[float, Field(strict=True, ge=0, le=30)]
  impact: IceFactor
  confidence: IceFactor
  ease: IceFactor
  description: Text


class DayAction(AnalysisOutput):
  day: Annotated[int, Field(strict=True, ge=1, le=7)]
  action: Text
  time_estimate: Text
  success_metric: Text


class WeekPlan(AnalysisOutput):
  days: list[DayAction] = Field(max_length=7)


class RoadmapWeek(AnalysisOutput):
  week: Annotated[int, Field(strict=True, ge=1, le=4)]
  theme: Text
  tasks: list[Text]


class Metric(AnalysisOutput):
  name: Text
  target: Text
  category: Text


class Competitor(AnalysisOutput):
  name: Text
  # Traffic estimates are often unknown; an empty string is allowed.
  traffic: str
  positioning: Text


class MarketingPlan(AnalysisOutput):
  summary: Text
  top_priorities: list[Priority] = Field(min_length=1, max_length=10)
  this_week: WeekPlan
  roadmap_weeks: list[RoadmapWeek] = Field(max_length=4)
  metrics: list[Metric]
  competitors: list[Competitor]


KIND_MODELS: Final[dict[str, type[AnalysisOutput]]] = {
  "landing-page-roast": LandingPageRoast,
  "marketing-audit": MarketingAudit,
  "target-audience": TargetAudience,
  "headline-analysis": HeadlineAnalysis,
  "free-audit": FreeAudit,
  "full-plan": MarketingPlan,
  "refinement": MarketingPlan,
}
