"""Web research for full plans: competitors, market trends, growth tactics and community threads."""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlsplit

from actionboost.evidence.providers import WebSearcher

logger = logging.getLogger(__name__)

RESEARCH_TIMEOUT_SECONDS = 15.0
MAX_RESULTS = 7
MAX_COMMUNITY_RESULTS = 10
MAX_COMPETITOR_DOMAINS = 3
# Snippets are clamped so four searches cannot crowd page evidence out of the prompt.
SNIPPET_CHARS = 400

_SENTENCE_END = re.compile(r"[.!?]")
_SUBREDDIT = re.compile(r"reddit\.com/r/([^/]+)")


@dataclass(frozen=True)
class ResearchHit:
  title: str
  url: str
  content: str
  score: float | None = None


@dataclass
class ResearchBundle:
  """Search results for one plan. Failed searches leave their list empty and add a note."""

  category: str
  competitor_domains: list[str] = field(default_factory=list)
  competitors: list[ResearchHit] = field(default_factory=list)
  market_trends: list[ResearchHit] = field(default_factory=list)
  growth_tactics: list[ResearchHit] = field(default_factory=list)
  discussions: list[ResearchHit] = field(default_factory=list)
  notes: list[str] = field(default_factory=list)

  @property
  def has_findings(self) -> bool:
    return any((self.competitors, self.market_trends, self.growth_tactics, self.discussions))

  def sections(self) -> list[tuple[str, list[ResearchHit]]]:
    return [
      ("Competitor landscape", self.competitors),
      ("Market trends", self.market_trends),
      ("Growth tactics", self.growth_tactics),
      ("Community discussions", self.discussions),
    ]


def extract_category(description: str) -> str:
  """First sentence of the product description, at most 80 characters."""
  return _SENTENCE_END.split(description or "", maxsplit=1)[0][:80].strip()


def extract_domain(url: str) -> str:
  candidate = url.strip()
  if "://" not in candidate:
    candidate = f"https://{candidate}"
  host = urlsplit(candidate).hostname or url.strip().split("/", 1)[0]
  return host.removeprefix("www.")


def competitor_domains(payload: dict[str, Any]) -> list[str]:
  urls = [str(item) for item in payload.get("competitorUrls") or [] if str(item).strip()]
  return [extract_domain(url) for url in urls[:MAX_COMPETITOR_DOMAINS]]


def build_queries(payload: dict[str, Any]) -> dict[str, str]:
  """Search query per research section, keyed by ``ResearchBundle`` attribute."""
  category = extract_category(str(payload.get("productDescription", "")))
  domains = competitor_domains(payload)
  if domains:
    competitors = f"{' OR '.join(domains)} growth strategy marketing tactics"
  else:
    competitors = f"{category} competitors analysis growth strategy"
  return {
    "competitors": competitors,
    "market_trends": f"{category} market trends",
    "growth_tactics": f"growth tactics for {category} startups",
    "discussions": f"site:reddit.com {category} problems OR complaints OR help OR recommendations",
  }


def _to_hit(raw: dict[str, Any]) -> ResearchHit | None:
  url = str(raw.get("url") or "")
  if not url:
    return None
  content = " ".join(str(raw.get("content") or "").split())
  score = raw.get("score")
  return ResearchHit(title=str(raw.get("title") or url), url=url, content=content[:SNIPPET_CHARS], score=float(score) if isinstance(score, (int, float)) else None)


def subreddit_of(url: str) -> str | None:
  match = _SUBREDDIT.search(url)
  return match.group(1) if match else None


class MarketResearcher:
  """Run the plan's research searches concurrently.

  Research never fails a job: a missing searcher, a timeout or a provider
  error leaves that section empty and is recorded in ``notes``. Searches only
  send text queries; no competitor URL is fetched here.
  """

  def __init__(self, searcher: WebSearcher | None, *, timeout_seconds: float = RESEARCH_TIMEOUT_SECONDS) -> None:
    self._searcher = searcher
    self._timeout = timeout_seconds

  async def research(self, payload: dict[str, Any]) -> ResearchBundle:
    bundle = ResearchBundle(category=extract_category(str(payload.get("productDescription", ""))), competitor_domains=competitor_domains(payload))
    if self._searcher is None:
      bundle.notes.append("Web research not configured")
      return bundle

    queries = build_queries(payload)
    outcomes = await asyncio.gather(*(self._search(self._searcher, section, query) for section, query in queries.items()), return_exceptions=True)
    for section, outcome in zip(queries, outcomes):
      if isinstance(outcome, asyncio.CancelledError):
        raise outcome
      if isinstance(outcome, BaseException):
        logger.warning("Research search %s failed: %s", section, outcome)
        bundle.notes.append(f"{section.replace('_', ' ').capitalize()} search failed")
        continue
      setattr(bundle, section, outcome)

    logger.info("Research for %r: %s notes=%s", bundle.category, {section: len(getattr(bundle, section)) for section in queries}, bundle.notes)
    return bundle

  async def _search(self, searcher: WebSearcher, section: str, query: str) -> list[ResearchHit]:
    limit = MAX_COMMUNITY_RESULTS if section == "discussions" else MAX_RESULTS
    raw = await searcher.search(query, max_results=limit, timeout=self._timeout)
    hits = [_to_hit(item) for item in raw if isinstance(item, dict)]
    return [hit for hit in hits if hit is not None]
