"""Prompt assembly for each job kind."""

from __future__ import annotations

import json
from typing import Any, Final

from pydantic import BaseModel

from actionboost.ai.schemas import KIND_MODELS
from actionboost.evidence.research import ResearchBundle, subreddit_of
from actionboost.evidence.retriever import EvidenceBundle

_ROLES: Final[dict[str, str]] = {
  "landing-page-roast": "You are a brutally honest landing page roaster and conversion expert. Every roast is specific to this page and comes with a concrete fix.",
  "marketing-audit": "You are a marketing consultant running the 3-second test on small business websites. Find the single issue silently killing conversions, then list the rest.",
  "target-audience": "You are a customer research strategist. Describe exactly who this business should sell to and how to reach them.",
  "headline-analysis": "You are a headline and value proposition analyst. Score how clear, specific, differentiated and customer-focused the headline is, then offer rewrites.",
  "free-audit": "You are a growth strategist producing a short positioning preview for a small business.",
  "full-plan": "You are a senior growth strategist. Produce a focused, prioritized marketing plan scored with ICE (impact, confidence, ease; each 0-10).",
  "refinement": "You are a senior growth strategist refining a plan you previously wrote. Keep what still holds, change what the new context invalidates.",
}

_INPUT_LABELS: Final[dict[str, str]] = {
  "productDescription": "Product",
  "currentTraction": "Current traction",
  "focusArea": "Focus area",
  "customFocusArea": "Custom focus",
  "whatYouTried": "Already tried",
  "whatsWorking": "What's working",
  "competitorUrls": "Competitors",
  "websiteUrl": "Website",
  "analyticsSummary": "Analytics",
  "constraints": "Constraints",
  "url": "URL",
  "businessDescription": "Business",
  "businessName": "Business name",
  "whatTheySell": "What they sell",
  "targetCustomer": "Target customer",
  "headline": "Headline",
  "whoItsFor": "Who it's for",
}

DEGRADED_EVIDENCE_NOTE = "Note: Could not scrape page content. Base the analysis on the details above only, and say that the site could not be accessed."
NO_RESEARCH_NOTE = "Note: Web research was unavailable for this plan. Do not invent competitor names or traffic numbers; leave unknown traffic as an empty string."


def _outline_node(node: dict[str, Any], defs: dict[str, Any]) -> Any:
  if "$ref" in node:
    return _outline_node(defs[node["$ref"].rsplit("/", 1)[-1]], defs)
  if len(node.get("allOf", ())) == 1:
    return _outline_node(node["allOf"][0], defs)
  if "enum" in node:
    return "|".join(str(value) for value in node["enum"])
  kind = node.get("type")
  if kind == "object":
    return {name: _outline_node(child, defs) for name, child in node.get("properties", {}).items()}
  if kind == "array":
    return [_outline_node(node.get("items", {}), defs)]
  if kind in ("number", "integer") and "minimum" in node and "maximum" in node:
    return f"{kind} {node['minimum']:g}-{node['maximum']:g}"
  return kind or "any"


def schema_outline(model: type[BaseModel]) -> Any:
  """Render an output model as a JSON skeleton the model can imitate."""
  schema = model.model_json_schema(by_alias=True)
  return _outline_node(schema, schema.get("$defs", {}))


def build_system_prompt(kind: str) -> str:
  """Role text for ``kind`` followed by the JSON outline of its output model."""
  role = _ROLES[kind]
  outline = json.dumps(schema_outline(KIND_MODELS[kind]), indent=2)
  return f"{role}\n\nRespond with a single JSON object and nothing else. It must match this shape exactly:\n{outline}"


def _format_input(payload: dict[str, Any]) -> str:
  lines: list[str] = []
  for key, value in payload.items():
    if key == "parentJobId" or value in (None, "", []):
      continue
    if isinstance(value, list):
      value = ", ".join(str(item) for item in value)
    lines.append(f"{_INPUT_LABELS.get(key, key)}: {value}")
  return "\n".join(lines)


def format_research(research: ResearchBundle) -> str:
  """Render search results as a prompt section; empty research becomes a short note."""
  if not research.has_findings:
    return NO_RESEARCH_NOTE
  lines = ["--- Market research ---"]
  if research.competitor_domains:
    lines.append("Named competitors: " + ", ".join(research.competitor_domains))
  for title, hits in research.sections():
    if not hits:
      continue
    lines.append(f"\n{title}:")
    for hit in hits:
      # Tag community threads with their subreddit so the model can cite where people gather.
      where = f" (r/{subreddit})" if (subreddit := subreddit_of(hit.url)) else ""
      lines.append(f"- {hit.title}{where} <{hit.url}>: {hit.content}")
  return "\n".join(lines)


def build_user_content(kind: str, payload: dict[str, Any], evidence: EvidenceBundle | None = None, *, parent_output: dict[str, Any] | None = None, prior_contexts: list[str] | None = None, research: ResearchBundle | None = None) -> str | list[dict[str, Any]]:
  """Return the user message: plain text, or text plus an image part when a screenshot exists."""
  sections = [_format_input(payload)]

  if kind == "refinement":
    sections = ["Current plan:\n" + json.dumps(parent_output or {}, indent=2)]
    if prior_contexts:
      sections.append("Earlier feedback, already applied:\n" + "\n".join(f"- {item}" for item in prior_contexts))
    sections.append("New context from the user:\n" + str(payload.get("context", "")))

  if evidence is not None:
    if evidence.has_text:
      sections.append(f"--- Page content ({evidence.source_url}) ---\n{evidence.extracted_text}")
    else:
      sections.append(DEGRADED_EVIDENCE_NOTE)

  if research is not None:
    sections.append(format_research(research))

  text = "\n\n".join(section for section in sections if section)
  if evidence is None or evidence.screenshot is None:
    return text
  return [{"type": "text", "text": text}, {"type": "image_url", "image_url": {"url": f"data:image/jpeg;base64,{evidence.screenshot}"}}]
