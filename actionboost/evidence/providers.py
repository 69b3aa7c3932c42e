"""Third-party evidence providers: Tavily extract and search, ScrapingDog scrape, screenshot service."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol

import httpx
from fastapi.concurrency import run_in_threadpool
from tavily import TavilyClient

from actionboost.evidence.text import html_to_text
from actionboost.jobs.errors import UpstreamError

logger = logging.getLogger(__name__)

SCRAPINGDOG_URL = "https://api.scrapingdog.com/scrape"
SCRAPINGDOG_TIMEOUT_SECONDS = 30.0


class ContentExtractor(Protocol):
  """Returns page text for a URL or raises UpstreamError."""

  async def extract(self, url: str, *, timeout: float) -> str:
    """Fetch readable text for ``url``."""


class WebSearcher(Protocol):
  """Returns search hits as ``{title, url, content, score}`` dicts or raises UpstreamError."""

  async def search(self, query: str, *, max_results: int, timeout: float) -> list[dict[str, Any]]:
    """Run one web search."""


class ScreenshotCapturer(Protocol):
  """Returns raw image bytes for a URL or raises UpstreamError."""

  async def capture(self, url: str, *, width: int, height: int, timeout: float) -> bytes:
    """Render ``url`` at the given viewport."""


class TavilyExtractor:
  """Primary extractor backed by the Tavily extract API."""

  def __init__(self, api_key: str, *, client: TavilyClient | None = None) -> None:
    if not api_key and client is None:
      raise ValueError("Tavily API key is required.")
    self._client = client or TavilyClient(api_key=api_key)

  async def extract(self, url: str, *, timeout: float) -> str:
    try:
      # Tavily client is synchronous
      response: dict[str, Any] = await asyncio.wait_for(run_in_threadpool(self._client.extract, urls=[url]), timeout=timeout)
    except Exception as exc:  # noqa: BLE001
      raise UpstreamError(f"Tavily extract failed for {url}: {exc}") from exc
    results = response.get("results") or []
    if not results:
      logger.info("Tavily extract returned no results for %s", url)
      return ""
    return str(results[0].get("raw_content") or "")


class TavilySearcher:
  """Web search through the Tavily search API, used for market research."""

  def __init__(self, api_key: str, *, client: TavilyClient | None = None) -> None:
    if not api_key and client is None:
      raise ValueError("Tavily API key is required.")
    self._client = client or TavilyClient(api_key=api_key)

  async def search(self, query: str, *, max_results: int, timeout: float) -> list[dict[str, Any]]:
    try:
      response: dict[str, Any] = await asyncio.wait_for(
        run_in_threadpool(self._client.search, query, search_depth="advanced", topic="general", max_results=max_results, include_raw_content=False),
        timeout=timeout,
      )
    except Exception as exc:  # noqa: BLE001
      raise UpstreamError(f"Tavily search failed for {query!r}: {exc}") from exc
    return list(response.get("results") or [])


class ScrapingDogScraper:
  """Fallback scraper with JavaScript rendering enabled."""

  def __init__(self, api_key: str, *, client: httpx.AsyncClient | None = None) -> None:
    if not api_key:
      raise ValueError("ScrapingDog API key is required.")
    self._api_key = api_key
    self._client = client

  async def extract(self, url: str, *, timeout: float = SCRAPINGDOG_TIMEOUT_SECONDS) -> str:
    params = {"api_key": self._api_key, "url": url, "dynamic": "true"}
    try:
      if self._client is not None:
        response = await self._client.get(SCRAPINGDOG_URL, params=params, timeout=timeout)
      else:
        # Never trust environment proxy variables for provider calls carrying API keys.
        async with httpx.AsyncClient(trust_env=False) as client:
          response = await client.get(SCRAPINGDOG_URL, params=params, timeout=timeout)
      response.raise_for_status()
    except httpx.HTTPStatusError as exc:
      raise UpstreamError(f"ScrapingDog returned {exc.response.status_code} for {url}") from exc
    except httpx.HTTPError as exc:
      raise UpstreamError(f"ScrapingDog request failed for {url}: {type(exc).__name__}") from exc
    return html_to_text(response.text)


class ScreenshotServiceClient:
  """Client for the internal headless-browser screenshot service."""

  def __init__(self, base_url: str, api_key: str, *, client: httpx.AsyncClient | None = None) -> None:
    self._base_url = base_url.rstrip("/")
    self._api_key = api_key
    self._client = client

  async def capture(self, url: str, *, width: int, height: int, timeout: float) -> bytes:
    endpoint = f"{self._base_url}/screenshot"
    params = {"url": url, "width": str(width), "height": str(height)}
    headers = {"x-api-key": self._api_key}
    try:
      if self._client is not None:
        response = await self._client.get(endpoint, params=params, headers=headers, timeout=timeout)
      else:
        async with httpx.AsyncClient(trust_env=False) as client:
          response = await client.get(endpoint, params=params, headers=headers, timeout=timeout)
      response.raise_for_status()
    except httpx.HTTPStatusError as exc:
      raise UpstreamError(f"Screenshot service returned {exc.response.status_code} for {url}") from exc
    except httpx.HTTPError as exc:
      raise UpstreamError(f"Screenshot request failed for {url}: {type(exc).__name__}") from exc
    return response.content
