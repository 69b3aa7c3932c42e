from __future__ import annotations

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from actionboost.ai.generator import Generator
from actionboost.ai.prompts import DEGRADED_EVIDENCE_NOTE, build_system_prompt, build_user_content
from actionboost.ai.providers.base import AIModel, ChatRequest, SimpleModelResponse
from actionboost.ai.providers.openai import OpenAIProvider
from actionboost.evidence.retriever import EvidenceBundle
from actionboost.jobs.errors import UpstreamError
from actionboost.jobs.models import JobRecord, utc_now


class FakeModel(AIModel):
  def __init__(self, content: str = '{"ok": true}', *, delay: float = 0.0, error: Exception | None = None) -> None:
    self.name = "fake-model"
    self.content = content
    self.delay = delay
    self.error = error
    self.requests: list[ChatRequest] = []

  async def complete(self, request: ChatRequest) -> SimpleModelResponse:
    self.requests.append(request)
    if self.delay:
      await asyncio.sleep(self.delay)
    if self.error is not None:
      raise self.error
    return SimpleModelResponse(content=self.content, model=self.name, usage={"total_tokens": 10})


def _job(kind: str = "headline-analysis", payload: dict | None = None) -> JobRecord:
  now = utc_now()
  return JobRecord(job_id="job-1", kind=kind, status="processing", input=payload or {"headline": "Invoices in seconds"}, owner="anon:a@b.co", created_at=now, updated_at=now)


@pytest.mark.anyio
async def test_generate_sends_one_request_with_kind_budget() -> None:
  model = FakeModel()
  result = await Generator(model, temperature=0.5).generate(_job())

  assert result.raw_text == '{"ok": true}'
  assert result.model == "fake-model"
  assert len(model.requests) == 1
  request = model.requests[0]
  assert request.max_tokens == 1500
  assert request.temperature == 0.5
  assert request.json_mode
  assert "Headline: Invoices in seconds" in request.user_content
  assert '"rewrites"' in request.system


@pytest.mark.anyio
async def test_timeout_becomes_upstream_error() -> None:
  with pytest.raises(UpstreamError):
    await Generator(FakeModel(delay=1.0), timeout_seconds=0.01).generate(_job())


@pytest.mark.anyio
async def test_provider_exception_becomes_upstream_error() -> None:
  with pytest.raises(UpstreamError) as excinfo:
    await Generator(FakeModel(error=RuntimeError("boom"))).generate(_job())
  assert "boom" in str(excinfo.value)


@pytest.mark.anyio
@pytest.mark.parametrize("content", ["", "   \n"])
async def test_empty_reply_becomes_upstream_error(content: str) -> None:
  with pytest.raises(UpstreamError):
    await Generator(FakeModel(content)).generate(_job())


def test_degraded_evidence_adds_note() -> None:
  bundle = EvidenceBundle(source_url="https://invoicely.example.com")
  content = build_user_content("full-plan", {"productDescription": "Invoicing", "parentJobId": "x"}, bundle)
  assert isinstance(content, str)
  assert DEGRADED_EVIDENCE_NOTE in content
  assert "parentJobId" not in content


def test_screenshot_is_sent_as_image_part() -> None:
  bundle = EvidenceBundle(source_url="https://invoicely.example.com", extracted_text="Welcome", screenshot="AAAA", provider="primary")
  content = build_user_content("landing-page-roast", {"url": "https://invoicely.example.com"}, bundle)
  assert isinstance(content, list)
  assert "Welcome" in content[0]["text"]
  assert content[1] == {"type": "image_url", "image_url": {"url": "data:image/jpeg;base64,AAAA"}}


def test_refinement_prompt_includes_plan_and_earlier_feedback() -> None:
  content = build_user_content("refinement", {"context": "We added a free tier", "parentJobId": "root"}, parent_output={"summary": "Old plan"}, prior_contexts=["Focus on SEO"])
  assert '"summary": "Old plan"' in content
  assert "- Focus on SEO" in content
  assert content.endswith("New context from the user:\nWe added a free tier")
  assert "Respond with a single JSON object" in build_system_prompt("refinement")


@pytest.mark.anyio
async def test_openai_model_requests_json_mode() -> None:
  client = MagicMock()
  reply = SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content='{"a": 1}'))], usage=SimpleNamespace(prompt_tokens=3, completion_tokens=4, total_tokens=7))
  client.chat.completions.create = AsyncMock(return_value=reply)
  model = OpenAIProvider(None, client=client).get_model()

  response = await model.complete(ChatRequest(system="sys", user_content="user", max_tokens=100, temperature=0.2))

  assert response.content == '{"a": 1}'
  assert response.usage == {"prompt_tokens": 3, "completion_tokens": 4, "total_tokens": 7}
  kwargs = client.chat.completions.create.await_args.kwargs
  assert kwargs["model"] == "gpt-4.1-mini"
  assert kwargs["response_format"] == {"type": "json_object"}
  assert kwargs["max_tokens"] == 100
  assert kwargs["messages"][0] == {"role": "system", "content": "sys"}


def test_openai_provider_requires_key_without_client() -> None:
  with pytest.raises(ValueError):
    OpenAIProvider(None)


@pytest.mark.anyio
@pytest.mark.parametrize("status_code", [500, 429])
async def test_failed_completion_is_not_retried_by_the_sdk(status_code: int) -> None:
  """A failing upstream sees exactly one completion request per generate call."""
  calls: list[httpx.Request] = []

  def handler(request: httpx.Request) -> httpx.Response:
    calls.append(request)
    return httpx.Response(status_code, json={"error": {"message": "upstream down", "type": "server_error"}})

  http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
  provider = OpenAIProvider("sk-test", "https://llm.example.com/v1", http_client=http_client)
  generator = Generator(provider.get_model())

  with pytest.raises(UpstreamError):
    await generator.generate(_job())
  await generator.aclose()

  assert len(calls) == 1
  assert calls[0].url.path == "/v1/chat/completions"
