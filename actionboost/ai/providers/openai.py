"""OpenAI chat completions provider."""

from __future__ import annotations

import logging
from typing import Any, Final

import httpx
from openai import AsyncOpenAI

from actionboost.ai.providers.base import AIModel, ChatRequest, Provider, SimpleModelResponse

logger = logging.getLogger(__name__)


class OpenAIModel(AIModel):
  """Chat model backed by the OpenAI API in JSON mode."""

  def __init__(self, name: str, client: AsyncOpenAI) -> None:
    self.name: str = name
    self._client = client

  async def complete(self, request: ChatRequest) -> SimpleModelResponse:
    messages: list[dict[str, Any]] = [{"role": "system", "content": request.system}, {"role": "user", "content": request.user_content}]
    kwargs: dict[str, Any] = {"model": self.name, "messages": messages, "temperature": request.temperature, "max_tokens": request.max_tokens}
    if request.json_mode:
      kwargs["response_format"] = {"type": "json_object"}

    response = await self._client.chat.completions.create(**kwargs)

    content = ""
    if response.choices:
      content = response.choices[0].message.content or ""
    usage = None
    if response.usage:
      usage = {"prompt_tokens": response.usage.prompt_tokens, "completion_tokens": response.usage.completion_tokens, "total_tokens": response.usage.total_tokens}
    logger.debug("OpenAI response (%d chars) usage=%s", len(content), usage)
    return SimpleModelResponse(content=content, model=self.name, usage=usage)

  async def aclose(self) -> None:
    await self._client.close()


class OpenAIProvider(Provider):
  """OpenAI provider."""

  _DEFAULT_MODEL: Final[str] = "gpt-4.1-mini"

  def __init__(self, api_key: str | None, base_url: str | None = None, *, client: AsyncOpenAI | None = None, http_client: httpx.AsyncClient | None = None) -> None:
    self.name: str = "openai"
    if client is None:
      if not api_key:
        raise ValueError("ACTIONBOOST_OPENAI_API_KEY is required")
      # One completion per job attempt: the SDK's own retries would multiply calls.
      client = AsyncOpenAI(api_key=api_key, base_url=base_url, max_retries=0, http_client=http_client)
    self._client = client

  def get_model(self, model: str | None = None) -> AIModel:
    """Bind a chat model name to this provider's client."""
    return OpenAIModel(model or self._DEFAULT_MODEL, self._client)
