"""Base interfaces for generative model providers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any


@dataclass
class ChatRequest:
  """One chat completion request in provider-neutral form."""

  system: str
  # Either plain text or a list of content parts (text and image_url).
  user_content: str | list[dict[str, Any]]
  max_tokens: int
  temperature: float = 0.7
  json_mode: bool = True


@dataclass
class SimpleModelResponse:
  """Minimal model response structure."""

  content: str
  model: str
  usage: dict[str, int] | None = None


class AIModel(ABC):
  """Abstract base class for chat models."""

  name: str

  @abstractmethod
  async def complete(self, request: ChatRequest) -> SimpleModelResponse:
    """Run a single completion for the request."""

  async def aclose(self) -> None:
    """Release network resources held by the model client."""
    return None


class Provider(ABC):
  """Abstract base class for AI providers."""

  name: str

  @abstractmethod
  def get_model(self, model: str | None = None) -> AIModel:
    """Return the model client for the provider."""
