"""Provider implementations."""

from actionboost.ai.providers.base import AIModel, ChatRequest, Provider, SimpleModelResponse
from actionboost.ai.providers.openai import OpenAIModel, OpenAIProvider

__all__ = ["AIModel", "ChatRequest", "Provider", "SimpleModelResponse", "OpenAIModel", "OpenAIProvider"]
