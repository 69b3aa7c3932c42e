import json
import logging
import re
import time
import uuid
from typing import Any
from urllib.parse import parse_qsl, urlencode

from starlette.datastructures import MutableHeaders
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from actionboost.config import get_settings

logger = logging.getLogger("actionboost.core.middleware")

_SENSITIVE_KEYS = {"password", "token", "accesstoken", "key", "authorization", "cookie", "secret", "email", "code", "share", "website"}
# Access tokens and share slugs travel as query params on polling URLs.
_SENSITIVE_QUERY_KEYS = {"token", "share", "api_key"}
# Inbound ids from a trusted proxy are reused; anything else gets a fresh uuid.
_REQUEST_ID_PATTERN = re.compile(r"^[A-Za-z0-9-]{8,64}$")


def _redact(data: Any) -> Any:
  if isinstance(data, dict):
    return {k: ("***" if str(k).lower() in _SENSITIVE_KEYS else _redact(v)) for k, v in data.items()}
  if isinstance(data, list):
    return [_redact(item) for item in data]
  return data


def _loggable_path(scope: Scope) -> str:
  """Path plus query string with credential-bearing params masked."""
  path = scope.get("path", "")
  raw_query = scope.get("query_string", b"")
  if not raw_query:
    return path
  pairs = [(key, "***" if key.lower() in _SENSITIVE_QUERY_KEYS else value) for key, value in parse_qsl(raw_query.decode("latin-1"), keep_blank_values=True)]
  return f"{path}?{urlencode(pairs)}"


def _describe_body(body: bytes, content_type: str | None, limit: int) -> str:
  if not body:
    return "<empty>"
  media = (content_type or "").lower()
  if "json" not in media and not media.startswith("text/"):
    return f"<{len(body)} bytes of {media or 'unknown'}>"
  if len(body) > limit:
    # Truncated JSON is not parsed, so it is not redacted either; only the size is logged.
    return f"<{len(body)} bytes, over log limit>" if "json" in media else f"{body[:limit].decode('utf-8', errors='replace')}...(truncated)"
  decoded = body.decode("utf-8", errors="replace")
  if "json" not in media:
    return decoded
  try:
    return json.dumps(_redact(json.loads(decoded)), ensure_ascii=True)
  except json.JSONDecodeError:
    return "<malformed json>"


async def _drain(receive: Receive) -> tuple[bytes, Receive]:
  """Read the full request body and return it with a receive callable that replays it once."""
  chunks: list[bytes] = []
  while True:
    message = await receive()
    if message.get("type") != "http.request":
      break
    chunks.append(message.get("body", b""))
    if not message.get("more_body", False):
      break
  body = b"".join(chunks)
  replayed = False

  async def replay() -> Message:
    nonlocal replayed
    if replayed:
      return await receive()
    replayed = True
    return {"type": "http.request", "body": body, "more_body": False}

  return body, replay


def _request_id(headers: dict[str, str]) -> str:
  candidate = headers.get("x-request-id", "")
  return candidate if _REQUEST_ID_PATTERN.fullmatch(candidate) else str(uuid.uuid4())


class RequestLoggingMiddleware:
  """Tag every HTTP request with an id and log one summary line per request."""

  def __init__(self, app: ASGIApp) -> None:
    self.app = app

  async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
    if scope["type"] != "http":
      await self.app(scope, receive, send)
      return

    settings = get_settings()
    headers = {key.decode("latin-1").lower(): value.decode("latin-1") for key, value in scope.get("headers", [])}
    request_id = _request_id(headers)
    scope.setdefault("state", {})["request_id"] = request_id
    method = scope.get("method", "UNKNOWN")
    path = _loggable_path(scope)

    if settings.log_http_bodies:
      body, receive = await _drain(receive)
      logger.debug("Request body request_id=%s body=%s", request_id, _describe_body(body, headers.get("content-type"), settings.log_http_body_bytes))

    status_code = 0
    response_body: list[bytes] = []
    response_type: str | None = None

    async def send_wrapper(message: Message) -> None:
      nonlocal status_code, response_type
      if message["type"] == "http.response.start":
        status_code = message.get("status", 0)
        response_headers = MutableHeaders(scope=message)
        response_headers.setdefault("x-request-id", request_id)
        response_type = response_headers.get("content-type")
      elif message["type"] == "http.response.body" and settings.log_http_bodies:
        response_body.append(message.get("body", b""))
      await send(message)

    started = time.perf_counter()
    try:
      await self.app(scope, receive, send_wrapper)
    finally:
      elapsed_ms = (time.perf_counter() - started) * 1000
      logger.info("%s %s -> %s in %.1fms request_id=%s", method, path, status_code or "-", elapsed_ms, request_id)
      if settings.log_http_bodies:
        logger.debug("Response body request_id=%s body=%s", request_id, _describe_body(b"".join(response_body), response_type, settings.log_http_body_bytes))


class SecurityHeadersMiddleware:
  """Strip server fingerprint headers and forbid caching of job payloads."""

  def __init__(self, app: ASGIApp) -> None:
    self.app = app

  async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
    if scope["type"] != "http":
      await self.app(scope, receive, send)
      return

    async def send_wrapper(message: Message) -> None:
      if message["type"] == "http.response.start":
        headers = MutableHeaders(scope=message)
        if "x-powered-by" in headers:
          del headers["x-powered-by"]
        if "server" in headers:
          del headers["server"]
        headers["x-content-type-options"] = "nosniff"
        # Token-gated results must not end up in shared caches.
        headers.setdefault("cache-control", "no-store")
      await send(message)

    await self.app(scope, receive, send_wrapper)
