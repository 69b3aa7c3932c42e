import logging
from typing import Any

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError

from actionboost.config import get_settings
from actionboost.core.json import AnalysisJSONResponse
from actionboost.jobs.errors import AnalysisError, RateLimitedError, SchemaError

logger = logging.getLogger("uvicorn.error")

# Keys that may carry caller payloads or credentials; never logged or echoed.
_PAYLOAD_KEYS = frozenset({"input", "body", "payload", "content", "token", "accessToken"})


def _json_safe(value: Any) -> Any:
  """Reduce ``value`` to JSON primitives; exceptions become ``Type: message``."""
  if value is None or isinstance(value, bool | int | float | str):
    return value
  if isinstance(value, dict):
    return {str(key): _json_safe(item) for key, item in value.items()}
  if isinstance(value, list | tuple | set):
    return [_json_safe(item) for item in value]
  if isinstance(value, BaseException):
    return f"{type(value).__name__}: {value}" if str(value) else type(value).__name__
  return str(value)


def _request_id(request: Request) -> str | None:
  return getattr(request.state, "request_id", None)


def _framework_response(status_code: int, detail: Any, request: Request, headers: dict[str, str] | None = None) -> AnalysisJSONResponse:
  """Render the framework error shape ``{detail, requestId}``."""
  content: dict[str, Any] = {"detail": detail}
  request_id = _request_id(request)
  if request_id:
    content["requestId"] = request_id
  return AnalysisJSONResponse(status_code=status_code, content=content, headers=headers)


def _sanitize_validation_errors(errors: list[dict[str, Any]]) -> list[dict[str, Any]]:
  """Return validation errors without raw input payloads."""
  sanitized: list[dict[str, Any]] = []
  for error in errors:
    entry = {key: value for key, value in error.items() if key != "input"}
    if isinstance(entry.get("ctx"), dict):
      entry["ctx"] = {key: value for key, value in entry["ctx"].items() if key != "input"}
    sanitized.append(_json_safe(entry))
  return sanitized


def _sanitize_http_detail(detail: Any) -> Any:
  if isinstance(detail, dict):
    return {key: _sanitize_http_detail(value) for key, value in detail.items() if key not in _PAYLOAD_KEYS}
  if isinstance(detail, list):
    return [_sanitize_http_detail(item) for item in detail]
  return detail


async def global_exception_handler(request: Request, exc: Exception) -> AnalysisJSONResponse:
  """Last-resort handler: log the traceback, answer with an opaque 500."""
  logger.error("Unhandled exception request_id=%s path=%s error_type=%s", _request_id(request), request.url.path, type(exc).__name__, exc_info=True)
  return _framework_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal Server Error", request)


async def request_validation_exception_handler(request: Request, exc: RequestValidationError) -> AnalysisJSONResponse:
  errors = _sanitize_validation_errors(exc.errors())
  logger.warning("Request validation failed request_id=%s %s %s errors=%s", _request_id(request), request.method, request.url.path, errors)
  return _framework_response(status.HTTP_422_UNPROCESSABLE_ENTITY, errors, request)


async def http_exception_handler(request: Request, exc: HTTPException) -> AnalysisJSONResponse:
  """Pass 4xx details through; collapse 5xx details into a generic message."""
  if exc.status_code >= 500:
    logger.error("HTTPException request_id=%s path=%s status_code=%s detail=%s", _request_id(request), request.url.path, exc.status_code, exc.detail)
    return _framework_response(exc.status_code, "Internal Server Error", request)
  if get_settings().log_http_4xx:
    logger.warning("HTTPException request_id=%s path=%s status_code=%s detail=%s", _request_id(request), request.url.path, exc.status_code, _sanitize_http_detail(exc.detail))
  return _framework_response(exc.status_code, exc.detail, request, headers=getattr(exc, "headers", None))


async def analysis_exception_handler(request: Request, exc: AnalysisError) -> AnalysisJSONResponse:
  """Map domain errors to ``{error, requestId, ...extra}`` with their status code."""
  request_id = _request_id(request)
  if exc.status_code >= 500:
    details = exc.errors[:5] if isinstance(exc, SchemaError) else None
    logger.error("Analysis error request_id=%s path=%s reason=%s message=%s details=%s", request_id, request.url.path, exc.reason, exc, details, exc_info=True)
  else:
    logger.info("Analysis error request_id=%s path=%s status_code=%s reason=%s message=%s", request_id, request.url.path, exc.status_code, exc.reason, exc)

  content: dict[str, Any] = {"error": exc.public_message}
  if request_id:
    content["requestId"] = request_id
  content.update(_json_safe(exc.extra))

  headers = None
  if isinstance(exc, RateLimitedError) and exc.retry_after_seconds is not None:
    headers = {"Retry-After": str(exc.retry_after_seconds)}
  return AnalysisJSONResponse(status_code=exc.status_code, content=content, headers=headers)
