"""Error taxonomy shared by the job engine and the HTTP layer."""

from __future__ import annotations

from typing import Any


class AnalysisError(Exception):
  """Base class for expected analysis-engine failures.

  ``status_code`` and ``public_message`` are what the HTTP layer exposes; the
  exception text itself stays in logs.
  """

  status_code: int = 500
  default_public_message: str = "Something went wrong - please try again."
  # Only input errors echo their message to clients; everything else stays in logs.
  expose_message: bool = False

  def __init__(self, message: str | None = None, *, public_message: str | None = None, extra: dict[str, Any] | None = None) -> None:
    super().__init__(message or public_message or self.default_public_message)
    self.public_message = public_message or (message if self.expose_message else None) or self.default_public_message
    self.extra: dict[str, Any] = dict(extra or {})

  @property
  def reason(self) -> str:
    """Stable reason code recorded on failed jobs."""
    return type(self).__name__


class ValidationError(AnalysisError):
  """Request input is malformed or out of bounds."""

  status_code = 400
  expose_message = True
  default_public_message = "Invalid request."


class UnsafeTargetError(AnalysisError):
  """A target URL points at a private or internal address."""

  status_code = 400
  default_public_message = "Invalid URL."


class UpstreamError(AnalysisError):
  """An evidence provider or the generation model failed or timed out."""

  status_code = 502
  default_public_message = "An upstream service failed - please try again."


class SchemaError(AnalysisError):
  """Generated output failed to parse or did not match the kind schema."""

  status_code = 502
  default_public_message = "The analysis could not be completed - please try again."

  def __init__(self, message: str | None = None, *, errors: list[str] | None = None) -> None:
    super().__init__(message)
    self.errors: list[str] = list(errors or [])


class QuotaExceededError(AnalysisError):
  """A usage limit has been reached."""

  status_code = 429
  default_public_message = "Limit reached."


class RateLimitedError(QuotaExceededError):
  """A fixed-window request limit has been reached."""

  default_public_message = "Too many requests. Please try again tomorrow."

  def __init__(self, message: str | None = None, *, retry_after_seconds: int | None = None, extra: dict[str, Any] | None = None) -> None:
    super().__init__(message, extra=extra)
    self.retry_after_seconds = retry_after_seconds


class InsufficientCreditsError(QuotaExceededError):
  """The owner has no credits left to pay for a run."""

  status_code = 402
  default_public_message = "No credits remaining."


class ConflictError(AnalysisError):
  """An optimistic-concurrency race was lost or a conflicting job exists."""

  status_code = 409
  default_public_message = "Request conflicted with another request - please retry."


class InvalidTransitionError(ConflictError):
  """A job status change does not follow the state machine."""

  default_public_message = "Job is not in a state that allows this change."


class NotFoundError(AnalysisError):
  """A job, promo code or other record does not exist."""

  status_code = 404
  default_public_message = "Not found."


class ForbiddenError(AnalysisError):
  """The caller has no access grant for the requested job."""

  status_code = 403
  default_public_message = "Access denied."
