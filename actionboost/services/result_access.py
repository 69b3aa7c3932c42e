"""Access grants for job status and results: ownership, signed tokens and share slugs."""

from __future__ import annotations

import hmac
import logging
from typing import Any, Final, Literal

from actionboost.core.signing import b64url_decode, b64url_encode, require_secret, sign, signature_matches
from actionboost.jobs.errors import ForbiddenError
from actionboost.jobs.models import JobRecord

logger = logging.getLogger(__name__)

AccessLevel = Literal["owner", "read"]

POLL_INTERVAL_MS: Final[int] = 2000
MAX_POLLS: Final[int] = 100
GENERIC_FAILURE_MESSAGE: Final[str] = "Something went wrong - please try again"


class ResultAccess:
  """Decides who may see a job and shapes what they see.

  Access tokens are ``base64url(job_id).base64url(hmac)``. They never expire
  and are bound to exactly one job id.
  """

  def __init__(self, secret: str | None) -> None:
    self._secret = secret

  def _key(self) -> bytes:
    # Checked on first use so the app can boot for health checks without a secret.
    return require_secret(self._secret)

  def sign_token(self, job_id: str) -> str:
    """Return the access token handed to anonymous owners of ``job_id``."""
    data = b64url_encode(job_id.encode("utf-8"))
    return f"{data}.{sign(self._key(), data)}"

  def verify_token(self, job_id: str, token: str | None) -> bool:
    """Constant-time check that ``token`` was issued for ``job_id``."""
    if not token or not job_id:
      return False
    data, _, signature = token.partition(".")
    if not data or not signature:
      return False
    try:
      embedded_id = b64url_decode(data).decode("utf-8")
    except (ValueError, UnicodeDecodeError):
      return False
    # A token for another job fails here, before any signature work.
    if not hmac.compare_digest(embedded_id.encode("utf-8"), job_id.encode("utf-8")):
      return False
    return signature_matches(self._key(), data, signature)

  def authorize(self, job: JobRecord, *, owner: str | None = None, token: str | None = None, share: str | None = None) -> AccessLevel:
    """Return the caller's access level or raise ForbiddenError."""
    if owner is not None and owner == job.owner:
      return "owner"
    if token and self.verify_token(job.job_id, token):
      return "owner"
    if share and job.share_slug and hmac.compare_digest(share, job.share_slug):
      return "read"
    logger.info("Access denied to job %s (owner=%s token=%s share=%s)", job.job_id, owner is not None, bool(token), bool(share))
    raise ForbiddenError(f"No access grant for job {job.job_id}", public_message="Access denied")

  def require_owner(self, job: JobRecord, *, owner: str | None = None, token: str | None = None) -> None:
    """Mutations need ownership; a share slug is never enough."""
    if self.authorize(job, owner=owner, token=token) != "owner":
      raise ForbiddenError(f"Owner access required for job {job.job_id}", public_message="Access denied")


def status_projection(job: JobRecord) -> dict[str, Any]:
  """Polling view: status, stage and the client polling cadence."""
  payload: dict[str, Any] = {"status": job.status, "pollIntervalMs": POLL_INTERVAL_MS, "maxPolls": MAX_POLLS}
  if job.stage:
    payload["stage"] = job.stage
  return payload


def result_projection(job: JobRecord, level: AccessLevel) -> dict[str, Any]:
  """Client view of a job; internal failure details are never included."""
  payload: dict[str, Any] = {
    "id": job.job_id,
    "kind": job.kind,
    "status": job.status,
    "stage": job.stage,
    "output": job.output if job.status == "complete" else None,
    "parentId": job.parent_job_id,
    "createdAt": job.created_at,
    "completedAt": job.completed_at,
  }
  if job.status == "failed":
    payload["error"] = GENERIC_FAILURE_MESSAGE
  if level == "owner":
    payload["input"] = job.input
    if job.share_slug:
      payload["shareSlug"] = job.share_slug
  return payload
