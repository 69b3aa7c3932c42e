"""Free tool submissions: anonymous, rate limited, one per email (or URL) per tool."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, cast

from actionboost.jobs.errors import ConflictError, QuotaExceededError, ValidationError
from actionboost.jobs.inputs import validate_job_input
from actionboost.jobs.models import FREE_TOOL_KINDS, JobKind
from actionboost.jobs.store import JobStore
from actionboost.services.quota_guard import QuotaGuard
from actionboost.services.result_access import ResultAccess
from actionboost.utils.emails import is_valid_email, normalize_email
from actionboost.utils.ids import generate_job_id, generate_slug

logger = logging.getLogger(__name__)

ALREADY_USED_MESSAGE = "You've already used this tool. Check your email for your results."
ALREADY_ROASTED_MESSAGE = "This page has already been roasted."


@dataclass(frozen=True)
class FreeToolResult:
  job_id: str
  slug: str
  access_token: str
  created: bool = True


def uniqueness_key(kind: str, normalized_email: str, payload: dict[str, Any]) -> str:
  """Landing-page roasts are capped per page; every other tool per inbox."""
  if kind == "landing-page-roast":
    return f"url:{kind}:{str(payload['url']).lower().rstrip('/')}"
  return f"email:{kind}:{normalized_email}"


async def create_free_tool_job(
  *,
  store: JobStore,
  quota: QuotaGuard,
  access: ResultAccess,
  kind: str,
  input: dict[str, Any],
  email: str,
  client_ip: str,
  ip_limit: int,
  ip_window_seconds: int,
  honeypot: str | None = None,
) -> FreeToolResult:
  """Admit, create and share a free tool run. Dispatch is left to the caller."""
  if kind not in FREE_TOOL_KINDS:
    raise ValidationError(f"{kind} is not a free tool", public_message="Unknown tool")

  job_kind = cast(JobKind, kind)
  job_id = generate_job_id()
  # Signing first means a missing secret fails before anything is consumed.
  access_token = access.sign_token(job_id)

  if honeypot:
    # Bots get a plausible answer and nothing else.
    logger.info("Honeypot filled on %s submission from %s", kind, client_ip)
    return FreeToolResult(job_id=job_id, slug=generate_slug(), access_token=access_token, created=False)

  if not email or not is_valid_email(email):
    raise ValidationError(public_message="Valid email is required")
  normalized_email = normalize_email(email)
  owner = f"anon:{normalized_email}"
  normalized_input = validate_job_input(kind, input)

  await quota.check_rate_limit("ip", client_ip, limit=ip_limit, window_seconds=ip_window_seconds)

  cap_message = ALREADY_ROASTED_MESSAGE if kind == "landing-page-roast" else ALREADY_USED_MESSAGE
  try:
    async with quota.hold(uniqueness_key(kind, normalized_email, normalized_input), limit=1, message=cap_message):
      job = await store.create(job_kind, normalized_input, owner, job_id=job_id)
  except QuotaExceededError as exc:
    existing = await store.find_latest_for_owner(owner, job_kind)
    extra = {"existingSlug": existing.share_slug} if existing is not None and existing.share_slug else None
    raise ConflictError(str(exc), public_message=cap_message, extra=extra) from exc

  slug = await store.ensure_share_slug(job.job_id)
  logger.info("Free %s job %s created (slug %s)", kind, job.job_id, slug)
  return FreeToolResult(job_id=job.job_id, slug=slug, access_token=access_token)
