"""Signed session tokens and the optional-owner dependency."""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from typing import Annotated

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from actionboost.config import Settings, get_settings
from actionboost.core.signing import b64url_decode, b64url_encode, require_secret, sign, signature_matches

logger = logging.getLogger(__name__)

SESSION_COOKIE_NAME = "ab_session"
SESSION_MAX_AGE_SECONDS = 30 * 24 * 60 * 60

security_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class SessionIdentity:
  user_id: str
  email: str
  exp: int

  @property
  def owner(self) -> str:
    return f"user:{self.user_id}"


def sign_session(secret: str | None, user_id: str, email: str, *, max_age_seconds: int = SESSION_MAX_AGE_SECONDS, now_ms: int | None = None) -> str:
  """Issue ``base64url(json{userId,email,exp}).sig``; ``exp`` is epoch milliseconds."""
  issued = now_ms if now_ms is not None else int(time.time() * 1000)
  body = json.dumps({"userId": user_id, "email": email, "exp": issued + max_age_seconds * 1000}, separators=(",", ":"))
  data = b64url_encode(body.encode("utf-8"))
  return f"{data}.{sign(require_secret(secret), data)}"


def verify_session(secret: str | None, token: str | None, *, now_ms: int | None = None) -> SessionIdentity | None:
  """Return the identity for a valid, unexpired token, else None."""
  if not token:
    return None
  data, _, signature = token.partition(".")
  if not data or not signature:
    return None
  if not signature_matches(require_secret(secret), data, signature):
    return None
  try:
    payload = json.loads(b64url_decode(data))
    identity = SessionIdentity(user_id=str(payload["userId"]), email=str(payload.get("email", "")), exp=int(payload["exp"]))
  except (ValueError, KeyError, TypeError):
    return None
  current = now_ms if now_ms is not None else int(time.time() * 1000)
  if identity.exp < current:
    return None
  return identity


async def get_optional_identity(request: Request, credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security_scheme)], settings: Annotated[Settings, Depends(get_settings)]) -> SessionIdentity | None:
  """Resolve the session from a bearer token or the session cookie; anonymous callers get None."""
  token = credentials.credentials if credentials is not None else request.cookies.get(SESSION_COOKIE_NAME)
  if not token:
    return None
  identity = verify_session(settings.session_secret, token)
  if identity is None:
    logger.info("Ignoring invalid or expired session token")
  return identity


async def get_optional_owner(identity: Annotated[SessionIdentity | None, Depends(get_optional_identity)]) -> str | None:
  return identity.owner if identity is not None else None
