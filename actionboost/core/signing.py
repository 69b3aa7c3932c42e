"""HMAC-SHA256 signing helpers shared by access tokens and session tokens."""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac

MIN_SECRET_LENGTH = 32


def b64url_encode(data: bytes) -> str:
  return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def b64url_decode(data: str) -> bytes:
  """Decode unpadded base64url; raises ValueError on malformed input."""
  padded = data + "=" * (-len(data) % 4)
  try:
    return base64.urlsafe_b64decode(padded.encode("ascii"))
  except (binascii.Error, UnicodeEncodeError) as exc:
    raise ValueError("Malformed base64url value") from exc


def require_secret(secret: str | None) -> bytes:
  if not secret or len(secret) < MIN_SECRET_LENGTH:
    raise RuntimeError(f"ACTIONBOOST_SESSION_SECRET must be set and at least {MIN_SECRET_LENGTH} characters")
  return secret.encode("utf-8")


def sign(secret: bytes, data: str) -> str:
  return b64url_encode(hmac.new(secret, data.encode("utf-8"), hashlib.sha256).digest())


def signature_matches(secret: bytes, data: str, signature: str) -> bool:
  return hmac.compare_digest(sign(secret, data).encode("ascii"), signature.encode("ascii", errors="replace"))
