"""Email validation and normalization used for per-email quotas."""

from __future__ import annotations

import re

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_GMAIL_DOMAINS = {"gmail.com", "googlemail.com"}


def is_valid_email(email: str) -> bool:
  """Return True when the address passes the syntax and dot-placement checks."""
  trimmed = email.strip().lower()
  if not _EMAIL_RE.match(trimmed):
    return False

  local, _, domain = trimmed.partition("@")
  if not local or not domain:
    return False
  # Reject the dot edge cases mail providers refuse anyway.
  if ".." in local or ".." in domain:
    return False
  if domain.startswith(".") or domain.endswith("."):
    return False
  if local.startswith(".") or local.endswith("."):
    return False
  return True


def normalize_email(email: str) -> str:
  """Collapse plus-addressing and Gmail dot aliases into one quota identity.

  ``Test.User+promo@GoogleMail.com`` and ``testuser@gmail.com`` normalize to the
  same value so a single inbox cannot claim a per-email quota twice.
  """
  local, _, domain = email.strip().lower().partition("@")
  local = local.split("+", 1)[0]
  if domain in _GMAIL_DOMAINS:
    return f"{local.replace('.', '')}@gmail.com"
  return f"{local}@{domain}"
