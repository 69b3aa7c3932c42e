"""Identifier utilities."""

from __future__ import annotations

import secrets
import uuid

SLUG_ALPHABET = "abcdefghijklmnopqrstuvwxyz0123456789"
SLUG_LENGTH = 10


def generate_job_id() -> str:
  """Return a new job identifier."""
  return str(uuid.uuid4())


def generate_slug(length: int = SLUG_LENGTH) -> str:
  """Return a random lowercase alphanumeric slug for share links."""
  return "".join(secrets.choice(SLUG_ALPHABET) for _ in range(length))
