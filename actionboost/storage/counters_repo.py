"""Storage interfaces for quota counters and promo codes."""

from __future__ import annotations

import datetime
from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class CounterRecord:
  """Persisted state of one quota counter."""

  key: str
  current_value: int
  limit: int
  window_ends_at: datetime.datetime | None = None


@dataclass(frozen=True)
class PromoCodeRecord:
  """Promo code metadata."""

  code: str
  credits: int
  max_uses: int | None
  expires_at: datetime.datetime | None


class CounterRepository(Protocol):
  """Repository contract for compare-and-swap counters."""

  async def get_counter(self, key: str) -> CounterRecord | None:
    """Read the current counter state."""

  async def ensure_counter(self, key: str, *, limit: int, window_ends_at: datetime.datetime | None = None) -> CounterRecord:
    """Create the counter at zero unless it exists, then return its state."""

  async def compare_and_set(self, key: str, *, expected: int, new: int) -> bool:
    """Set ``current_value = new`` only if it still equals ``expected``.

    Returns True when exactly one row changed.
    """

  async def add_to_limit(self, key: str, amount: int) -> CounterRecord:
    """Atomically raise a counter's limit, creating the counter when absent."""

  async def raise_limit(self, key: str, limit: int) -> CounterRecord | None:
    """Set the stored limit to ``limit`` when it is currently lower; never lowers it."""

  async def delete_expired(self, before: datetime.datetime) -> int:
    """Delete windowed counters whose window ended before ``before``; return how many."""


class PromoCodeRepository(Protocol):
  """Repository contract for promo code lookups."""

  async def get_promo_code(self, code: str) -> PromoCodeRecord | None:
    """Fetch a promo code by its normalized value."""
