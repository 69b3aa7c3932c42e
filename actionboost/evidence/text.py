"""Text helpers for scraped evidence: markup stripping, challenge detection, truncation."""

from __future__ import annotations

import re

TRUNCATION_MARKER = "\n[Content truncated]"
MIN_FALLBACK_TEXT_LENGTH = 100

# Interstitial phrases from Cloudflare-style bot walls; a known-pattern signal only.
_CHALLENGE_RE = re.compile(r"verifying (you are human|your browser)|just a moment|checking your browser", re.IGNORECASE)
_VERIFYING_RE = re.compile(r"verifying (you are human|your browser)", re.IGNORECASE)
_SCRIPT_RE = re.compile(r"<script[^>]*>[\s\S]*?</script>", re.IGNORECASE)
_STYLE_RE = re.compile(r"<style[^>]*>[\s\S]*?</style>", re.IGNORECASE)
_TAG_RE = re.compile(r"<[^>]+>")
_WHITESPACE_RE = re.compile(r"\s+")


def looks_like_challenge(text: str | None) -> bool:
  """Return True for empty content or a known bot-challenge interstitial."""
  if not text or not text.strip():
    return True
  return _CHALLENGE_RE.search(text) is not None


def html_to_text(html: str) -> str:
  """Drop script/style blocks and tags, then collapse whitespace."""
  text = _SCRIPT_RE.sub("", html)
  text = _STYLE_RE.sub("", text)
  text = _TAG_RE.sub(" ", text)
  return _WHITESPACE_RE.sub(" ", text).strip()


def is_usable_fallback_text(text: str) -> bool:
  """Fallback text must be substantial and not itself a verification wall."""
  return len(text) > MIN_FALLBACK_TEXT_LENGTH and _VERIFYING_RE.search(text) is None


def truncate_text(text: str, cap: int) -> tuple[str, bool]:
  """Clamp ``text`` to ``cap`` characters plus the truncation marker."""
  if cap <= 0:
    raise ValueError("cap must be positive")
  if len(text) <= cap:
    return text, False
  return text[:cap] + TRUNCATION_MARKER, True
