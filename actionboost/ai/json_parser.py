"""JSON extraction for model outputs that may wrap the object in prose or code fences."""

from __future__ import annotations

import json
from typing import Any


class NonFiniteNumberError(ValueError):
  """Raised for NaN or Infinity literals, which standard JSON does not allow."""


def _reject_constant(name: str) -> Any:
  raise NonFiniteNumberError(f"non-finite number {name} is not valid JSON")


def _loads(text: str) -> Any:
  """json.loads that refuses NaN and Infinity literals."""
  return json.loads(text, parse_constant=_reject_constant)


def parse_model_json(raw: str) -> Any:
  """Parse ``raw`` strictly, falling back to the first balanced ``{...}`` block.

  No repairs are attempted beyond locating the object: a payload that only
  parses after guessing at fixes is treated as invalid output. ``NaN`` and
  ``Infinity`` raise ``NonFiniteNumberError``.
  """
  # Prefer strict parsing so valid JSON is preserved without mutation.
  try:
    return _loads(raw)
  except json.JSONDecodeError as exc:
    first_error = exc

  candidate = extract_json_object(raw)
  if candidate is None:
    raise first_error
  return _loads(candidate)


def extract_json_object(raw: str) -> str | None:
  """Locate the first balanced JSON object while honoring string escapes."""
  start_index: int | None = None
  depth = 0
  in_string = False
  escape = False

  for index, char in enumerate(raw):
    if start_index is None:
      if char == "{":
        start_index = index
        depth = 1
      continue

    if in_string:
      if escape:
        escape = False
      elif char == "\\":
        escape = True
      elif char == '"':
        in_string = False
      continue

    if char == '"':
      in_string = True
    elif char == "{":
      depth += 1
    elif char == "}":
      depth -= 1
      if depth == 0:
        return raw[start_index : index + 1]

  return None
