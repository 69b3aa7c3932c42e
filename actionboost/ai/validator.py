"""Validate model output against the pydantic model for its job kind."""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from typing import Any

import pydantic

from actionboost.ai.json_parser import NonFiniteNumberError, parse_model_json
from actionboost.ai.schemas import KIND_MODELS
from actionboost.jobs.errors import SchemaError

logger = logging.getLogger(__name__)

# Keep error lists readable when a model returns something wildly off-shape.
_MAX_REPORTED_ERRORS = 20


def format_location(loc: Sequence[str | int]) -> str:
  """Render a pydantic error location as ``roasts[0].severity``."""
  path = ""
  for part in loc:
    if isinstance(part, int):
      path += f"[{part}]"
    else:
      path += f".{part}" if path else str(part)
  return path or "$"


def validate(kind: str, raw_text: str) -> dict[str, Any]:
  """Parse ``raw_text`` and check it against the output model for ``kind``.

  The parsed payload is returned as-is, unknown keys included. Raises
  ``SchemaError`` carrying ``location: message`` strings.
  """
  model = KIND_MODELS.get(kind)
  if model is None:
    raise SchemaError(f"No output model for kind {kind!r}", errors=[f"unknown kind {kind!r}"])

  try:
    payload = parse_model_json(raw_text)
  except json.JSONDecodeError as exc:
    raise SchemaError("Model output is not valid JSON", errors=[f"$: {exc.msg}"]) from exc
  except NonFiniteNumberError as exc:
    raise SchemaError("Model output contains a non-finite number", errors=[f"$: {exc}"]) from exc

  if not isinstance(payload, dict):
    raise SchemaError("Model output must be a JSON object", errors=["$: expected object"])

  try:
    model.model_validate(payload)
  except pydantic.ValidationError as exc:
    errors = [f"{format_location(error['loc'])}: {error['msg']}" for error in exc.errors()]
    logger.info("Output validation failed for %s with %d error(s): %s", kind, len(errors), errors[:3])
    raise SchemaError(f"Model output failed validation for {kind}", errors=errors[:_MAX_REPORTED_ERRORS]) from exc
  return payload
