"""JSON response class used as the application default."""

from __future__ import annotations

import datetime
import json
from decimal import Decimal
from typing import Any

from fastapi.responses import JSONResponse


class AnalysisJSONEncoder(json.JSONEncoder):
  """Encode Decimal counters from Postgres and datetimes as ISO-8601."""

  def default(self, obj: Any) -> Any:
    if isinstance(obj, Decimal):
      return int(obj) if obj % 1 == 0 else float(obj)
    if isinstance(obj, datetime.datetime):
      return obj.isoformat().replace("+00:00", "Z")
    return super().default(obj)


class AnalysisJSONResponse(JSONResponse):
  """Compact JSONResponse that understands Decimal and datetime values."""

  def render(self, content: Any) -> bytes:
    return json.dumps(content, ensure_ascii=False, allow_nan=False, indent=None, separators=(",", ":"), cls=AnalysisJSONEncoder).encode("utf-8")
