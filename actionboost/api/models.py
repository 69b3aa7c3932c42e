from __future__ import annotations

import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
  model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class JobCreateRequest(_CamelModel):
  """Paid job request; ``input`` is checked against the kind's input model."""

  kind: str = Field(min_length=1, max_length=40)
  input: dict[str, Any]
  email: str | None = Field(default=None, max_length=320)
  parent_id: str | None = Field(default=None, max_length=64)
  # Access token of the parent job; required when an anonymous caller sets parentId.
  parent_token: str | None = Field(default=None, max_length=256)
  code: str | None = Field(default=None, max_length=64)


class JobCreateResponse(_CamelModel):
  job_id: str
  access_token: str | None = None


class FreeToolRequest(_CamelModel):
  input: dict[str, Any]
  email: str = Field(max_length=320)
  # Honeypot: hidden in the form, so only bots fill it.
  website: str | None = Field(default=None, max_length=500)


class FreeToolResponse(_CamelModel):
  job_id: str
  slug: str
  access_token: str


class JobStatusResponse(_CamelModel):
  status: str
  stage: str | None = None
  poll_interval_ms: int
  max_polls: int


class JobResultResponse(_CamelModel):
  id: str
  kind: str
  status: str
  stage: str | None = None
  output: dict[str, Any] | None = None
  parent_id: str | None = None
  created_at: datetime.datetime
  completed_at: datetime.datetime | None = None
  error: str | None = None
  input: dict[str, Any] | None = None
  share_slug: str | None = None


class ShareResponse(_CamelModel):
  slug: str


class RefineRequest(_CamelModel):
  context: str = Field(max_length=20000)


class RefineResponse(_CamelModel):
  new_job_id: str
  remaining: int


class CodeValidateRequest(_CamelModel):
  code: str = Field(max_length=64)


class CodeValidateResponse(_CamelModel):
  valid: bool
  credits: int
  error: str | None = None


class TaskPayload(_CamelModel):
  job_id: str = Field(min_length=1)


class SweepResponse(_CamelModel):
  failed_job_ids: list[str]
  # Rate-limit counter rows whose window had closed.
  purged_counters: int = 0
