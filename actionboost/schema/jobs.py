from __future__ import annotations

import datetime

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, String, func, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from actionboost.core.database import Base


class Job(Base):
  __tablename__ = "jobs"
  __table_args__ = (
    CheckConstraint("status IN ('pending', 'processing', 'complete', 'failed')", name="ck_jobs_status"),
    CheckConstraint("(status = 'complete') = (output_json IS NOT NULL)", name="ck_jobs_output_iff_complete"),
    Index("ix_jobs_parent_status", "parent_job_id", "status"),
    Index("ix_jobs_open_updated", "updated_at", postgresql_where=text("status IN ('pending', 'processing')")),
  )

  job_id: Mapped[str] = mapped_column(String, primary_key=True)
  kind: Mapped[str] = mapped_column(String, nullable=False, index=True)
  status: Mapped[str] = mapped_column(String, nullable=False)
  input_json: Mapped[dict] = mapped_column(JSONB, nullable=False)
  output_json: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
  owner: Mapped[str] = mapped_column(String, nullable=False, index=True)
  parent_job_id: Mapped[str | None] = mapped_column(ForeignKey("jobs.job_id", ondelete="SET NULL"), nullable=True)
  stage: Mapped[str | None] = mapped_column(String, nullable=True)
  error_json: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
  share_slug: Mapped[str | None] = mapped_column(String(32), nullable=True, unique=True)
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
  updated_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
  completed_at: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
