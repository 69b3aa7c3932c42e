from __future__ import annotations

import datetime

from sqlalchemy import CheckConstraint, DateTime, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from actionboost.core.database import Base


class UsageCounter(Base):
  """Durable compare-and-swap counter for one quota key."""

  __tablename__ = "usage_counters"
  __table_args__ = (
    CheckConstraint("current_value >= 0", name="ck_usage_counters_non_negative"),
    CheckConstraint("current_value <= limit_value", name="ck_usage_counters_within_limit"),
  )

  key: Mapped[str] = mapped_column(String, primary_key=True)
  current_value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  limit_value: Mapped[int] = mapped_column(Integer, nullable=False)
  window_ends_at: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, index=True)
  updated_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())


class PromoCode(Base):
  """Promo code metadata; redemptions are counted in ``usage_counters``."""

  __tablename__ = "promo_codes"

  code: Mapped[str] = mapped_column(String, primary_key=True)
  credits: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
  max_uses: Mapped[int | None] = mapped_column(Integer, nullable=True)
  expires_at: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
