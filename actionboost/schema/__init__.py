"""Schema package exports."""

from .jobs import Job
from .quotas import PromoCode, UsageCounter

__all__ = ["Job", "PromoCode", "UsageCounter"]
