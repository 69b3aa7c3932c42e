"""Evidence gathering for analysis jobs."""

from .retriever import EvidenceBundle, EvidenceProfile, EvidenceRetriever
from .source_guard import SourceGuard

__all__ = ["EvidenceBundle", "EvidenceProfile", "EvidenceRetriever", "SourceGuard"]
