"""Metadata enrichment for incomplete catalog entries."""

from .service import EnrichmentResult, EnrichmentService

__all__ = ["EnrichmentResult", "EnrichmentService"]
