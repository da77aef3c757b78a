"""Domain models for slip extraction, normalization, and ticket state."""

from .models import (
    SLIP_FIELDS,
    AnomalyKind,
    AnomalySeverity,
    Confidence,
    DateAnomaly,
    DateAnomalyLogEntry,
    DateDecision,
    ExtractionField,
    MarketClassification,
    MarketDomain,
    MarketSide,
    MarketTaxonomyEntry,
    MarketType,
    OddCalculation,
    OddMethod,
    PendingNormalization,
    SlipExtractionResult,
)

__all__ = [
    "SLIP_FIELDS",
    "AnomalyKind",
    "AnomalySeverity",
    "Confidence",
    "DateAnomaly",
    "DateAnomalyLogEntry",
    "DateDecision",
    "ExtractionField",
    "MarketClassification",
    "MarketDomain",
    "MarketSide",
    "MarketTaxonomyEntry",
    "MarketType",
    "OddCalculation",
    "OddMethod",
    "PendingNormalization",
    "SlipExtractionResult",
]
