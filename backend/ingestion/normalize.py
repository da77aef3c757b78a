from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Sequence

from loguru import logger

from app.domain import (
    Confidence,
    ExtractionField,
    MarketClassification,
    MarketType,
    PendingNormalization,
    SlipExtractionResult,
)

from .errors import NormalizationAmbiguous
from .markets import classify_market, format_selection, resolve_option
from .taxonomy import FALLBACK_SPORT, SPORT_ALIASES, SPORTS, market_options_for_sport, normalize_text

_CANONICAL_SPORTS = {normalize_text(sport): sport for sport in SPORTS}
# Longest aliases first so "futebol americano" wins over "futebol".
_ALIAS_PATTERNS: tuple[tuple[re.Pattern[str], str], ...] = tuple(
    (re.compile(rf"(?<![\w]){re.escape(alias)}(?![\w])"), sport)
    for alias, sport in sorted(
        ((alias, sport) for sport, aliases in SPORT_ALIASES.items() for alias in aliases),
        key=lambda item: len(item[0]),
        reverse=True,
    )
)


@dataclass(slots=True, frozen=True)
class NormalizationResult:
    """Normalized slip plus the metadata the caller needs to settle the market."""

    result: SlipExtractionResult
    pending: PendingNormalization
    classification: MarketClassification | None


def match_sport(raw: str) -> str:
    """Return the canonical sport for ``raw``.

    Raises :class:`NormalizationAmbiguous` when only an alias or the fallback
    sport matched; the exception carries the best candidate.
    """

    normalized = normalize_text(raw)
    canonical = _CANONICAL_SPORTS.get(normalized)
    if canonical:
        return canonical
    for pattern, sport in _ALIAS_PATTERNS:
        if pattern.search(normalized):
            raise NormalizationAmbiguous(raw, sport)
    raise NormalizationAmbiguous(raw, FALLBACK_SPORT)


def normalize_sport(sport: ExtractionField) -> ExtractionField:
    if not sport.has_value:
        return sport
    try:
        return ExtractionField(match_sport(sport.value or ""), sport.confidence)
    except NormalizationAmbiguous as exc:
        confidence = sport.confidence.downgrade()
        if exc.candidate == FALLBACK_SPORT:
            confidence = Confidence.lowest(confidence, Confidence.LOW)
        logger.debug("Sport '{}' normalized to '{}' ({})", exc.raw, exc.candidate, confidence.value)
        return ExtractionField(exc.candidate, confidence)


def build_event_field(home: ExtractionField, away: ExtractionField) -> ExtractionField:
    """Derive the "HOME x AWAY" event from the two team fields."""

    if home.has_value and away.has_value:
        return ExtractionField(
            f"{home.value.strip()} x {away.value.strip()}",  # type: ignore[union-attr]
            Confidence.lowest(home.confidence, away.confidence),
        )
    if home.has_value:
        return ExtractionField(home.value.strip(), home.confidence)  # type: ignore[union-attr]
    if away.has_value:
        return ExtractionField(away.value.strip(), away.confidence)  # type: ignore[union-attr]
    return ExtractionField.empty()


def _normalize_market(
    market: ExtractionField,
    selection: ExtractionField,
    sport: ExtractionField,
) -> tuple[ExtractionField, ExtractionField, MarketClassification | None]:
    if not market.has_value and not selection.has_value:
        return market, selection, None

    classification = classify_market(market.value, selection.value, sport.value)
    if market.has_value:
        # The OCR text stays; only its confidence is floored.
        market = ExtractionField(market.value, Confidence.lowest(market.confidence, classification.confidence))

    if classification.is_threshold and selection.has_value:
        canonical = format_selection(classification)
        if canonical:
            confidence = selection.confidence
            if confidence is Confidence.LOW:
                confidence = Confidence.MEDIUM
            selection = ExtractionField(canonical, confidence)
    return market, selection, classification


def normalize_slip(result: SlipExtractionResult) -> NormalizationResult:
    """Canonicalize sport, classify the market, and reformat threshold selections.

    Running this twice on its own output yields the same values.
    """

    sport = normalize_sport(result.sport)
    market, selection, classification = _normalize_market(result.market, result.selection, sport)
    pending = PendingNormalization(
        market_intent=classification.display_name if classification else None,
        market_raw=result.market.value if result.market.has_value else None,
        detected_sport=sport.value if sport.has_value else None,
    )
    normalized = result.with_fields(sport=sport, market=market, selection=selection)
    return NormalizationResult(result=normalized, pending=pending, classification=classification)


def resolve_market_for_sport(
    pending: PendingNormalization,
    selection: str | None,
    sport: str | None,
    options: Sequence[str] | None = None,
) -> str:
    """Snap the pending market onto ``options`` for ``sport``; empty string when nothing fits."""

    raw_market = pending.market_raw or pending.market_intent
    if not raw_market and not selection:
        return ""
    choices = list(options) if options else market_options_for_sport(sport)
    classification = classify_market(raw_market, selection, sport)
    if classification.type is MarketType.GENERIC and pending.market_intent and pending.market_intent != raw_market:
        classification = classify_market(pending.market_intent, selection, sport)
    return resolve_option(classification, choices)


__all__ = [
    "NormalizationResult",
    "build_event_field",
    "match_sport",
    "normalize_slip",
    "normalize_sport",
    "resolve_market_for_sport",
]
