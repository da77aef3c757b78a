"""Pre-fill sibling legs of an arbitrage ticket from one recognized leg."""

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
    SlipExtractionResult,
)
from ingestion.inference import DRAW_LABEL, split_event
from ingestion.taxonomy import normalize_text

HOME = "home"
DRAW = "draw"
AWAY = "away"
THREE_WAY_ORDER = (HOME, DRAW, AWAY)

_DRAW_TOKENS = {"x", "draw", "empate"}
_BINARY_MARKET_RE = re.compile(
    r"over|under|ambas marcam|btts|sim\s*/\s*nao|yes\s*/\s*no|total de|mais\s*/\s*menos"
)

# Each keyword maps to its opposite on a two-outcome market.
_COMPLEMENTS = {
    "over": "under",
    "under": "over",
    "mais": "menos",
    "menos": "mais",
    "acima": "abaixo",
    "abaixo": "acima",
    "sim": "não",
    "não": "sim",
    "nao": "sim",
    "yes": "no",
    "no": "yes",
    "ímpar": "par",
    "impar": "par",
    "par": "ímpar",
    "odd": "even",
    "even": "odd",
}
_COMPLEMENT_RE = re.compile(
    r"\b(" + "|".join(sorted(_COMPLEMENTS, key=len, reverse=True)) + r")\b",
    re.IGNORECASE,
)


@dataclass(slots=True, frozen=True)
class LegSnapshot:
    """What the inference engine needs to know about one slot."""

    result: SlipExtractionResult | None
    is_inferred: bool = False
    busy: bool = False

    @property
    def has_data(self) -> bool:
        return self.result is not None and self.result.has_data

    @property
    def is_open(self) -> bool:
        return not self.has_data and not self.busy


@dataclass(slots=True, frozen=True)
class InferredLeg:
    slot_index: int
    result: SlipExtractionResult
    source_slot: int


def _match_case(template: str, word: str) -> str:
    if template.isupper() and len(template) > 1:
        return word.upper()
    if template[:1].isupper():
        return word[:1].upper() + word[1:]
    return word


def complementary_selection(selection: str | None) -> str | None:
    """Swap the outcome keyword of a two-way selection, keeping its numbers."""

    if not selection or not _COMPLEMENT_RE.search(selection):
        return None
    swapped, count = _COMPLEMENT_RE.subn(
        lambda match: _match_case(match.group(1), _COMPLEMENTS[match.group(1).lower()]),
        selection,
        count=1,
    )
    return swapped if count else None


def is_binary_market(classification: MarketClassification | None, market_text: str | None) -> bool:
    if classification is not None and classification.type in (MarketType.TOTAL, MarketType.BTTS):
        return True
    return bool(_BINARY_MARKET_RE.search(normalize_text(market_text)))


def _teams(result: SlipExtractionResult) -> tuple[str, str] | None:
    if result.home.has_value and result.away.has_value:
        return result.home.value.strip(), result.away.value.strip()  # type: ignore[union-attr]
    return split_event(result.event.value)


def three_way_outcome(selection: str | None, home: str, away: str) -> str | None:
    """Map a selection onto home/draw/away, or None when it names neither."""

    text = normalize_text(selection)
    if not text:
        return None
    if text in _DRAW_TOKENS:
        return DRAW
    if text == "1":
        return HOME
    if text == "2":
        return AWAY
    home_text, away_text = normalize_text(home), normalize_text(away)
    if text == home_text:
        return HOME
    if text == away_text:
        return AWAY
    if home_text and (home_text in text or text in home_text):
        return HOME
    if away_text and (away_text in text or text in away_text):
        return AWAY
    return None


def synthesize_leg(source: SlipExtractionResult, selection: str) -> SlipExtractionResult:
    """Copy the shared event facts of ``source`` with a new selection."""

    return SlipExtractionResult(
        home=source.home,
        away=source.away,
        event=source.event,
        kickoff=source.kickoff,
        sport=source.sport,
        market=source.market,
        selection=ExtractionField(selection, Confidence.MEDIUM),
    )


def _infer_three_way(
    source_index: int,
    legs: Sequence[LegSnapshot],
) -> list[InferredLeg]:
    source = legs[source_index].result
    assert source is not None
    teams = _teams(source)
    if teams is None:
        return []
    home, away = teams

    claimed: set[str] = set()
    for leg in legs:
        if leg.has_data:
            outcome = three_way_outcome(leg.result.selection.value, home, away)  # type: ignore[union-attr]
            if outcome:
                claimed.add(outcome)
    if not claimed:
        return []

    labels = {HOME: home, DRAW: DRAW_LABEL, AWAY: away}
    remaining = [outcome for outcome in THREE_WAY_ORDER if outcome not in claimed]
    targets = [index for index, leg in enumerate(legs) if index != source_index and leg.is_open]
    return [
        InferredLeg(slot_index=index, result=synthesize_leg(source, labels[outcome]), source_slot=source_index)
        for index, outcome in zip(targets, remaining)
    ]


def _infer_binary(source_index: int, legs: Sequence[LegSnapshot]) -> list[InferredLeg]:
    if len(legs) != 2:
        return []
    source = legs[source_index].result
    assert source is not None
    complement = complementary_selection(source.selection.value)
    if not complement or complement == source.selection.value:
        return []
    target = 1 - source_index
    if not legs[target].is_open:
        return []
    return [InferredLeg(slot_index=target, result=synthesize_leg(source, complement), source_slot=source_index)]


def infer_sibling_legs(
    source_index: int,
    legs: Sequence[LegSnapshot],
    classification: MarketClassification | None,
) -> list[InferredLeg]:
    """Return synthesized results for the open siblings of ``source_index``.

    Only slots with no data and no in-flight job are targeted, and the source
    must hold real (non-inferred) data.
    """

    source_leg = legs[source_index]
    if len(legs) < 2 or not source_leg.has_data or source_leg.is_inferred:
        return []
    source = source_leg.result
    assert source is not None

    if classification is not None and classification.type is MarketType.MATCH_ODDS:
        inferred = _infer_three_way(source_index, legs)
    elif is_binary_market(classification, source.market.value):
        inferred = _infer_binary(source_index, legs)
    else:
        inferred = []

    for leg in inferred:
        logger.info(
            "Inferred slot {} from slot {}: selection '{}'",
            leg.slot_index,
            source_index,
            leg.result.selection.value,
        )
    return inferred


__all__ = [
    "InferredLeg",
    "LegSnapshot",
    "complementary_selection",
    "infer_sibling_legs",
    "is_binary_market",
    "synthesize_leg",
    "three_way_outcome",
]
