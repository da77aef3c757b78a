"""Single-slip inference rules applied before normalization."""

from __future__ import annotations

import re

from loguru import logger

from app.domain import Confidence, ExtractionField, SlipExtractionResult

from .odds import parse_amount, reconcile_return

DRAW_LABEL = "Empate"
MATCH_ODDS_MARKET = "1X2"

_TEAMS_RE = re.compile(r"^(.+?)\s+(?:x|vs\.?|v)\s+(.+)$", re.IGNORECASE)
_SCORE_RE = re.compile(r"\d+\s*[:\-xX]\s*\d+")
_DRAW_RE = re.compile(r"^(?:x|empate|draw)$", re.IGNORECASE)
_THRESHOLD_KEYWORDS_RE = re.compile(
    r"handicap|spread|hcap|hdp|total|over|under|mais|menos|acima|abaixo|o/u", re.IGNORECASE
)


def split_event(event: str | None) -> tuple[str, str] | None:
    if not event:
        return None
    match = _TEAMS_RE.match(event.strip())
    if not match:
        return None
    return match.group(1).strip(), match.group(2).strip()


def infer_sport(result: SlipExtractionResult) -> SlipExtractionResult:
    """A "Team x Team" event with a score-like outcome reads as football."""

    if result.sport.has_value:
        return result
    if split_event(result.event.value) and _SCORE_RE.search(result.outcome.value or ""):
        logger.debug("Inferred sport Futebol from event '{}'", result.event.value)
        return result.with_fields(sport=ExtractionField("Futebol", Confidence.MEDIUM))
    return result


def infer_market_and_selection(result: SlipExtractionResult) -> SlipExtractionResult:
    selection = (result.selection.value or "").strip()
    if not selection:
        return result

    changes: dict[str, ExtractionField] = {}
    if _DRAW_RE.match(selection):
        changes["selection"] = ExtractionField(
            DRAW_LABEL, Confidence.lowest(result.selection.confidence, Confidence.MEDIUM)
        )
        if not result.market.has_value:
            changes["market"] = ExtractionField(MATCH_ODDS_MARKET, Confidence.MEDIUM)
    elif not result.market.has_value:
        teams = split_event(result.event.value) or (
            (result.home.value or "", result.away.value or "")
            if result.home.has_value and result.away.has_value
            else None
        )
        lowered = selection.lower()
        is_team = bool(teams) and any(
            team and (team.lower() == lowered or team.lower() in lowered or lowered in team.lower())
            for team in teams  # type: ignore[union-attr]
        )
        if is_team and not _THRESHOLD_KEYWORDS_RE.search(selection):
            changes["market"] = ExtractionField(MATCH_ODDS_MARKET, Confidence.MEDIUM)

    return result.with_fields(**changes) if changes else result


def infer_settlement(
    stake: ExtractionField | str | None,
    return_amount: ExtractionField | str | None,
    odd: ExtractionField | str | None = None,
) -> ExtractionField:
    """Derive the settlement outcome from stake against return."""

    def _value(field: ExtractionField | str | None) -> float | None:
        if isinstance(field, ExtractionField):
            return parse_amount(field.value)
        return parse_amount(field)

    staked = _value(stake)
    returned = _value(return_amount)
    if staked is None or returned is None or staked <= 0:
        return ExtractionField.empty()

    if returned == 0:
        return ExtractionField("Red", Confidence.HIGH)
    if abs(returned - staked) < 0.01:
        return ExtractionField("Void", Confidence.HIGH)
    if returned > staked:
        price = _value(odd)
        if price is not None and price > 1:
            if returned / (staked * price) >= 0.95:
                return ExtractionField("Green", Confidence.HIGH)
            return ExtractionField("Half Green", Confidence.MEDIUM)
        return ExtractionField("Green", Confidence.MEDIUM)
    return ExtractionField("Half Red", Confidence.MEDIUM)


def apply_inference_rules(result: SlipExtractionResult) -> SlipExtractionResult:
    """Fill empty fields the slip implies; existing values keep their confidence."""

    result = infer_sport(result)
    result = infer_market_and_selection(result)
    if not result.outcome.has_value:
        # Profit printed as "won" settles like the gross return it implies.
        settled_return = reconcile_return(result.return_amount, result.stake, result.odd)
        settlement = infer_settlement(result.stake, settled_return, result.odd)
        if settlement.has_value:
            result = result.with_fields(outcome=settlement)
    return result


__all__ = [
    "DRAW_LABEL",
    "MATCH_ODDS_MARKET",
    "apply_inference_rules",
    "infer_market_and_selection",
    "infer_settlement",
    "infer_sport",
    "split_event",
]
