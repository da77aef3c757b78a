"""Market classification for raw OCR market/selection text."""

from __future__ import annotations

import re
from difflib import SequenceMatcher
from typing import Sequence

from loguru import logger

from app.domain import (
    Confidence,
    MarketClassification,
    MarketDomain,
    MarketSide,
    MarketType,
)

from .taxonomy import (
    DOMAIN_LABELS,
    MARKET_TYPE_LABELS,
    default_domain_for_sport,
    format_handicap_selection,
    format_total_selection,
    handicap_display_name,
    normalize_text,
    total_display_name,
)

_NUMBER = r"(\d+(?:[.,]\d+)?)"
_SIGNED_NUMBER = r"([+-]?\d+(?:[.,]\d+)?)"

_EXPLICIT_MATCH_ODDS_RE = re.compile(r"1\s*[x×]\s*2", re.IGNORECASE)

_DOMAIN_PATTERNS: tuple[tuple[MarketDomain, re.Pattern[str]], ...] = (
    (MarketDomain.GOALS, re.compile(r"\b(?:gols?|goals?|golos?)\b")),
    (MarketDomain.POINTS, re.compile(r"\b(?:pontos?|pontuacao|points?|pts?)\b")),
    (MarketDomain.GAMES, re.compile(r"\b(?:games?|jogos?)\b")),
    (MarketDomain.SETS, re.compile(r"\bsets?\b")),
    (MarketDomain.RUNS, re.compile(r"\b(?:runs?|corridas?)\b")),
    (MarketDomain.CORNERS, re.compile(r"\b(?:corners?|escanteios?|cantos?)\b")),
    (MarketDomain.CARDS, re.compile(r"\b(?:cartao|cartoes|cards?|amarelos?)\b")),
    (MarketDomain.ROUNDS, re.compile(r"\b(?:rounds?|rodadas?)\b")),
    (MarketDomain.MAPS, re.compile(r"\b(?:mapas?|maps?)\b")),
    (MarketDomain.KILLS, re.compile(r"\b(?:kills?|abates?)\b")),
    (MarketDomain.TOWERS, re.compile(r"\b(?:torres?|towers?)\b")),
    (MarketDomain.ACES, re.compile(r"\baces?\b")),
)

_OVER_PATTERNS = (
    re.compile(rf"\b(?:mais|over|acima)(?:\s+de)?\s+{_NUMBER}"),
    re.compile(rf"\bo\s*{_NUMBER}\b"),
    re.compile(rf">\s*{_NUMBER}"),
)
_UNDER_PATTERNS = (
    re.compile(rf"\b(?:menos|under|abaixo)(?:\s+de)?\s+{_NUMBER}"),
    re.compile(rf"\bu\s*{_NUMBER}\b"),
    re.compile(rf"<\s*{_NUMBER}"),
)
# Only meaningful when the text is not a handicap market.
_SIGNED_OVER_PATTERNS = (
    re.compile(rf"(?:^|\s)\+{_NUMBER}"),
    re.compile(rf"{_NUMBER}\s*\+(?:\s|$)"),
)

_TOTAL_MARKET_RE = re.compile(r"\btotal\b|\bover\s*/?\s*under\b|\bo/u\b|\bmais\s*/\s*menos\b")
_HANDICAP_MARKET_RE = re.compile(
    r"\bhandicap\b|\bspread\b|\brun\s*line\b|\bpuck\s*line\b|\bah\b|\beh\b"
)
_HANDICAP_LINE_PATTERNS = (
    re.compile(rf"\(\s*{_SIGNED_NUMBER}\s*\)"),
    re.compile(rf"(?:^|\s){_SIGNED_NUMBER}\s*$"),
)

_KEYWORD_TYPES: tuple[tuple[MarketType, re.Pattern[str]], ...] = (
    (
        MarketType.MATCH_ODDS,
        re.compile(
            r"\b1x2\b|resultado\s+final|final\s+d[ae]\s+partida|tres\s+vias|"
            r"match\s+winner|match\s+result|full\s+time\s+result|"
            r"vencedor\s+(?:da\s+)?(?:partida|match)|resultado\s+da\s+partida|main\s+line"
        ),
    ),
    (MarketType.OUTRIGHT, re.compile(r"\boutright\b|vencedor\s+do\s+torneio|\bcampeao\b")),
    (
        MarketType.METHOD_OF_VICTORY,
        re.compile(r"metodo\s+de\s+vitoria|method\s+of\s+victory|\bko/tko\b|por\s+decisao"),
    ),
    (
        MarketType.ROUND_FINISH,
        re.compile(r"round\s+de\s+finalizacao|round\s+betting|round\s+finish"),
    ),
    (MarketType.MONEYLINE, re.compile(r"moneyline|money\s+line|\bml\b|vencedor|\bwinner\b")),
    (
        MarketType.BTTS,
        re.compile(r"\bbtts\b|ambas?\s+marcam|both\s+teams\s+to\s+score|gol\s+gol|\bgg\b"),
    ),
    (MarketType.CORRECT_SCORE, re.compile(r"placar|correct\s+score|resultado\s+exato")),
    (MarketType.DOUBLE_CHANCE, re.compile(r"dupla\s+chance|double\s+chance")),
    (MarketType.DRAW_NO_BET, re.compile(r"draw\s+no\s+bet|\bdnb\b|empate\s+anula")),
    (
        MarketType.FIRST_HALF,
        re.compile(r"\b1[ºo°]?\s*tempo|primeiro\s+tempo|first\s+half|\b1st\s+half|\bht\b"),
    ),
    (
        MarketType.SECOND_HALF,
        re.compile(r"\b2[ºo°]?\s*tempo|segundo\s+tempo|second\s+half|\b2nd\s+half"),
    ),
    (MarketType.FIRST_PERIOD, re.compile(r"\b1[ºo°]?\s*periodo|first\s+period|\b1st\s+period")),
    (MarketType.FIRST_QUARTER, re.compile(r"\b1[ºo°]?\s*quarto|first\s+quarter|\b1st\s+quarter")),
    (MarketType.FIRST_SET, re.compile(r"\b1[ºo°]?\s*set\b|primeiro\s+set|first\s+set|\b1st\s+set")),
    (MarketType.PLAYER_PROPS, re.compile(r"\bprops?\b|jogador|player")),
)

SIMILARITY_THRESHOLD = 0.6


def _to_float(raw: str) -> float | None:
    try:
        return float(raw.replace(",", "."))
    except ValueError:
        return None


def _first_number(patterns: Sequence[re.Pattern[str]], text: str) -> float | None:
    for pattern in patterns:
        match = pattern.search(text)
        if match:
            value = _to_float(match.group(1))
            if value is not None:
                return value
    return None


def extract_side_and_line(text: str, *, allow_signed: bool = True) -> tuple[MarketSide, float] | None:
    """Return the Over/Under side and numeric line mentioned in ``text``."""

    normalized = normalize_text(text)
    if not normalized:
        return None
    line = _first_number(_OVER_PATTERNS, normalized)
    if line is not None:
        return MarketSide.OVER, line
    line = _first_number(_UNDER_PATTERNS, normalized)
    if line is not None:
        return MarketSide.UNDER, line
    if allow_signed:
        line = _first_number(_SIGNED_OVER_PATTERNS, normalized)
        if line is not None:
            return MarketSide.OVER, line
    return None


def _handicap_match(text: str) -> re.Match[str] | None:
    for pattern in _HANDICAP_LINE_PATTERNS:
        match = pattern.search(text)
        if match and _to_float(match.group(1)) is not None:
            return match
    return None


def extract_handicap_line(text: str) -> float | None:
    match = _handicap_match(text or "")
    return _to_float(match.group(1)) if match else None


def handicap_team(selection: str) -> str:
    """Return the selection text with its handicap line removed."""

    match = _handicap_match(selection or "")
    if not match:
        return (selection or "").strip()
    team = selection[: match.start()] + selection[match.end():]
    return " ".join(team.split()).strip(" ()-")


def detect_domain(text: str) -> MarketDomain | None:
    normalized = normalize_text(text)
    for domain, pattern in _DOMAIN_PATTERNS:
        if pattern.search(normalized):
            return domain
    return None


def classify_market(raw_market: str | None, raw_selection: str | None, sport: str | None) -> MarketClassification:
    """Classify a raw market/selection pair for ``sport``.

    Threshold markets are checked first since their selections carry the
    most structure; keyword markets follow in a fixed priority order.
    """

    market_text = raw_market or ""
    selection_text = raw_selection or ""
    combined = normalize_text(f"{market_text} {selection_text}")

    market_type = MarketType.GENERIC
    confidence = Confidence.LOW
    is_handicap = bool(_HANDICAP_MARKET_RE.search(combined))
    side_line = extract_side_and_line(selection_text, allow_signed=not is_handicap) or extract_side_and_line(
        market_text, allow_signed=not is_handicap
    )

    if _EXPLICIT_MATCH_ODDS_RE.search(market_text):
        market_type, confidence = MarketType.MATCH_ODDS, Confidence.HIGH
    elif side_line or (_TOTAL_MARKET_RE.search(combined) and not is_handicap):
        market_type = MarketType.TOTAL
        confidence = Confidence.HIGH if side_line else Confidence.MEDIUM
    elif is_handicap:
        market_type, confidence = MarketType.HANDICAP, Confidence.HIGH
    else:
        for candidate, pattern in _KEYWORD_TYPES:
            if pattern.search(combined):
                market_type, confidence = candidate, Confidence.HIGH
                break

    domain: MarketDomain | None = None
    domain_source: str | None = None
    side: MarketSide | None = None
    line: float | None = None
    if market_type in (MarketType.TOTAL, MarketType.HANDICAP):
        domain = detect_domain(market_text)
        domain_source = "market"
        if domain is None:
            domain = detect_domain(selection_text)
            domain_source = "selection"
        if domain is None:
            domain = default_domain_for_sport(sport)
            domain_source = "sport"
            if confidence is Confidence.HIGH:
                confidence = Confidence.MEDIUM
        if market_type is MarketType.TOTAL and side_line:
            side, line = side_line
        elif market_type is MarketType.HANDICAP:
            signed = extract_handicap_line(selection_text)
            if signed is None:
                signed = extract_handicap_line(market_text)
            if signed is not None:
                line = abs(signed)
                side = MarketSide.NEGATIVE if signed < 0 else MarketSide.POSITIVE

    if market_type is MarketType.TOTAL and domain is not None:
        display_name = total_display_name(domain)
    elif market_type is MarketType.HANDICAP and domain is not None:
        display_name = handicap_display_name(domain)
    else:
        display_name = MARKET_TYPE_LABELS[market_type]

    logger.debug(
        "Classified market '{}' / '{}' ({}) as {} domain={} side={} line={} confidence={}",
        market_text,
        selection_text,
        sport,
        market_type.value,
        domain.value if domain else None,
        side.value if side else None,
        line,
        confidence.value,
    )
    return MarketClassification(
        type=market_type,
        display_name=display_name,
        confidence=confidence,
        domain=domain,
        side=side,
        line=line,
        raw_market=market_text,
        raw_selection=selection_text,
        domain_source=domain_source,
    )


def format_selection(classification: MarketClassification) -> str | None:
    """Return the canonical selection text, or ``None`` when the market has no structure."""

    if classification.side is None or classification.line is None:
        return None
    if classification.type is MarketType.TOTAL and classification.side in (MarketSide.OVER, MarketSide.UNDER):
        selection = format_total_selection(classification.side, classification.line)
        if classification.domain_source == "selection" and classification.domain is not None:
            # Keep the domain readable from the selection alone.
            selection = f"{selection} {DOMAIN_LABELS[classification.domain]}"
        return selection
    if classification.type is MarketType.HANDICAP:
        team = handicap_team(classification.raw_selection) or None
        return format_handicap_selection(classification.side, classification.line, team)
    return None


def resolve_option(classification: MarketClassification, options: Sequence[str]) -> str:
    """Snap a classification onto one of ``options``; empty string when nothing qualifies."""

    if not options or classification.type is MarketType.GENERIC:
        return ""
    if classification.display_name in options:
        return classification.display_name

    wanted = normalize_text(classification.display_name)
    domain_label = normalize_text(DOMAIN_LABELS[classification.domain]) if classification.domain else None
    for option in options:
        candidate = normalize_text(option)
        if candidate == wanted:
            return option
        if classification.type is MarketType.TOTAL and domain_label:
            if any(word in candidate for word in ("total", "over", "under")) and domain_label in candidate:
                return option
        if classification.type is MarketType.HANDICAP and domain_label:
            if any(word in candidate for word in ("handicap", "spread")) and domain_label in candidate:
                return option
        if classification.type is MarketType.MATCH_ODDS and ("1x2" in candidate or "1 x 2" in candidate):
            return option
        if classification.type is MarketType.MONEYLINE and ("moneyline" in candidate or "vencedor" in candidate):
            return option

    best_option = ""
    best_ratio = 0.0
    for option in options:
        ratio = SequenceMatcher(None, wanted, normalize_text(option)).ratio()
        if ratio > best_ratio:
            best_option, best_ratio = option, ratio
    return best_option if best_ratio >= SIMILARITY_THRESHOLD else ""


__all__ = [
    "SIMILARITY_THRESHOLD",
    "classify_market",
    "detect_domain",
    "extract_handicap_line",
    "extract_side_and_line",
    "format_selection",
    "handicap_team",
    "resolve_option",
]
