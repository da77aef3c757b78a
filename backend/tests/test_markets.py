from __future__ import annotations

import pytest

from app.domain import Confidence, MarketDomain, MarketSide, MarketType
from ingestion.markets import (
    classify_market,
    extract_handicap_line,
    extract_side_and_line,
    format_selection,
    handicap_team,
    resolve_option,
)
from ingestion.taxonomy import (
    MARKET_TAXONOMY,
    format_total_selection,
    market_options_for_sport,
    normalize_text,
    taxonomy_entry_for,
)


def test_normalize_text_strips_accents_and_spacing():
    assert normalize_text("  Ambas   Marcam  Não ") == "ambas marcam nao"
    assert normalize_text(None) == ""


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("Mais de 2.5", (MarketSide.OVER, 2.5)),
        ("Over 2,5 gols", (MarketSide.OVER, 2.5)),
        ("Menos de 21.5", (MarketSide.UNDER, 21.5)),
        ("U 45.5", (MarketSide.UNDER, 45.5)),
        ("+2.5", (MarketSide.OVER, 2.5)),
        ("Flamengo", None),
    ],
)
def test_extract_side_and_line(text, expected):
    assert extract_side_and_line(text) == expected


def test_signed_lines_are_not_totals_inside_handicap_markets():
    assert extract_side_and_line("Lakers +4.5", allow_signed=False) is None
    assert extract_handicap_line("Lakers +4.5") == 4.5
    assert extract_handicap_line("Flamengo (-1.5)") == -1.5
    assert handicap_team("Flamengo (-1.5)") == "Flamengo"


def test_classify_total_with_domain_from_market():
    classification = classify_market("Total de Gols", "Mais de 2.5", "Futebol")

    assert classification.type is MarketType.TOTAL
    assert classification.domain is MarketDomain.GOALS
    assert classification.side is MarketSide.OVER
    assert classification.line == 2.5
    assert classification.confidence is Confidence.HIGH
    assert classification.display_name == "Total de Gols"
    assert format_selection(classification) == "Over 2.5"


def test_classify_total_with_domain_from_sport_is_medium():
    classification = classify_market("Over/Under", "Under 21.5", "Basquete")

    assert classification.type is MarketType.TOTAL
    assert classification.domain is MarketDomain.POINTS
    assert classification.domain_source == "sport"
    assert classification.confidence is Confidence.MEDIUM
    assert classification.display_name == "Total de Pontos"


def test_domain_read_from_selection_is_kept_in_the_canonical_selection():
    classification = classify_market("Total", "Mais de 9.5 escanteios", "Futebol")

    assert classification.domain is MarketDomain.CORNERS
    assert format_selection(classification) == "Over 9.5 Escanteios"


def test_classify_handicap():
    classification = classify_market("Handicap Asiático", "Flamengo -1.5", "Futebol")

    assert classification.type is MarketType.HANDICAP
    assert classification.side is MarketSide.NEGATIVE
    assert classification.line == 1.5
    assert classification.display_name == "Handicap de Gols"
    assert format_selection(classification) == "Flamengo -1.5"


@pytest.mark.parametrize(
    ("market", "selection", "sport", "expected"),
    [
        ("1x2", "Flamengo", "Futebol", MarketType.MATCH_ODDS),
        ("Resultado Final", "Empate", "Futebol", MarketType.MATCH_ODDS),
        ("Vencedor", "Lakers", "Basquete", MarketType.MONEYLINE),
        ("Ambas Marcam", "Sim", "Futebol", MarketType.BTTS),
        ("Dupla Chance", "1X", "Futebol", MarketType.DOUBLE_CHANCE),
        ("Empate Anula Aposta", "Flamengo", "Futebol", MarketType.DRAW_NO_BET),
        ("Método de Vitória", "KO/TKO", "MMA/UFC", MarketType.METHOD_OF_VICTORY),
        ("Especial da casa", "Qualquer coisa", "Futebol", MarketType.GENERIC),
    ],
)
def test_keyword_markets(market, selection, sport, expected):
    assert classify_market(market, selection, sport).type is expected


def test_generic_market_is_low_confidence():
    classification = classify_market("Especial da casa", "Qualquer coisa", "Futebol")

    assert classification.confidence is Confidence.LOW
    assert classification.display_name == "Outro"


def test_market_options_end_with_outro_and_fall_back_for_unknown_sports():
    football = market_options_for_sport("Futebol")
    assert football[0] == "1X2"
    assert "Total de Gols" in football
    assert "Total de Escanteios" in football
    assert "Handicap de Escanteios" not in football
    assert football[-1] == "Outro"

    assert market_options_for_sport("Curling") == market_options_for_sport("Outro")


def test_taxonomy_entries_carry_sports_and_line_formatters():
    entry = taxonomy_entry_for("total de gols")

    assert entry is not None
    assert entry.market_id == "TOTAL:GOALS"
    assert "Futebol" in entry.sports and "Hockey" in entry.sports
    assert entry.line_formatter is format_total_selection
    assert MARKET_TAXONOMY["MATCH_ODDS"].line_formatter is None


def test_resolve_option_prefers_exact_display_name():
    classification = classify_market("Total de Gols", "Over 2.5", "Futebol")

    assert resolve_option(classification, market_options_for_sport("Futebol")) == "Total de Gols"


def test_resolve_option_matches_total_by_domain_label():
    classification = classify_market("Total de Gols", "Over 2.5", "Futebol")

    assert resolve_option(classification, ["Vencedor", "Over/Under Gols"]) == "Over/Under Gols"


def test_resolve_option_uses_similarity_as_last_resort():
    classification = classify_market("Ambas Marcam", "Sim", "Futebol")

    assert resolve_option(classification, ["Ambas Marcam?", "Vencedor"]) == "Ambas Marcam?"


def test_resolve_option_returns_empty_for_generic_or_no_options():
    generic = classify_market("Especial da casa", "Qualquer coisa", "Futebol")

    assert resolve_option(generic, market_options_for_sport("Futebol")) == ""
    assert resolve_option(classify_market("1x2", "Flamengo", "Futebol"), []) == ""
