"""Static sport and market taxonomy used by the normalization engine."""

from __future__ import annotations

import re
import unicodedata

from app.domain import MarketDomain, MarketSide, MarketTaxonomyEntry, MarketType

FALLBACK_SPORT = "Outro"

SPORTS: tuple[str, ...] = (
    "Futebol",
    "Basquete",
    "Tênis",
    "Baseball",
    "Hockey",
    "Futebol Americano",
    "Vôlei",
    "MMA/UFC",
    "League of Legends",
    "Counter-Strike",
    "Dota 2",
    "eFootball",
    FALLBACK_SPORT,
)

# Keys are accent-stripped, lowercase.
SPORT_ALIASES: dict[str, tuple[str, ...]] = {
    "Futebol": ("futebol", "soccer", "football", "fut"),
    "Basquete": ("basquete", "basketball", "basket", "nba"),
    "Tênis": ("tenis", "tennis", "atp", "wta"),
    "Baseball": ("baseball", "beisebol", "mlb"),
    "Hockey": ("hockey", "ice hockey", "hoquei", "nhl"),
    "Futebol Americano": ("futebol americano", "american football", "nfl"),
    "Vôlei": ("volei", "voleibol", "volleyball"),
    "MMA/UFC": ("mma", "ufc", "mma/ufc", "luta", "fight"),
    "League of Legends": ("league of legends", "lol", "lck", "lec"),
    "Counter-Strike": ("counter-strike", "counter strike", "cs", "csgo", "cs2", "cs:go"),
    "Dota 2": ("dota 2", "dota", "dota2"),
    "eFootball": ("efootball", "e-football", "pes", "fifa", "esoccer"),
}

DOMAIN_LABELS: dict[MarketDomain, str] = {
    MarketDomain.GOALS: "Gols",
    MarketDomain.POINTS: "Pontos",
    MarketDomain.GAMES: "Games",
    MarketDomain.SETS: "Sets",
    MarketDomain.RUNS: "Runs",
    MarketDomain.CORNERS: "Escanteios",
    MarketDomain.CARDS: "Cartões",
    MarketDomain.ROUNDS: "Rounds",
    MarketDomain.MAPS: "Mapas",
    MarketDomain.KILLS: "Kills",
    MarketDomain.TOWERS: "Torres",
    MarketDomain.ACES: "Aces",
    MarketDomain.GENERIC: "Total",
}

DOMAINS_BY_SPORT: dict[str, tuple[MarketDomain, ...]] = {
    "Futebol": (MarketDomain.GOALS, MarketDomain.CORNERS, MarketDomain.CARDS),
    "eFootball": (MarketDomain.GOALS,),
    "Tênis": (MarketDomain.GAMES, MarketDomain.SETS),
    "Basquete": (MarketDomain.POINTS,),
    "Futebol Americano": (MarketDomain.POINTS,),
    "Hockey": (MarketDomain.GOALS,),
    "Vôlei": (MarketDomain.POINTS, MarketDomain.SETS),
    "Baseball": (MarketDomain.RUNS,),
    "MMA/UFC": (MarketDomain.ROUNDS,),
    "League of Legends": (MarketDomain.MAPS, MarketDomain.KILLS, MarketDomain.TOWERS),
    "Counter-Strike": (MarketDomain.MAPS, MarketDomain.ROUNDS),
    "Dota 2": (MarketDomain.MAPS, MarketDomain.KILLS, MarketDomain.TOWERS),
    FALLBACK_SPORT: (MarketDomain.GENERIC,),
}

MARKET_TYPE_LABELS: dict[MarketType, str] = {
    MarketType.MONEYLINE: "Moneyline / Vencedor",
    MarketType.MATCH_ODDS: "1X2",
    MarketType.TOTAL: "Total",
    MarketType.HANDICAP: "Handicap",
    MarketType.BTTS: "Ambas Marcam",
    MarketType.CORRECT_SCORE: "Placar Exato",
    MarketType.DOUBLE_CHANCE: "Dupla Chance",
    MarketType.DRAW_NO_BET: "Draw No Bet",
    MarketType.FIRST_HALF: "Resultado do 1º Tempo",
    MarketType.SECOND_HALF: "Resultado do 2º Tempo",
    MarketType.FIRST_PERIOD: "Resultado do 1º Período",
    MarketType.FIRST_QUARTER: "Resultado do 1º Quarto",
    MarketType.FIRST_SET: "Resultado do 1º Set",
    MarketType.METHOD_OF_VICTORY: "Método de Vitória",
    MarketType.ROUND_FINISH: "Round de Finalização",
    MarketType.PLAYER_PROPS: "Props de Jogadores",
    MarketType.OUTRIGHT: "Vencedor do Torneio",
    MarketType.GENERIC: "Outro",
}

MARKET_TYPES_BY_SPORT: dict[str, tuple[MarketType, ...]] = {
    "Futebol": (
        MarketType.MATCH_ODDS,
        MarketType.TOTAL,
        MarketType.HANDICAP,
        MarketType.BTTS,
        MarketType.DOUBLE_CHANCE,
        MarketType.DRAW_NO_BET,
        MarketType.CORRECT_SCORE,
        MarketType.FIRST_HALF,
    ),
    "Basquete": (
        MarketType.MONEYLINE,
        MarketType.TOTAL,
        MarketType.HANDICAP,
        MarketType.FIRST_HALF,
        MarketType.FIRST_QUARTER,
    ),
    "Tênis": (
        MarketType.MONEYLINE,
        MarketType.TOTAL,
        MarketType.HANDICAP,
        MarketType.FIRST_SET,
        MarketType.CORRECT_SCORE,
    ),
    "Baseball": (MarketType.MONEYLINE, MarketType.TOTAL, MarketType.HANDICAP, MarketType.FIRST_HALF),
    "Hockey": (MarketType.MONEYLINE, MarketType.TOTAL, MarketType.HANDICAP, MarketType.FIRST_PERIOD),
    "Futebol Americano": (
        MarketType.MONEYLINE,
        MarketType.TOTAL,
        MarketType.HANDICAP,
        MarketType.FIRST_HALF,
    ),
    "Vôlei": (
        MarketType.MONEYLINE,
        MarketType.TOTAL,
        MarketType.HANDICAP,
        MarketType.FIRST_SET,
        MarketType.CORRECT_SCORE,
    ),
    "MMA/UFC": (
        MarketType.MONEYLINE,
        MarketType.TOTAL,
        MarketType.METHOD_OF_VICTORY,
        MarketType.ROUND_FINISH,
    ),
    "League of Legends": (MarketType.MONEYLINE, MarketType.TOTAL, MarketType.HANDICAP),
    "Counter-Strike": (MarketType.MONEYLINE, MarketType.TOTAL, MarketType.HANDICAP),
    "Dota 2": (MarketType.MONEYLINE, MarketType.TOTAL, MarketType.HANDICAP),
    "eFootball": (
        MarketType.MATCH_ODDS,
        MarketType.TOTAL,
        MarketType.HANDICAP,
        MarketType.BTTS,
        MarketType.CORRECT_SCORE,
    ),
    FALLBACK_SPORT: (MarketType.MONEYLINE, MarketType.TOTAL, MarketType.HANDICAP),
}

# Counting domains that have no handicap line.
_NO_HANDICAP_DOMAINS = {MarketDomain.CORNERS, MarketDomain.CARDS, MarketDomain.ACES}

_WHITESPACE_RE = re.compile(r"\s+")


def normalize_text(value: str | None) -> str:
    """Lowercase, strip accents, and collapse whitespace."""

    if not value:
        return ""
    decomposed = unicodedata.normalize("NFD", value)
    stripped = "".join(char for char in decomposed if not unicodedata.combining(char))
    return _WHITESPACE_RE.sub(" ", stripped.lower()).strip()


def format_line(line: float) -> str:
    return f"{line:g}"


def format_total_selection(side: MarketSide, line: float, team: str | None = None) -> str:
    label = "Over" if side is MarketSide.OVER else "Under"
    return f"{label} {format_line(line)}"


def format_handicap_selection(side: MarketSide, line: float, team: str | None = None) -> str:
    sign = "-" if side is MarketSide.NEGATIVE else "+"
    handicap = f"{sign}{format_line(abs(line))}"
    return f"{team} {handicap}" if team else handicap


def domains_for_sport(sport: str | None) -> tuple[MarketDomain, ...]:
    return DOMAINS_BY_SPORT.get(sport or "", DOMAINS_BY_SPORT[FALLBACK_SPORT])


def default_domain_for_sport(sport: str | None) -> MarketDomain:
    domains = domains_for_sport(sport)
    return domains[0] if domains else MarketDomain.GENERIC


def market_types_for_sport(sport: str | None) -> tuple[MarketType, ...]:
    return MARKET_TYPES_BY_SPORT.get(sport or "", MARKET_TYPES_BY_SPORT[FALLBACK_SPORT])


def total_display_name(domain: MarketDomain) -> str:
    if domain is MarketDomain.GENERIC:
        return MARKET_TYPE_LABELS[MarketType.TOTAL]
    return f"Total de {DOMAIN_LABELS[domain]}"


def handicap_display_name(domain: MarketDomain) -> str:
    if domain is MarketDomain.GENERIC:
        return MARKET_TYPE_LABELS[MarketType.HANDICAP]
    return f"Handicap de {DOMAIN_LABELS[domain]}"


def _market_entries_for_sport(sport: str) -> list[tuple[str, str, object]]:
    domains = domains_for_sport(sport)
    entries: list[tuple[str, str, object]] = []
    for market_type in market_types_for_sport(sport):
        if market_type is MarketType.TOTAL:
            entries.extend(
                (f"TOTAL:{domain.value}", total_display_name(domain), format_total_selection)
                for domain in domains
            )
        elif market_type is MarketType.HANDICAP:
            entries.extend(
                (f"HANDICAP:{domain.value}", handicap_display_name(domain), format_handicap_selection)
                for domain in domains
                if domain not in _NO_HANDICAP_DOMAINS
            )
        elif market_type is not MarketType.GENERIC:
            entries.append((market_type.name, MARKET_TYPE_LABELS[market_type], None))
    entries.append((MarketType.GENERIC.name, MARKET_TYPE_LABELS[MarketType.GENERIC], None))
    return entries


def market_options_for_sport(sport: str | None) -> list[str]:
    """Return the market labels offered for ``sport``, ending with ``Outro``."""

    if sport not in MARKET_TYPES_BY_SPORT:
        sport = FALLBACK_SPORT
    return [display_name for _, display_name, _ in _market_entries_for_sport(sport)]


def _build_taxonomy() -> dict[str, MarketTaxonomyEntry]:
    entries: dict[str, MarketTaxonomyEntry] = {}
    for sport in SPORTS:
        for market_id, display_name, formatter in _market_entries_for_sport(sport):
            existing = entries.get(market_id)
            sports = (*existing.sports, sport) if existing else (sport,)
            entries[market_id] = MarketTaxonomyEntry(
                market_id=market_id,
                display_name=display_name,
                sports=sports,
                line_formatter=formatter,  # type: ignore[arg-type]
            )
    return entries


MARKET_TAXONOMY: dict[str, MarketTaxonomyEntry] = _build_taxonomy()


def taxonomy_entry_for(display_name: str) -> MarketTaxonomyEntry | None:
    wanted = normalize_text(display_name)
    for entry in MARKET_TAXONOMY.values():
        if normalize_text(entry.display_name) == wanted:
            return entry
    return None


__all__ = [
    "DOMAIN_LABELS",
    "DOMAINS_BY_SPORT",
    "FALLBACK_SPORT",
    "MARKET_TAXONOMY",
    "MARKET_TYPE_LABELS",
    "SPORTS",
    "SPORT_ALIASES",
    "default_domain_for_sport",
    "format_handicap_selection",
    "format_line",
    "format_total_selection",
    "handicap_display_name",
    "market_options_for_sport",
    "normalize_text",
    "taxonomy_entry_for",
    "total_display_name",
]
