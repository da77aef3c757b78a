"""Typed domain representations shared by extraction, normalization, and tickets."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Callable


class Confidence(str, Enum):
    """Per-field certainty reported by extraction and carried downstream."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    NONE = "none"

    @property
    def rank(self) -> int:
        return _CONFIDENCE_RANK[self]

    @classmethod
    def coerce(cls, value: object) -> "Confidence":
        if isinstance(value, Confidence):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                return cls.NONE
        return cls.NONE

    @classmethod
    def lowest(cls, first: "Confidence", second: "Confidence") -> "Confidence":
        return first if first.rank <= second.rank else second

    def downgrade(self) -> "Confidence":
        """Drop one notch; ``low`` and ``none`` stay where they are."""

        if self is Confidence.HIGH:
            return Confidence.MEDIUM
        if self is Confidence.MEDIUM:
            return Confidence.LOW
        return self


_CONFIDENCE_RANK = {
    Confidence.NONE: 0,
    Confidence.LOW: 1,
    Confidence.MEDIUM: 2,
    Confidence.HIGH: 3,
}


@dataclass(slots=True, frozen=True)
class ExtractionField:
    """Single extracted value with the certainty it was read with."""

    value: str | None = None
    confidence: Confidence = Confidence.NONE

    @classmethod
    def empty(cls) -> "ExtractionField":
        return cls(None, Confidence.NONE)

    @property
    def has_value(self) -> bool:
        return bool(self.value and self.value.strip())

    @property
    def needs_review(self) -> bool:
        return self.has_value and self.confidence in (Confidence.MEDIUM, Confidence.LOW)


SLIP_FIELDS: tuple[str, ...] = (
    "home",
    "away",
    "event",
    "kickoff",
    "sport",
    "market",
    "selection",
    "odd",
    "stake",
    "return_amount",
    "outcome",
    "bookmaker",
)


@dataclass(slots=True, frozen=True)
class SlipExtractionResult:
    """Immutable bundle of every field read from one slip image."""

    home: ExtractionField = field(default_factory=ExtractionField.empty)
    away: ExtractionField = field(default_factory=ExtractionField.empty)
    event: ExtractionField = field(default_factory=ExtractionField.empty)
    kickoff: ExtractionField = field(default_factory=ExtractionField.empty)
    sport: ExtractionField = field(default_factory=ExtractionField.empty)
    market: ExtractionField = field(default_factory=ExtractionField.empty)
    selection: ExtractionField = field(default_factory=ExtractionField.empty)
    odd: ExtractionField = field(default_factory=ExtractionField.empty)
    stake: ExtractionField = field(default_factory=ExtractionField.empty)
    return_amount: ExtractionField = field(default_factory=ExtractionField.empty)
    outcome: ExtractionField = field(default_factory=ExtractionField.empty)
    bookmaker: ExtractionField = field(default_factory=ExtractionField.empty)

    def with_fields(self, **changes: ExtractionField) -> "SlipExtractionResult":
        return replace(self, **changes)

    def fields(self) -> dict[str, ExtractionField]:
        return {name: getattr(self, name) for name in SLIP_FIELDS}

    def review_flags(self) -> dict[str, bool]:
        return {name: value.needs_review for name, value in self.fields().items()}

    @property
    def has_data(self) -> bool:
        return any(value.has_value for value in self.fields().values())


class MarketType(str, Enum):
    MATCH_ODDS = "1X2"
    MONEYLINE = "MONEYLINE"
    TOTAL = "TOTAL"
    HANDICAP = "HANDICAP"
    BTTS = "BTTS"
    CORRECT_SCORE = "CORRECT_SCORE"
    DOUBLE_CHANCE = "DOUBLE_CHANCE"
    DRAW_NO_BET = "DNB"
    FIRST_HALF = "FIRST_HALF"
    SECOND_HALF = "SECOND_HALF"
    FIRST_PERIOD = "FIRST_PERIOD"
    FIRST_QUARTER = "FIRST_QUARTER"
    FIRST_SET = "FIRST_SET"
    METHOD_OF_VICTORY = "METHOD_OF_VICTORY"
    ROUND_FINISH = "ROUND_FINISH"
    PLAYER_PROPS = "PLAYER_PROPS"
    OUTRIGHT = "OUTRIGHT"
    GENERIC = "OTHER"


class MarketDomain(str, Enum):
    GOALS = "GOALS"
    POINTS = "POINTS"
    GAMES = "GAMES"
    SETS = "SETS"
    RUNS = "RUNS"
    CORNERS = "CORNERS"
    CARDS = "CARDS"
    ROUNDS = "ROUNDS"
    MAPS = "MAPS"
    KILLS = "KILLS"
    TOWERS = "TOWERS"
    ACES = "ACES"
    GENERIC = "GENERIC"


class MarketSide(str, Enum):
    OVER = "OVER"
    UNDER = "UNDER"
    POSITIVE = "POSITIVE"
    NEGATIVE = "NEGATIVE"


@dataclass(slots=True, frozen=True)
class MarketClassification:
    """Structured reading of a raw market/selection pair."""

    type: MarketType
    display_name: str
    confidence: Confidence
    domain: MarketDomain | None = None
    side: MarketSide | None = None
    line: float | None = None
    raw_market: str = ""
    raw_selection: str = ""
    domain_source: str | None = None

    @property
    def is_threshold(self) -> bool:
        return self.type in (MarketType.TOTAL, MarketType.HANDICAP)


@dataclass(slots=True, frozen=True)
class PendingNormalization:
    """Normalization metadata kept until the caller settles the market."""

    market_intent: str | None = None
    market_raw: str | None = None
    detected_sport: str | None = None


@dataclass(slots=True, frozen=True)
class MarketTaxonomyEntry:
    market_id: str
    display_name: str
    sports: tuple[str, ...]
    line_formatter: Callable[[MarketSide, float, str | None], str] | None = None


class OddMethod(str, Enum):
    DISPLAYED_ODD_TRUSTED = "displayed_odd_trusted"
    ODD_DERIVED_FROM_RETURN = "odd_derived_from_return"


@dataclass(slots=True, frozen=True)
class OddCalculation:
    """Reconciliation between the displayed odd and settled stake/return."""

    method: OddMethod
    displayed_odd: float | None
    real_odd: float | None
    confidence: Confidence
    has_hidden_decimal: bool
    delta: float | None
    odd_field: ExtractionField
    return_field: ExtractionField = field(default_factory=ExtractionField.empty)


class AnomalySeverity(str, Enum):
    NONE = "none"
    WARNING = "warning"
    CRITICAL = "critical"


class AnomalyKind(str, Enum):
    NONE = "none"
    PAST = "past"
    FUTURE = "future"
    MALFORMED = "malformed"


@dataclass(slots=True, frozen=True)
class DateAnomaly:
    """Result of checking a settlement date against the current time."""

    is_anomalous: bool
    severity: AnomalySeverity = AnomalySeverity.NONE
    kind: AnomalyKind = AnomalyKind.NONE
    reason: str | None = None
    suggested_action: str | None = None
    difference_in_days: int | None = None
    detected_date: datetime | None = None

    @classmethod
    def normal(cls, detected: datetime | None = None, days: int | None = None) -> "DateAnomaly":
        return cls(False, detected_date=detected, difference_in_days=days)


class DateDecision(str, Enum):
    CONFIRMED = "confirmed"
    CORRECTED = "corrected"
    PENDING = "pending"


@dataclass(slots=True, frozen=True)
class DateAnomalyLogEntry:
    """Audit record of how a flagged date was handled."""

    detected_text: str
    difference_in_days: int | None
    origin: str
    decision: DateDecision
    logged_at: datetime
    corrected_to: str | None = None
