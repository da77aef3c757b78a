"""Settlement-date parsing and anomaly detection for extracted slips."""

from __future__ import annotations

import re
from datetime import datetime

from dateutil import parser as date_parser
from loguru import logger

from app.core.config import Settings, get_settings
from app.domain import (
    AnomalyKind,
    AnomalySeverity,
    DateAnomaly,
    DateAnomalyLogEntry,
    DateDecision,
)

from .taxonomy import normalize_text

_DMY_RE = re.compile(
    r"^(\d{1,2})[/\-.](\d{1,2})[/\-.](\d{4})(?:[\sT,]+(\d{1,2})[:h](\d{2}))?"
)
_YMD_RE = re.compile(
    r"^(\d{4})[/\-.](\d{1,2})[/\-.](\d{1,2})(?:[\sT,]+(\d{1,2}):(\d{2}))?"
)
_TEXTUAL_RE = re.compile(
    r"(\d{1,2})\s*(?:de\s+)?([a-z]{3,})\.?(?:\s*(?:de\s+)?(\d{4}))?"
)
_MONTHS = {
    "jan": 1,
    "fev": 2,
    "feb": 2,
    "mar": 3,
    "abr": 4,
    "apr": 4,
    "mai": 5,
    "may": 5,
    "jun": 6,
    "jul": 7,
    "ago": 8,
    "aug": 8,
    "set": 9,
    "sep": 9,
    "out": 10,
    "oct": 10,
    "nov": 11,
    "dez": 12,
    "dec": 12,
}

SUGGESTED_ACTION = "Confirme a data ou corrija-a antes de salvar."


def _build(year: int, month: int, day: int, hour: str | None = None, minute: str | None = None) -> datetime | None:
    try:
        return datetime(year, month, day, int(hour or 0), int(minute or 0))
    except ValueError:
        return None


def parse_slip_date(value: str | None, *, now: datetime | None = None) -> datetime | None:
    """Parse the date formats bookmakers print; ``None`` when nothing matches."""

    if not value or not value.strip():
        return None
    text = value.strip()

    match = _DMY_RE.match(text)
    if match:
        day, month, year, hour, minute = match.groups()
        return _build(int(year), int(month), int(day), hour, minute)

    match = _YMD_RE.match(text)
    if match:
        try:
            parsed = date_parser.isoparse(text)
        except (ValueError, OverflowError):
            year, month, day, hour, minute = match.groups()
            return _build(int(year), int(month), int(day), hour, minute)
        return parsed.astimezone().replace(tzinfo=None) if parsed.tzinfo else parsed

    match = _TEXTUAL_RE.search(normalize_text(text))
    if match:
        day, month_name, year = match.groups()
        month = _MONTHS.get(month_name[:3])
        if month is not None:
            fallback_year = (now or datetime.now()).year
            return _build(int(year) if year else fallback_year, month, int(day))

    try:
        default = (now or datetime.now()).replace(hour=0, minute=0, second=0, microsecond=0)
        parsed = date_parser.parse(text, dayfirst=True, default=default)
    except (ValueError, OverflowError):
        return None
    return parsed.astimezone().replace(tzinfo=None) if parsed.tzinfo else parsed


def detect_date_anomaly(
    value: str | None,
    now: datetime | None = None,
    *,
    settings: Settings | None = None,
) -> DateAnomaly:
    """Flag dates far from ``now`` (or unreadable) for explicit confirmation."""

    resolved = settings or get_settings()
    base = now or datetime.now()
    if not value or not value.strip():
        return DateAnomaly.normal()

    detected = parse_slip_date(value, now=base)
    if detected is None:
        logger.warning("Unreadable settlement date on slip: '{}'", value)
        return DateAnomaly(
            is_anomalous=True,
            severity=AnomalySeverity.WARNING,
            kind=AnomalyKind.MALFORMED,
            reason=f"Data '{value}' não pôde ser interpretada.",
            suggested_action=SUGGESTED_ACTION,
        )

    days = (detected.date() - base.date()).days
    distance = abs(days)
    direction = "no passado" if days < 0 else "no futuro"
    kind = AnomalyKind.PAST if days < 0 else AnomalyKind.FUTURE

    if detected.year < resolved.date_min_operational_year:
        return DateAnomaly(
            is_anomalous=True,
            severity=AnomalySeverity.CRITICAL,
            kind=AnomalyKind.PAST,
            reason=(
                f"Data detectada está em {detected.year}, ano anterior ao operacional "
                f"({resolved.date_min_operational_year}). Verifique se é o ano correto."
            ),
            suggested_action=SUGGESTED_ACTION,
            difference_in_days=days,
            detected_date=detected,
        )
    if distance >= resolved.date_critical_days:
        return DateAnomaly(
            is_anomalous=True,
            severity=AnomalySeverity.CRITICAL,
            kind=kind,
            reason=f"Data detectada está {distance} dias {direction}. Isto é incomum para uma aposta recente.",
            suggested_action=SUGGESTED_ACTION,
            difference_in_days=days,
            detected_date=detected,
        )
    if distance >= resolved.date_warning_days:
        return DateAnomaly(
            is_anomalous=True,
            severity=AnomalySeverity.WARNING,
            kind=kind,
            reason=f"Data detectada está {distance} dias {direction}. Confirme se está correta.",
            suggested_action=SUGGESTED_ACTION,
            difference_in_days=days,
            detected_date=detected,
        )
    return DateAnomaly.normal(detected, days)


def anomaly_log_entry(
    value: str,
    anomaly: DateAnomaly,
    *,
    decision: DateDecision,
    origin: str = "ocr",
    corrected_to: str | None = None,
    now: datetime | None = None,
) -> DateAnomalyLogEntry:
    return DateAnomalyLogEntry(
        detected_text=value,
        difference_in_days=anomaly.difference_in_days,
        origin=origin,
        decision=decision,
        logged_at=now or datetime.now(),
        corrected_to=corrected_to,
    )


__all__ = ["anomaly_log_entry", "detect_date_anomaly", "parse_slip_date"]
