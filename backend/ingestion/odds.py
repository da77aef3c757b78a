from __future__ import annotations

import re
from typing import Any

from loguru import logger

from app.core.config import Settings, get_settings
from app.domain import Confidence, ExtractionField, OddCalculation, OddMethod

_NON_NUMERIC_RE = re.compile(r"[^\d.,\-]")


def parse_amount(value: Any) -> float | None:
    """Parse a money or odd string leniently ("R$ 1.234,56", "2,10", "€5")."""

    if value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value)
    cleaned = _NON_NUMERIC_RE.sub("", str(value))
    if not cleaned or not any(char.isdigit() for char in cleaned):
        return None
    if "," in cleaned and "." in cleaned:
        # The right-most separator is the decimal one.
        if cleaned.rfind(",") > cleaned.rfind("."):
            cleaned = cleaned.replace(".", "").replace(",", ".")
        else:
            cleaned = cleaned.replace(",", "")
    elif cleaned.count(",") == 1:
        cleaned = cleaned.replace(",", ".")
    elif cleaned.count(",") > 1:
        cleaned = cleaned.replace(",", "")
    elif cleaned.count(".") > 1:
        head, _, tail = cleaned.rpartition(".")
        cleaned = head.replace(".", "") + "." + tail
    try:
        return float(cleaned)
    except ValueError:
        return None


def _as_field(value: ExtractionField | str | None) -> ExtractionField:
    if isinstance(value, ExtractionField):
        return value
    if value is None or not str(value).strip():
        return ExtractionField.empty()
    return ExtractionField(str(value).strip(), Confidence.HIGH)


def reconcile_return(
    return_amount: ExtractionField | str | None,
    stake: ExtractionField | str | None,
    displayed_odd: ExtractionField | str | None,
) -> ExtractionField:
    """Read the printed "won" amount as gross return or as net profit.

    Many bookmakers print the profit where the return is expected. An amount
    below the stake is profit. An amount at or above the stake is profit only
    when ``stake + amount`` sits closer to the displayed odd than the amount
    alone. A return equal to the stake is a refund and stays as printed.
    """

    return_field = _as_field(return_amount)
    returned = parse_amount(return_field.value)
    staked = parse_amount(_as_field(stake).value)
    displayed = parse_amount(_as_field(displayed_odd).value)
    if returned is None or staked is None or staked <= 0 or returned <= 0:
        return return_field
    if abs(returned - staked) < 0.01:
        return return_field

    if returned > staked:
        if displayed is None or displayed <= 1 or abs(returned - staked * displayed) < 1:
            return return_field
        from_gross = returned / staked
        from_profit = (staked + returned) / staked
        if abs(from_profit - displayed) >= abs(from_gross - displayed):
            return return_field

    gross = staked + returned
    logger.info("Won amount read as profit: won={} stake={} -> return={:.2f}", returned, staked, gross)
    return ExtractionField(f"{gross:.2f}", Confidence.HIGH)


def compute_real_odd(
    return_amount: ExtractionField | str | None,
    stake: ExtractionField | str | None,
    displayed_odd: ExtractionField | str | None,
    *,
    settings: Settings | None = None,
) -> OddCalculation:
    """Reconcile the displayed odd with ``return_amount / stake``.

    The return is first read as gross or profit (see :func:`reconcile_return`)
    and exposed as ``return_field``. The settled return is trusted over an odd
    that OCR may have misread. A derived odd of 1.0 or less (lost, void or
    partial returns) is not an odd and leaves the displayed value in place.
    """

    resolved = settings or get_settings()
    odd_field = _as_field(displayed_odd)
    return_field = reconcile_return(return_amount, stake, odd_field)
    displayed = parse_amount(odd_field.value) if odd_field.has_value else None
    returned = parse_amount(return_field.value)
    staked = parse_amount(_as_field(stake).value)

    real: float | None = None
    if returned is not None and staked is not None and staked > 0:
        real = returned / staked

    if real is None or real <= 1.0:
        return OddCalculation(
            method=OddMethod.DISPLAYED_ODD_TRUSTED,
            displayed_odd=displayed,
            real_odd=real,
            confidence=odd_field.confidence,
            has_hidden_decimal=False,
            delta=None if displayed is None or real is None else abs(real - displayed),
            odd_field=odd_field,
            return_field=return_field,
        )

    delta = None if displayed is None else abs(real - displayed)
    if delta is not None and delta <= resolved.odd_tolerance:
        return OddCalculation(
            method=OddMethod.DISPLAYED_ODD_TRUSTED,
            displayed_odd=displayed,
            real_odd=real,
            confidence=odd_field.confidence,
            has_hidden_decimal=False,
            delta=delta,
            odd_field=odd_field,
            return_field=return_field,
        )

    formatted = f"{real:.{resolved.odd_decimal_places}f}"
    logger.info(
        "Odd derived from return: displayed={} real={} (return={}, stake={})",
        odd_field.value,
        formatted,
        returned,
        staked,
    )
    return OddCalculation(
        method=OddMethod.ODD_DERIVED_FROM_RETURN,
        displayed_odd=displayed,
        real_odd=real,
        confidence=Confidence.HIGH,
        has_hidden_decimal=displayed is not None,
        delta=delta,
        odd_field=ExtractionField(formatted, Confidence.HIGH),
        return_field=return_field,
    )


__all__ = ["compute_real_odd", "parse_amount", "reconcile_return"]
