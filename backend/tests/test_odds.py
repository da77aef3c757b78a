from __future__ import annotations

import pytest

from app.domain import Confidence, ExtractionField, OddMethod
from ingestion.odds import compute_real_odd, parse_amount, reconcile_return


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("R$ 1.234,56", 1234.56),
        ("1,234.56", 1234.56),
        ("2,10", 2.10),
        ("€5", 5.0),
        ("1.85", 1.85),
        (3, 3.0),
    ],
)
def test_parse_amount(raw, expected):
    assert parse_amount(raw) == pytest.approx(expected)


@pytest.mark.parametrize("raw", ["", "abc", None])
def test_parse_amount_rejects_non_numbers(raw):
    assert parse_amount(raw) is None


def test_return_disagreeing_with_displayed_odd_wins():
    calculation = compute_real_odd("200", "100", "1.50")

    assert calculation.method is OddMethod.ODD_DERIVED_FROM_RETURN
    assert calculation.real_odd == pytest.approx(2.0)
    assert calculation.odd_field == ExtractionField("2.00", Confidence.HIGH)
    assert calculation.has_hidden_decimal is True
    assert calculation.delta == pytest.approx(0.5)


def test_matching_return_keeps_displayed_odd_verbatim():
    calculation = compute_real_odd("150", "100", "1.50")

    assert calculation.method is OddMethod.DISPLAYED_ODD_TRUSTED
    assert calculation.odd_field == ExtractionField("1.50", Confidence.HIGH)
    assert calculation.has_hidden_decimal is False


def test_difference_inside_tolerance_is_trusted():
    displayed = ExtractionField("2.00", Confidence.MEDIUM)

    calculation = compute_real_odd("201", "100", displayed)

    assert calculation.method is OddMethod.DISPLAYED_ODD_TRUSTED
    assert calculation.odd_field is displayed
    assert calculation.confidence is Confidence.MEDIUM


def test_missing_displayed_odd_is_derived_without_hidden_decimal():
    calculation = compute_real_odd("R$ 250,00", "R$ 100,00", None)

    assert calculation.method is OddMethod.ODD_DERIVED_FROM_RETURN
    assert calculation.odd_field.value == "2.50"
    assert calculation.has_hidden_decimal is False


@pytest.mark.parametrize(
    ("return_amount", "stake"),
    [("0", "100"), ("100", "100"), (None, "100"), ("200", "0"), ("200", None)],
)
def test_non_odds_returns_leave_the_displayed_odd(return_amount, stake):
    displayed = ExtractionField("1.90", Confidence.LOW)

    calculation = compute_real_odd(return_amount, stake, displayed)

    assert calculation.method is OddMethod.DISPLAYED_ODD_TRUSTED
    assert calculation.odd_field is displayed
    assert calculation.confidence is Confidence.LOW


def test_decimal_places_follow_settings(test_settings):
    settings = test_settings.model_copy(update={"odd_decimal_places": 3})

    calculation = compute_real_odd("333", "100", "1.50", settings=settings)

    assert calculation.odd_field.value == "3.330"


@pytest.mark.parametrize(
    ("won", "stake", "odd", "expected"),
    [
        ("60", "100", "1.60", "160.00"),
        ("60", "100", None, "160.00"),
        ("150", "100", "2.50", "250.00"),
        ("150", "100", "1.50", "150"),
        ("200", "100", "1.50", "200"),
        ("100", "100", "1.90", "100"),
        ("0", "100", "1.90", "0"),
        ("150", None, "2.50", "150"),
    ],
)
def test_reconcile_return_reads_won_as_profit_or_gross(won, stake, odd, expected):
    assert reconcile_return(won, stake, odd).value == expected


def test_profit_reading_keeps_a_matching_displayed_odd():
    calculation = compute_real_odd("150", "100", "2.50")

    assert calculation.method is OddMethod.DISPLAYED_ODD_TRUSTED
    assert calculation.odd_field == ExtractionField("2.50", Confidence.HIGH)
    assert calculation.has_hidden_decimal is False
    assert calculation.return_field == ExtractionField("250.00", Confidence.HIGH)
    assert calculation.real_odd == pytest.approx(2.5)


def test_profit_below_stake_derives_the_odd():
    displayed = ExtractionField("1.90", Confidence.LOW)

    calculation = compute_real_odd("60", "100", displayed)

    assert calculation.return_field.value == "160.00"
    assert calculation.method is OddMethod.ODD_DERIVED_FROM_RETURN
    assert calculation.odd_field == ExtractionField("1.60", Confidence.HIGH)


def test_gross_return_passes_through_unchanged():
    returned = ExtractionField("185,00", Confidence.MEDIUM)

    calculation = compute_real_odd(returned, "100", "1.85")

    assert calculation.return_field is returned
